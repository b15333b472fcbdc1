"""Per-country postal code normalisation.

A formatter takes the raw value typed by the member and returns the
canonical form, or raises ``ValueError`` when the value cannot be a postal
code for that country.  Only the Canadian rule ships built in; other
countries can be added with :func:`register_postal_code_formatter`.
"""
import re
from typing import Callable, Dict

PostalCodeFormatter = Callable[[str], str]

_CANADIAN_SHAPE = re.compile(r'^[A-Z]\d[A-Z]\d[A-Z]\d$')

_formatters: Dict[str, PostalCodeFormatter] = {}


def format_six_character_code(raw: str) -> str:
    """``"k1a0b1"`` / ``" K1A  0B1 "`` -> ``"K1A 0B1"``."""
    compact = re.sub(r'\s+', '', raw or '').upper()
    if not _CANADIAN_SHAPE.match(compact):
        raise ValueError("Postal codes look like A1A 1A1.")
    return f"{compact[:3]} {compact[3:]}"


def default_formatter(raw: str) -> str:
    return (raw or '').strip().upper()


def register_postal_code_formatter(country_code: str, formatter: PostalCodeFormatter) -> None:
    """Install *formatter* for *country_code*, replacing any existing one."""
    _formatters[country_code.upper()] = formatter


def unregister_postal_code_formatter(country_code: str) -> None:
    _formatters.pop(country_code.upper(), None)


def format_postal_code(raw: str, country_code: str) -> str:
    """Normalise *raw* for *country_code*.

    Raises:
        ValueError: If the registered formatter rejects the value.
    """
    formatter = _formatters.get((country_code or '').upper(), default_formatter)
    return formatter(raw)


register_postal_code_formatter('CA', format_six_character_code)
