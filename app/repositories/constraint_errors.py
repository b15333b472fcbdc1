"""Turns a store's generic constraint-violation error into a typed one.

Drivers report a violated foreign key only as free text (plus, for
PostgreSQL, a SQLSTATE and a few diagnostic fields).  This module is the one
place that reads that text.  A failure is an
invalid province/country pair only when it is a foreign-key violation whose
diagnostics name the province relation *and* both of its key columns.
Everything else is an unclassified persistence failure.

Examples of diagnostics that match::

    PostgreSQL  insert or update on table "member_addresses" violates foreign
                key constraint "fk_member_addresses_province_code_country_code"
                DETAIL: Key (province_code, country_code)=(ON, US) is not
                present in table "provinces".
    SQL Server  The INSERT statement conflicted with the FOREIGN KEY
                constraint "FK_dbo.MemberAddress_dbo.Province_ProvinceCode_CountryCode".

SQLite only says ``FOREIGN KEY constraint failed``; that is never enough to
name the cause, so it is classified as unknown here.  Callers that know which
keys they wrote can re-check the reference data themselves.
"""
import re
from typing import List

from ..errors import AccountError, PersistenceError, ReferenceIntegrityError

PG_FOREIGN_KEY_VIOLATION = '23503'
MSSQL_CONSTRAINT_VIOLATION = 547

PROVINCE_TABLE = 'provinces'
PROVINCE_KEY_COLUMNS = ('province_code', 'country_code')

_FOREIGN_KEY_TEXT = re.compile(r'foreign\s*key', re.IGNORECASE)


def _squash(text: str) -> str:
    """Lower-case and drop separators so ``ProvinceCode`` == ``province_code``."""
    return re.sub(r'[^a-z0-9]', '', text.lower())


def _diagnostics(exc: BaseException) -> List[str]:
    """Collect every piece of diagnostic text the driver attached."""
    orig = getattr(exc, 'orig', None) or exc
    texts = [str(orig)]
    diag = getattr(orig, 'diag', None)
    if diag is not None:
        for attr in ('constraint_name', 'table_name', 'message_primary', 'message_detail'):
            value = getattr(diag, attr, None)
            if value:
                texts.append(str(value))
    return texts


def is_foreign_key_violation(exc: BaseException) -> bool:
    orig = getattr(exc, 'orig', None) or exc
    if getattr(orig, 'pgcode', None) == PG_FOREIGN_KEY_VIOLATION:
        return True
    args = getattr(orig, 'args', ())
    if args and args[0] == MSSQL_CONSTRAINT_VIOLATION:
        return True
    return any(_FOREIGN_KEY_TEXT.search(text) for text in _diagnostics(exc))


def references_province_pair(exc: BaseException) -> bool:
    """True when the diagnostics name the province table and both key columns."""
    squashed = _squash(' '.join(_diagnostics(exc)))
    columns = [_squash(col) for col in PROVINCE_KEY_COLUMNS]
    if not all(col in squashed for col in columns):
        return False
    # The column names themselves contain "province"; look for the relation
    # only in what is left once they are removed.
    for col in columns:
        squashed = squashed.replace(col, ' ')
    return _squash(PROVINCE_TABLE.rstrip('s')) in squashed


def classify_integrity_error(exc: BaseException) -> AccountError:
    """Map a driver/ORM constraint failure onto the account error taxonomy."""
    if is_foreign_key_violation(exc) and references_province_pair(exc):
        return ReferenceIntegrityError()
    return PersistenceError()
