"""
payment_gateway.py
==================
Exchange a client-side, single-use card token for a durable card reference
held by the payment provider (Stripe).

The browser collects card details with Stripe.js and posts back only a
one-time token (``tok_...``).  This module hands that token to Stripe once
and returns the card reference (``card_...``) plus display metadata.  The
token is never logged and never re-sent: if the request fails in transit
Stripe may already have consumed it, so callers must ask the member for
their card details again.

Configuration
-------------
Add to ``config.json`` (or set ``STRIPE_API_KEY``)::

    "stripe_api_key":      "sk_live_...",
    "api_timeout_seconds": 10

Usage
-----
::

    from payment_gateway import StripeTokenizationClient

    client = StripeTokenizationClient(api_key)
    card = client.exchange_token(token, customer_id=member.stripe_customer_id)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger('veil.stripe')

_DEFAULT_TIMEOUT = 10  # seconds

CARD_ERROR = 'card_error'


@dataclass(frozen=True)
class ProviderCardReference:
    """What the provider hands back for a stored card."""

    card_id: str
    customer_id: Optional[str] = None
    brand: Optional[str] = None
    last4: Optional[str] = None
    exp_month: Optional[int] = None
    exp_year: Optional[int] = None


class ProviderError(Exception):
    """The provider answered and refused the request.

    Args:
        category: Provider error type, e.g. ``card_error``,
                  ``invalid_request_error``, ``api_error``.
        message:  Provider's human-readable explanation.
    """

    def __init__(self, category: str, message: str) -> None:
        self.category = category
        self.message = message
        super().__init__(f"{category}: {message}")

    @property
    def is_card_error(self) -> bool:
        return self.category == CARD_ERROR


class ProviderUnavailable(Exception):
    """The provider could not be reached (connection failure or timeout)."""


class TokenizationClient(ABC):
    """Abstract interface to a card tokenization service."""

    @abstractmethod
    def exchange_token(self, one_time_token: str,
                       customer_id: Optional[str] = None,
                       email: Optional[str] = None) -> ProviderCardReference:
        """Trade *one_time_token* for a durable card reference.

        Args:
            one_time_token: Single-use client token.
            customer_id:    Provider customer to attach the card to.  When
                            ``None`` a customer is created and its id is
                            returned in ``ProviderCardReference.customer_id``.
            email:          Contact email recorded on a new customer.

        Raises:
            ProviderError:       The provider rejected the request.
            ProviderUnavailable: The provider could not be reached.
        """


class StripeTokenizationClient(TokenizationClient):
    """Client for the Stripe REST API (form-encoded, HTTP basic auth).

    Args:
        api_key:  Stripe secret key.
        timeout:  HTTP request timeout in seconds.
        base_url: API root, overridable for test doubles.
    """

    BASE_URL = "https://api.stripe.com/v1"

    def __init__(self, api_key: str, timeout: int = _DEFAULT_TIMEOUT,
                 base_url: str = BASE_URL) -> None:
        self.session = requests.Session()
        self.session.auth = (api_key, '')
        self.timeout = timeout
        self.base_url = base_url.rstrip('/')

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def exchange_token(self, one_time_token: str,
                       customer_id: Optional[str] = None,
                       email: Optional[str] = None) -> ProviderCardReference:
        if customer_id:
            url = f"{self.base_url}/customers/{customer_id}/sources"
            data: Dict[str, Any] = {'source': one_time_token}
        else:
            url = f"{self.base_url}/customers"
            data = {'source': one_time_token, 'expand[]': 'default_source'}
            if email:
                data['email'] = email

        logger.info("Exchanging card token (customer=%s)", customer_id or 'new')
        body = self._post(url, data)

        if customer_id:
            return self._card_reference(body, customer_id)
        card = body.get('default_source')
        if isinstance(card, str):
            card = {'id': card}
        elif not isinstance(card, dict):
            card = {}
        return self._card_reference(card, body.get('id'))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _post(self, url: str, data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            resp = self.session.post(url, data=data, timeout=self.timeout)
        except (requests.ConnectionError, requests.Timeout) as exc:
            logger.warning("Stripe unreachable: %s", type(exc).__name__)
            raise ProviderUnavailable(str(type(exc).__name__)) from exc
        except requests.RequestException as exc:
            logger.warning("Stripe request failed: %s", type(exc).__name__)
            raise ProviderUnavailable(str(type(exc).__name__)) from exc

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if resp.status_code >= 400:
            error = body.get('error')
            if not isinstance(error, dict):
                error = {}
            category = error.get('type') or 'api_error'
            message = error.get('message') or f"HTTP {resp.status_code}"
            logger.warning("Stripe refused request (%s, HTTP %s)", category, resp.status_code)
            raise ProviderError(category, message)
        return body

    @staticmethod
    def _card_reference(card: Dict[str, Any], customer_id: Optional[str]) -> ProviderCardReference:
        card_id = card.get('id')
        if not card_id:
            raise ProviderError('api_error', 'No card reference in provider response')
        return ProviderCardReference(
            card_id=card_id,
            customer_id=card.get('customer') or customer_id,
            brand=card.get('brand'),
            last4=card.get('last4'),
            exp_month=card.get('exp_month'),
            exp_year=card.get('exp_year'),
        )
