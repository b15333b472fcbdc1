"""
identity_provider.py
====================
The identity provider capability consumed by the account workflows: who
is signed in, ending a member's session, and sending the email-confirmation
message.  Veil does not own sessions or mail delivery; it calls out to the
provider over HTTP.

Configuration
-------------
Add to ``config.json`` (or set ``IDENTITY_PROVIDER_URL`` /
``IDENTITY_PROVIDER_TOKEN``)::

    "identity_provider_url":        "https://id.example.com/api",
    "identity_provider_token":      "service-token",
    "confirm_email_url":            "https://veil.example.com/Account/ConfirmEmail",
    "notification_timeout_seconds": 8

Every call has a bounded timeout; a timeout is reported like any other
failure.
"""

from __future__ import annotations

import logging
import urllib.parse
from abc import ABC, abstractmethod
from typing import Dict, Optional

import requests

logger = logging.getLogger('veil.identity')

_DEFAULT_TIMEOUT = 8  # seconds

CONFIRMATION_SUBJECT = "Veil - Email change request"


class NotificationError(Exception):
    """The provider did not accept a session or messaging request."""


class IdentityProvider(ABC):
    """Abstract identity provider interface."""

    @abstractmethod
    def get_current_user_id(self) -> Optional[str]:
        """Return the signed-in member's id, or ``None``."""

    @abstractmethod
    def invalidate_session(self, member_id: str) -> None:
        """Sign *member_id* out everywhere.

        Raises:
            NotificationError: If the provider did not confirm the sign-out.
        """

    @abstractmethod
    def send_confirmation(self, member_id: str, email: str, code: str) -> None:
        """Send *code* to *email* so the member can confirm the address.

        Raises:
            NotificationError: If the message was not accepted for delivery.
        """


class HttpIdentityProvider(IdentityProvider):
    """Identity provider reached through its REST API.

    Args:
        base_url:          Provider API root.
        service_token:     Bearer token identifying Veil to the provider.
        session_token:     The current request's session token, used only by
                           :meth:`get_current_user_id`.
        confirm_email_url: Page the confirmation link points at.
        timeout:           HTTP request timeout in seconds.
    """

    def __init__(self, base_url: str, service_token: str = '',
                 session_token: Optional[str] = None,
                 confirm_email_url: str = '',
                 timeout: int = _DEFAULT_TIMEOUT) -> None:
        self.base_url = base_url.rstrip('/')
        self.service_token = service_token
        self.session_token = session_token
        self.confirm_email_url = confirm_email_url
        self.timeout = timeout

    def for_session(self, session_token: str) -> 'HttpIdentityProvider':
        """Return a copy bound to one request's *session_token*."""
        return HttpIdentityProvider(self.base_url, self.service_token, session_token,
                                    self.confirm_email_url, self.timeout)

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def get_current_user_id(self) -> Optional[str]:
        if not self.session_token:
            return None
        try:
            resp = requests.get(
                f"{self.base_url}/session",
                headers={'Authorization': f"Bearer {self.session_token}"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            return resp.json().get('user_id')
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Could not resolve current user: %s", exc)
            return None

    def invalidate_session(self, member_id: str) -> None:
        self._post(f"/members/{member_id}/sessions/revoke", {})
        logger.info("Invalidated sessions for member %s", member_id)

    def send_confirmation(self, member_id: str, email: str, code: str) -> None:
        link = self.confirmation_link(member_id, code)
        payload = {
            'to': email,
            'subject': CONFIRMATION_SUBJECT,
            'html': ("<h1>Confirm this email to rejoin us at Veil</h1>"
                     f"Please confirm your new email address by clicking <a href=\"{link}\">here</a>"),
        }
        self._post(f"/members/{member_id}/messages", payload)
        logger.info("Confirmation message accepted for member %s", member_id)

    def confirmation_link(self, member_id: str, code: str) -> str:
        query = urllib.parse.urlencode({'userId': member_id, 'code': code})
        return f"{self.confirm_email_url}?{query}"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _headers(self) -> Dict[str, str]:
        if not self.service_token:
            return {}
        return {'Authorization': f"Bearer {self.service_token}"}

    def _post(self, path: str, payload: Dict) -> None:
        try:
            resp = requests.post(f"{self.base_url}{path}", json=payload,
                                 headers=self._headers(), timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Identity provider call %s failed: %s", path.split('/')[-1], exc)
            raise NotificationError(str(exc)) from exc
