"""Typed failures surfaced by the account workflows.

Repositories raise these instead of raw SQLAlchemy or provider exceptions;
services catch them at their boundary and hand them back inside a
:class:`~app.results.Result`.  Every error carries a stable ``kind`` for
callers and logs, and a ``message`` that is safe to show to the member.
"""
from typing import Dict, Optional

GENERIC_BACKEND_MESSAGE = "An error occurred while talking to one of our backends. Sorry!"
INVALID_PAIR_MESSAGE = "The Province/State you selected isn't in the Country you selected."


class AccountError(Exception):
    """Base class for every classified account failure."""

    kind = 'AccountError'
    default_message = 'An unknown error occurred.'

    def __init__(self, message: Optional[str] = None,
                 field_errors: Optional[Dict[str, str]] = None,
                 kind: Optional[str] = None) -> None:
        self.message = message or self.default_message
        self.field_errors: Dict[str, str] = dict(field_errors or {})
        if kind:
            self.kind = kind
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind!r}, message={self.message!r})"


class ValidationError(AccountError):
    """Caller-correctable input; never reaches the store."""
    kind = 'ValidationError'
    default_message = 'Some information was invalid.'


class InvalidEmail(ValidationError):
    kind = 'InvalidEmail'
    default_message = 'Please enter a valid email address.'


class ReferenceIntegrityError(AccountError):
    """The province/state does not belong to the chosen country."""
    kind = 'InvalidProvinceCountryPair'
    default_message = INVALID_PAIR_MESSAGE


class NotFoundError(AccountError):
    kind = 'NotFound'
    default_message = 'The requested record does not exist.'


class PersistenceError(AccountError):
    """A store failure that could not be attributed to a known cause."""
    kind = 'UnknownPersistenceFailure'
    default_message = 'An unknown error occurred while saving your changes.'


class PersistenceFailure(PersistenceError):
    kind = 'PersistenceFailure'


class ExternalServiceError(AccountError):
    kind = 'ExternalServiceError'
    default_message = GENERIC_BACKEND_MESSAGE
    retryable = False


class CardRejected(ExternalServiceError):
    """Provider ``card_error``; the provider's message is end-user safe."""
    kind = 'CardRejected'


class ProviderFailure(ExternalServiceError):
    """Any other provider error category, reported without its details."""
    kind = 'ProviderFailure'


class ServiceUnavailable(ExternalServiceError):
    """The provider could not be reached.

    The one-time token may already have been consumed, so a retry needs a
    fresh token from the member.
    """
    kind = 'ServiceUnavailable'
    default_message = ("We couldn't reach our payment processor. "
                       "Please re-enter your card details and try again.")
    retryable = True


class NotificationFailure(ExternalServiceError):
    kind = 'NotificationFailure'
    default_message = "We couldn't send the confirmation email. Your email address was not changed."


def member_not_found(member_id) -> NotFoundError:
    return NotFoundError(f"No member with id {member_id} exists.", kind='MemberNotFound')


def address_not_found(address_id) -> NotFoundError:
    return NotFoundError(f"No address with id {address_id} exists.", kind='AddressNotFound')
