"""Business logic for changing a member's login email."""
import hashlib
import hmac
import logging
import re
import secrets
from dataclasses import dataclass
from typing import Callable, Optional

from identity_provider import IdentityProvider
from ..errors import (AccountError, InvalidEmail, NotificationFailure, PersistenceFailure,
                      ValidationError, member_not_found)
from ..repositories.unit_of_work import UnitOfWork
from ..results import Result

EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
MAX_EMAIL_LENGTH = 255


class EmailChangeState:
    IDLE = 'idle'
    PENDING = 'pending'
    COMMITTED = 'committed'
    ROLLED_BACK = 'rolled_back'


@dataclass(frozen=True)
class EmailChangeRequest:
    """The in-flight change; lives only for one ``request_email_change`` call."""

    member_id: str
    old_email: str
    new_email: str


def hash_confirmation_code(code: str) -> str:
    return hashlib.sha256(code.encode('utf-8')).hexdigest()


def generate_confirmation_code() -> str:
    return secrets.token_urlsafe(32)


class EmailChangeService:
    """Coordinates an email change across the store and the identity
    provider so that it either fully happens or leaves no trace.

    Sequence
    --------
    1. Stage the new (unconfirmed) email and the hash of a fresh single-use
       code, and flush.  Constraint problems such as a taken address show up
       here, before anything leaves the process.
    2. Send the confirmation through the identity provider.  Failure or
       timeout rolls the staged write back.
    3. Commit.  If this fails the code that was sent is void, because its
       hash never became durable.
    4. Sign the member out.  If the provider refuses, the prior email is
       restored and committed, leaving the session as it was.

    The member's session is only touched once the new email is durable.
    """

    def __init__(self, identity_provider: IdentityProvider,
                 code_factory: Optional[Callable[[], str]] = None) -> None:
        self._identity = identity_provider
        self._code_factory = code_factory or generate_confirmation_code
        self._log = logging.getLogger('veil.email')

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def request_email_change(self, db, member_id: str, new_email: str) -> Result:
        """Change *member_id*'s email to *new_email* and require re-confirmation.

        Returns:
            ``Result`` with ``state`` set to the coordinator's final state.
            On success the caller must send the member back through sign-in.
        """
        new_email = (new_email or '').strip()
        if (not new_email or len(new_email) > MAX_EMAIL_LENGTH
                or not EMAIL_PATTERN.match(new_email)):
            return Result.failure(InvalidEmail(), state=EmailChangeState.IDLE)

        with UnitOfWork(db) as uow:
            try:
                member = uow.members.find(member_id)
            except AccountError:
                return Result.failure(PersistenceFailure(), state=EmailChangeState.IDLE)
            if member is None:
                return Result.failure(member_not_found(member_id), state=EmailChangeState.IDLE)
            if member.email.lower() == new_email.lower():
                return Result.failure(InvalidEmail('That is already your email address.'),
                                      state=EmailChangeState.IDLE)

            request = EmailChangeRequest(member_id, member.email, new_email)
            prior = (member.email, member.email_confirmed, member.email_confirmation_hash)
            code = self._code_factory()

            # pending
            member.email = request.new_email
            member.email_confirmed = False
            member.email_confirmation_hash = hash_confirmation_code(code)
            try:
                uow.flush()
            except AccountError as exc:
                self._log.warning("Email change for member %s not staged: %s", member_id, exc.kind)
                return Result.failure(PersistenceFailure(), state=EmailChangeState.ROLLED_BACK)

            try:
                self._identity.send_confirmation(member_id, request.new_email, code)
            except Exception as exc:  # any provider failure, timeouts included
                uow.rollback()
                self._log.warning("Confirmation for member %s not sent, rolled back: %s",
                                  member_id, type(exc).__name__)
                return Result.failure(NotificationFailure(), state=EmailChangeState.ROLLED_BACK)

            try:
                uow.commit()
            except AccountError as exc:
                self._log.error("Email change for member %s not committed after confirmation "
                                "was sent; the code is void: %s", member_id, exc.kind)
                return Result.failure(PersistenceFailure(), state=EmailChangeState.ROLLED_BACK)

            try:
                self._identity.invalidate_session(member_id)
            except Exception as exc:
                self._log.warning("Session for member %s not invalidated, restoring prior email: %s",
                                  member_id, type(exc).__name__)
                return self._compensate(uow, member_id, member, prior)

        self._log.info("Email changed for member %s; awaiting confirmation", member_id)
        return Result.success(state=EmailChangeState.COMMITTED)

    def confirm_email(self, db, member_id: str, code: str) -> Result:
        """Mark the pending email confirmed if *code* matches.  Codes are single-use."""
        with UnitOfWork(db) as uow:
            try:
                member = uow.members.find(member_id)
                if member is None:
                    return Result.failure(member_not_found(member_id))
                expected = member.email_confirmation_hash
                if not code or not expected or not hmac.compare_digest(
                        hash_confirmation_code(code), expected):
                    return Result.failure(ValidationError(
                        'That confirmation link is invalid or has already been used.'))
                member.email_confirmed = True
                member.email_confirmation_hash = None
                uow.commit()
            except AccountError as exc:
                return Result.failure(exc)

        self._log.info("Email confirmed for member %s", member_id)
        return Result.success()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _compensate(self, uow: UnitOfWork, member_id: str, member, prior) -> Result:
        member.email, member.email_confirmed, member.email_confirmation_hash = prior
        try:
            uow.commit()
        except AccountError as exc:
            self._log.error("Could not restore prior email for member %s: %s", member_id, exc.kind)
            return Result.failure(PersistenceFailure(), state=EmailChangeState.COMMITTED)
        return Result.failure(
            NotificationFailure("We couldn't sign you out to finish the change. "
                                "Your email address was not changed."),
            state=EmailChangeState.ROLLED_BACK,
        )
