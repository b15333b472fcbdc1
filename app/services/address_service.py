"""Business logic for member mailing addresses."""
import logging
import uuid
from typing import Dict, List, Optional

from database import MailingAddress
from ..errors import (AccountError, PersistenceError, ReferenceIntegrityError, ValidationError,
                      address_not_found, member_not_found)
from ..repositories.constraint_errors import is_foreign_key_violation
from ..repositories.unit_of_work import UnitOfWork
from ..results import Result
from .postal_codes import format_postal_code

REQUIRED_FIELDS = ('street_address', 'city', 'postal_code', 'province_code', 'country_code')
MAX_LENGTHS = {
    'street_address': 255,
    'po_box_number': 16,
    'city': 255,
    'postal_code': 16,
}
CODE_FIELDS = ('province_code', 'country_code')


def validate_address_fields(fields: Dict) -> Dict[str, Optional[str]]:
    """Check and normalise submitted address fields.

    Returns:
        The cleaned field dict, ready to be set on a
        :class:`~database.MailingAddress`.

    Raises:
        ValidationError: With one message per offending field.
    """
    errors: Dict[str, str] = {}
    cleaned: Dict[str, Optional[str]] = {}
    for name in REQUIRED_FIELDS + ('po_box_number',):
        value = fields.get(name)
        if value is not None and not isinstance(value, str):
            errors[name] = 'Must be text.'
            value = None
        cleaned[name] = value.strip() if value is not None else None

    for name in REQUIRED_FIELDS:
        if not cleaned[name] and name not in errors:
            errors[name] = 'This field is required.'

    for name in CODE_FIELDS:
        value = cleaned[name]
        if value:
            value = value.upper()
            cleaned[name] = value
            if len(value) != 2:
                errors[name] = 'Must be exactly 2 characters.'

    if not cleaned['po_box_number']:
        cleaned['po_box_number'] = None

    for name, limit in MAX_LENGTHS.items():
        value = cleaned.get(name)
        if value and len(value) > limit and name not in errors:
            errors[name] = f'Must be at most {limit} characters.'

    if cleaned['postal_code'] and 'postal_code' not in errors and 'country_code' not in errors:
        try:
            cleaned['postal_code'] = format_postal_code(cleaned['postal_code'], cleaned['country_code'])
        except ValueError as exc:
            errors['postal_code'] = str(exc)

    if errors:
        raise ValidationError('Some address information was invalid.', field_errors=errors)
    return cleaned


class AddressService:
    """Creates and edits mailing addresses while keeping every address's
    ``(province_code, country_code)`` pair pointing at real reference data.

    Rules
    -----
    * Structural validation runs before anything touches the store, on both
      the create and the edit path.
    * With *prevalidate* on, the pair is checked against the reference
      tables first.  A violation that still reaches the store (stale or
      skipped pre-check) is recognised from the constraint diagnostics, or,
      when the store does not name the key, by re-reading the reference
      tables after the rollback.
    * Each call commits once or leaves nothing behind.

    All methods accept a *db* SQLAlchemy session as the first argument so
    that callers control the session lifecycle.
    """

    def __init__(self, prevalidate: bool = True) -> None:
        self._prevalidate = prevalidate
        self._log = logging.getLogger('veil.address')

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def create_address(self, db, member_id: str, fields: Dict) -> Result:
        """Add a new address for *member_id*.

        Returns:
            ``Result`` whose value is the new address id.
        """
        try:
            cleaned = validate_address_fields(fields)
        except ValidationError as exc:
            self._log.info("Rejected new address for member %s: %s", member_id, exc.field_errors)
            return Result.failure(exc)

        address_id = str(uuid.uuid4())
        with UnitOfWork(db) as uow:
            try:
                if uow.members.find(member_id) is None:
                    return Result.failure(member_not_found(member_id))
                self._check_pair(uow, cleaned)
                uow.addresses.add(MailingAddress(id=address_id, member_id=member_id, **cleaned))
                uow.commit()
            except AccountError as exc:
                exc = self._explain_store_failure(uow, exc, cleaned)
                self._log.warning("Could not add address for member %s: %s", member_id, exc.kind)
                return Result.failure(exc)

        self._log.info("Added address %s for member %s", address_id, member_id)
        return Result.success(address_id)

    def edit_address(self, db, address_id: str, fields: Dict,
                     member_id: Optional[str] = None) -> Result:
        """Replace the details of an existing address.

        Args:
            db:         SQLAlchemy session.
            address_id: Address to edit.
            fields:     Full set of address fields.
            member_id:  When given, the address must belong to this member.
        """
        try:
            cleaned = validate_address_fields(fields)
        except ValidationError as exc:
            self._log.info("Rejected edit of address %s: %s", address_id, exc.field_errors)
            return Result.failure(exc)

        with UnitOfWork(db) as uow:
            try:
                address = uow.addresses.find(address_id, member_id)
                if address is None:
                    return Result.failure(address_not_found(address_id))
                self._check_pair(uow, cleaned)
                for name, value in cleaned.items():
                    setattr(address, name, value)
                uow.commit()
            except AccountError as exc:
                exc = self._explain_store_failure(uow, exc, cleaned)
                self._log.warning("Could not edit address %s: %s", address_id, exc.kind)
                return Result.failure(exc)

        self._log.info("Updated address %s", address_id)
        return Result.success(address_id)

    def get_address(self, db, address_id: str, member_id: Optional[str] = None) -> Result:
        try:
            address = UnitOfWork(db).addresses.find(address_id, member_id)
        except AccountError as exc:
            return Result.failure(exc)
        if address is None:
            return Result.failure(address_not_found(address_id))
        return Result.success(address)

    def list_addresses(self, db, member_id: str) -> List[MailingAddress]:
        """Return *member_id*'s addresses, oldest first (empty on store failure)."""
        try:
            return UnitOfWork(db).addresses.list_for_member(member_id)
        except AccountError as exc:
            self._log.error("Could not list addresses for member %s: %s", member_id, exc.kind)
            return []

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_pair(self, uow: UnitOfWork, cleaned: Dict) -> None:
        if not self._prevalidate:
            return
        if not uow.references.province_exists(cleaned['province_code'], cleaned['country_code']):
            raise ReferenceIntegrityError()

    def _explain_store_failure(self, uow: UnitOfWork, exc: AccountError,
                               cleaned: Dict) -> AccountError:
        """Attribute an unspecific foreign-key failure to the address's pair.

        Some stores (SQLite, or PostgreSQL when the country key fires first)
        report a violated foreign key without naming it.  The write has been
        rolled back by then, so the reference tables are asked directly.
        """
        if type(exc) is not PersistenceError or exc.__cause__ is None:
            return exc
        if not is_foreign_key_violation(exc.__cause__):
            return exc
        try:
            exists = uow.references.province_exists(cleaned['province_code'],
                                                    cleaned['country_code'])
        except AccountError:
            return exc
        return exc if exists else ReferenceIntegrityError()
