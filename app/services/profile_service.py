"""Business logic for the member profile page."""
import logging
import re
from typing import Dict, Optional

from database import WISHLIST_VISIBILITIES
from ..errors import AccountError, ValidationError, member_not_found
from ..repositories.unit_of_work import UnitOfWork
from ..results import Result

MAX_NAME_LENGTH = 128
PHONE_PATTERN = re.compile(r'^[0-9+().\-\s]{7,32}$')


class ProfileService:
    """Reads and updates a member's name, phone number and preferences.

    The login email is not changed here; callers compare the submitted email
    with ``Result.value.email`` and start
    :meth:`~app.services.email_change_service.EmailChangeService.request_email_change`
    when they differ.
    """

    def __init__(self) -> None:
        self._log = logging.getLogger('veil.profile')

    def get_profile(self, db, member_id: str) -> Result:
        """Return the profile fields of *member_id* as a dict."""
        try:
            member = UnitOfWork(db).members.find(member_id)
        except AccountError as exc:
            return Result.failure(exc)
        if member is None:
            return Result.failure(member_not_found(member_id))
        return Result.success({
            'member_id': member.id,
            'first_name': member.first_name,
            'last_name': member.last_name,
            'email': member.email,
            'email_confirmed': member.email_confirmed,
            'phone_number': member.phone_number,
            'wishlist_visibility': member.wishlist_visibility,
            'receive_promotional_emails': member.receive_promotional_emails,
        })

    def update_profile(self, db, member_id: str, first_name: str, last_name: str,
                       phone_number: Optional[str] = None,
                       receive_promotional_emails: bool = False,
                       wishlist_visibility: Optional[str] = None) -> Result:
        """Overwrite the editable profile fields of *member_id*.

        ``wishlist_visibility`` left as ``None`` keeps the current setting.
        """
        errors: Dict[str, str] = {}
        first_name = (first_name or '').strip()
        last_name = (last_name or '').strip()
        phone_number = (phone_number or '').strip() or None

        for field, value in (('first_name', first_name), ('last_name', last_name)):
            if not value:
                errors[field] = 'This field is required.'
            elif len(value) > MAX_NAME_LENGTH:
                errors[field] = f'Must be at most {MAX_NAME_LENGTH} characters.'
        if phone_number and not PHONE_PATTERN.match(phone_number):
            errors['phone_number'] = 'Please enter a valid phone number.'
        if wishlist_visibility is not None and wishlist_visibility not in WISHLIST_VISIBILITIES:
            errors['wishlist_visibility'] = 'Unknown visibility.'
        if errors:
            return Result.failure(ValidationError('Some profile information was invalid.',
                                                  field_errors=errors))

        with UnitOfWork(db) as uow:
            try:
                member = uow.members.find(member_id)
                if member is None:
                    return Result.failure(member_not_found(member_id))
                member.first_name = first_name
                member.last_name = last_name
                member.phone_number = phone_number
                member.receive_promotional_emails = bool(receive_promotional_emails)
                if wishlist_visibility is not None:
                    member.wishlist_visibility = wishlist_visibility
                uow.commit()
            except AccountError as exc:
                self._log.warning("Could not update profile of member %s: %s", member_id, exc.kind)
                return Result.failure(exc)

        self._log.info("Updated profile of member %s", member_id)
        return Result.success(member)
