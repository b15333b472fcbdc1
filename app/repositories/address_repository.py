"""Repository for member mailing addresses."""
from typing import List, Optional

from sqlalchemy import select

from database import MailingAddress
from .base import BaseRepository


class AddressRepository(BaseRepository):
    """Persists :class:`~database.MailingAddress` rows.

    An address is identified by ``(id, member_id)``.  :meth:`find` accepts a
    bare address id (ids are UUIDs, so they are unique in practice) and an
    optional owner to scope the lookup.
    """

    def find(self, address_id: str, member_id: Optional[str] = None) -> Optional[MailingAddress]:
        if not address_id:
            return None
        stmt = select(MailingAddress).where(MailingAddress.id == address_id)
        if member_id is not None:
            stmt = stmt.where(MailingAddress.member_id == member_id)
        return self._read(lambda: self._db.scalars(stmt).first())

    def list_for_member(self, member_id: str) -> List[MailingAddress]:
        return self._read(lambda: list(self._db.scalars(
            select(MailingAddress)
            .where(MailingAddress.member_id == member_id)
            .order_by(MailingAddress.created_at, MailingAddress.id)
        )))

    def add(self, address: MailingAddress) -> MailingAddress:
        return self._add(address)
