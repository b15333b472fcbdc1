"""Repository for members, their stored payment methods and cart lines."""
from typing import List, Optional

from sqlalchemy import func, select

from database import CartItem, Member, StoredPaymentMethod
from .base import BaseRepository


class MemberRepository(BaseRepository):
    """Member aggregate access.

    Payment methods and cart lines are reached through explicit lookups by
    ``member_id``; there is no ORM navigation between the tables.
    """

    def find(self, member_id: str) -> Optional[Member]:
        if not member_id:
            return None
        return self._read(lambda: self._db.get(Member, member_id))

    def find_by_email(self, email: str) -> Optional[Member]:
        return self._read(lambda: self._db.scalars(
            select(Member).where(func.lower(Member.email) == email.lower())
        ).first())

    def add(self, member: Member) -> Member:
        return self._add(member)

    def payment_methods(self, member_id: str) -> List[StoredPaymentMethod]:
        return self._read(lambda: list(self._db.scalars(
            select(StoredPaymentMethod)
            .where(StoredPaymentMethod.member_id == member_id)
            .order_by(StoredPaymentMethod.created_at, StoredPaymentMethod.card_id)
        )))

    def add_payment_method(self, card: StoredPaymentMethod) -> StoredPaymentMethod:
        return self._add(card)

    def cart_item_count(self, member_id: str) -> int:
        return self._read(lambda: self._db.scalar(
            select(func.count()).select_from(CartItem).where(CartItem.member_id == member_id)
        )) or 0
