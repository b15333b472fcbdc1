"""Read-only cart projections used by the page chrome."""
from typing import MutableMapping

from ..errors import member_not_found
from ..repositories.unit_of_work import UnitOfWork

CART_QTY_KEY = 'Cart.Quantity'


class CartService:
    """Derives the number shown on the cart badge.

    A missing member raises :class:`~app.errors.NotFoundError` instead of
    reporting an empty cart, so a broken identity lookup is never hidden.
    """

    def project_cart_quantity(self, db, member_id: str) -> int:
        """Return the number of items in *member_id*'s cart."""
        uow = UnitOfWork(db)
        if uow.members.find(member_id) is None:
            raise member_not_found(member_id)
        return uow.members.cart_item_count(member_id)

    def set_session_cart_qty(self, session: MutableMapping, db, member_id: str) -> int:
        """Cache the cart quantity in *session* under :data:`CART_QTY_KEY`."""
        quantity = self.project_cart_quantity(db, member_id)
        session[CART_QTY_KEY] = quantity
        return quantity
