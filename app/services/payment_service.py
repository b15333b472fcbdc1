"""Business logic for cards on file."""
import logging
from typing import List

from database import StoredPaymentMethod
from payment_gateway import ProviderError, ProviderUnavailable, TokenizationClient
from ..errors import (AccountError, CardRejected, ProviderFailure, ServiceUnavailable,
                      ValidationError, member_not_found)
from ..repositories.unit_of_work import UnitOfWork
from ..results import Result


class PaymentMethodService:
    """Attaches cards to members through a
    :class:`~payment_gateway.TokenizationClient`.

    Rules
    -----
    * The one-time token goes to the provider exactly once.  It is never
      logged or stored, and a transport failure is *not* retried with it;
      the caller gets ``ServiceUnavailable`` (``retryable``) and must collect
      a fresh token.
    * ``card_error`` messages from the provider are safe for members and are
      passed through verbatim; other provider errors become a generic
      message.
    * On success exactly one :class:`~database.StoredPaymentMethod` is added
      and committed; on any failure the member's cards are unchanged.

    All methods accept a *db* SQLAlchemy session as the first argument so
    that callers control the session lifecycle.
    """

    def __init__(self, client: TokenizationClient) -> None:
        self._client = client
        self._log = logging.getLogger('veil.payment')

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def attach_card(self, db, member_id: str, one_time_token: str) -> Result:
        """Exchange *one_time_token* and store the resulting card.

        Returns:
            ``Result`` whose value is the new :class:`~database.StoredPaymentMethod`.
        """
        if not one_time_token or not one_time_token.strip():
            return Result.failure(ValidationError(
                'Some credit card information is invalid.',
                field_errors={'card': 'Card details are required.'},
            ))

        with UnitOfWork(db) as uow:
            try:
                member = uow.members.find(member_id)
                if member is None:
                    return Result.failure(member_not_found(member_id))

                try:
                    reference = self._client.exchange_token(
                        one_time_token.strip(),
                        customer_id=member.stripe_customer_id,
                        email=member.email,
                    )
                except ProviderUnavailable:
                    self._log.warning("Payment provider unreachable for member %s", member_id)
                    return Result.failure(ServiceUnavailable())
                except ProviderError as exc:
                    self._log.info("Card attach refused for member %s (%s)", member_id, exc.category)
                    if exc.is_card_error:
                        return Result.failure(CardRejected(exc.message))
                    return Result.failure(ProviderFailure())
                except Exception as exc:
                    self._log.warning("Payment provider call failed for member %s: %s",
                                      member_id, type(exc).__name__)
                    return Result.failure(ServiceUnavailable())

                if reference.card_id == one_time_token.strip():
                    self._log.error("Provider echoed the one-time token as the card reference")
                    return Result.failure(ProviderFailure())

                if reference.customer_id and member.stripe_customer_id != reference.customer_id:
                    member.stripe_customer_id = reference.customer_id
                card = uow.members.add_payment_method(StoredPaymentMethod(
                    card_id=reference.card_id,
                    member_id=member_id,
                    brand=reference.brand,
                    last4=(reference.last4 or '')[-4:] or None,
                    exp_month=reference.exp_month,
                    exp_year=reference.exp_year,
                ))
                uow.commit()
            except AccountError as exc:
                self._log.warning("Could not store card for member %s: %s", member_id, exc.kind)
                return Result.failure(exc)

        self._log.info("Stored card %s for member %s", reference.card_id, member_id)
        return Result.success(card)

    def list_cards(self, db, member_id: str) -> List[StoredPaymentMethod]:
        """Return *member_id*'s stored cards, oldest first (empty on store failure)."""
        try:
            return UnitOfWork(db).members.payment_methods(member_id)
        except AccountError as exc:
            self._log.error("Could not list cards for member %s: %s", member_id, exc.kind)
            return []
