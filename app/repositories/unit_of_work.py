"""Transactional boundary shared by one workflow invocation."""
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import PersistenceError
from .address_repository import AddressRepository
from .constraint_errors import classify_integrity_error
from .member_repository import MemberRepository
from .reference_repository import ReferenceDataRepository


class UnitOfWork:
    """Wraps one request-scoped SQLAlchemy session.

    The session is not thread-safe; build a new unit of work per request and
    never share it between concurrent callers.  :meth:`flush` and
    :meth:`commit` roll back on failure and raise a classified
    :class:`~app.errors.AccountError` instead of the driver's exception.

    Usage::

        with UnitOfWork(db) as uow:
            uow.addresses.add(address)
            uow.commit()

    Leaving the ``with`` block without committing rolls back.
    """

    def __init__(self, db) -> None:
        self._db = db
        self._committed = False
        self._log = logging.getLogger('veil.repository.UnitOfWork')
        self.members = MemberRepository(db)
        self.addresses = AddressRepository(db)
        self.references = ReferenceDataRepository(db)

    def __enter__(self) -> 'UnitOfWork':
        self._committed = False
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self._committed:
            self.rollback()

    def flush(self) -> None:
        """Send staged changes to the store without making them durable."""
        self._sync(self._db.flush, 'flush')

    def commit(self) -> None:
        self._sync(self._db.commit, 'commit')
        self._committed = True

    def rollback(self) -> None:
        try:
            self._db.rollback()
        except SQLAlchemyError as exc:
            self._log.error("Rollback failed: %s", exc)

    def _sync(self, operation, label: str) -> None:
        try:
            operation()
        except IntegrityError as exc:
            self.rollback()
            error = classify_integrity_error(exc)
            self._log.warning("%s rejected by a constraint (%s): %s", label, error.kind, exc.orig)
            raise error from exc
        except SQLAlchemyError as exc:
            self.rollback()
            self._log.error("%s failed: %s", label, exc)
            raise PersistenceError() from exc
