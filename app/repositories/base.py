"""Repository base class used by all concrete repositories."""
import logging
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError

from ..errors import PersistenceError


class BaseRepository:
    """Provides SQLAlchemy-session-backed access for one aggregate.

    Repositories never commit.  They stage changes on the request-scoped
    session they are given; :class:`~app.repositories.unit_of_work.UnitOfWork`
    decides when those changes become durable.

    Reads go through :meth:`_read` so a broken connection surfaces as a
    :class:`~app.errors.PersistenceError` rather than a driver exception.
    """

    def __init__(self, db) -> None:
        self._db = db
        self._log = logging.getLogger(f'veil.repository.{type(self).__name__}')

    def _read(self, query: Callable[[], Any]) -> Any:
        """Run *query*, translating store failures into ``PersistenceError``."""
        try:
            return query()
        except SQLAlchemyError as exc:
            self._log.error("Query failed: %s", exc)
            raise PersistenceError() from exc

    def _add(self, instance: Any) -> Any:
        self._db.add(instance)
        return instance
