from __future__ import annotations

"""Abstract Unit of Work pattern for coordinating operations across repositories."""

import abc
import logging
from typing import Optional

from sqlalchemy import event
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm.session import Session

from shared.domain.exceptions import BackendUnavailable

logger = logging.getLogger(__name__)


class AbstractUnitOfWork(abc.ABC):
    """Abstract Unit of Work for coordinating operations across repositories."""

    def __enter__(self) -> AbstractUnitOfWork:
        return self

    def __exit__(self, *args):
        self.rollback()

    def commit(self):
        self._commit()

    def collect_new_events(self):
        """Collect domain events from aggregates."""
        return []

    @abc.abstractmethod
    def _commit(self):
        raise NotImplementedError

    @abc.abstractmethod
    def rollback(self):
        raise NotImplementedError


def apply_statement_timeout(session: Session, timeout: Optional[float]):
    """
    Bound every statement issued by ``session`` to ``timeout`` seconds.

    PostgreSQL only; other dialects (SQLite in tests) ignore the setting.
    SET LOCAL is scoped to a transaction, so it is re-applied on each begin.
    """
    if not timeout:
        return

    timeout_ms = int(timeout * 1000)

    @event.listens_for(session, "after_begin")
    def _set_timeout(_session, _transaction, connection):
        if connection.dialect.name == "postgresql":
            connection.exec_driver_sql(f"SET LOCAL statement_timeout = {timeout_ms}")


def commit_session(session: Session):
    """Commit and translate driver failures into BackendUnavailable."""
    try:
        session.commit()
    except DBAPIError as e:
        logger.error(f"Commit failed: {e}")
        session.rollback()
        raise BackendUnavailable(f"Commit failed: {e}") from e
