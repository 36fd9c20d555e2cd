# Overview: Transaction scope and row locking shared by the service layer.

from __future__ import annotations

import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..validation import ConflictError

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """Raised when the database rejects or loses a transaction. Never retried."""
    pass


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


@contextmanager
def transaction(session):
    """
    Scoped transaction: commit on normal exit, rollback on any exception.

    - Domain errors (ValidationError, NotFoundError, InsufficientStockError, ...)
      are re-raised unchanged after the rollback.
    - Optimistic-lock conflicts surface as ConflictError.
    - Any other SQLAlchemy failure is logged and re-raised as PersistenceError.
    """
    try:
        yield session
        session.commit()
    except StaleDataError as exc:
        session.rollback()
        logger.warning("Concurrent modification detected: %s", exc)
        raise ConflictError("record was modified concurrently, reload and try again") from exc
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Transaction rolled back after database error")
        raise PersistenceError("database error, transaction rolled back") from exc
    except BaseException:
        session.rollback()
        raise
