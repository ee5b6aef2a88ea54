# Overview: Transaction and optimistic-concurrency helpers shared by services.

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..errors import StoreFailure
from app.time_utils import as_utc_naive, truncate_to_ms


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def versions_match(expected: datetime | None, current: datetime | None) -> bool:
    """Millisecond-precision comparison of two version stamps."""
    if expected is None or current is None:
        return expected is None and current is None
    return truncate_to_ms(as_utc_naive(expected)) == truncate_to_ms(as_utc_naive(current))


@contextmanager
def transaction():
    """
    One unit of work on db.session.

    Commits on success. On any exception the session is rolled back first,
    so nothing partial is ever committed. SQLAlchemy errors are re-raised as
    StoreFailure; everything else propagates unchanged. No retries.
    """
    try:
        yield db.session
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StoreFailure("Database operation failed") from exc
    except Exception:
        db.session.rollback()
        raise
