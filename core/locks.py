"""
Concurrency control

Two layers protect the single shared Match row:

1. Pessimistic: SELECT ... FOR UPDATE (PostgreSQL / MySQL) so a second
   writer waits until the first commits.
2. Optimistic: Match.version is a SQLAlchemy version_id_col. Backends that
   ignore FOR UPDATE (SQLite) still refuse a write based on a stale read,
   raising StaleDataError; retry_on_conflict then re-runs the whole
   transaction against the fresh row.

Clients never lock anything; all serialization happens at the storage layer.
"""
from functools import wraps
from uuid import UUID
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, Query
from sqlalchemy.orm.exc import StaleDataError

from models import Match
from core.exceptions import StorageFailure
from database import get_settings

logger = logging.getLogger(__name__)


def with_match_lock(match_id: UUID, db: Session) -> Query:
    """
    Lock one Match row for the rest of the transaction.

    Example:
        match = with_match_lock(match_id, db).first()
        if not match:
            raise MatchNotFound(match_id)
        match.status = MatchStatus.PLAYING

    Parameters:
        match_id: Match UUID
        db: SQLAlchemy Session

    Returns:
        Query object (call .first() to execute)

    Notes:
        - populate_existing() so a retried transaction never sees values
          cached in the identity map from the failed attempt
        - nowait=False waits for the lock instead of failing fast
    """
    return db.query(Match).filter(
        Match.id == match_id
    ).populate_existing().with_for_update(nowait=False)


def retry_on_conflict(func):
    """
    Re-run a @transactional function when its versioned UPDATE lost a race.

    Usage (decorator order matters, retry wraps the transaction):
        @retry_on_conflict
        @transactional
        def _submit(db: Session, ...):
            ...

    Behaviour:
        - StaleDataError: the transaction was already rolled back, run it again
        - retries exhausted: StorageFailure, prior committed state intact
        - any other SQLAlchemyError: StorageFailure immediately
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        attempts = max(1, get_settings().max_write_retries)
        for attempt in range(1, attempts + 1):
            try:
                return func(*args, **kwargs)
            except StaleDataError:
                logger.warning(
                    f"Version conflict in {func.__name__} (attempt {attempt}/{attempts}), retrying"
                )
            except SQLAlchemyError as e:
                raise StorageFailure(f"Storage error in {func.__name__}: {e}") from e

        raise StorageFailure(
            f"{func.__name__} gave up after {attempts} conflicting attempts"
        )

    return wrapper
