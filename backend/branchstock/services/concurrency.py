# Overview: Retry helpers for lock contention and optimistic-concurrency guards.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import StaleStateError
from ..extensions import db

logger = logging.getLogger(__name__)


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, SQLite "database is locked") and
    StaleDataError (ORM version mismatch). The session is rolled back before
    each retry, so func must redo all of its work.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def retry_on_conflict(func, *, attempts: int = 3, backoff_base: float = 0.05):
    """
    Re-run a guarded transition that lost an optimistic race.

    Only StaleStateError is retried: the retry re-reads the row, so a call
    that is no longer valid for the new state fails with a plain
    ConflictError instead of looping.
    """
    for attempt in range(attempts):
        try:
            return func()
        except StaleStateError:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            logger.info("Retrying after concurrent update (attempt %s of %s)", attempt + 2, attempts)
            time.sleep(backoff_base * (2 ** attempt))


def run_in_transaction(func, *, conflict_attempts: int = 1):
    """
    Run func and commit, as one retryable unit.

    The commit sits inside the retried block: retrying only the commit after
    a rollback would commit an empty transaction.
    """
    def _op():
        result = func()
        db.session.commit()
        return result

    return retry_on_conflict(lambda: run_with_retry(_op), attempts=conflict_attempts)
