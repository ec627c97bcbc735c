# Overview: Retry wrapper for local store operations that lose a lock or version race.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.05):
    """
    Execute a local store operation with retry on concurrency-related failures.

    Retries on OperationalError ("database is locked" while the sync thread
    holds the SQLite write lock) and StaleDataError (version_id conflict).
    Each retry starts from a rolled-back session, so func must be a complete
    unit of work. Domain errors propagate untouched.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
