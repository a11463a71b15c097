# Overview: Unit-of-work helpers; row locks, retry on lock/version conflicts, atomic commit.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for stock mutations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; version_id_col on the
    stock-bearing models still turns lost updates into StaleDataError there.
    """
    return query.with_for_update()


def _default_attempts() -> int:
    try:
        return int(current_app.config.get("DB_RETRY_ATTEMPTS", 3))
    except RuntimeError:
        return 3


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Domain errors propagate on first raise.
    """
    if attempts is None:
        attempts = _default_attempts()
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


def run_atomic(unit_of_work, *, attempts: int | None = None):
    """
    All-or-nothing execution of a group of reads/writes.

    The callable runs inside the session's transaction; on success the
    session is committed, on any exception it is rolled back and the
    exception re-raised. Lock/version conflicts re-run the whole unit.
    """
    def _op():
        try:
            result = unit_of_work()
            db.session.commit()
            return result
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op, attempts=attempts)
