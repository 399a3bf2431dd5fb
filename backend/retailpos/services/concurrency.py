# Overview: Row locking, guarded counter updates, and retry for concurrent writes.

from __future__ import annotations

import time

from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def guarded_decrement(model, row_id: int, column: str, amount: int) -> bool:
    """
    UPDATE model SET column = column - amount WHERE id = row_id AND column >= amount

    Returns False when the guard fails (not enough left). The check and the
    write are one statement, so two terminals selling the last unit cannot
    both succeed.
    """
    col = getattr(model, column)
    result = db.session.execute(
        update(model)
        .where(model.id == row_id, col >= amount)
        .values({column: col - amount})
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount == 1


def increment(model, row_id: int, column: str, amount) -> None:
    col = getattr(model, column)
    db.session.execute(
        update(model)
        .where(model.id == row_id)
        .values({column: col + amount})
        .execution_options(synchronize_session="fetch")
    )


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts).
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
