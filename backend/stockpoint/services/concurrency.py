# Overview: Transaction helpers for contended writes: lock waits, retries, rollback.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import SaleError, PersistenceError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write() takes the
    database write lock up front instead.
    """
    return query.with_for_update()


def begin_write(session, *, lock_timeout: float | None = None) -> None:
    """
    Open the write transaction for one unit of work.

    SQLite: BEGIN IMMEDIATE acquires the reserved lock now, so two writers
    serialize here instead of deadlocking on lock upgrade later. The wait is
    bounded by the driver busy timeout.

    PostgreSQL: SET LOCAL lock_timeout bounds every row-lock wait in this
    transaction.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "sqlite":
        session.execute(text("BEGIN IMMEDIATE"))
    elif dialect == "postgresql" and lock_timeout:
        session.execute(text(f"SET LOCAL lock_timeout = '{int(lock_timeout * 1000)}ms'"))


def run_with_retry(session, func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (lock timeouts, deadlocks) and StaleDataError
    (optimistic locking conflicts). Each retry starts from a rolled-back
    session.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            current_app.logger.info(
                "Retrying write after %s (attempt %d/%d)",
                type(exc).__name__, attempt + 1, attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def run_in_write_transaction(
    session,
    func,
    *,
    lock_timeout: float | None = None,
    attempts: int = 3,
    backoff_base: float = 0.1,
    action: str = "write",
):
    """
    Run func inside one write transaction and commit it.

    Every failure leaves the store in its pre-call state:
    - SaleError raised by func: rolled back and re-raised unchanged
    - storage failures (after retries): rolled back, raised as PersistenceError
    - anything else: rolled back and re-raised
    """
    def _op():
        begin_write(session, lock_timeout=lock_timeout)
        result = func()
        session.commit()
        return result

    try:
        return run_with_retry(session, _op, attempts=attempts, backoff_base=backoff_base)
    except SaleError:
        session.rollback()
        raise
    except SQLAlchemyError as exc:
        session.rollback()
        current_app.logger.warning("Failed to %s: %s", action, exc)
        raise PersistenceError(
            f"Failed to {action}; no changes were applied",
            details={"reason": type(exc).__name__},
        ) from exc
    except Exception:
        session.rollback()
        raise
