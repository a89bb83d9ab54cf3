# Overview: Row locking, write-transaction setup and retry for settlement work.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from .errors import LockTimeoutError

# PostgreSQL: lock_not_available, deadlock_detected
_LOCK_PGCODES = {"55P03", "40P01"}
_LOCK_MESSAGES = ("database is locked", "lock timeout", "deadlock", "could not obtain lock")


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write_transaction()
    takes the database write lock up front there instead.
    """
    return query.with_for_update()


def begin_write_transaction() -> None:
    """
    Open the current session transaction in a mode that serializes writers.

    Must be the first statement of the unit of work.
    - SQLite: BEGIN IMMEDIATE grabs the RESERVED lock, so a second settler
      waits (busy timeout) and then re-reads committed stock.
    - PostgreSQL: SET LOCAL lock_timeout bounds how long FOR UPDATE waits.
    """
    dialect = db.engine.dialect.name
    if dialect == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))
    elif dialect == "postgresql":
        timeout_ms = int(current_app.config.get("SETTLEMENT_LOCK_TIMEOUT_MS", 5000))
        db.session.execute(text(f"SET LOCAL lock_timeout = '{timeout_ms}ms'"))


def is_lock_contention(exc: BaseException) -> bool:
    orig = getattr(exc, "orig", None)
    pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if pgcode in _LOCK_PGCODES:
        return True
    message = str(orig if orig is not None else exc).lower()
    return any(marker in message for marker in _LOCK_MESSAGES)


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). When the final attempt still fails on
    lock contention the error surfaces as LockTimeoutError so callers can
    tell "try again" apart from "sold out".
    """
    if attempts is None:
        attempts = int(current_app.config.get("SETTLEMENT_RETRY_ATTEMPTS", 3))

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                if isinstance(exc, StaleDataError) or is_lock_contention(exc):
                    raise LockTimeoutError(
                        "Could not lock stock rows in time",
                        details={"attempts": attempts},
                    ) from exc
                raise
            time.sleep(backoff_base * (2 ** attempt))
