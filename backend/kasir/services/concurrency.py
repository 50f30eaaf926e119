# Overview: Transaction helpers shared by the write paths (write lock, bounded retry).

from __future__ import annotations

import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def begin_write_unit() -> None:
    """
    Open the current session's transaction as a write transaction.

    SQLite defers taking the write lock until the first write, which lets two
    checkouts interleave their reads; BEGIN IMMEDIATE takes it up front.
    Other engines rely on row locks taken by the counter increment.
    """
    if db.session.get_bind().dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB unit of work with retry on concurrency-related failures.

    Retries on OperationalError (busy database, deadlocks) and StaleDataError.
    The session is rolled back before every retry, so func must redo the
    whole unit (including sequence allocation) from scratch.
    """
    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
