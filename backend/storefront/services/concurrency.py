# Overview: Transaction helpers shared by every write operation of the order engine.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the writer lock taken by
    begin_write_transaction() serializes writers instead.
    """
    return query.with_for_update()


def begin_write_transaction() -> None:
    """
    Open the current unit of work as a write transaction.

    On SQLite a plain BEGIN takes the writer lock lazily, so two checkouts can
    both read stock and then fight on upgrade. BEGIN IMMEDIATE takes it up
    front; the loser waits (or gets "database is locked" and is retried).
    """
    if db.engine.dialect.name != "sqlite":
        return
    if not current_app.config.get("SQLITE_BEGIN_IMMEDIATE", True):
        return
    if db.session().in_transaction():
        # Something already ran in this session (e.g. a lookup); restart clean.
        db.session.rollback()
    db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.05):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). The session is rolled back between
    attempts, so func must be safe to run again from scratch.
    """
    if attempts is None:
        attempts = current_app.config.get("ORDER_RETRY_ATTEMPTS", 5)
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Retrying after concurrency conflict (attempt %s/%s): %s",
                attempt + 1, attempts, exc.__class__.__name__,
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            # Business errors abort the unit of work and release the writer lock
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc
