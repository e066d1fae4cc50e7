# Overview: Retry and locking helpers shared by services that write under contention.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


# Errors worth retrying: lock waits, deadlocks, dropped connections,
# statement timeouts and optimistic locking conflicts.
TRANSIENT_ERRORS = (OperationalError, StaleDataError)


def is_transient_db_error(exc: BaseException) -> bool:
    """True when the failure is safe to retry (nothing was committed)."""
    if isinstance(exc, TRANSIENT_ERRORS):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


def lock_for_update(query):
    """
    Apply row-level locking for check-then-write sequences.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write() covers it there.
    """
    return query.with_for_update()


class PendingWritesError(RuntimeError):
    """A write unit was started on a session that already holds unsaved or uncommitted writes."""


def ensure_no_pending_writes() -> None:
    """
    Refuse to start a self-committing write unit on top of someone else's work.

    Such a unit commits or rolls back the whole session, so pending objects
    would be committed by accident or thrown away by a retry. Raises
    PendingWritesError, which is never retried.
    """
    session = db.session
    if session.new or session.dirty or session.deleted:
        raise PendingWritesError("Session has unflushed changes; commit or roll them back first")
    if db.engine.dialect.name == "sqlite":
        # Writes already flushed leave the SQLite connection inside a transaction
        dbapi_connection = session.connection().connection.dbapi_connection
        if dbapi_connection.in_transaction:
            raise PendingWritesError("Session has uncommitted writes; commit or roll them back first")


def begin_write() -> None:
    """
    Take the database write lock at the start of a write transaction on SQLite.

    A deferred SQLite transaction that has to upgrade its lock can fail at once
    with "database is locked"; BEGIN IMMEDIATE waits on the busy timeout
    instead. Must run before the first write of the transaction. Other
    databases lock rows on first write, so this is a no-op there.
    """
    if db.engine.dialect.name == "sqlite":
        ensure_no_pending_writes()
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a unit of DB work with retry on transient failures.

    The session is rolled back before every retry so a failed attempt leaves
    no partial effect behind. The last error is re-raised when attempts run out.
    """
    for attempt in range(attempts):
        try:
            return func()
        except Exception as exc:
            if not is_transient_db_error(exc):
                raise
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Transient database error (attempt %d/%d), retrying: %s",
                attempt + 1, attempts, exc.__class__.__name__,
            )
            time.sleep(backoff_base * (2 ** attempt))
