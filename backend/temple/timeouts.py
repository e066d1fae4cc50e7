# Overview: Request watchdog (504) and per-statement database timeouts.

"""
Timeouts

Two independent guards keep a slow database from hanging clients:

- RequestTimeoutMiddleware runs each WSGI request on a worker thread and
  answers 504 if the handler has not finished in time. The handler is not
  killed; it runs on to its own commit or rollback, so a timed-out request
  never leaves a half-written receipt behind. The DB transaction boundary
  provides that guarantee, not the watchdog.
- install_query_timeout() bounds every individual SQL statement. A statement
  past its deadline fails with OperationalError, which the services treat as
  a transient, retryable error.
"""

from __future__ import annotations

import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError

from sqlalchemy import event
from werkzeug.wrappers import Response


logger = logging.getLogger(__name__)

ROUTE_TIMEOUT_BODY = {
    "error": "Request timeout. The operation took too long to complete.",
    "code": "ROUTE_TIMEOUT",
}

# SQLite calls the progress handler every N virtual machine instructions
SQLITE_PROGRESS_STEPS = 1000

_DEADLINE_KEY = "temple_query_deadline"


class RequestTimeoutMiddleware:
    """
    WSGI middleware returning 504 when the wrapped app is too slow.

    The response body is buffered on the worker thread, which is fine for the
    small JSON payloads this API produces.
    """

    def __init__(self, wsgi_app, timeout_seconds: float, *, max_workers: int = 16):
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self.wsgi_app = wsgi_app
        self.timeout_seconds = timeout_seconds
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="request-worker",
        )

    def _run(self, environ, captured: dict) -> bytes:
        written: list[bytes] = []

        def _start_response(status, headers, exc_info=None):
            captured["status"] = status
            captured["headers"] = list(headers)
            return written.append

        result = self.wsgi_app(environ, _start_response)
        try:
            chunks = list(result)
        finally:
            close = getattr(result, "close", None)
            if close is not None:
                close()
        return b"".join(written + chunks)

    def __call__(self, environ, start_response):
        captured: dict = {}
        future = self._executor.submit(self._run, environ, captured)
        try:
            body = future.result(timeout=self.timeout_seconds)
        except FuturesTimeoutError:
            logger.warning(
                "Route watchdog fired after %ss: %s %s",
                self.timeout_seconds,
                environ.get("REQUEST_METHOD"),
                environ.get("PATH_INFO"),
            )
            response = Response(
                json.dumps(ROUTE_TIMEOUT_BODY),
                status=504,
                mimetype="application/json",
            )
            return response(environ, start_response)

        start_response(captured["status"], captured["headers"])
        return [body]

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


def _install_sqlite_timeout(engine, timeout_ms: int) -> None:
    limit = timeout_ms / 1000.0

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, connection_record):
        state = {"deadline": None}
        connection_record.info[_DEADLINE_KEY] = state

        def _progress():
            deadline = state["deadline"]
            # Non-zero aborts the running statement ("interrupted")
            return 1 if deadline is not None and time.monotonic() > deadline else 0

        dbapi_conn.set_progress_handler(_progress, SQLITE_PROGRESS_STEPS)

    @event.listens_for(engine, "before_cursor_execute")
    def _arm(conn, cursor, statement, parameters, context, executemany):
        state = conn.info.get(_DEADLINE_KEY)
        if state is not None:
            state["deadline"] = time.monotonic() + limit

    @event.listens_for(engine, "after_cursor_execute")
    def _disarm(conn, cursor, statement, parameters, context, executemany):
        state = conn.info.get(_DEADLINE_KEY)
        if state is not None:
            state["deadline"] = None

    @event.listens_for(engine, "handle_error")
    def _disarm_on_error(exception_context):
        conn = exception_context.connection
        if conn is None:
            return
        state = conn.info.get(_DEADLINE_KEY)
        if state is not None:
            state["deadline"] = None


def _install_session_setting(engine, statement: str) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, connection_record):
        autocommit = getattr(dbapi_conn, "autocommit", None)
        if autocommit is not None and not callable(autocommit):
            dbapi_conn.autocommit = True
        cursor = dbapi_conn.cursor()
        try:
            cursor.execute(statement)
        finally:
            cursor.close()
            if autocommit is not None and not callable(autocommit):
                dbapi_conn.autocommit = autocommit


def install_query_timeout(engine, timeout_ms: int | None) -> bool:
    """
    Bound every statement on `engine` to `timeout_ms` milliseconds.

    Returns False when the timeout is disabled or the dialect is unsupported.
    """
    if not timeout_ms or timeout_ms <= 0:
        return False

    dialect = engine.dialect.name
    if dialect == "sqlite":
        _install_sqlite_timeout(engine, timeout_ms)
    elif dialect == "postgresql":
        _install_session_setting(engine, f"SET statement_timeout = {int(timeout_ms)}")
    elif dialect in ("mysql", "mariadb"):
        _install_session_setting(engine, f"SET SESSION max_execution_time = {int(timeout_ms)}")
    else:
        logger.warning("Query timeout not supported for dialect %s", dialect)
        return False
    return True
