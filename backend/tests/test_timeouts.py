"""
Route watchdog and per-query timeout tests.
"""

import time

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from werkzeug.test import Client

from temple import create_app
from temple.timeouts import RequestTimeoutMiddleware, install_query_timeout


def _slow_app(environ, start_response):
    time.sleep(0.5)
    start_response("200 OK", [("Content-Type", "text/plain")])
    return [b"too late"]


def _fast_app(environ, start_response):
    start_response("201 CREATED", [("Content-Type", "application/json"), ("X-Test", "1")])
    return [b'{"ok": ', b"true}"]


class TestRequestTimeoutMiddleware:
    def test_slow_request_gets_504(self):
        middleware = RequestTimeoutMiddleware(_slow_app, 0.1)
        try:
            resp = Client(middleware).get("/api/donations")
            assert resp.status_code == 504
            assert resp.get_json()["code"] == "ROUTE_TIMEOUT"
        finally:
            middleware.shutdown()

    def test_fast_request_passes_through(self):
        middleware = RequestTimeoutMiddleware(_fast_app, 2)
        try:
            resp = Client(middleware).get("/")
            assert resp.status_code == 201
            assert resp.headers["X-Test"] == "1"
            assert resp.get_json() == {"ok": True}
        finally:
            middleware.shutdown()

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValueError):
            RequestTimeoutMiddleware(_fast_app, 0)

    def test_flask_route_times_out(self):
        app = create_app({
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
            'REQUEST_TIMEOUT_SECONDS': 0.2,
            'SEED_SEQUENCES_ON_STARTUP': False,
        })

        def sleepy():
            time.sleep(1)
            return {"done": True}

        def quick():
            return {"done": True}

        app.add_url_rule("/test/sleepy", "sleepy", sleepy)
        app.add_url_rule("/test/quick", "quick", quick)
        assert isinstance(app.wsgi_app, RequestTimeoutMiddleware)

        try:
            client = app.test_client()
            resp = client.get("/test/sleepy")
            assert resp.status_code == 504
            assert resp.get_json()["code"] == "ROUTE_TIMEOUT"

            resp = client.get("/test/quick")
            assert resp.status_code == 200
            assert resp.get_json() == {"done": True}
        finally:
            app.wsgi_app.shutdown()


class TestQueryTimeout:
    def test_runaway_sqlite_query_is_interrupted(self):
        engine = create_engine("sqlite://")
        assert install_query_timeout(engine, 50) is True

        runaway = text(
            "WITH RECURSIVE c(x) AS (SELECT 1 UNION ALL SELECT x + 1 FROM c) "
            "SELECT count(*) FROM c"
        )
        with engine.connect() as conn:
            started = time.monotonic()
            with pytest.raises(OperationalError):
                conn.execute(runaway).scalar()
            assert time.monotonic() - started < 5
            conn.rollback()

            # The deadline is cleared after the failure
            assert conn.execute(text("SELECT 1")).scalar() == 1

        engine.dispose()

    def test_disabled_timeout_installs_nothing(self):
        engine = create_engine("sqlite://")
        assert install_query_timeout(engine, 0) is False
        assert install_query_timeout(engine, None) is False
        engine.dispose()
