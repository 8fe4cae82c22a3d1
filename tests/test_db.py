from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import inspect
from sqlalchemy.exc import OperationalError

import pixelmerge.db as db_module
import pixelmerge.main as main_module
from pixelmerge.db import build_engine, init_db, ping, session_scope


def test_init_db_creates_render_and_credit_tables():
    engine = build_engine("sqlite://")

    init_db(engine)

    tables = set(inspect(engine).get_table_names())
    assert {"personalization_renders", "user_credits", "credit_ledger"} <= tables


def test_ping_reports_ok_and_errors():
    assert ping(build_engine("sqlite://")) is None

    error = ping(build_engine("sqlite:////nonexistent-dir/pixelmerge.db"))
    assert error is not None
    assert "unable to open database file" in error


def test_health_db_endpoint_uses_ping(monkeypatch):
    monkeypatch.setattr(main_module, "ping", lambda: "database is locked")
    with TestClient(main_module.app) as client:
        assert client.get("/health/db").json() == {"db": "error: database is locked"}


def test_session_scope_rolls_back_on_error(monkeypatch):
    events = []

    class RecordingSession:
        def rollback(self):
            events.append("rollback")

        def close(self):
            events.append("close")

    monkeypatch.setattr(db_module, "SessionLocal", RecordingSession)

    with pytest.raises(OperationalError):
        with session_scope():
            raise OperationalError("SELECT", {}, Exception("database is locked"))

    assert events == ["rollback", "close"]
