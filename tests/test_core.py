from __future__ import annotations
import json
import logging

from app import create_app
from blueprints.core.routes import JSONFormatter
from conftest import login_as


def test_health_ok():
    app = create_app("test")
    with app.test_client() as c:
        rv = c.get("/health")
        assert rv.status_code == 200
        data = rv.get_json()
        assert data["status"] == "ok"
        assert "visitor_id" not in rv.headers.get("Set-Cookie", "")
        assert "visitor_id" not in data


def test_csrf_token_endpoint():
    app = create_app("test")
    with app.test_client() as c:
        rv = c.get("/api/v1/csrf")
        assert rv.status_code == 200
        assert rv.get_json()["csrf"]


def test_json_formatter_carries_request_fields():
    record = logging.LogRecord("http", logging.INFO, __file__, 1, "request handled", None, None)
    record.path, record.status, record.user_id = "/health", 200, "user_admin"
    payload = json.loads(JSONFormatter().format(record))
    assert payload["msg"] == "request handled"
    assert payload["path"] == "/health" and payload["status"] == 200
    assert payload["user_id"] == "user_admin"
    assert payload["level"] == "INFO"


def _request_records(caplog):
    return [r for r in caplog.records if r.name == "http" and getattr(r, "event", None) == "http_request"]


def test_request_log_names_the_caller(client, school, caplog):
    login_as(client, "user_admin", "admin")
    with caplog.at_level(logging.INFO, logger="http"):
        client.get("/api/v1/classes")
    (rec,) = _request_records(caplog)
    assert rec.user_id == "user_admin" and rec.role == "admin"
    assert rec.path == "/api/v1/classes" and rec.status == 200


def test_request_log_for_anonymous_caller(client, caplog):
    with caplog.at_level(logging.INFO, logger="http"):
        client.get("/health")
    (rec,) = _request_records(caplog)
    assert rec.user_id is None and rec.role is None
