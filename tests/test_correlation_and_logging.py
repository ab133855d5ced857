from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from boaz import events
from boaz.context import reset_correlation_id, set_correlation_id
from boaz.core.auth import AuthUser, get_current_user
from boaz.core.config import get_settings
from boaz.core.database import Base, get_db
from boaz.logging import JsonLogFormatter
from boaz.main import app
from boaz.middleware.rate_limit import reset_rate_limiter


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def setup_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("RATE_LIMIT_DISABLED", "true")
    get_settings.cache_clear()
    reset_rate_limiter()
    events.published_events.clear()
    yield
    get_settings.cache_clear()
    reset_rate_limiter()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_user() -> AuthUser:
        return AuthUser(sub="user-1", email="user@example.com", roles=["user"], tenant_id="tenant-a")

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_correlation_id_is_generated(client: TestClient) -> None:
    response = client.get(f"/api/crm/accounts/{uuid.uuid4()}")
    assert response.status_code == 404
    generated = response.headers.get("x-correlation-id")
    assert generated
    assert uuid.UUID(generated)


def test_correlation_id_is_echoed(client: TestClient) -> None:
    response = client.get("/health", headers={"X-Correlation-Id": "abc-123"})
    assert response.status_code == 200
    assert response.headers.get("x-correlation-id") == "abc-123"


def test_error_envelope_carries_correlation_header(client: TestClient) -> None:
    response = client.post("/api/crm/contacts", json={"name": "Jane", "email": "nope"}, headers={"X-Correlation-Id": "corr-err-1"})
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_payload"
    assert response.headers.get("x-correlation-id") == "corr-err-1"


def test_logs_include_route_template_for_http(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    response = client.get(f"/api/crm/accounts/{uuid.uuid4()}", headers={"X-Correlation-Id": "abc-123"})
    assert response.status_code == 404

    records = [record for record in caplog.records if record.name == "boaz.request" and record.getMessage() == "http.request"]
    assert records
    assert any(
        getattr(record, "correlation_id", None) == "abc-123"
        and getattr(record, "method", None) == "GET"
        and getattr(record, "path", None) == "/api/crm/accounts/{id}"
        and getattr(record, "status_code", None) == 404
        and isinstance(getattr(record, "duration_ms", None), float)
        for record in records
    )


def test_published_events_pick_up_context_correlation_id() -> None:
    events.publish({"event_type": "test.event", "payload": {}})
    assert events.published_events[-1]["correlation_id"] is None

    token = set_correlation_id("corr-event-1")
    try:
        events.publish({"event_type": "test.event", "payload": {}})
    finally:
        reset_correlation_id(token)
    assert events.published_events[-1]["correlation_id"] == "corr-event-1"


def test_json_formatter_keeps_known_fields_only() -> None:
    record = logging.makeLogRecord(
        {
            "name": "boaz.request",
            "levelname": "INFO",
            "msg": "http.request",
            "path": "/api/crm/accounts",
            "status_code": 200,
            "secret": "hidden",
            "correlation_id": "abc-123",
            "tenant_id": "tenant-a",
        }
    )

    payload = json.loads(JsonLogFormatter().format(record))
    assert payload["msg"] == "http.request"
    assert payload["correlation_id"] == "abc-123"
    assert payload["tenant_id"] == "tenant-a"
    assert payload["fields"] == {"path": "/api/crm/accounts", "status_code": 200}
