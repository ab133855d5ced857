from __future__ import annotations

import os
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("OTEL_ENABLED", "true")

from boaz.core.auth import AuthUser, get_current_user
from boaz.core.config import get_settings
from boaz.core.database import Base, get_db
from boaz.jobs import SCHEDULER_REMINDERS, JobRunner
from boaz.main import app
from boaz.middleware.rate_limit import reset_rate_limiter
from boaz.otel import setup_inmemory_otel


@pytest.fixture()
def session_factory() -> Generator[sessionmaker, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    try:
        yield SessionLocal
    finally:
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def setup_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("RATE_LIMIT_DISABLED", "true")
    get_settings.cache_clear()
    reset_rate_limiter()
    yield
    get_settings.cache_clear()
    reset_rate_limiter()


@pytest.fixture()
def span_exporter() -> InMemorySpanExporter:
    exporter = setup_inmemory_otel("api")
    exporter.clear()
    return exporter


@pytest.fixture()
def client(session_factory: sessionmaker) -> Generator[TestClient, None, None]:
    db_session = session_factory()

    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_user() -> AuthUser:
        return AuthUser(sub="user-1", email="user@example.com", roles=["user"], tenant_id="tenant-a")

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    db_session.close()


def test_request_span_contains_correlation_id(client: TestClient, span_exporter: InMemorySpanExporter) -> None:
    response = client.post(
        "/api/crm/accounts",
        json={"name": "OTel Account"},
        headers={"X-Correlation-Id": "otel-corr-1", "x-tenant-id": "tenant-a"},
    )
    assert response.status_code == 201

    spans = span_exporter.get_finished_spans()
    assert spans
    assert any(span.attributes.get("correlation_id") == "otel-corr-1" for span in spans)


def test_job_span_contains_job_id_and_type(session_factory: sessionmaker, span_exporter: InMemorySpanExporter) -> None:
    JobRunner(session_factory=session_factory).run(SCHEDULER_REMINDERS)

    job_spans = [span for span in span_exporter.get_finished_spans() if span.name == "boaz.job.run"]
    assert len(job_spans) == 1
    assert job_spans[0].attributes.get("job_type") == SCHEDULER_REMINDERS
    assert job_spans[0].attributes.get("job_id")
