from __future__ import annotations

import logging
from collections.abc import Generator
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from boaz import jobs
from boaz.auth.models import UserSession
from boaz.core.config import get_settings
from boaz.core.database import Base
from boaz.crm.models import CrmAccount, Quote
from boaz.crm.reporting.models import ReportingSnapshot
from boaz.crm.surveys.models import SurveyProgram, SurveyResponse
from boaz.jobs import (
    REPORTING_SNAPSHOTS,
    SCHEDULER_REMINDERS,
    SESSION_CLEANUP,
    JobRunner,
    known_tenant_ids,
)
from boaz.marketing.models import MarketingUnsubscribe


NOW = datetime(2026, 10, 15, 12, 0, tzinfo=timezone.utc)


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


@pytest.fixture()
def db_session(session_factory: sessionmaker) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def setup_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("DEFAULT_TENANT_ID", "default")
    monkeypatch.delenv("REPORTING_SNAPSHOTS_DISABLED", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_known_tenants_always_include_default(db_session: Session) -> None:
    assert known_tenant_ids(db_session) == ["default"]

    db_session.add(CrmAccount(tenant_id="tenant-b", name="Beta"))
    db_session.add(CrmAccount(tenant_id="tenant-a", name="Alpha"))
    db_session.commit()

    assert known_tenant_ids(db_session) == ["default", "tenant-a", "tenant-b"]


def test_known_tenants_include_survey_quote_and_unsubscribe_only_tenants(db_session: Session) -> None:
    program = SurveyProgram(tenant_id="tenant-s", name="CSAT", type="CSAT", channel="Email")
    db_session.add(program)
    db_session.flush()
    db_session.add_all(
        [
            SurveyResponse(tenant_id="tenant-s", program_id=program.id, type="CSAT", channel="Email", score=4),
            Quote(tenant_id="tenant-q", title="Starter plan"),
            MarketingUnsubscribe(tenant_id="tenant-u", email="gone@example.com"),
        ]
    )
    db_session.commit()

    assert known_tenant_ids(db_session) == ["default", "tenant-q", "tenant-s", "tenant-u"]


def test_reporting_snapshots_job_runs_once_per_tenant_and_day(
    session_factory: sessionmaker,
    db_session: Session,
) -> None:
    db_session.add(CrmAccount(tenant_id="tenant-a", name="Alpha"))
    db_session.commit()

    runner = JobRunner(session_factory=session_factory)
    assert runner.run(REPORTING_SNAPSHOTS, now=NOW) == 2
    assert runner.run(REPORTING_SNAPSHOTS, now=NOW) == 0

    snapshots = db_session.scalars(select(ReportingSnapshot).order_by(ReportingSnapshot.tenant_id)).all()
    assert [(row.tenant_id, row.schedule_key) for row in snapshots] == [
        ("default", "daily:2026-10-15"),
        ("tenant-a", "daily:2026-10-15"),
    ]
    assert all(row.kind == "scheduled" for row in snapshots)


def test_reporting_snapshots_job_respects_kill_switch(
    session_factory: sessionmaker,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("REPORTING_SNAPSHOTS_DISABLED", "true")
    get_settings.cache_clear()

    assert JobRunner(session_factory=session_factory).run(REPORTING_SNAPSHOTS, now=NOW) == 0


def test_scheduler_reminders_job_with_nothing_due(session_factory: sessionmaker) -> None:
    assert JobRunner(session_factory=session_factory).run(SCHEDULER_REMINDERS, now=NOW) == 0


def test_session_cleanup_removes_old_revoked_sessions(session_factory: sessionmaker, db_session: Session) -> None:
    db_session.add_all(
        [
            UserSession(tenant_id="default", jti="old-revoked", user_id="u1", email="u1@example.com", revoked=True, last_used_at=NOW - timedelta(days=40)),
            UserSession(tenant_id="default", jti="new-revoked", user_id="u1", email="u1@example.com", revoked=True, last_used_at=NOW - timedelta(days=2)),
            UserSession(tenant_id="default", jti="old-active", user_id="u2", email="u2@example.com", revoked=False, last_used_at=NOW - timedelta(days=40)),
        ]
    )
    db_session.commit()

    assert JobRunner(session_factory=session_factory).run(SESSION_CLEANUP, now=NOW) == 1

    remaining = db_session.scalars(select(UserSession.jti).order_by(UserSession.jti)).all()
    assert remaining == ["new-revoked", "old-active"]


def test_job_runner_logs_start_and_finish(session_factory: sessionmaker, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    JobRunner(session_factory=session_factory).run(SCHEDULER_REMINDERS, now=NOW)

    records = [record for record in caplog.records if record.name == "boaz.jobs"]
    assert [record.getMessage() for record in records] == ["job.started", "job.finished"]
    assert records[0].job_id == records[1].job_id
    assert records[1].job_type == SCHEDULER_REMINDERS
    assert records[1].status == "Succeeded"
    assert records[1].count == 0


def test_job_runner_logs_and_reraises_failures(
    session_factory: sessionmaker,
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    def explode(session: Session, now: datetime | None) -> int:
        raise RuntimeError("boom")

    monkeypatch.setitem(jobs.JOBS, "test.explode", explode)
    caplog.set_level(logging.INFO)

    with pytest.raises(RuntimeError):
        JobRunner(session_factory=session_factory).run("test.explode")

    finished = [record for record in caplog.records if record.name == "boaz.jobs" and record.getMessage() == "job.finished"]
    assert len(finished) == 1
    assert finished[0].levelno == logging.ERROR
    assert finished[0].status == "Failed"
    assert finished[0].error == "boom"


def test_beat_schedule_covers_every_job() -> None:
    from boaz.core.celery_app import celery_app

    schedule = celery_app.conf.beat_schedule
    assert set(schedule) == {"reporting-snapshots", "scheduler-reminders", "session-cleanup"}
    assert {entry["task"] for entry in schedule.values()} <= set(celery_app.tasks)
