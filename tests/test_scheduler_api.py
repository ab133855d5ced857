from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from boaz import events
from boaz.core.auth import AuthUser, get_current_user
from boaz.core.config import get_settings
from boaz.core.database import Base, get_db
from boaz.crm.models import CrmContact, CrmTask
from boaz.main import app
from boaz.middleware.rate_limit import reset_rate_limiter
from boaz.scheduler.models import Appointment
from boaz.scheduler.service import scheduler_service


PUBLIC_HEADERS = {"x-tenant-id": "tenant-a"}


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
        return AuthUser(sub="owner-1", email="owner@example.com", roles=["user"], tenant_id="tenant-a")

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _next_weekday(weekday: int, hour: int) -> datetime:
    now = datetime.now(timezone.utc)
    days_ahead = (weekday - now.weekday()) % 7 or 7
    target = now + timedelta(days=days_ahead)
    return target.replace(hour=hour, minute=0, second=0, microsecond=0)


def _iso(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


def _create_type(client: TestClient, **overrides) -> dict:  # type: ignore[no-untyped-def]
    payload = {"name": "Intro call", "slug": "intro-call", "duration_minutes": 30, **overrides}
    response = client.post("/api/scheduler/appointment-types", json=payload)
    assert response.status_code == 201
    return response.json()["data"]


def _book(client: TestClient, starts_at: datetime, email: str = "guest@example.com"):  # type: ignore[no-untyped-def]
    return client.post(
        "/api/scheduler/public/book/intro-call",
        json={"attendee_name": "Guest Person", "attendee_email": email, "starts_at": _iso(starts_at)},
        headers=PUBLIC_HEADERS,
    )


def test_appointment_type_crud_and_slug_conflict(client: TestClient) -> None:
    created = _create_type(client)
    assert created["slug"] == "intro-call"
    assert created["active"] is True

    conflict = client.post(
        "/api/scheduler/appointment-types",
        json={"name": "Another", "slug": "intro-call", "duration_minutes": 15},
    )
    assert conflict.status_code == 409
    assert conflict.json() == {"data": None, "error": "slug_taken"}

    updated = client.put(f"/api/scheduler/appointment-types/{created['id']}", json={"duration_minutes": 45})
    assert updated.status_code == 200
    assert updated.json()["data"]["duration_minutes"] == 45

    listed = client.get("/api/scheduler/appointment-types")
    assert [item["id"] for item in listed.json()["data"]["items"]] == [created["id"]]

    deleted = client.delete(f"/api/scheduler/appointment-types/{created['id']}")
    assert deleted.json()["data"] == {"ok": True}
    missing = client.put(f"/api/scheduler/appointment-types/{created['id']}", json={"duration_minutes": 20})
    assert missing.status_code == 404
    assert missing.json()["error"] == "not_found"


def test_bad_slug_is_invalid_payload(client: TestClient) -> None:
    response = client.post(
        "/api/scheduler/appointment-types",
        json={"name": "Bad", "slug": "Not A Slug", "duration_minutes": 30},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_payload"


def test_default_availability_is_weekdays_nine_to_five(client: TestClient) -> None:
    response = client.get("/api/scheduler/availability/me")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["time_zone"] == "UTC"
    enabled = [day["day"] for day in data["weekly"] if day["enabled"]]
    assert enabled == [1, 2, 3, 4, 5]
    assert all(day["start_min"] == 540 and day["end_min"] == 1020 for day in data["weekly"])


def test_availability_rejects_unknown_time_zone(client: TestClient) -> None:
    weekly = [{"day": day, "enabled": True, "start_min": 480, "end_min": 960} for day in range(7)]
    response = client.put("/api/scheduler/availability/me", json={"time_zone": "Mars/Olympus", "weekly": weekly})
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "invalid_payload"
    assert "invalid_time_zone" in body["details"][0]["msg"]

    saved = client.put("/api/scheduler/availability/me", json={"time_zone": "Europe/Berlin", "weekly": weekly})
    assert saved.status_code == 200
    assert saved.json()["data"]["time_zone"] == "Europe/Berlin"
    assert saved.json()["data"]["weekly"][0]["start_min"] == 480


def test_public_booking_link_lists_slots(client: TestClient) -> None:
    _create_type(client)
    response = client.get("/api/scheduler/public/booking-links/intro-call", headers=PUBLIC_HEADERS)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["type"]["slug"] == "intro-call"
    assert set(data["window"]) == {"from", "to"}
    assert data["slots"]
    assert all(slot["iso"].endswith("Z") for slot in data["slots"])

    other_tenant = client.get("/api/scheduler/public/booking-links/intro-call", headers={"x-tenant-id": "tenant-b"})
    assert other_tenant.status_code == 404
    assert other_tenant.json()["error"] == "not_found"


def test_booking_creates_contact_and_meeting_task(client: TestClient, db_session: Session) -> None:
    _create_type(client)
    starts_at = _next_weekday(0, 10)

    response = _book(client, starts_at, email="Guest@Example.com")
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["starts_at"].startswith(starts_at.strftime("%Y-%m-%dT10:00:00"))

    appointment = db_session.scalar(select(Appointment))
    assert appointment is not None
    assert appointment.tenant_id == "tenant-a"
    assert appointment.attendee_email == "guest@example.com"
    assert appointment.reminder_minutes_before == 60

    contact = db_session.scalar(select(CrmContact))
    assert contact is not None
    assert contact.email == "guest@example.com"
    task = db_session.scalar(select(CrmTask))
    assert task is not None
    assert task.type == "meeting"
    assert task.subject == "Intro call: Guest Person"
    assert task.owner_user_id == "owner-1"
    assert appointment.task_id == task.id

    assert [event["event_type"] for event in events.published_events] == ["scheduler.appointment.booked"]


def test_double_booking_is_rejected(client: TestClient) -> None:
    _create_type(client)
    starts_at = _next_weekday(0, 10)

    assert _book(client, starts_at).status_code == 201
    overlapping = _book(client, starts_at + timedelta(minutes=15), email="second@example.com")
    assert overlapping.status_code == 409
    assert overlapping.json() == {"data": None, "error": "slot_taken"}


def test_booking_outside_availability_is_rejected(client: TestClient) -> None:
    _create_type(client)

    saturday = _book(client, _next_weekday(5, 10))
    assert saturday.status_code == 400
    assert saturday.json()["error"] == "outside_availability"

    late = _book(client, _next_weekday(0, 16) + timedelta(minutes=45))
    assert late.status_code == 400
    assert late.json()["error"] == "outside_availability"


def test_booking_in_the_past_or_far_future_is_rejected(client: TestClient) -> None:
    _create_type(client)

    past = _book(client, datetime.now(timezone.utc) - timedelta(days=1))
    assert past.status_code == 400
    assert past.json()["error"] == "startsAt_out_of_range"

    far = _book(client, _next_weekday(0, 10) + timedelta(days=70))
    assert far.status_code == 400
    assert far.json()["error"] == "startsAt_out_of_range"


def test_unknown_slug_is_not_found(client: TestClient) -> None:
    response = client.post(
        "/api/scheduler/public/book/nope",
        json={"attendee_name": "A", "attendee_email": "a@example.com", "starts_at": _iso(_next_weekday(0, 10))},
        headers=PUBLIC_HEADERS,
    )
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


def test_cancel_marks_task_cancelled(client: TestClient, db_session: Session) -> None:
    _create_type(client)
    booking = _book(client, _next_weekday(0, 10)).json()["data"]

    listed = client.get("/api/scheduler/appointments").json()["data"]["items"]
    assert [item["id"] for item in listed] == [booking["id"]]

    cancelled = client.post(f"/api/scheduler/appointments/{booking['id']}/cancel")
    assert cancelled.status_code == 200
    assert cancelled.json()["data"]["status"] == "cancelled"

    task = db_session.scalar(select(CrmTask))
    assert task is not None
    assert task.status == "cancelled"
    assert events.published_events[-1]["event_type"] == "scheduler.appointment.cancelled"

    rebooked = _book(client, _next_weekday(0, 10), email="other@example.com")
    assert rebooked.status_code == 201


def test_reminders_are_sent_once_inside_the_grace_window(client: TestClient, db_session: Session) -> None:
    _create_type(client)
    starts_at = _next_weekday(0, 10)
    assert _book(client, starts_at).status_code == 201
    send_at = starts_at - timedelta(minutes=60)

    assert scheduler_service.send_due_reminders(db_session, now=send_at - timedelta(minutes=5)) == 0
    assert scheduler_service.send_due_reminders(db_session, now=send_at + timedelta(seconds=30)) == 1
    assert scheduler_service.send_due_reminders(db_session, now=send_at + timedelta(seconds=60)) == 0

    reminders = [event for event in events.published_events if event["event_type"] == "scheduler.appointment.reminder_due"]
    assert len(reminders) == 1
    assert reminders[0]["payload"]["attendee_email"] == "guest@example.com"
    assert reminders[0]["tenant_id"] == "tenant-a"


def test_reminder_missed_beyond_grace_is_skipped(client: TestClient, db_session: Session) -> None:
    _create_type(client)
    starts_at = _next_weekday(0, 10)
    assert _book(client, starts_at).status_code == 201

    assert scheduler_service.send_due_reminders(db_session, now=starts_at - timedelta(minutes=50)) == 0
    appointment = db_session.scalar(select(Appointment))
    assert appointment is not None
    assert appointment.reminder_sent_at is None
