from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from boaz.core.auth import AuthUser, get_current_user
from boaz.core.config import get_settings
from boaz.core.database import Base, get_db
from boaz.crm.surveys.models import SurveyResponse
from boaz.crm.surveys.service import SurveyService, survey_service
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
    monkeypatch.setenv("PUBLIC_ORIGIN", "https://app.example.com/, https://other.example.com")
    get_settings.cache_clear()
    reset_rate_limiter()
    yield
    get_settings.cache_clear()
    reset_rate_limiter()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_user() -> AuthUser:
        return AuthUser(sub="agent-1", email="agent@example.com", roles=["user"], tenant_id="tenant-a")

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _create_program(client: TestClient, **overrides) -> dict:  # type: ignore[no-untyped-def]
    payload = {"name": "Quarterly NPS", "type": "NPS", "channel": "Email", "status": "Active", **overrides}
    response = client.post("/api/crm/surveys/programs", json=payload)
    assert response.status_code == 201
    return response.json()["data"]


def test_program_crud_and_filters(client: TestClient) -> None:
    nps = _create_program(client, description="Relationship survey")
    _create_program(client, name="Support CSAT", type="CSAT", channel="In-app", status="Draft")

    listed = client.get("/api/crm/surveys/programs", params={"type": "NPS"})
    assert listed.status_code == 200
    assert [item["name"] for item in listed.json()["data"]["items"]] == ["Quarterly NPS"]

    searched = client.get("/api/crm/surveys/programs", params={"q": "relationship"})
    assert [item["id"] for item in searched.json()["data"]["items"]] == [nps["id"]]

    by_name = client.get("/api/crm/surveys/programs", params={"sort": "name", "dir": "asc"})
    assert [item["name"] for item in by_name.json()["data"]["items"]] == ["Quarterly NPS", "Support CSAT"]

    updated = client.put(f"/api/crm/surveys/programs/{nps['id']}", json={"status": "Paused"})
    assert updated.status_code == 200
    assert updated.json()["data"]["status"] == "Paused"

    deleted = client.delete(f"/api/crm/surveys/programs/{nps['id']}")
    assert deleted.status_code == 200
    assert deleted.json() == {"data": {"ok": True}, "error": None}

    missing = client.put(f"/api/crm/surveys/programs/{nps['id']}", json={"status": "Active"})
    assert missing.status_code == 404
    assert missing.json() == {"data": None, "error": "program_not_found"}


def test_invalid_program_type_is_invalid_payload(client: TestClient) -> None:
    response = client.post(
        "/api/crm/surveys/programs",
        json={"name": "Bad", "type": "Poll", "channel": "Email", "status": "Active"},
    )
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "invalid_payload"
    assert body["data"] is None
    assert body["details"]


def test_single_question_program_exposes_implicit_question(client: TestClient) -> None:
    program = _create_program(client, question_text="How likely are you to recommend us?")
    assert program["questions"] == [
        {"id": "q1", "label": "How likely are you to recommend us?", "required": True, "order": 0}
    ]


def test_nps_summary_from_submitted_responses(client: TestClient) -> None:
    program = _create_program(client)
    for score in (0, 3, 6, 7, 7, 8, 8, 8, 9, 10):
        response = client.post(f"/api/crm/surveys/programs/{program['id']}/responses", json={"score": score})
        assert response.status_code == 201

    summary = client.get(f"/api/crm/surveys/programs/{program['id']}/summary")
    assert summary.status_code == 200
    data = summary.json()["data"]
    assert data["total_responses"] == 10
    assert data["nps"] == -10
    assert data["detractors"] == 3
    assert data["promoters"] == 2

    metrics = client.get("/api/crm/surveys/programs/metrics")
    assert metrics.status_code == 200
    items = metrics.json()["data"]["items"]
    assert len(items) == 1
    assert items[0]["summary"]["nps"] == -10


def test_response_requires_score_or_answers(client: TestClient) -> None:
    program = _create_program(client)
    response = client.post(f"/api/crm/surveys/programs/{program['id']}/responses", json={"comment": "meh"})
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_payload"

    out_of_range = client.post(f"/api/crm/surveys/programs/{program['id']}/responses", json={"score": 11})
    assert out_of_range.status_code == 400


def test_multi_question_response_scores_by_average(client: TestClient, db_session: Session) -> None:
    program = _create_program(
        client,
        type="Post-interaction",
        questions=[{"id": "speed", "label": "Speed"}, {"id": "quality", "label": "Quality"}],
    )
    response = client.post(
        f"/api/crm/surveys/programs/{program['id']}/responses",
        json={"answers": [{"question_id": "speed", "score": 9}, {"question_id": "quality", "score": 6}]},
    )
    assert response.status_code == 201

    stored = db_session.scalar(select(SurveyResponse))
    assert stored is not None
    assert stored.score == pytest.approx(7.5)

    summary = client.get(f"/api/crm/surveys/programs/{program['id']}/summary").json()["data"]
    assert summary["average_score"] == pytest.approx(7.5)
    assert {item["label"] for item in summary["questions"]} == {"Speed", "Quality"}


def test_ticket_response_is_logged_as_ticket_comment(client: TestClient) -> None:
    program = _create_program(client, name="Support CSAT", type="CSAT")
    ticket = client.post("/api/crm/support/tickets", json={"short_description": "Login broken"})
    assert ticket.status_code == 201
    ticket_id = ticket.json()["data"]["id"]

    first = client.post(
        f"/api/crm/surveys/programs/{program['id']}/responses",
        json={"score": 3, "ticket_id": ticket_id, "comment": "Slow"},
    )
    assert first.status_code == 201
    client.post(f"/api/crm/surveys/programs/{program['id']}/responses", json={"score": 5, "ticket_id": ticket_id})

    refreshed = client.get(f"/api/crm/support/tickets/{ticket_id}").json()["data"]
    bodies = [comment["body"] for comment in refreshed["comments"]]
    assert 'Survey response logged for "Support CSAT" (type: CSAT) with score 3 - Slow' in bodies
    assert all(comment["author"] == "system" for comment in refreshed["comments"])

    latest = client.get(f"/api/crm/surveys/tickets/{ticket_id}/responses")
    assert latest.status_code == 200
    items = latest.json()["data"]["items"]
    assert len(items) == 1
    assert items[0]["program_name"] == "Support CSAT"


def test_public_link_flow(client: TestClient, db_session: Session) -> None:
    program = _create_program(client, scale_help_text="0 = never, 10 = always")
    link = client.post(f"/api/crm/surveys/programs/{program['id']}/generate-link", json={"email": "cust@example.com"})
    assert link.status_code == 200
    data = link.json()["data"]
    assert data["url"] == f"https://app.example.com/surveys/respond/{data['token']}"

    view = client.get(f"/api/crm/surveys/respond/{data['token']}")
    assert view.status_code == 200
    assert view.json()["data"]["program"]["name"] == "Quarterly NPS"
    assert view.json()["data"]["program"]["scale_help_text"] == "0 = never, 10 = always"

    submitted = client.post(f"/api/crm/surveys/respond/{data['token']}", json={"score": 9})
    assert submitted.status_code == 201

    stored = db_session.scalar(select(SurveyResponse))
    assert stored is not None
    assert stored.source == "link"
    assert stored.tenant_id == "tenant-a"

    listed = client.get("/api/crm/surveys/programs").json()["data"]["items"]
    assert listed[0]["last_sent_at"] is not None


def test_unknown_survey_token_returns_not_found(client: TestClient) -> None:
    response = client.get("/api/crm/surveys/respond/nope")
    assert response.status_code == 404
    assert response.json()["error"] == "survey_link_not_found"


def test_survey_service_builds_with_default_repositories() -> None:
    service = SurveyService()
    assert type(service.program_repository) is type(survey_service.program_repository)
    assert type(service.response_repository) is type(survey_service.response_repository)
