from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from boaz.auth.api_keys import hash_api_key
from boaz.auth.models import ApiKey
from boaz.core.auth import AuthUser, get_current_user
from boaz.core.config import get_settings
from boaz.core.database import Base, get_db
from boaz.crm.models import CrmAccount, CrmContact, Deal, SupportTicket
from boaz.integrations.models import IntegrationInboundEvent
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
    yield
    get_settings.cache_clear()
    reset_rate_limiter()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_user() -> AuthUser:
        return AuthUser(sub="user-1", email="owner@example.com", roles=["admin"], tenant_id="tenant-a")

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _create_key(client: TestClient, scopes: list[str] | None = None) -> str:
    payload: dict = {"name": "HubSpot sync"}
    if scopes is not None:
        payload["scopes"] = scopes
    response = client.post("/api/crm/integrations/api-keys", json=payload)
    assert response.status_code == 201
    return response.json()["data"]["api_key"]


def test_create_api_key_stores_only_hash(client: TestClient, db_session: Session) -> None:
    response = client.post("/api/crm/integrations/api-keys", json={"name": "  Zapier  "})
    assert response.status_code == 201
    data = response.json()["data"]
    raw_key = data["api_key"]
    assert raw_key.startswith("boaz_sk_")
    assert data["item"]["name"] == "Zapier"
    assert data["item"]["prefix"] == raw_key[:12]
    assert data["item"]["scopes"] == ["*"]
    assert data["item"]["created_by_email"] == "owner@example.com"

    record = db_session.scalar(select(ApiKey))
    assert record is not None
    assert record.key_hash == hash_api_key(raw_key)
    assert record.tenant_id == "tenant-a"

    listing = client.get("/api/crm/integrations/api-keys")
    assert listing.status_code == 200
    items = listing.json()["data"]["items"]
    assert len(items) == 1
    assert "api_key" not in items[0]


def test_revoked_key_is_hidden_and_rejected(client: TestClient) -> None:
    raw_key = _create_key(client)
    key_id = client.get("/api/crm/integrations/api-keys").json()["data"]["items"][0]["id"]

    revoke = client.delete(f"/api/crm/integrations/api-keys/{key_id}")
    assert revoke.status_code == 200
    assert revoke.json()["data"]["revoked_at"] is not None

    assert client.get("/api/crm/integrations/api-keys").json()["data"]["items"] == []

    inbound = client.post(
        "/api/integrations/inbound/accounts",
        json={"source": "hubspot", "id": "1", "name": "Acme"},
        headers={"x-api-key": raw_key},
    )
    assert inbound.status_code == 401
    assert inbound.json()["error"] == "invalid_api_key"


def test_inbound_requires_api_key(client: TestClient) -> None:
    missing = client.post("/api/integrations/inbound/accounts", json={"source": "hubspot", "id": "1", "name": "Acme"})
    assert missing.status_code == 401
    assert missing.json()["error"] == "missing_api_key"

    malformed = client.post(
        "/api/integrations/inbound/accounts",
        json={"source": "hubspot", "id": "1", "name": "Acme"},
        headers={"x-boaz-api-key": "not-a-key"},
    )
    assert malformed.status_code == 401
    assert malformed.json()["error"] == "invalid_api_key"


def test_inbound_rejects_key_without_scope(client: TestClient) -> None:
    raw_key = _create_key(client, scopes=["reporting:read"])
    response = client.post(
        "/api/integrations/inbound/accounts",
        json={"source": "hubspot", "id": "1", "name": "Acme"},
        headers={"x-api-key": raw_key},
    )
    assert response.status_code == 403
    assert response.json()["error"] == "insufficient_scope"


def test_inbound_account_upsert_is_idempotent(client: TestClient, db_session: Session) -> None:
    raw_key = _create_key(client, scopes=["integrations:write"])
    headers = {"x-api-key": raw_key}

    first = client.post(
        "/api/integrations/inbound/accounts",
        json={"source": "hubspot", "id": "acc-1", "name": "Acme", "domain": "acme.test"},
        headers=headers,
    )
    assert first.status_code == 200
    assert first.json()["data"]["created"] is True

    second = client.post(
        "/api/integrations/inbound/accounts",
        json={"source": "hubspot", "id": "acc-1", "name": "Acme Corp"},
        headers=headers,
    )
    assert second.status_code == 200
    assert second.json()["data"] == {"ok": True, "id": first.json()["data"]["id"], "created": False}

    accounts = db_session.scalars(select(CrmAccount)).all()
    assert len(accounts) == 1
    assert accounts[0].name == "Acme Corp"
    assert accounts[0].domain == "acme.test"
    assert accounts[0].tenant_id == "tenant-a"

    events = db_session.scalars(select(IntegrationInboundEvent)).all()
    assert [event.status for event in events] == [200, 200]
    assert all(event.api_key_name == "HubSpot sync" for event in events)


def test_inbound_contact_matches_email_and_links_account(client: TestClient, db_session: Session) -> None:
    headers = {"x-api-key": _create_key(client)}
    client.post(
        "/api/integrations/inbound/accounts",
        json={"source": "hubspot", "id": "acc-1", "name": "Acme"},
        headers=headers,
    )

    created = client.post(
        "/api/integrations/inbound/contacts",
        json={"source": "hubspot", "id": "c-1", "email": "Jane@Acme.test", "account_external_id": "acc-1"},
        headers=headers,
    )
    assert created.status_code == 200
    assert created.json()["data"]["created"] is True

    matched = client.post(
        "/api/integrations/inbound/contacts",
        json={"email": "jane@acme.test", "full_name": "Jane Doe"},
        headers=headers,
    )
    assert matched.json()["data"]["created"] is False

    contact = db_session.scalar(select(CrmContact))
    assert contact is not None
    assert contact.email == "jane@acme.test"
    assert contact.name == "Jane Doe"
    account = db_session.scalar(select(CrmAccount))
    assert account is not None
    assert contact.account_id == account.id


def test_inbound_contact_without_identifier_is_logged(client: TestClient, db_session: Session) -> None:
    headers = {"x-api-key": _create_key(client)}
    response = client.post("/api/integrations/inbound/contacts", json={"name": "Nobody"}, headers=headers)
    assert response.status_code == 400
    assert response.json()["error"] == "missing_identifier"

    event = db_session.scalar(select(IntegrationInboundEvent))
    assert event is not None
    assert event.kind == "contact"
    assert event.status == 400
    assert event.error == "missing_identifier"


def test_inbound_deal_and_ticket_get_sequence_numbers(client: TestClient, db_session: Session) -> None:
    headers = {"x-api-key": _create_key(client)}

    deal = client.post(
        "/api/integrations/inbound/deals",
        json={"source": "sf", "id": "d-1", "name": "Renewal 2027", "amount": 1200, "close_date": "2026-11-30"},
        headers=headers,
    )
    assert deal.status_code == 200
    stored_deal = db_session.scalar(select(Deal))
    assert stored_deal is not None
    assert stored_deal.deal_number == 100001
    assert stored_deal.title == "Renewal 2027"
    assert stored_deal.close_date is not None
    assert stored_deal.close_date.hour == 12

    ticket = client.post(
        "/api/integrations/inbound/tickets",
        json={"source": "zendesk", "id": "z-9", "subject": "Printer on fire"},
        headers=headers,
    )
    assert ticket.status_code == 200
    stored_ticket = db_session.scalar(select(SupportTicket))
    assert stored_ticket is not None
    assert stored_ticket.ticket_number == 200001
    assert stored_ticket.short_description == "Printer on fire"
    assert stored_ticket.status == "open"

    missing = client.post(
        "/api/integrations/inbound/tickets",
        json={"source": "zendesk", "id": "z-10"},
        headers=headers,
    )
    assert missing.status_code == 400
    assert missing.json()["error"] == "missing_required_fields"
