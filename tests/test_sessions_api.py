from __future__ import annotations

from collections.abc import Generator
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from boaz.auth.models import UserSession
from boaz.auth.sessions import session_service
from boaz.core.auth import issue_token
from boaz.core.config import get_settings
from boaz.core.database import Base, get_db, utcnow
from boaz.main import app
from boaz.middleware.rate_limit import reset_rate_limiter
from boaz.platform.tenancy.context import TenantContext


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

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _login(
    db_session: Session,
    jti: str,
    user_id: str = "user-1",
    roles: list[str] | None = None,
    tenant_id: str = "tenant-a",
) -> dict[str, str]:
    session_service.create_session(
        db_session,
        jti=jti,
        user_id=user_id,
        email=f"{user_id}@example.com",
        tenant_id=tenant_id,
        ip_address="127.0.0.1",
        user_agent="pytest",
    )
    token = issue_token(
        {"sub": user_id, "email": f"{user_id}@example.com", "jti": jti, "roles": roles or ["user"], "tenant_id": tenant_id}
    )
    return {"Authorization": f"Bearer {token}"}


def test_missing_token_is_unauthorized(client: TestClient) -> None:
    response = client.get("/api/auth/sessions")
    assert response.status_code == 401
    assert response.json() == {"data": None, "error": "unauthorized"}


def test_list_my_sessions_returns_active_sessions(client: TestClient, db_session: Session) -> None:
    headers = _login(db_session, "jti-a")
    _login(db_session, "jti-b")
    _login(db_session, "jti-other", user_id="user-2")

    response = client.get("/api/auth/sessions", headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["error"] is None
    jtis = {item["jti"] for item in body["data"]["items"]}
    assert jtis == {"jti-a", "jti-b"}


def test_revoked_session_is_rejected(client: TestClient, db_session: Session) -> None:
    headers = _login(db_session, "jti-a")
    other = _login(db_session, "jti-b")

    revoke = client.delete("/api/auth/sessions/jti-a", headers=other)
    assert revoke.status_code == 200
    assert revoke.json()["data"] == {"revoked": True}
    assert session_service.is_session_revoked(db_session, "jti-a") is True

    response = client.get("/api/auth/sessions", headers=headers)
    assert response.status_code == 401
    assert response.json()["error"] == "session_revoked"


def test_revoke_unknown_session_returns_not_found(client: TestClient, db_session: Session) -> None:
    headers = _login(db_session, "jti-a")
    response = client.delete("/api/auth/sessions/missing", headers=headers)
    assert response.status_code == 404
    assert response.json()["error"] == "session_not_found"


def test_revoke_others_keeps_current_session(client: TestClient, db_session: Session) -> None:
    headers = _login(db_session, "jti-current")
    _login(db_session, "jti-old-1")
    _login(db_session, "jti-old-2")

    response = client.post("/api/auth/sessions/revoke-others", headers=headers)
    assert response.status_code == 200
    assert response.json()["data"] == {"count": 2}
    assert session_service.is_session_revoked(db_session, "jti-current") is False
    assert session_service.is_session_revoked(db_session, "jti-old-1") is True


def test_unknown_jti_is_not_revoked(db_session: Session) -> None:
    assert session_service.is_session_revoked(db_session, "never-issued") is False


def test_admin_routes_require_admin_role(client: TestClient, db_session: Session) -> None:
    headers = _login(db_session, "jti-user")
    response = client.get("/api/auth/admin/sessions", headers=headers)
    assert response.status_code == 403
    assert response.json()["error"] == "forbidden"


def test_admin_bulk_and_revoke_all(client: TestClient, db_session: Session) -> None:
    admin = _login(db_session, "jti-admin", user_id="admin-1", roles=["admin"])
    _login(db_session, "jti-1", user_id="user-1")
    _login(db_session, "jti-2", user_id="user-2")
    _login(db_session, "jti-3", user_id="user-3")

    listing = client.get("/api/auth/admin/sessions", headers=admin)
    assert listing.status_code == 200
    assert len(listing.json()["data"]["items"]) == 4

    bulk = client.post("/api/auth/admin/sessions/bulk-revoke", json={"jtis": ["jti-1", "jti-2"]}, headers=admin)
    assert bulk.status_code == 200
    assert bulk.json()["data"] == {"count": 2}

    by_user = client.get("/api/auth/admin/sessions/users/user-1", headers=admin)
    assert by_user.status_code == 200
    assert [item["revoked"] for item in by_user.json()["data"]["items"]] == [True]

    revoke_all = client.post("/api/auth/admin/sessions/revoke-all", headers=admin)
    assert revoke_all.status_code == 200
    assert revoke_all.json()["data"] == {"count": 1}
    assert session_service.is_session_revoked(db_session, "jti-admin") is False


def test_cleanup_removes_only_old_revoked_sessions(db_session: Session) -> None:
    _login(db_session, "jti-old")
    _login(db_session, "jti-recent")
    _login(db_session, "jti-active")
    session_service.admin_bulk_revoke_sessions(
        db_session, TenantContext(user_id="admin-1", tenant_id="tenant-a"), ["jti-old", "jti-recent"]
    )

    stale = db_session.scalar(select(UserSession).where(UserSession.jti == "jti-old"))
    assert stale is not None
    stale.last_used_at = utcnow() - timedelta(days=45)
    db_session.commit()

    removed = session_service.cleanup_old_sessions(db_session, retention_days=30)
    assert removed == 1
    remaining = set(db_session.scalars(select(UserSession.jti)).all())
    assert remaining == {"jti-recent", "jti-active"}


def test_admin_session_routes_stay_inside_admin_tenant(client: TestClient, db_session: Session) -> None:
    admin = _login(db_session, "jti-admin-a", user_id="admin-a", roles=["admin"])
    _login(db_session, "jti-home", user_id="user-1")
    _login(db_session, "jti-foreign", user_id="user-9", tenant_id="tenant-b")

    listing = client.get("/api/auth/admin/sessions", headers=admin)
    assert sorted(item["jti"] for item in listing.json()["data"]["items"]) == ["jti-admin-a", "jti-home"]
    assert {item["tenant_id"] for item in listing.json()["data"]["items"]} == {"tenant-a"}

    by_user = client.get("/api/auth/admin/sessions/users/user-9", headers=admin)
    assert by_user.json()["data"]["items"] == []

    single = client.delete("/api/auth/admin/sessions/jti-foreign", headers=admin)
    assert single.status_code == 404
    assert single.json()["error"] == "session_not_found"

    bulk = client.post("/api/auth/admin/sessions/bulk-revoke", json={"jtis": ["jti-foreign", "jti-home"]}, headers=admin)
    assert bulk.json()["data"] == {"count": 1}

    revoke_all = client.post("/api/auth/admin/sessions/revoke-all", headers=admin)
    assert revoke_all.json()["data"] == {"count": 0}
    assert session_service.is_session_revoked(db_session, "jti-foreign") is False
    assert session_service.is_session_revoked(db_session, "jti-home") is True
