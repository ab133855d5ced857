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
from boaz.main import app
from boaz.marketing.models import MarketingEvent, MarketingUnsubscribe
from boaz.middleware.rate_limit import reset_rate_limiter


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
    yield
    get_settings.cache_clear()
    reset_rate_limiter()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_user() -> AuthUser:
        return AuthUser(sub="marketer-1", email="marketer@example.com", roles=["user"], tenant_id="tenant-a")

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _create_campaign(client: TestClient, name: str = "Autumn launch") -> dict:
    response = client.post("/api/marketing/campaigns", json={"name": name, "subject": "New features"})
    assert response.status_code == 201
    return response.json()["data"]


def test_campaign_crud(client: TestClient) -> None:
    created = _create_campaign(client, name="  Autumn launch  ")
    assert created["name"] == "Autumn launch"
    assert created["status"] == "draft"
    _create_campaign(client, name="Winter promo")

    searched = client.get("/api/marketing/campaigns", params={"q": "autumn"})
    assert [item["id"] for item in searched.json()["data"]["items"]] == [created["id"]]

    by_name = client.get("/api/marketing/campaigns", params={"sort": "name", "dir": "asc"})
    assert [item["name"] for item in by_name.json()["data"]["items"]] == ["Autumn launch", "Winter promo"]

    updated = client.put(f"/api/marketing/campaigns/{created['id']}", json={"status": "sent"})
    assert updated.json()["data"]["status"] == "sent"

    assert client.delete(f"/api/marketing/campaigns/{created['id']}").json() == {"data": {"ok": True}, "error": None}
    missing = client.get(f"/api/marketing/campaigns/{created['id']}")
    assert missing.status_code == 404
    assert missing.json()["error"] == "campaign_not_found"


def test_blank_campaign_name_is_rejected(client: TestClient) -> None:
    response = client.post("/api/marketing/campaigns", json={"name": "   "})
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_payload"


def test_segment_emails_are_cleaned(client: TestClient) -> None:
    response = client.post(
        "/api/marketing/segments",
        json={"name": "Beta users", "emails": [" Ann@Example.com ", "not-an-email", "bob@example.com"]},
    )
    assert response.status_code == 201
    segment = response.json()["data"]
    assert segment["emails"] == ["ann@example.com", "bob@example.com"]

    updated = client.put(f"/api/marketing/segments/{segment['id']}", json={"emails": ["CARL@example.com"]})
    assert updated.json()["data"]["emails"] == ["carl@example.com"]
    assert updated.json()["data"]["name"] == "Beta users"


def test_tracking_pixel_and_events_feed_campaign_metrics(client: TestClient, db_session: Session) -> None:
    campaign = _create_campaign(client)

    pixel = client.get(
        "/api/marketing/pixel.gif",
        params={"c": campaign["id"], "e": "reader@example.com"},
        headers=PUBLIC_HEADERS,
    )
    assert pixel.status_code == 200
    assert pixel.headers["content-type"] == "image/gif"
    assert pixel.content.startswith(b"GIF89a")

    tracked = client.post(
        "/api/marketing/track",
        json={"event": "click", "campaign_id": campaign["id"], "url": "https://example.com/pricing", "utm_source": "email"},
        headers=PUBLIC_HEADERS,
    )
    assert tracked.status_code == 201

    stored = db_session.scalars(select(MarketingEvent)).all()
    assert {event.event for event in stored} == {"open", "click"}
    assert all(event.tenant_id == "tenant-a" for event in stored)

    metrics = client.get("/api/marketing/metrics")
    items = metrics.json()["data"]["items"]
    assert items == [{"campaign_id": campaign["id"], "opens": 1, "clicks": 1, "visits": 0}]


def test_unknown_track_event_is_rejected(client: TestClient) -> None:
    response = client.post("/api/marketing/track", json={"event": "bounce"}, headers=PUBLIC_HEADERS)
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_payload"


def test_unsubscribe_is_idempotent(client: TestClient, db_session: Session) -> None:
    invalid = client.get("/api/marketing/unsubscribe", params={"e": "nobody"}, headers=PUBLIC_HEADERS)
    assert invalid.status_code == 400
    assert invalid.json() == {"data": None, "error": "invalid_email"}

    for _ in range(2):
        response = client.get("/api/marketing/unsubscribe", params={"e": " Reader@Example.com "}, headers=PUBLIC_HEADERS)
        assert response.status_code == 200
        assert response.json()["data"] == {"ok": True}

    rows = db_session.scalars(select(MarketingUnsubscribe)).all()
    assert [row.email for row in rows] == ["reader@example.com"]

    listed = client.get("/api/marketing/unsubscribes").json()["data"]["items"]
    assert [item["email"] for item in listed] == ["reader@example.com"]


def test_social_post_lifecycle_and_analytics(client: TestClient) -> None:
    draft = client.post("/api/marketing/social/posts", json={"content": "Coming soon", "platforms": ["twitter"]})
    assert draft.status_code == 201
    draft_id = draft.json()["data"]["id"]
    assert draft.json()["data"]["created_by"] == "marketer-1"

    post = client.post(
        "/api/marketing/social/posts",
        json={"content": "We launched!", "platforms": ["twitter", "linkedin"]},
    ).json()["data"]
    published = client.put(
        f"/api/marketing/social/posts/{post['id']}",
        json={"status": "published", "metrics": {"twitter": {"likes": 3, "shares": 1}, "linkedin": {"likes": 2}}},
    )
    assert published.status_code == 200
    assert published.json()["data"]["published_at"] is not None

    linkedin_posts = client.get("/api/marketing/social/posts", params={"platform": "linkedin"}).json()["data"]["items"]
    assert [item["id"] for item in linkedin_posts] == [post["id"]]

    analytics = client.get("/api/marketing/social/analytics").json()["data"]
    assert analytics["total_posts"] == 1
    assert analytics["by_platform"]["twitter"]["likes"] == 3
    assert analytics["by_platform"]["linkedin"]["posts"] == 1
    assert analytics["total_engagement"]["likes"] == 5
    assert analytics["total_engagement"]["shares"] == 1

    blocked = client.delete(f"/api/marketing/social/posts/{post['id']}")
    assert blocked.status_code == 400
    assert blocked.json()["error"] == "cannot_delete_published_post"

    assert client.delete(f"/api/marketing/social/posts/{draft_id}").status_code == 200
    assert client.get(f"/api/marketing/social/posts/{draft_id}").json()["error"] == "post_not_found"


def test_social_post_rejects_unknown_platform_and_bad_dates(client: TestClient) -> None:
    response = client.post("/api/marketing/social/posts", json={"content": "Hi", "platforms": ["myspace"]})
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_payload"

    bad_range = client.get("/api/marketing/social/analytics", params={"startDate": "soon"})
    assert bad_range.status_code == 400
    assert bad_range.json()["error"] == "invalid_startDate"


def test_platform_filter_applies_before_list_limit(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("boaz.marketing.service.SOCIAL_POST_LIST_LIMIT", 2)
    oldest = client.post("/api/marketing/social/posts", json={"content": "Hiring", "platforms": ["linkedin"]}).json()["data"]
    for index in range(3):
        client.post("/api/marketing/social/posts", json={"content": f"Tip {index}", "platforms": ["twitter"]})

    linkedin_posts = client.get("/api/marketing/social/posts", params={"platform": "linkedin"}).json()["data"]["items"]
    assert [item["id"] for item in linkedin_posts] == [oldest["id"]]

    twitter_posts = client.get("/api/marketing/social/posts", params={"platform": "twitter"}).json()["data"]["items"]
    assert len(twitter_posts) == 2
    assert all(item["platforms"] == ["twitter"] for item in twitter_posts)
