from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import String, and_, cast, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from boaz.core.database import ensure_utc, utcnow
from boaz.marketing.models import (
    MarketingCampaign,
    MarketingEvent,
    MarketingSegment,
    MarketingUnsubscribe,
    SocialPost,
)
from boaz.marketing.schemas import (
    CampaignCreate,
    CampaignEngagement,
    CampaignUpdate,
    PlatformAnalytics,
    PlatformMetrics,
    SegmentCreate,
    SegmentUpdate,
    SocialAnalytics,
    SocialPostCreate,
    SocialPostUpdate,
    TrackEventCreate,
)
from boaz.platform.tenancy.context import TenantContext
from boaz.platform.tenancy.repository import BaseRepository


logger = logging.getLogger("boaz.marketing")

CAMPAIGN_LIST_LIMIT = 200
SEGMENT_LIST_LIMIT = 200
UNSUBSCRIBE_LIST_LIMIT = 500
SOCIAL_POST_LIST_LIMIT = 500

_CAMPAIGN_SORT_COLUMNS = {
    "createdAt": MarketingCampaign.created_at,
    "updatedAt": MarketingCampaign.updated_at,
    "name": MarketingCampaign.name,
    "status": MarketingCampaign.status,
}

_METRIC_FIELDS = tuple(PlatformMetrics.model_fields)


class CampaignRepository(BaseRepository):
    resource = "marketing.campaign"


class SegmentRepository(BaseRepository):
    resource = "marketing.segment"


class MarketingEventRepository(BaseRepository):
    resource = "marketing.event"


class SocialPostRepository(BaseRepository):
    resource = "marketing.social_post"


@dataclass(slots=True)
class CampaignService:
    repository: CampaignRepository = CampaignRepository()

    def get(self, session: Session, ctx: TenantContext, campaign_id: uuid.UUID) -> MarketingCampaign:
        stmt = self.repository.apply_scope_query(select(MarketingCampaign).where(MarketingCampaign.id == campaign_id), ctx)
        campaign = session.scalar(stmt)
        if campaign is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="campaign_not_found")
        return campaign

    def list(
        self,
        session: Session,
        ctx: TenantContext,
        *,
        q: str | None = None,
        sort: str = "updatedAt",
        direction: str = "desc",
    ) -> list[MarketingCampaign]:
        stmt = self.repository.apply_scope_query(select(MarketingCampaign), ctx)
        if q and q.strip():
            pattern = f"%{q.strip().lower()}%"
            stmt = stmt.where(
                or_(func.lower(MarketingCampaign.name).like(pattern), func.lower(MarketingCampaign.subject).like(pattern))
            )
        column = _CAMPAIGN_SORT_COLUMNS.get(sort, MarketingCampaign.updated_at)
        stmt = stmt.order_by(column.asc() if direction.lower() == "asc" else column.desc()).limit(CAMPAIGN_LIST_LIMIT)
        return list(session.scalars(stmt).all())

    def create(self, session: Session, ctx: TenantContext, dto: CampaignCreate) -> MarketingCampaign:
        campaign = MarketingCampaign(**self.repository.stamp_tenant(dto.model_dump(mode="python"), ctx))
        session.add(campaign)
        session.commit()
        session.refresh(campaign)
        logger.info("marketing.campaign_created", extra={"entity": str(campaign.id)})
        return campaign

    def update(self, session: Session, ctx: TenantContext, campaign_id: uuid.UUID, dto: CampaignUpdate) -> MarketingCampaign:
        campaign = self.get(session, ctx, campaign_id)
        for key, value in dto.model_dump(mode="python", exclude_unset=True).items():
            if key == "name" and not (value or "").strip():
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_payload")
            setattr(campaign, key, value)
        campaign.updated_at = utcnow()
        session.commit()
        session.refresh(campaign)
        return campaign

    def delete(self, session: Session, ctx: TenantContext, campaign_id: uuid.UUID) -> None:
        session.delete(self.get(session, ctx, campaign_id))
        session.commit()


@dataclass(slots=True)
class SegmentService:
    repository: SegmentRepository = SegmentRepository()

    def get(self, session: Session, ctx: TenantContext, segment_id: uuid.UUID) -> MarketingSegment:
        stmt = self.repository.apply_scope_query(select(MarketingSegment).where(MarketingSegment.id == segment_id), ctx)
        segment = session.scalar(stmt)
        if segment is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="segment_not_found")
        return segment

    def list(self, session: Session, ctx: TenantContext) -> list[MarketingSegment]:
        stmt = self.repository.apply_scope_query(select(MarketingSegment), ctx)
        return list(session.scalars(stmt.order_by(MarketingSegment.updated_at.desc()).limit(SEGMENT_LIST_LIMIT)).all())

    def create(self, session: Session, ctx: TenantContext, dto: SegmentCreate) -> MarketingSegment:
        segment = MarketingSegment(**self.repository.stamp_tenant(dto.model_dump(mode="python"), ctx))
        session.add(segment)
        session.commit()
        session.refresh(segment)
        return segment

    def update(self, session: Session, ctx: TenantContext, segment_id: uuid.UUID, dto: SegmentUpdate) -> MarketingSegment:
        segment = self.get(session, ctx, segment_id)
        for key, value in dto.model_dump(mode="python", exclude_unset=True).items():
            setattr(segment, key, value)
        segment.updated_at = utcnow()
        session.commit()
        session.refresh(segment)
        return segment

    def delete(self, session: Session, ctx: TenantContext, segment_id: uuid.UUID) -> None:
        session.delete(self.get(session, ctx, segment_id))
        session.commit()


@dataclass(slots=True)
class TrackingService:
    repository: MarketingEventRepository = MarketingEventRepository()

    def record(self, session: Session, tenant_id: str, dto: TrackEventCreate) -> MarketingEvent:
        event = MarketingEvent(tenant_id=tenant_id, **dto.model_dump(mode="python"))
        session.add(event)
        session.commit()
        return event

    def campaign_engagement(self, session: Session, ctx: TenantContext) -> list[CampaignEngagement]:
        stmt = self.repository.apply_scope_query(
            select(MarketingEvent.campaign_id, MarketingEvent.event, func.count()).group_by(
                MarketingEvent.campaign_id, MarketingEvent.event
            ),
            ctx,
        )
        totals: dict[uuid.UUID | None, dict[str, int]] = {}
        for campaign_id, event, count in session.execute(stmt).all():
            bucket = totals.setdefault(campaign_id, {"open": 0, "click": 0, "visit": 0})
            bucket[event] = bucket.get(event, 0) + int(count)
        return [
            CampaignEngagement(campaign_id=campaign_id, opens=bucket["open"], clicks=bucket["click"], visits=bucket["visit"])
            for campaign_id, bucket in totals.items()
        ]

    def unsubscribe(
        self,
        session: Session,
        tenant_id: str,
        email: str,
        campaign_id: uuid.UUID | None = None,
    ) -> MarketingUnsubscribe:
        cleaned = email.strip().lower()
        if "@" not in cleaned:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_email")
        existing = session.scalar(
            select(MarketingUnsubscribe).where(
                MarketingUnsubscribe.tenant_id == tenant_id, MarketingUnsubscribe.email == cleaned
            )
        )
        if existing is not None:
            existing.at = utcnow()
            if campaign_id is not None:
                existing.campaign_id = campaign_id
            session.commit()
            return existing
        record = MarketingUnsubscribe(tenant_id=tenant_id, email=cleaned, campaign_id=campaign_id)
        session.add(record)
        try:
            session.commit()
        except IntegrityError:
            # concurrent unsubscribe for the same address
            session.rollback()
            record = session.scalar(
                select(MarketingUnsubscribe).where(
                    MarketingUnsubscribe.tenant_id == tenant_id, MarketingUnsubscribe.email == cleaned
                )
            )
        logger.info("marketing.unsubscribed", extra={"entity": str(record.id)})
        return record

    def list_unsubscribes(self, session: Session, ctx: TenantContext) -> list[MarketingUnsubscribe]:
        stmt = self.repository.apply_scope_query(select(MarketingUnsubscribe), ctx)
        return list(session.scalars(stmt.order_by(MarketingUnsubscribe.at.desc()).limit(UNSUBSCRIBE_LIST_LIMIT)).all())


def parse_window_bound(value: str | None, *, end_of_day: bool = False, field: str = "date") -> datetime | None:
    """Parse a `YYYY-MM-DD` or ISO timestamp query value; bare end dates cover the whole day."""
    if value is None or not value.strip():
        return None
    raw = value.strip()
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"invalid_{field}")
    parsed = ensure_utc(parsed)
    if end_of_day and len(raw) == 10:
        parsed = parsed + timedelta(days=1) - timedelta(milliseconds=1)
    return parsed


def _date_window_clause(start: datetime | None, end: datetime | None) -> Any:
    def _between(column: Any) -> Any:
        parts = [column.is_not(None)]
        if start is not None:
            parts.append(column >= start)
        if end is not None:
            parts.append(column <= end)
        return and_(*parts)

    return or_(_between(SocialPost.scheduled_for), _between(SocialPost.published_at))


@dataclass(slots=True)
class SocialPostService:
    repository: SocialPostRepository = SocialPostRepository()

    def get(self, session: Session, ctx: TenantContext, post_id: uuid.UUID) -> SocialPost:
        stmt = self.repository.apply_scope_query(select(SocialPost).where(SocialPost.id == post_id), ctx)
        post = session.scalar(stmt)
        if post is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="post_not_found")
        return post

    def list(
        self,
        session: Session,
        ctx: TenantContext,
        *,
        status_filter: str | None = None,
        platform: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[SocialPost]:
        stmt = self.repository.apply_scope_query(select(SocialPost), ctx)
        if status_filter:
            stmt = stmt.where(SocialPost.status == status_filter)
        if start is not None or end is not None:
            stmt = stmt.where(_date_window_clause(start, end))
        if platform:
            # platforms is stored as a JSON array of quoted names
            stmt = stmt.where(cast(SocialPost.platforms, String).contains(f'"{platform}"', autoescape=True))
        stmt = stmt.order_by(SocialPost.scheduled_for.desc(), SocialPost.created_at.desc()).limit(SOCIAL_POST_LIST_LIMIT)
        return list(session.scalars(stmt).all())

    def create(self, session: Session, ctx: TenantContext, dto: SocialPostCreate) -> SocialPost:
        payload = dto.model_dump(mode="python")
        post = SocialPost(**self.repository.stamp_tenant({**payload, "created_by": ctx.user_id}, ctx))
        if post.status == "published" and post.published_at is None:
            post.published_at = utcnow()
        session.add(post)
        session.commit()
        session.refresh(post)
        logger.info("marketing.social_post_created", extra={"entity": str(post.id), "user_id": ctx.user_id})
        return post

    def update(self, session: Session, ctx: TenantContext, post_id: uuid.UUID, dto: SocialPostUpdate) -> SocialPost:
        post = self.get(session, ctx, post_id)
        changes = dto.model_dump(mode="python", exclude_unset=True)
        if changes.get("metrics") is not None:
            changes["metrics"] = {name: dict(values) for name, values in changes["metrics"].items()}
        for key, value in changes.items():
            setattr(post, key, value)
        if post.status == "published" and post.published_at is None:
            post.published_at = utcnow()
        post.updated_at = utcnow()
        session.commit()
        session.refresh(post)
        return post

    def delete(self, session: Session, ctx: TenantContext, post_id: uuid.UUID) -> None:
        post = self.get(session, ctx, post_id)
        if post.status == "published":
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="cannot_delete_published_post")
        session.delete(post)
        session.commit()

    def analytics(
        self,
        session: Session,
        ctx: TenantContext,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> SocialAnalytics:
        stmt = self.repository.apply_scope_query(select(SocialPost).where(SocialPost.status == "published"), ctx)
        if start is not None:
            stmt = stmt.where(SocialPost.published_at >= start)
        if end is not None:
            stmt = stmt.where(SocialPost.published_at <= end)
        posts = session.scalars(stmt).all()

        by_platform: dict[str, dict[str, int]] = {}
        overall = dict.fromkeys(_METRIC_FIELDS, 0)
        for post in posts:
            metrics = post.metrics or {}
            for platform in post.platforms or []:
                bucket = by_platform.setdefault(platform, {"posts": 0, **dict.fromkeys(_METRIC_FIELDS, 0)})
                bucket["posts"] += 1
                platform_metrics = metrics.get(platform) or {}
                for field in _METRIC_FIELDS:
                    value = int(platform_metrics.get(field) or 0)
                    bucket[field] += value
                    overall[field] += value

        return SocialAnalytics(
            total_posts=len(posts),
            by_platform={name: PlatformAnalytics(**values) for name, values in by_platform.items()},
            total_engagement=PlatformMetrics(**overall),
        )


campaign_service = CampaignService()
segment_service = SegmentService()
tracking_service = TrackingService()
social_post_service = SocialPostService()
