from __future__ import annotations

import base64
import uuid
from typing import Literal

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from boaz.core.database import get_db
from boaz.core.envelope import Envelope, ItemList, ok, ok_items
from boaz.marketing.schemas import (
    CampaignCreate,
    CampaignEngagement,
    CampaignRead,
    CampaignUpdate,
    SegmentCreate,
    SegmentRead,
    SegmentUpdate,
    SocialAnalytics,
    SocialPostCreate,
    SocialPostRead,
    SocialPostUpdate,
    TrackEventCreate,
    UnsubscribeRead,
)
from boaz.marketing.service import (
    campaign_service,
    parse_window_bound,
    segment_service,
    social_post_service,
    tracking_service,
)
from boaz.platform.tenancy.context import TenantContext
from boaz.platform.tenancy.deps import get_public_tenant_id, get_tenant_context


router = APIRouter(prefix="/api/marketing", tags=["marketing"])
public_router = APIRouter(prefix="/api/marketing", tags=["marketing.public"])

_PIXEL = base64.b64decode("R0lGODlhAQABAIAAAAAAAP///yH5BAEAAAAALAAAAAABAAEAAAIBRAA7")


@router.get("/campaigns", response_model=Envelope[ItemList[CampaignRead]])
def list_campaigns(
    q: str | None = Query(default=None),
    sort: str = Query(default="updatedAt"),
    direction: Literal["asc", "desc"] = Query(default="desc", alias="dir"),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok_items(campaign_service.list(db, ctx, q=q, sort=sort, direction=direction))


@router.post("/campaigns", response_model=Envelope[CampaignRead], status_code=status.HTTP_201_CREATED)
def create_campaign(
    payload: CampaignCreate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok(campaign_service.create(db, ctx, payload))


@router.get("/campaigns/{campaign_id}", response_model=Envelope[CampaignRead])
def get_campaign(
    campaign_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok(campaign_service.get(db, ctx, campaign_id))


@router.put("/campaigns/{campaign_id}", response_model=Envelope[CampaignRead])
def update_campaign(
    campaign_id: uuid.UUID,
    payload: CampaignUpdate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok(campaign_service.update(db, ctx, campaign_id, payload))


@router.delete("/campaigns/{campaign_id}", response_model=Envelope[dict])
def delete_campaign(
    campaign_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    campaign_service.delete(db, ctx, campaign_id)
    return ok({"ok": True})


@router.get("/segments", response_model=Envelope[ItemList[SegmentRead]])
def list_segments(db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    return ok_items(segment_service.list(db, ctx))


@router.post("/segments", response_model=Envelope[SegmentRead], status_code=status.HTTP_201_CREATED)
def create_segment(
    payload: SegmentCreate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok(segment_service.create(db, ctx, payload))


@router.put("/segments/{segment_id}", response_model=Envelope[SegmentRead])
def update_segment(
    segment_id: uuid.UUID,
    payload: SegmentUpdate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok(segment_service.update(db, ctx, segment_id, payload))


@router.delete("/segments/{segment_id}", response_model=Envelope[dict])
def delete_segment(
    segment_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    segment_service.delete(db, ctx, segment_id)
    return ok({"ok": True})


@router.get("/metrics", response_model=Envelope[ItemList[CampaignEngagement]])
def campaign_metrics(db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    return ok_items(tracking_service.campaign_engagement(db, ctx))


@router.get("/unsubscribes", response_model=Envelope[ItemList[UnsubscribeRead]])
def list_unsubscribes(db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    return ok_items(tracking_service.list_unsubscribes(db, ctx))


@router.get("/social/posts", response_model=Envelope[ItemList[SocialPostRead]])
def list_social_posts(
    status_filter: str | None = Query(default=None, alias="status"),
    platform: str | None = Query(default=None),
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    items = social_post_service.list(
        db,
        ctx,
        status_filter=status_filter,
        platform=platform,
        start=parse_window_bound(start_date, field="startDate"),
        end=parse_window_bound(end_date, end_of_day=True, field="endDate"),
    )
    return ok_items(items)


@router.post("/social/posts", response_model=Envelope[SocialPostRead], status_code=status.HTTP_201_CREATED)
def create_social_post(
    payload: SocialPostCreate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok(social_post_service.create(db, ctx, payload))


@router.get("/social/posts/{post_id}", response_model=Envelope[SocialPostRead])
def get_social_post(
    post_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok(social_post_service.get(db, ctx, post_id))


@router.put("/social/posts/{post_id}", response_model=Envelope[SocialPostRead])
def update_social_post(
    post_id: uuid.UUID,
    payload: SocialPostUpdate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok(social_post_service.update(db, ctx, post_id, payload))


@router.delete("/social/posts/{post_id}", response_model=Envelope[dict])
def delete_social_post(
    post_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    social_post_service.delete(db, ctx, post_id)
    return ok({"ok": True})


@router.get("/social/analytics", response_model=Envelope[SocialAnalytics])
def social_analytics(
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok(
        social_post_service.analytics(
            db,
            ctx,
            start=parse_window_bound(start_date, field="startDate"),
            end=parse_window_bound(end_date, end_of_day=True, field="endDate"),
        )
    )


@public_router.post("/track", response_model=Envelope[dict], status_code=status.HTTP_201_CREATED)
def track_event(
    payload: TrackEventCreate,
    tenant_id: str = Depends(get_public_tenant_id),
    db: Session = Depends(get_db),
) -> dict:
    tracking_service.record(db, tenant_id, payload)
    return ok({"ok": True})


@public_router.get("/pixel.gif")
def tracking_pixel(
    tenant_id: str = Depends(get_public_tenant_id),
    campaign_id: uuid.UUID | None = Query(default=None, alias="c"),
    recipient: str | None = Query(default=None, alias="e"),
    db: Session = Depends(get_db),
) -> Response:
    tracking_service.record(
        db,
        tenant_id,
        TrackEventCreate(event="open", campaign_id=campaign_id, recipient=recipient),
    )
    return Response(content=_PIXEL, media_type="image/gif", headers={"Cache-Control": "no-store"})


@public_router.get("/unsubscribe", response_model=Envelope[dict])
def unsubscribe(
    tenant_id: str = Depends(get_public_tenant_id),
    email: str = Query(alias="e"),
    campaign_id: uuid.UUID | None = Query(default=None, alias="c"),
    db: Session = Depends(get_db),
) -> dict:
    tracking_service.unsubscribe(db, tenant_id, email, campaign_id)
    return ok({"ok": True})
