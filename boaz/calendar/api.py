from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from boaz.calendar.schemas import CalendarEvent
from boaz.calendar.service import calendar_service, parse_range
from boaz.core.database import get_db
from boaz.core.envelope import Envelope, ItemList, ok_items
from boaz.platform.tenancy.context import TenantContext
from boaz.platform.tenancy.deps import get_tenant_context


router = APIRouter(prefix="/api/calendar", tags=["calendar"])


@router.get("/events", response_model=Envelope[ItemList[CalendarEvent]])
def my_events(
    start: str | None = Query(default=None, alias="from"),
    end: str | None = Query(default=None, alias="to"),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    window_start, window_end = parse_range(start, end)
    return ok_items(calendar_service.my_events(db, ctx, window_start, window_end))


@router.get("/events/org", response_model=Envelope[ItemList[CalendarEvent]])
def org_events(
    start: str | None = Query(default=None, alias="from"),
    end: str | None = Query(default=None, alias="to"),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    window_start, window_end = parse_range(start, end)
    return ok_items(calendar_service.org_events(db, ctx, window_start, window_end))
