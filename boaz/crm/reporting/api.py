from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from boaz.core.database import get_db
from boaz.core.envelope import Envelope, ItemList, ok, ok_items
from boaz.crm.reporting.schemas import DailySnapshotResult, ReportingOverview, SnapshotCreate, SnapshotRead
from boaz.crm.reporting.service import reporting_service
from boaz.platform.tenancy.context import TenantContext
from boaz.platform.tenancy.deps import get_tenant_context


router = APIRouter(prefix="/api/crm/reporting", tags=["crm.reporting"])


@router.get("/overview", response_model=Envelope[ReportingOverview])
def overview(
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok(reporting_service.overview(db, ctx, start_date, end_date))


@router.get("/snapshots", response_model=Envelope[ItemList[SnapshotRead]])
def list_snapshots(
    limit: int | None = Query(default=None),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok_items(reporting_service.list_snapshots(db, ctx, limit))


@router.post("/snapshots", response_model=Envelope[SnapshotRead], status_code=status.HTTP_201_CREATED)
def create_snapshot(
    payload: SnapshotCreate | None = None,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    body = payload or SnapshotCreate()
    return ok(reporting_service.create_snapshot(db, ctx, body.start_date, body.end_date))


@router.post("/snapshots/run-daily", response_model=Envelope[DailySnapshotResult])
def run_daily_snapshot(
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    snapshot, created = reporting_service.run_daily(db, ctx)
    return ok(DailySnapshotResult(schedule_key=snapshot.schedule_key or "", created=created))
