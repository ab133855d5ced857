from __future__ import annotations

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from boaz.core.database import get_db
from boaz.core.envelope import Envelope, ItemList, ok, ok_items
from boaz.scheduler.schemas import (
    AppointmentRead,
    AppointmentTypeCreate,
    AppointmentTypeRead,
    AppointmentTypeUpdate,
    AvailabilityRead,
    AvailabilityUpdate,
    BookingCreate,
    BookingCreated,
    BookingLinkView,
)
from boaz.scheduler.service import scheduler_service
from boaz.platform.tenancy.context import TenantContext
from boaz.platform.tenancy.deps import get_public_tenant_id, get_tenant_context


router = APIRouter(prefix="/api/scheduler", tags=["scheduler"])
public_router = APIRouter(prefix="/api/scheduler/public", tags=["scheduler.public"])


@router.get("/appointment-types", response_model=Envelope[ItemList[AppointmentTypeRead]])
def list_appointment_types(db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    return ok_items(scheduler_service.list_types(db, ctx))


@router.post("/appointment-types", response_model=Envelope[AppointmentTypeRead], status_code=status.HTTP_201_CREATED)
def create_appointment_type(
    payload: AppointmentTypeCreate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok(scheduler_service.create_type(db, ctx, payload))


@router.put("/appointment-types/{type_id}", response_model=Envelope[AppointmentTypeRead])
def update_appointment_type(
    type_id: uuid.UUID,
    payload: AppointmentTypeUpdate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok(scheduler_service.update_type(db, ctx, type_id, payload))


@router.delete("/appointment-types/{type_id}", response_model=Envelope[dict])
def delete_appointment_type(
    type_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    scheduler_service.delete_type(db, ctx, type_id)
    return ok({"ok": True})


@router.get("/availability/me", response_model=Envelope[AvailabilityRead])
def get_availability(db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    return ok(scheduler_service.get_availability(db, ctx))


@router.put("/availability/me", response_model=Envelope[AvailabilityRead])
def update_availability(
    payload: AvailabilityUpdate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok(scheduler_service.update_availability(db, ctx, payload))


@router.get("/appointments", response_model=Envelope[ItemList[AppointmentRead]])
def list_appointments(
    start: datetime | None = Query(default=None, alias="from"),
    end: datetime | None = Query(default=None, alias="to"),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok_items(scheduler_service.list_appointments(db, ctx, start, end))


@router.post("/appointments/{appointment_id}/cancel", response_model=Envelope[AppointmentRead])
def cancel_appointment(
    appointment_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok(scheduler_service.cancel_appointment(db, ctx, appointment_id))


@public_router.get("/booking-links/{slug}", response_model=Envelope[BookingLinkView])
def booking_link(
    slug: str,
    window_days: int | None = Query(default=None, alias="windowDays"),
    tenant_id: str = Depends(get_public_tenant_id),
    db: Session = Depends(get_db),
) -> dict:
    return ok(scheduler_service.booking_link(db, tenant_id, slug, window_days))


@public_router.post("/book/{slug}", response_model=Envelope[BookingCreated], status_code=status.HTTP_201_CREATED)
def book(
    slug: str,
    payload: BookingCreate,
    tenant_id: str = Depends(get_public_tenant_id),
    db: Session = Depends(get_db),
) -> dict:
    appointment = scheduler_service.book(db, tenant_id, slug, payload)
    return ok(BookingCreated(id=appointment.id, starts_at=appointment.starts_at, ends_at=appointment.ends_at))
