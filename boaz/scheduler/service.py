from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from boaz import events
from boaz.core.database import ensure_utc, utcnow
from boaz.crm.models import CrmContact, CrmTask
from boaz.metrics import observe_booking
from boaz.platform.tenancy.context import TenantContext
from boaz.platform.tenancy.repository import BaseRepository
from boaz.scheduler.models import Appointment, AppointmentType, Availability
from boaz.scheduler.schemas import (
    AppointmentTypeCreate,
    AppointmentTypeUpdate,
    AvailabilityRead,
    AvailabilityUpdate,
    BookingCreate,
    BookingLinkView,
    BookingWindow,
    BusyInterval,
    PublicAppointmentType,
    SlotRead,
)
from boaz.scheduler.slots import (
    BookingType,
    BusyBlock,
    WeeklyWindow,
    generate_booking_slots,
    js_weekday,
    overlaps,
    resolve_zone,
    zoned_to_utc,
)


logger = logging.getLogger("boaz.scheduler")

BOOKING_HORIZON_DAYS = 60
DEFAULT_WINDOW_DAYS = 14
MAX_WINDOW_DAYS = 60
REMINDER_LOOKAHEAD = timedelta(hours=24)
REMINDER_GRACE = timedelta(minutes=2)
REMINDER_BATCH = 200
DEFAULT_START_MIN = 9 * 60
DEFAULT_END_MIN = 17 * 60


class AppointmentTypeRepository(BaseRepository):
    resource = "scheduler.appointment_type"


class AppointmentRepository(BaseRepository):
    resource = "scheduler.appointment"


def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.strip().lower()).strip("-")[:64]


def default_weekly() -> list[dict[str, Any]]:
    return [
        {"day": day, "enabled": 1 <= day <= 5, "start_min": DEFAULT_START_MIN, "end_min": DEFAULT_END_MIN}
        for day in range(7)
    ]


def weekly_windows(availability: Availability) -> list[WeeklyWindow]:
    return [
        WeeklyWindow(
            day=int(item.get("day", -1)),
            enabled=bool(item.get("enabled")),
            start_min=int(item.get("start_min", 0)),
            end_min=int(item.get("end_min", 0)),
        )
        for item in availability.weekly or []
    ]


def booking_type_for(appointment_type: AppointmentType) -> BookingType:
    return BookingType(
        duration_minutes=appointment_type.duration_minutes,
        buffer_before_minutes=appointment_type.buffer_before_minutes,
        buffer_after_minutes=appointment_type.buffer_after_minutes,
    )


def _event(event_type: str, tenant_id: str, actor_user_id: str | None, payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "event_id": str(uuid.uuid4()),
        "event_type": event_type,
        "occurred_at": utcnow().isoformat(),
        "actor_user_id": actor_user_id,
        "tenant_id": tenant_id,
        "payload": payload,
    }


def _iso(value: datetime | None) -> str | None:
    value = ensure_utc(value)
    return value.isoformat() if value is not None else None


@dataclass(slots=True)
class SchedulerService:
    type_repository: AppointmentTypeRepository = AppointmentTypeRepository()
    appointment_repository: AppointmentRepository = AppointmentRepository()

    # appointment types

    def list_types(self, session: Session, ctx: TenantContext) -> list[AppointmentType]:
        stmt = self.type_repository.apply_scope_query(
            select(AppointmentType).where(AppointmentType.owner_user_id == ctx.user_id), ctx
        )
        return list(session.scalars(stmt.order_by(AppointmentType.updated_at.desc())).all())

    def _get_type(self, session: Session, ctx: TenantContext, type_id: uuid.UUID) -> AppointmentType:
        stmt = self.type_repository.apply_scope_query(
            select(AppointmentType).where(AppointmentType.id == type_id, AppointmentType.owner_user_id == ctx.user_id),
            ctx,
        )
        appointment_type = session.scalar(stmt)
        if appointment_type is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not_found")
        return appointment_type

    def _ensure_slug_free(
        self,
        session: Session,
        ctx: TenantContext,
        slug: str,
        exclude_id: uuid.UUID | None = None,
    ) -> None:
        stmt = self.type_repository.apply_scope_query(
            select(AppointmentType.id).where(AppointmentType.owner_user_id == ctx.user_id, AppointmentType.slug == slug),
            ctx,
        )
        if exclude_id is not None:
            stmt = stmt.where(AppointmentType.id != exclude_id)
        if session.scalar(stmt) is not None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="slug_taken")

    def create_type(self, session: Session, ctx: TenantContext, dto: AppointmentTypeCreate) -> AppointmentType:
        slug = slugify(dto.slug)
        if not slug:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_slug")
        self._ensure_slug_free(session, ctx, slug)
        payload = {**dto.model_dump(mode="python"), "name": dto.name.strip(), "slug": slug, "owner_user_id": ctx.user_id}
        appointment_type = AppointmentType(**self.type_repository.stamp_tenant(payload, ctx))
        session.add(appointment_type)
        session.commit()
        session.refresh(appointment_type)
        return appointment_type

    def update_type(
        self,
        session: Session,
        ctx: TenantContext,
        type_id: uuid.UUID,
        dto: AppointmentTypeUpdate,
    ) -> AppointmentType:
        appointment_type = self._get_type(session, ctx, type_id)
        changes = dto.model_dump(mode="python", exclude_unset=True)
        if changes.get("slug") is not None:
            changes["slug"] = slugify(changes["slug"])
            if not changes["slug"]:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_slug")
            self._ensure_slug_free(session, ctx, changes["slug"], exclude_id=appointment_type.id)
        if changes.get("name") is not None:
            changes["name"] = changes["name"].strip()
        for key, value in changes.items():
            if value is None and key != "location_details":
                continue
            setattr(appointment_type, key, value)
        appointment_type.updated_at = utcnow()
        session.commit()
        session.refresh(appointment_type)
        return appointment_type

    def delete_type(self, session: Session, ctx: TenantContext, type_id: uuid.UUID) -> None:
        session.delete(self._get_type(session, ctx, type_id))
        session.commit()

    # availability

    def ensure_availability(self, session: Session, tenant_id: str, owner_user_id: str) -> Availability:
        availability = session.scalar(
            select(Availability).where(Availability.tenant_id == tenant_id, Availability.owner_user_id == owner_user_id)
        )
        if availability is None:
            availability = Availability(
                tenant_id=tenant_id,
                owner_user_id=owner_user_id,
                time_zone="UTC",
                weekly=default_weekly(),
            )
            session.add(availability)
            session.commit()
            session.refresh(availability)
        return availability

    def get_availability(self, session: Session, ctx: TenantContext) -> Availability:
        return self.ensure_availability(session, ctx.tenant_id, ctx.user_id)

    def update_availability(self, session: Session, ctx: TenantContext, dto: AvailabilityUpdate) -> Availability:
        availability = self.ensure_availability(session, ctx.tenant_id, ctx.user_id)
        availability.time_zone = dto.time_zone
        availability.weekly = [day.model_dump(mode="python") for day in sorted(dto.weekly, key=lambda item: item.day)]
        availability.updated_at = utcnow()
        session.commit()
        session.refresh(availability)
        return availability

    # appointments

    def list_appointments(
        self,
        session: Session,
        ctx: TenantContext,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Appointment]:
        now = utcnow()
        start = ensure_utc(start) if start is not None else now - timedelta(days=7)
        end = ensure_utc(end) if end is not None else now + timedelta(days=30)
        stmt = self.appointment_repository.apply_scope_query(
            select(Appointment).where(
                Appointment.owner_user_id == ctx.user_id,
                Appointment.starts_at >= start,
                Appointment.starts_at < end,
            ),
            ctx,
        )
        return list(session.scalars(stmt.order_by(Appointment.starts_at.asc())).all())

    def cancel_appointment(self, session: Session, ctx: TenantContext, appointment_id: uuid.UUID) -> Appointment:
        stmt = self.appointment_repository.apply_scope_query(
            select(Appointment).where(Appointment.id == appointment_id, Appointment.owner_user_id == ctx.user_id),
            ctx,
        )
        appointment = session.scalar(stmt)
        if appointment is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not_found")
        appointment.status = "cancelled"
        appointment.updated_at = utcnow()
        if appointment.task_id is not None:
            session.execute(
                update(CrmTask)
                .where(CrmTask.tenant_id == appointment.tenant_id, CrmTask.id == appointment.task_id)
                .values(status="cancelled", updated_at=utcnow())
            )
        session.commit()
        events.publish(
            _event(
                "scheduler.appointment.cancelled",
                appointment.tenant_id,
                ctx.user_id,
                {
                    "appointment_id": str(appointment.id),
                    "owner_user_id": appointment.owner_user_id,
                    "attendee_email": appointment.attendee_email,
                    "attendee_name": appointment.attendee_name,
                    "starts_at": _iso(appointment.starts_at),
                    "ends_at": _iso(appointment.ends_at),
                },
            )
        )
        logger.info("scheduler.appointment_cancelled", extra={"appointment_id": str(appointment.id)})
        return appointment

    # public booking

    def _active_type_by_slug(self, session: Session, tenant_id: str, slug: str) -> AppointmentType:
        cleaned = slugify(slug)
        if not cleaned:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_slug")
        appointment_type = session.scalar(
            select(AppointmentType)
            .where(
                AppointmentType.tenant_id == tenant_id,
                AppointmentType.slug == cleaned,
                AppointmentType.active.is_(True),
            )
            .order_by(AppointmentType.created_at.asc())
            .limit(1)
        )
        if appointment_type is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not_found")
        return appointment_type

    def _booked_between(
        self,
        session: Session,
        appointment_type: AppointmentType,
        start: datetime,
        end: datetime,
    ) -> list[Appointment]:
        return list(
            session.scalars(
                select(Appointment)
                .where(
                    Appointment.tenant_id == appointment_type.tenant_id,
                    Appointment.owner_user_id == appointment_type.owner_user_id,
                    Appointment.status == "booked",
                    Appointment.starts_at < end,
                    Appointment.ends_at > start,
                )
                .order_by(Appointment.starts_at.asc())
            ).all()
        )

    def booking_link(
        self,
        session: Session,
        tenant_id: str,
        slug: str,
        window_days: int | None = None,
        now: datetime | None = None,
    ) -> BookingLinkView:
        appointment_type = self._active_type_by_slug(session, tenant_id, slug)
        availability = self.ensure_availability(session, tenant_id, appointment_type.owner_user_id)
        now = ensure_utc(now) if now is not None else utcnow()
        days = DEFAULT_WINDOW_DAYS if window_days is None else max(1, min(MAX_WINDOW_DAYS, window_days))
        window_end = now + timedelta(days=days)
        booked = [
            appointment
            for appointment in self._booked_between(session, appointment_type, now, window_end)
            if ensure_utc(appointment.starts_at) >= now
        ]
        slots = generate_booking_slots(
            availability.time_zone,
            weekly_windows(availability),
            booking_type_for(appointment_type),
            [BusyBlock(starts_at=item.starts_at, ends_at=item.ends_at) for item in booked],
            now,
            window_end,
            now=now,
        )
        return BookingLinkView(
            type=PublicAppointmentType.model_validate(appointment_type),
            availability=AvailabilityRead.model_validate(availability),
            existing=[BusyInterval(starts_at=item.starts_at, ends_at=item.ends_at) for item in booked],
            window=BookingWindow(start=now, end=window_end),
            slots=[SlotRead(iso=slot.iso, label=slot.label) for slot in slots],
        )

    def _reject(self, status_code: int, code: str) -> HTTPException:
        observe_booking(code)
        return HTTPException(status_code=status_code, detail=code)

    def book(
        self,
        session: Session,
        tenant_id: str,
        slug: str,
        dto: BookingCreate,
        now: datetime | None = None,
    ) -> Appointment:
        appointment_type = self._active_type_by_slug(session, tenant_id, slug)
        availability = self.ensure_availability(session, tenant_id, appointment_type.owner_user_id)
        time_zone = availability.time_zone or dto.time_zone or "UTC"
        zone = resolve_zone(time_zone)
        now = ensure_utc(now) if now is not None else utcnow()
        starts_at = ensure_utc(dto.starts_at)

        if starts_at < now or starts_at > now + timedelta(days=BOOKING_HORIZON_DAYS):
            raise self._reject(status.HTTP_400_BAD_REQUEST, "startsAt_out_of_range")

        duration = timedelta(minutes=appointment_type.duration_minutes)
        ends_at = starts_at + duration
        local = starts_at.astimezone(zone)
        window = next((item for item in weekly_windows(availability) if item.day == js_weekday(local.date())), None)
        start_min = local.hour * 60 + local.minute
        if (
            window is None
            or not window.enabled
            or start_min < window.start_min
            or start_min + appointment_type.duration_minutes > window.end_min
        ):
            raise self._reject(status.HTTP_400_BAD_REQUEST, "outside_availability")
        if abs((zoned_to_utc(zone, local.date(), start_min) - starts_at).total_seconds()) > 120:
            raise self._reject(status.HTTP_400_BAD_REQUEST, "timezone_mismatch")

        buffered_start = starts_at - timedelta(minutes=appointment_type.buffer_before_minutes)
        buffered_end = ends_at + timedelta(minutes=appointment_type.buffer_after_minutes)
        conflicts = self._booked_between(session, appointment_type, buffered_start, buffered_end)
        if any(overlaps(buffered_start, buffered_end, ensure_utc(item.starts_at), ensure_utc(item.ends_at)) for item in conflicts):
            raise self._reject(status.HTTP_409_CONFLICT, "slot_taken")

        appointment = Appointment(
            tenant_id=tenant_id,
            appointment_type_id=appointment_type.id,
            appointment_type_name=appointment_type.name,
            owner_user_id=appointment_type.owner_user_id,
            status="booked",
            attendee_name=dto.attendee_name.strip(),
            attendee_email=str(dto.attendee_email).strip().lower(),
            attendee_phone=(dto.attendee_phone or "").strip() or None,
            notes=(dto.notes or "").strip() or None,
            starts_at=starts_at,
            ends_at=ends_at,
            time_zone=time_zone,
            location_type=appointment_type.location_type,
            source="public",
        )
        session.add(appointment)
        session.flush()
        self._create_meeting_task(session, appointment_type, appointment)
        session.commit()
        session.refresh(appointment)
        observe_booking("booked")

        events.publish(
            _event(
                "scheduler.appointment.booked",
                tenant_id,
                None,
                {
                    "appointment_id": str(appointment.id),
                    "appointment_type_id": str(appointment_type.id),
                    "appointment_type_slug": appointment_type.slug,
                    "appointment_type_name": appointment_type.name,
                    "owner_user_id": appointment.owner_user_id,
                    "attendee_email": appointment.attendee_email,
                    "attendee_name": appointment.attendee_name,
                    "attendee_phone": appointment.attendee_phone,
                    "starts_at": _iso(appointment.starts_at),
                    "ends_at": _iso(appointment.ends_at),
                    "time_zone": appointment.time_zone,
                    "source": appointment.source,
                },
            )
        )
        logger.info("scheduler.appointment_booked", extra={"appointment_id": str(appointment.id)})
        return appointment

    def _create_meeting_task(self, session: Session, appointment_type: AppointmentType, appointment: Appointment) -> None:
        contact = session.scalar(
            select(CrmContact).where(
                CrmContact.tenant_id == appointment.tenant_id,
                func.lower(CrmContact.email) == appointment.attendee_email,
            )
        )
        if contact is None:
            contact = CrmContact(
                tenant_id=appointment.tenant_id,
                name=appointment.attendee_name,
                email=appointment.attendee_email,
                phone=appointment.attendee_phone,
                external_source="scheduler",
            )
            session.add(contact)
            session.flush()
        task = CrmTask(
            tenant_id=appointment.tenant_id,
            type="meeting",
            subject=f"{appointment_type.name}: {appointment.attendee_name}"[:180],
            description=appointment.notes,
            status="open",
            priority="normal",
            due_at=appointment.starts_at,
            owner_user_id=appointment.owner_user_id,
            related_type="contact",
            related_id=str(contact.id),
        )
        session.add(task)
        session.flush()
        appointment.contact_id = contact.id
        appointment.task_id = task.id

    # reminders

    def send_due_reminders(self, session: Session, now: datetime | None = None) -> int:
        """Publish reminder events whose send time fell within the last two minutes."""
        now = ensure_utc(now) if now is not None else utcnow()
        candidates = session.scalars(
            select(Appointment)
            .where(
                Appointment.status == "booked",
                Appointment.reminder_sent_at.is_(None),
                Appointment.reminder_minutes_before.is_not(None),
                Appointment.starts_at >= now,
                Appointment.starts_at <= now + REMINDER_LOOKAHEAD,
            )
            .order_by(Appointment.starts_at.asc())
            .limit(REMINDER_BATCH)
        ).all()

        sent = 0
        for appointment in candidates:
            minutes = appointment.reminder_minutes_before
            if minutes is None or minutes < 0 or not appointment.attendee_email:
                continue
            send_at = ensure_utc(appointment.starts_at) - timedelta(minutes=minutes)
            if now < send_at or now - send_at > REMINDER_GRACE:
                continue
            events.publish(
                _event(
                    "scheduler.appointment.reminder_due",
                    appointment.tenant_id,
                    None,
                    {
                        "appointment_id": str(appointment.id),
                        "appointment_type_name": appointment.appointment_type_name or "Appointment",
                        "attendee_email": appointment.attendee_email,
                        "attendee_name": appointment.attendee_name,
                        "starts_at": _iso(appointment.starts_at),
                    },
                )
            )
            appointment.reminder_sent_at = now
            appointment.updated_at = now
            sent += 1
        session.commit()
        if sent:
            logger.info("scheduler.reminders_sent", extra={"count": sent})
        return sent


scheduler_service = SchedulerService()
