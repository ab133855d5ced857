from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Sequence

from fastapi import HTTPException, status
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from boaz.calendar.schemas import Attendee, CalendarEvent
from boaz.core.database import ensure_utc
from boaz.crm.models import CrmTask
from boaz.platform.tenancy.context import TenantContext
from boaz.platform.tenancy.repository import BaseRepository
from boaz.scheduler.models import Appointment


TASK_EVENT_DURATION = timedelta(minutes=30)
OPEN_TASK_STATUSES = ("open", "in_progress")
ORG_TASK_TYPES = ("meeting", "call")
ORG_EVENT_LIMIT = 5000
TASK_EVENT_LIMIT = 2000


class CalendarRepository(BaseRepository):
    resource = "calendar.event"


def parse_range(start_raw: str | None, end_raw: str | None) -> tuple[datetime, datetime]:
    if not start_raw or not end_raw or len(start_raw.strip()) < 10 or len(end_raw.strip()) < 10:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_range")
    try:
        start = ensure_utc(datetime.fromisoformat(start_raw.strip().replace("Z", "+00:00")))
        end = ensure_utc(datetime.fromisoformat(end_raw.strip().replace("Z", "+00:00")))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_range")
    if start >= end:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_range")
    return start, end


def appointment_event(appointment: Appointment) -> CalendarEvent:
    title = appointment.appointment_type_name or f"Appointment: {appointment.attendee_name or appointment.attendee_email or ''}".strip()
    return CalendarEvent(
        kind="appointment",
        id=appointment.id,
        title=title,
        starts_at=appointment.starts_at,
        ends_at=appointment.ends_at,
        owner_user_id=appointment.owner_user_id,
        time_zone=appointment.time_zone or "UTC",
        org_visible=appointment.org_visible,
        location_type=appointment.location_type,
        attendee=Attendee(
            name=appointment.attendee_name,
            email=appointment.attendee_email,
            phone=appointment.attendee_phone,
        ),
        contact_id=appointment.contact_id,
        source=appointment.source,
    )


def task_event(task: CrmTask) -> CalendarEvent:
    due = ensure_utc(task.due_at)
    return CalendarEvent(
        kind="task",
        id=task.id,
        title=task.subject or "Task",
        starts_at=due,
        ends_at=due + TASK_EVENT_DURATION,
        owner_user_id=task.owner_user_id,
        task_type=task.type,
        related_type=task.related_type,
        related_id=task.related_id,
    )


@dataclass(slots=True)
class CalendarService:
    repository: CalendarRepository = CalendarRepository()

    def _appointments(
        self, session: Session, ctx: TenantContext, start: datetime, end: datetime, *visibility: Any
    ) -> Sequence[Appointment]:
        stmt = self.repository.apply_scope_query(
            select(Appointment).where(
                Appointment.status != "cancelled",
                Appointment.starts_at < end,
                Appointment.ends_at > start,
                *visibility,
            ),
            ctx,
        )
        return session.scalars(stmt.order_by(Appointment.starts_at.asc()).limit(ORG_EVENT_LIMIT)).all()

    def _tasks(
        self, session: Session, ctx: TenantContext, start: datetime, end: datetime, *criteria: Any
    ) -> Sequence[CrmTask]:
        stmt = self.repository.apply_scope_query(
            select(CrmTask).where(
                CrmTask.owner_user_id == ctx.user_id,
                CrmTask.due_at >= start,
                CrmTask.due_at < end,
                CrmTask.status.in_(OPEN_TASK_STATUSES),
                *criteria,
            ),
            ctx,
        )
        return session.scalars(stmt.order_by(CrmTask.due_at.asc()).limit(TASK_EVENT_LIMIT)).all()

    def my_events(self, session: Session, ctx: TenantContext, start: datetime, end: datetime) -> list[CalendarEvent]:
        appointments = self._appointments(session, ctx, start, end, Appointment.owner_user_id == ctx.user_id)
        tasks = self._tasks(session, ctx, start, end)
        return [appointment_event(item) for item in appointments] + [task_event(item) for item in tasks]

    def org_events(self, session: Session, ctx: TenantContext, start: datetime, end: datetime) -> list[CalendarEvent]:
        appointments = self._appointments(
            session,
            ctx,
            start,
            end,
            or_(Appointment.org_visible.is_(True), Appointment.owner_user_id == ctx.user_id),
        )
        tasks = self._tasks(session, ctx, start, end, CrmTask.type.in_(ORG_TASK_TYPES))
        merged = [appointment_event(item) for item in appointments] + [task_event(item) for item in tasks]
        return sorted(merged, key=lambda event: event.starts_at)


calendar_service = CalendarService()
