from __future__ import annotations

from typing import Literal
from uuid import UUID

from pydantic import BaseModel

from boaz.core.types import UTCDateTime


class Attendee(BaseModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None


class CalendarEvent(BaseModel):
    kind: Literal["appointment", "task"]
    id: UUID
    title: str
    starts_at: UTCDateTime
    ends_at: UTCDateTime
    owner_user_id: str | None = None
    time_zone: str | None = None
    org_visible: bool | None = None
    location_type: str | None = None
    attendee: Attendee | None = None
    contact_id: UUID | None = None
    source: str | None = None
    task_type: str | None = None
    related_type: str | None = None
    related_id: str | None = None
