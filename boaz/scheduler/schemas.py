from __future__ import annotations

from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from boaz.core.types import UTCDateTime
from boaz.scheduler.slots import MINUTES_PER_DAY, is_valid_time_zone


LocationType = Literal["video", "phone", "in_person", "custom"]
SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"


class AppointmentTypeCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    slug: str = Field(min_length=1, max_length=64, pattern=SLUG_PATTERN)
    duration_minutes: int = Field(ge=5, le=480)
    location_type: LocationType = "video"
    location_details: str | None = Field(default=None, max_length=400)
    buffer_before_minutes: int = Field(default=0, ge=0, le=120)
    buffer_after_minutes: int = Field(default=0, ge=0, le=120)
    active: bool = True


class AppointmentTypeUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    slug: str | None = Field(default=None, min_length=1, max_length=64, pattern=SLUG_PATTERN)
    duration_minutes: int | None = Field(default=None, ge=5, le=480)
    location_type: LocationType | None = None
    location_details: str | None = Field(default=None, max_length=400)
    buffer_before_minutes: int | None = Field(default=None, ge=0, le=120)
    buffer_after_minutes: int | None = Field(default=None, ge=0, le=120)
    active: bool | None = None


class AppointmentTypeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    slug: str
    duration_minutes: int
    location_type: str
    location_details: str | None
    buffer_before_minutes: int
    buffer_after_minutes: int
    active: bool
    created_at: UTCDateTime
    updated_at: UTCDateTime


class AvailabilityDay(BaseModel):
    day: int = Field(ge=0, le=6)
    enabled: bool
    start_min: int
    end_min: int

    @field_validator("start_min", "end_min")
    @classmethod
    def _clamp_minutes(cls, value: int) -> int:
        return max(0, min(MINUTES_PER_DAY, value))


class AvailabilityUpdate(BaseModel):
    time_zone: str = Field(min_length=1, max_length=64)
    weekly: list[AvailabilityDay] = Field(min_length=7, max_length=7)

    @field_validator("time_zone")
    @classmethod
    def _known_zone(cls, value: str) -> str:
        if not is_valid_time_zone(value):
            raise ValueError("invalid_time_zone")
        return value


class AvailabilityRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    time_zone: str
    weekly: list[AvailabilityDay]
    updated_at: UTCDateTime | None = None


class AppointmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    appointment_type_id: UUID
    appointment_type_name: str | None
    owner_user_id: str
    status: str
    attendee_name: str
    attendee_email: str
    attendee_phone: str | None
    notes: str | None
    starts_at: UTCDateTime
    ends_at: UTCDateTime
    time_zone: str
    location_type: str
    org_visible: bool
    source: str
    contact_id: UUID | None
    task_id: UUID | None
    reminder_minutes_before: int | None
    reminder_sent_at: UTCDateTime | None
    created_at: UTCDateTime


class PublicAppointmentType(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    slug: str
    duration_minutes: int
    location_type: str
    location_details: str | None
    buffer_before_minutes: int
    buffer_after_minutes: int


class BusyInterval(BaseModel):
    starts_at: UTCDateTime
    ends_at: UTCDateTime


class BookingWindow(BaseModel):
    start: UTCDateTime = Field(serialization_alias="from")
    end: UTCDateTime = Field(serialization_alias="to")


class SlotRead(BaseModel):
    iso: str
    label: str


class BookingLinkView(BaseModel):
    type: PublicAppointmentType
    availability: AvailabilityRead
    existing: list[BusyInterval]
    window: BookingWindow
    slots: list[SlotRead]


class BookingCreate(BaseModel):
    attendee_name: str = Field(min_length=1, max_length=120)
    attendee_email: EmailStr = Field(max_length=180)
    attendee_phone: str | None = Field(default=None, max_length=40)
    notes: str | None = Field(default=None, max_length=1500)
    starts_at: UTCDateTime
    time_zone: str | None = Field(default=None, min_length=1, max_length=64)


class BookingCreated(BaseModel):
    id: UUID
    starts_at: UTCDateTime
    ends_at: UTCDateTime
