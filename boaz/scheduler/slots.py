"""Open booking slots from a weekly availability template.

Weekdays use ``0 = Sunday .. 6 = Saturday``. Minutes are counted from local
midnight in the availability's time zone.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from boaz.core.database import ensure_utc, utcnow


PROBE_DAYS = 21
MINUTES_PER_DAY = 24 * 60


@dataclass(frozen=True, slots=True)
class WeeklyWindow:
    day: int
    enabled: bool
    start_min: int
    end_min: int


@dataclass(frozen=True, slots=True)
class BookingType:
    duration_minutes: int = 30
    buffer_before_minutes: int = 0
    buffer_after_minutes: int = 0


@dataclass(frozen=True, slots=True)
class BusyBlock:
    starts_at: datetime
    ends_at: datetime


@dataclass(frozen=True, slots=True)
class Slot:
    iso: str
    label: str


def resolve_zone(name: str | None) -> ZoneInfo:
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def is_valid_time_zone(name: str) -> bool:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def js_weekday(value: date) -> int:
    return (value.weekday() + 1) % 7


def zoned_to_utc(zone: ZoneInfo, day: date, minute_of_day: int) -> datetime:
    hour, minute = divmod(minute_of_day, 60)
    local = datetime(day.year, day.month, day.day, hour, minute, tzinfo=zone)
    return local.astimezone(timezone.utc)


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


def format_slot_label(value: datetime, zone: ZoneInfo) -> str:
    local = value.astimezone(zone)
    hour = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    return f"{local:%a}, {local:%b} {local.day}, {hour}:{local:%M} {meridiem} {local.tzname()}"


def window_for(weekly: Iterable[WeeklyWindow], weekday: int) -> WeeklyWindow | None:
    for window in weekly:
        if window.day == weekday:
            return window
    return None


def generate_booking_slots(
    time_zone: str | None,
    weekly: Sequence[WeeklyWindow],
    booking_type: BookingType,
    existing: Sequence[BusyBlock],
    window_from: datetime,
    window_to: datetime,
    *,
    max_slots: int = 48,
    step_minutes: int = 15,
    now: datetime | None = None,
) -> list[Slot]:
    zone = resolve_zone(time_zone)
    duration = booking_type.duration_minutes or 30
    before = timedelta(minutes=booking_type.buffer_before_minutes or 0)
    after = timedelta(minutes=booking_type.buffer_after_minutes or 0)
    step = step_minutes or 15
    current = ensure_utc(now) if now is not None else utcnow()
    window_from = ensure_utc(window_from)
    window_to = ensure_utc(window_to)
    busy = [(ensure_utc(block.starts_at), ensure_utc(block.ends_at)) for block in existing]

    slots: list[Slot] = []
    for offset in range(PROBE_DAYS):
        # noon UTC lands on the intended calendar day for every real offset
        probe = window_from + timedelta(days=offset, hours=12)
        local_day = probe.astimezone(zone).date()
        window = window_for(weekly, js_weekday(local_day))
        if window is None or not window.enabled:
            continue

        start_min = window.start_min
        while start_min + duration <= window.end_min:
            starts_at = zoned_to_utc(zone, local_day, start_min)
            start_min += step
            if starts_at < current or starts_at < window_from or starts_at > window_to:
                continue
            ends_at = starts_at + timedelta(minutes=duration)
            if any(overlaps(starts_at - before, ends_at + after, b_start, b_end) for b_start, b_end in busy):
                continue
            slots.append(Slot(iso=starts_at.isoformat().replace("+00:00", "Z"), label=format_slot_label(starts_at, zone)))
            if len(slots) >= max_slots:
                return sorted(slots, key=lambda slot: slot.iso)
    return sorted(slots, key=lambda slot: slot.iso)
