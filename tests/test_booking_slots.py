from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from boaz.scheduler.slots import (
    BookingType,
    BusyBlock,
    WeeklyWindow,
    generate_booking_slots,
    is_valid_time_zone,
    js_weekday,
)


MONDAY = datetime(2026, 10, 19, tzinfo=timezone.utc)
BEFORE_MONDAY = MONDAY - timedelta(days=1)


def _monday_only(start_min: int = 540, end_min: int = 600) -> list[WeeklyWindow]:
    return [WeeklyWindow(day=day, enabled=day == 1, start_min=start_min, end_min=end_min) for day in range(7)]


def _utc(hour: int, minute: int = 0) -> datetime:
    return MONDAY.replace(hour=hour, minute=minute)


def test_weekday_numbering_starts_on_sunday() -> None:
    assert js_weekday(date(2026, 10, 18)) == 0
    assert js_weekday(date(2026, 10, 19)) == 1
    assert js_weekday(date(2026, 10, 24)) == 6


def test_slots_step_through_the_window() -> None:
    slots = generate_booking_slots(
        "UTC",
        _monday_only(),
        BookingType(duration_minutes=30),
        [],
        MONDAY,
        MONDAY + timedelta(days=1),
        now=BEFORE_MONDAY,
    )

    assert [slot.iso for slot in slots] == [
        "2026-10-19T09:00:00Z",
        "2026-10-19T09:15:00Z",
        "2026-10-19T09:30:00Z",
    ]
    assert slots[0].label == "Mon, Oct 19, 9:00 AM UTC"


def test_existing_booking_blocks_overlapping_slots() -> None:
    existing = [BusyBlock(starts_at=_utc(9, 30), ends_at=_utc(10))]

    slots = generate_booking_slots(
        "UTC", _monday_only(), BookingType(duration_minutes=30), existing, MONDAY, MONDAY + timedelta(days=1), now=BEFORE_MONDAY
    )
    assert [slot.iso for slot in slots] == ["2026-10-19T09:00:00Z"]


def test_buffers_widen_the_conflict_check() -> None:
    existing = [BusyBlock(starts_at=_utc(9, 30), ends_at=_utc(10))]

    slots = generate_booking_slots(
        "UTC",
        _monday_only(),
        BookingType(duration_minutes=30, buffer_after_minutes=15),
        existing,
        MONDAY,
        MONDAY + timedelta(days=1),
        now=BEFORE_MONDAY,
    )
    assert slots == []


def test_slots_in_the_past_are_skipped() -> None:
    slots = generate_booking_slots(
        "UTC", _monday_only(), BookingType(duration_minutes=30), [], MONDAY, MONDAY + timedelta(days=1), now=_utc(9, 20)
    )
    assert [slot.iso for slot in slots] == ["2026-10-19T09:30:00Z"]


def test_local_time_zone_is_converted_to_utc() -> None:
    slots = generate_booking_slots(
        "America/New_York",
        _monday_only(),
        BookingType(duration_minutes=30),
        [],
        MONDAY,
        MONDAY + timedelta(days=1),
        now=BEFORE_MONDAY,
    )

    assert slots[0].iso == "2026-10-19T13:00:00Z"
    assert slots[0].label == "Mon, Oct 19, 9:00 AM EDT"


def test_max_slots_caps_the_result() -> None:
    weekly = [WeeklyWindow(day=day, enabled=True, start_min=0, end_min=24 * 60) for day in range(7)]
    slots = generate_booking_slots(
        "UTC", weekly, BookingType(), [], MONDAY, MONDAY + timedelta(days=7), max_slots=5, now=MONDAY
    )

    assert len(slots) == 5
    assert slots[0].iso == "2026-10-19T00:00:00Z"
    assert slots[-1].iso == "2026-10-19T01:00:00Z"


def test_unknown_time_zone_falls_back_to_utc() -> None:
    assert is_valid_time_zone("Europe/Berlin") is True
    assert is_valid_time_zone("Mars/Olympus") is False

    slots = generate_booking_slots(
        "Mars/Olympus", _monday_only(), BookingType(), [], MONDAY, MONDAY + timedelta(days=1), now=BEFORE_MONDAY
    )
    assert slots[0].iso == "2026-10-19T09:00:00Z"
