from datetime import datetime, timezone

import pytest

from carton_mes.services.shift_calendar import ShiftCalendar, parse_shift_schedule


def test_default_schedule_maps_day_and_night() -> None:
    calendar = ShiftCalendar.from_schedule(None)

    assert calendar.shift_for(datetime(2026, 3, 1, 6, 0)) == "Morning"
    assert calendar.shift_for(datetime(2026, 3, 1, 13, 59)) == "Morning"
    assert calendar.shift_for(datetime(2026, 3, 1, 14, 0)) == "Afternoon"
    assert calendar.shift_for(datetime(2026, 3, 1, 22, 30)) == "Night"
    assert calendar.shift_for(datetime(2026, 3, 2, 5, 59)) == "Night"


def test_custom_schedule_with_gap_returns_none() -> None:
    calendar = ShiftCalendar.from_schedule("Day=08:00-17:00")

    assert calendar.shift_for(datetime(2026, 3, 1, 9, 0)) == "Day"
    assert calendar.shift_for(datetime(2026, 3, 1, 18, 0)) is None


def test_timezone_converts_aware_timestamps() -> None:
    calendar = ShiftCalendar.from_schedule(None, "Asia/Kolkata")

    # 01:00 UTC is 06:30 in India.
    assert calendar.shift_for(datetime(2026, 3, 1, 1, 0, tzinfo=timezone.utc)) == "Morning"


def test_invalid_schedule_is_rejected() -> None:
    with pytest.raises(ValueError, match="Invalid shift definition"):
        parse_shift_schedule("Morning 06:00-14:00")


def test_describe_lists_windows() -> None:
    calendar = ShiftCalendar.from_schedule("A=06:00-18:00,B=18:00-06:00")

    assert calendar.describe() == [
        {"name": "A", "start": "06:00", "end": "18:00"},
        {"name": "B", "start": "18:00", "end": "06:00"},
    ]
