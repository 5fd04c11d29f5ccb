"""
Tests for the operating hours policy

- Windows per weekday
- Slot validation (start, range, label, fail-closed)
- Slot enumeration and malformed input
"""

import pytest
from datetime import date

from kennel.services.hours_policy import (
    TimeWindow,
    windows_for_date,
    is_slot_valid,
    canonical_slot,
    enumerate_slots,
    is_time_within_windows,
    day_name,
    is_weekend,
    is_closed,
)

SUNDAY = date(2025, 10, 19)
SATURDAY = date(2025, 10, 18)
MONDAY = date(2025, 10, 20)


class TestWindowsForDate:

    def test_sunday_has_afternoon_window_only(self):
        assert windows_for_date(SUNDAY) == [TimeWindow("16:00", "18:00")]

    def test_saturday_windows(self):
        assert windows_for_date(SATURDAY) == [
            TimeWindow("09:00", "11:00"),
            TimeWindow("16:00", "18:00"),
        ]

    def test_weekday_windows(self):
        assert windows_for_date(MONDAY) == [
            TimeWindow("08:00", "10:00"),
            TimeWindow("16:00", "18:00"),
        ]

    def test_accepts_iso_string(self):
        assert windows_for_date("2025-10-19") == windows_for_date(SUNDAY)

    def test_label_format(self):
        assert windows_for_date(MONDAY)[0].label == "08:00 - 10:00"

    @pytest.mark.parametrize("bad", [None, "", "not-a-date", "2025-13-40"])
    def test_malformed_date_gives_no_windows(self, bad):
        assert windows_for_date(bad) == []

    def test_never_closed(self):
        assert not is_closed(SUNDAY)
        assert not is_closed(MONDAY)


class TestSlotValidation:

    def test_sunday_morning_rejected(self):
        assert is_slot_valid(SUNDAY, "10:00") is False

    def test_sunday_start_time_accepted(self):
        assert is_slot_valid(SUNDAY, "16:00") is True

    def test_sunday_range_accepted(self):
        assert is_slot_valid(SUNDAY, "16:00-18:00") is True

    def test_label_accepted(self):
        assert is_slot_valid(MONDAY, "08:00 - 10:00") is True

    def test_saturday_morning_window(self):
        assert is_slot_valid(SATURDAY, "09:00")
        assert not is_slot_valid(SATURDAY, "08:00")

    @pytest.mark.parametrize("slot", ["", "   ", "4pm", "16", "16:00-17:00", None])
    def test_unknown_formats_fail_closed(self, slot):
        assert is_slot_valid(MONDAY, slot) is False

    def test_malformed_date_rejects_every_slot(self):
        assert is_slot_valid("garbage", "16:00") is False

    @pytest.mark.parametrize("slot", ["16:00", "16:00-18:00", " 16:00 - 18:00 "])
    def test_every_spelling_maps_to_window_start(self, slot):
        assert canonical_slot(MONDAY, slot) == "16:00"

    def test_canonical_slot_rejects_unknown(self):
        assert canonical_slot(SUNDAY, "08:00") is None


class TestEnumerateSlots:

    def test_sunday_half_hour_slots(self):
        assert enumerate_slots(SUNDAY, 30) == ["16:00", "16:30", "17:00", "17:30"]

    def test_last_slot_fits_before_close(self):
        slots = enumerate_slots(MONDAY, 60)
        assert slots == ["08:00", "09:00", "16:00", "17:00"]
        assert "10:00" not in slots
        assert "18:00" not in slots

    def test_malformed_date_returns_empty(self):
        assert enumerate_slots("nope", 30) == []
        assert enumerate_slots(None, 30) == []

    @pytest.mark.parametrize("step", [0, -15])
    def test_non_positive_step_returns_empty(self, step):
        assert enumerate_slots(MONDAY, step) == []

    def test_minute_level_check(self):
        assert is_time_within_windows(MONDAY, "09:59")
        assert not is_time_within_windows(MONDAY, "10:00")
        assert not is_time_within_windows(SUNDAY, "09:00")


class TestDayHelpers:

    def test_day_name(self):
        assert day_name(SUNDAY) == "Sunday"
        assert day_name("bad") is None

    def test_weekend(self):
        assert is_weekend(SATURDAY)
        assert is_weekend(SUNDAY)
        assert not is_weekend(MONDAY)
