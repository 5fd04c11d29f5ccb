"""
Operating Hours Policy

Drop-off / pick-up windows per weekday:
- Sunday: 16:00-18:00 only
- Saturday: 09:00-11:00 or 16:00-18:00
- Monday-Friday: 08:00-10:00 or 16:00-18:00

The facility is open 7 days a week; no date is fully closed.
Everything here is a pure function of the date.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional, Union

from ..utils.clock import parse_iso_date

DateLike = Union[date, datetime, str, None]

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


@dataclass(frozen=True)
class TimeWindow:
    start: str  # HH:mm
    end: str    # HH:mm

    @property
    def label(self) -> str:
        return f"{self.start} - {self.end}"

    @property
    def range(self) -> str:
        return f"{self.start}-{self.end}"


SUNDAY_WINDOWS = (TimeWindow("16:00", "18:00"),)
SATURDAY_WINDOWS = (TimeWindow("09:00", "11:00"), TimeWindow("16:00", "18:00"))
WEEKDAY_WINDOWS = (TimeWindow("08:00", "10:00"), TimeWindow("16:00", "18:00"))


def _to_minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def _to_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def windows_for_date(day: DateLike) -> List[TimeWindow]:
    """Ordered drop-off / pick-up windows for a date; [] for malformed input"""
    parsed = parse_iso_date(day)
    if parsed is None:
        return []

    weekday = parsed.weekday()  # Monday=0 ... Sunday=6
    if weekday == 6:
        return list(SUNDAY_WINDOWS)
    if weekday == 5:
        return list(SATURDAY_WINDOWS)
    return list(WEEKDAY_WINDOWS)


def is_slot_valid(day: DateLike, slot: Optional[str]) -> bool:
    """
    Check a requested slot against the windows for a date.

    Accepts a window start ("16:00"), a range ("16:00-18:00") or the
    display label ("16:00 - 18:00"). Anything else is rejected.
    """
    return canonical_slot(day, slot) is not None


def canonical_slot(day: DateLike, slot: Optional[str]) -> Optional[str]:
    """Window start for any accepted spelling of a slot, else None"""
    if not isinstance(slot, str):
        return None

    normalized = slot.strip()
    if not normalized:
        return None

    for window in windows_for_date(day):
        if normalized in (window.start, window.range, window.label):
            return window.start
    return None


def enumerate_slots(day: DateLike, step_minutes: int = 30) -> List[str]:
    """
    Expand each window into slot start times at `step_minutes` granularity.

    A slot must fit before its window closes, so the last start is
    end - step_minutes.
    """
    if not isinstance(step_minutes, int) or step_minutes <= 0:
        return []

    slots: List[str] = []
    for window in windows_for_date(day):
        current = _to_minutes(window.start)
        last_start = _to_minutes(window.end) - step_minutes
        while current <= last_start:
            slots.append(_to_hhmm(current))
            current += step_minutes
    return slots


def is_time_within_windows(day: DateLike, hhmm: Optional[str]) -> bool:
    """Minute-level check of a drop-off / pick-up time against the windows"""
    if not isinstance(hhmm, str):
        return False
    return hhmm.strip() in enumerate_slots(day, 1)


def day_name(day: DateLike) -> Optional[str]:
    parsed = parse_iso_date(day)
    return DAY_NAMES[parsed.weekday()] if parsed else None


def is_weekend(day: DateLike) -> bool:
    parsed = parse_iso_date(day)
    return bool(parsed) and parsed.weekday() >= 5


def is_closed(day: DateLike) -> bool:
    """Open every day, Sundays included (afternoon window)"""
    return False
