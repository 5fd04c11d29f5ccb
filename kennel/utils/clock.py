"""
Clock helpers

All persisted timestamps are naive UTC, matching the DateTime columns.
"""

from datetime import date, datetime, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    """Current time as naive UTC"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Drop tzinfo after converting to UTC; naive values are assumed UTC already"""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def to_local(value: datetime, tz_name: str) -> datetime:
    """Express a datetime in the business timezone; naive values are taken as local"""
    tz = ZoneInfo(tz_name)
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def parse_iso_datetime(value: Union[str, datetime]) -> datetime:
    """Parse an ISO-8601 timestamp, accepting a trailing 'Z'"""
    if isinstance(value, datetime):
        return value
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def parse_iso_date(value: Union[str, date, datetime, None]) -> Optional[date]:
    """Parse a calendar date; returns None for anything unparseable"""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None
