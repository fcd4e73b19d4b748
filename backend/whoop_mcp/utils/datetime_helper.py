"""
Date/time helpers
"""
from datetime import datetime, date, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current time in UTC (timezone-aware)"""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones to UTC"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso_z(dt: datetime) -> str:
    """Format an instant as ISO-8601 with a trailing Z (millisecond precision)"""
    return ensure_utc(dt).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def format_duration_ms(millis: Optional[int]) -> str:
    """Format milliseconds as "Xh Ym" """
    if not millis:
        return "N/A"
    hours = millis // 3_600_000
    minutes = (millis % 3_600_000) // 60_000
    return f"{hours}h {minutes}m"


def format_day(day: date) -> str:
    """Format a date like "Mon, Jan 5" """
    return f"{day.strftime('%a')}, {day.strftime('%b')} {day.day}"
