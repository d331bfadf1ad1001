from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_utc(value: datetime) -> datetime:
    """Aware datetimes are converted to UTC; naive ones are taken as UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    return normalize_utc(datetime.fromisoformat(s))


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def day_window(day: date, offset_minutes: int = 0) -> tuple[datetime, datetime]:
    """
    Inclusive UTC-naive bounds of a calendar day observed at a fixed offset.

    offset_minutes=0 gives the UTC day; 330 gives the day as seen at +05:30.
    """
    shift = timedelta(minutes=offset_minutes)
    start = datetime(day.year, day.month, day.day) - shift
    end = start + timedelta(days=1) - timedelta(microseconds=1)
    return start, end


def reference_day_start(now: datetime, offset_minutes: int) -> datetime:
    """Start of the current day at a fixed offset, expressed as UTC-naive."""
    shift = timedelta(minutes=offset_minutes)
    local = normalize_utc(now) + shift
    return datetime(local.year, local.month, local.day) - shift


def trailing_window(now: datetime, days: int) -> tuple[datetime, datetime]:
    return now - timedelta(days=days), now
