# Overview: UTC clock, ISO-8601 parsing and the "Z" timestamp format used in responses.

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Naive UTC. Every stored timestamp uses this."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    return utcnow().date()


def _naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    ISO-8601 string -> naive UTC datetime, or None for None / blank.

    Offsets (including a trailing "Z") are converted to UTC. A string
    without an offset is already UTC.
    """
    text = (value or "").strip()
    if not text:
        return None
    if text[-1] in "zZ":
        text = f"{text[:-1]}+00:00"
    return _naive_utc(datetime.fromisoformat(text))


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """Parse 'YYYY-MM-DD' (or a full ISO datetime) into a date."""
    text = (value or "").strip()
    if not text:
        return None
    if len(text) == 10:
        return date.fromisoformat(text)
    return parse_iso_datetime(text).date()


def day_bounds(start: date, end: date) -> tuple[datetime, datetime]:
    """Inclusive calendar-day range as [start 00:00, end+1 00:00)."""
    return (
        datetime.combine(start, datetime.min.time()),
        datetime.combine(end + timedelta(days=1), datetime.min.time()),
    )


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """2026-01-31T09:15:00Z. Seconds precision; naive input counts as UTC."""
    if dt is None:
        return None
    return _naive_utc(dt).replace(microsecond=0).isoformat() + "Z"


def to_iso_date(d: Optional[date]) -> Optional[str]:
    if d is None:
        return None
    if isinstance(d, datetime):
        d = d.date()
    return d.isoformat()
