# Overview: UTC clock and ISO-8601 helpers. Stored datetimes are naive UTC.

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

_UTC = timezone.utc


def utcnow() -> datetime:
    return datetime.now(_UTC).replace(tzinfo=None)


def today() -> date:
    return utcnow().date()


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    "2025-03-01", "2025-03-01T10:00:00", "...Z" and "...-03:00" are all
    accepted. Offsets are folded into UTC; blank input gives None.
    """
    text = (value or "").strip()
    if not text:
        return None
    if text[-1] in "zZ":
        text = text[:-1] + "+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(_UTC).replace(tzinfo=None)
    return parsed


def parse_iso_date(value) -> Optional[date]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return parse_iso_datetime(value).date()
    raise ValueError(f"not a date: {value!r}")


def start_of_month(day: date) -> date:
    return day.replace(day=1)


def shift_months(day: date, months: int) -> date:
    """First day of the month `months` away from `day` (negative goes back)."""
    index = day.year * 12 + (day.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """JSON form of a datetime: second precision, 'Z' suffix. Naive values are UTC."""
    if dt is None:
        return None
    aware = dt if dt.tzinfo is not None else dt.replace(tzinfo=_UTC)
    return aware.astimezone(_UTC).replace(microsecond=0).strftime("%Y-%m-%dT%H:%M:%SZ")
