from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

# All persisted timestamps are naive UTC.


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 query/body value into naive UTC.

    Blank input gives None. A trailing "Z" or an explicit offset is
    converted; a value without offset is taken as UTC already.
    Raises ValueError on anything fromisoformat rejects.
    """
    if value is None or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return as_naive_utc(datetime.fromisoformat(text))


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Second-precision ISO-8601 with a trailing 'Z' for JSON payloads."""
    if dt is None:
        return None
    return as_naive_utc(dt).replace(microsecond=0).isoformat() + "Z"


def hours_between(start: datetime, end: datetime) -> float:
    """Signed hours from start to end (negative when end is earlier)."""
    return (end - start).total_seconds() / 3600
