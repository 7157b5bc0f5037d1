from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Optional


def parse_iso_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 wire timestamp into an aware datetime.

    Returns None for None, empty or unparseable input. Naive values are taken as UTC.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def parse_clock_time(value: str) -> time:
    """Parse HH:MM or HH:MM:SS into a time."""
    return time.fromisoformat(value.strip())


def format_duration(value: Optional[timedelta]) -> str:
    """Render a work duration as '9h 05m'; empty string when unknown."""
    if value is None:
        return ""
    minutes = int(value.total_seconds() // 60)
    return f"{minutes // 60}h {minutes % 60:02d}m"


def now_utc() -> datetime:
    """Current aware UTC time.

    Note: Wrapped so tests can patch/mocked easier.
    """
    return datetime.now(timezone.utc)
