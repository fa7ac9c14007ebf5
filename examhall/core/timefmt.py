"""Timestamp helpers and countdown labels."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]

NO_LIMIT_LABEL = "No limit"
EXPIRED_LABEL = "Time's up!"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return ensure_aware(value).isoformat()


def parse_iso(value: str | datetime | None) -> datetime | None:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Accepts a trailing 'Z'. Raises ValueError for unparsable input so callers
    decide whether that means "absent" or a hard error.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_aware(value)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_aware(datetime.fromisoformat(text))


def ensure_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_countdown(seconds: float | None) -> str:
    """
    Render remaining seconds as HH:MM:SS.

    None means the session has no deadline; zero or less means it expired.
    """
    if seconds is None:
        return NO_LIMIT_LABEL
    remaining = int(seconds)
    if remaining <= 0:
        return EXPIRED_LABEL
    hours = remaining // 3600
    minutes = (remaining % 3600) // 60
    secs = remaining % 60
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
