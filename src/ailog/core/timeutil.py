"""Timestamp helpers. Everything is normalized to UTC."""

import re
from datetime import date, datetime, time, timedelta, timezone

_DURATION_RE = re.compile(r"^(\d+)\s*([hdwm])$")


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_db_time(value: datetime | None) -> str | None:
    """Fixed-width ISO 8601 text so that string order matches time order."""
    if value is None:
        return None
    return ensure_utc(value).isoformat(timespec="microseconds")


def from_db_time(value: str | None) -> datetime | None:
    if not value:
        return None
    return ensure_utc(datetime.fromisoformat(value))


def parse_datetime(text: str) -> datetime | None:
    """Parse RFC 3339 timestamps or plain YYYY-MM-DD dates."""
    text = text.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError:
        pass
    try:
        day = date.fromisoformat(text)
    except ValueError:
        return None
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def parse_duration(text: str) -> timedelta | None:
    """Parse durations like 12h, 7d, 2w or 1m (30 days)."""
    match = _DURATION_RE.match(text.strip().lower())
    if not match:
        return None
    amount = int(match.group(1))
    unit = match.group(2)
    if unit == "h":
        return timedelta(hours=amount)
    if unit == "d":
        return timedelta(days=amount)
    if unit == "w":
        return timedelta(weeks=amount)
    return timedelta(days=amount * 30)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
