"""Shared datetime parsing and manipulation utilities."""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import UTC, date, datetime, timedelta
from typing import Any

# "02:30 PM": two-digit hour, two-digit minute, one space, meridiem
_CLOCK_TIME_PATTERN = re.compile(r"^(\d{2}):(\d{2}) ([ap]m)$", re.IGNORECASE)

_LOCALE_DATE_FORMATS = (
    "%m/%d/%Y",
    "%m-%d-%Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
    "%d %b %Y",
    "%A, %B %d, %Y",
)

_ONE_MINUTE = timedelta(minutes=1)


def local_now() -> datetime:
    """Get current datetime in local timezone."""
    return datetime.now().astimezone()


def ensure_local(dt: datetime) -> datetime:
    """Ensure datetime is in local timezone. Naive values are taken as local wall time."""
    return dt.astimezone()


def combine_local(civil: date, hour: int, minute: int) -> datetime:
    """Build a local, timezone-aware datetime from a civil date and a time of day."""
    return datetime(civil.year, civil.month, civil.day, hour, minute).astimezone()


def minutes_until(instant: datetime, now: datetime) -> int:
    """Whole minutes from ``now`` until ``instant``, rounded down."""
    return (ensure_local(instant) - ensure_local(now)) // _ONE_MINUTE


def parse_clock_time(value: str | None) -> tuple[int, int] | None:
    """Parse an "hh:mm AM|PM" string into a 24h (hour, minute) tuple. Returns None if invalid."""
    if not value:
        return None
    match = _CLOCK_TIME_PATTERN.match(value.strip())
    if not match:
        return None
    hour = int(match.group(1))
    minute = int(match.group(2))
    if not 1 <= hour <= 12 or minute >= 60:
        return None
    if hour == 12:
        hour = 0
    if match.group(3).lower() == "pm":
        hour += 12
    return hour, minute


def _parse_date_only(text: str) -> date | None:
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    for fmt in _LOCALE_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def _from_epoch_seconds(seconds: float) -> datetime | None:
    try:
        return datetime.fromtimestamp(seconds, UTC).astimezone()
    except (OverflowError, OSError, ValueError):
        return None


def _timestamp_from_mapping(value: Mapping[str, Any]) -> datetime | None:
    seconds = value.get("seconds", value.get("_seconds"))
    nanos = value.get("nanoseconds", value.get("_nanoseconds", 0)) or 0
    if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
        return None
    if isinstance(nanos, bool) or not isinstance(nanos, (int, float)):
        return None
    return _from_epoch_seconds(seconds + nanos / 1_000_000_000)


def coerce_timestamp(value: Any) -> datetime | None:
    """Normalize a store timestamp into a local aware datetime.

    Accepts datetimes, dates (midnight), ``{"seconds": ..., "nanoseconds": ...}``
    mappings (also the underscore-prefixed variant), epoch milliseconds and
    ISO/locale strings. Returns None for anything else.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return ensure_local(value)
    if isinstance(value, date):
        return combine_local(value, 0, 0)
    if isinstance(value, Mapping):
        return _timestamp_from_mapping(value)
    if isinstance(value, (int, float)):
        return _from_epoch_seconds(value / 1000)
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    civil = _parse_date_only(text)
    if civil is not None:
        return combine_local(civil, 0, 0)
    try:
        return ensure_local(datetime.fromisoformat(text))
    except ValueError:
        return None


def parse_civil_date(value: Any) -> date | None:
    """Reduce a date-like value to its civil (local) calendar date."""
    if isinstance(value, datetime):
        return ensure_local(value).date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        civil = _parse_date_only(value.strip())
        if civil is not None:
            return civil
    stamp = coerce_timestamp(value)
    if stamp is None:
        return None
    return stamp.date()
