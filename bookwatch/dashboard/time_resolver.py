"""Merge a booking's separately stored date and time-of-day into one instant.

Bookings keep ``date`` (a store timestamp or a date string) and ``time`` (an
"hh:mm AM|PM" string) as two fields. This module is the only place that
reads them together; everything downstream works with the resolved instant.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from bookwatch.datetime_utils import combine_local, ensure_local, local_now, parse_civil_date, parse_clock_time

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class ResolutionError(ValueError):
    """Raised when a booking's date/time pair cannot be turned into an instant."""


class TimeResolver:
    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or local_now

    def resolve(self, date_value: Any, time_value: str | None) -> datetime:
        """Return the local, timezone-aware instant for ``date_value`` at ``time_value``.

        A missing or blank ``time_value`` falls back to the clock's current
        hour and minute. Seconds and microseconds are always zero.
        """
        civil = parse_civil_date(date_value)
        if civil is None:
            raise ResolutionError(f"unparsable booking date: {date_value!r}")
        if time_value is None or not str(time_value).strip():
            now = ensure_local(self._clock())
            hour, minute = now.hour, now.minute
        else:
            parsed = parse_clock_time(time_value)
            if parsed is None:
                raise ResolutionError(f"unparsable booking time: {time_value!r}")
            hour, minute = parsed
        try:
            return combine_local(civil, hour, minute)
        except (OverflowError, OSError, ValueError) as exc:
            raise ResolutionError(f"booking instant out of range: {date_value!r} {time_value!r}") from exc

    def try_resolve(self, date_value: Any, time_value: str | None) -> datetime | None:
        """Like :meth:`resolve`, but returns None instead of raising."""
        try:
            return self.resolve(date_value, time_value)
        except ResolutionError as exc:
            LOGGER.debug("[resolver] %s", exc)
            return None
