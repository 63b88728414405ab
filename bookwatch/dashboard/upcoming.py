"""Future-only, time-ordered projection of a user's raw bookings."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime

from bookwatch.datetime_utils import ensure_local

from .models import RawBooking, ResolvedBooking, UpcomingBooking
from .time_resolver import ResolutionError, TimeResolver

LOGGER = logging.getLogger(__name__)

_DEFAULT_RESOLVER = TimeResolver()


def project(
    raw: Sequence[RawBooking],
    now: datetime,
    *,
    resolver: TimeResolver | None = None,
) -> tuple[UpcomingBooking, ...]:
    """Return the bookings in ``raw`` that start strictly after ``now``, earliest first.

    Bookings whose date/time does not resolve are left out. Entries with equal
    instants keep their order from ``raw``.
    """
    resolver = resolver or _DEFAULT_RESOLVER
    cutoff = ensure_local(now)
    upcoming: list[UpcomingBooking] = []
    for booking in raw:
        try:
            instant = resolver.resolve(booking.date, booking.time)
        except ResolutionError as exc:
            LOGGER.debug("[upcoming] Skipping booking %s: %s", booking.id, exc)
            continue
        if instant > cutoff:
            upcoming.append(ResolvedBooking.from_raw(booking, instant))
    # list.sort is stable, so same-instant bookings keep their store order
    upcoming.sort(key=lambda booking: booking.booking_instant)
    return tuple(upcoming)


def total(raw: Sequence[object]) -> int:
    """Raw booking count, regardless of whether the entries resolve."""
    return len(raw)
