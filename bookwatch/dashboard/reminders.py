"""Fixed-interval scan that raises one reminder per booking as it nears its start.

There is no server push for "booking starts soon", so the scheduler polls:
every ``interval_seconds`` it reads the latest published upcoming list,
computes whole minutes until each booking, and fires when a configured
threshold is reached.

Two trigger modes are supported:

- ``exact``: fire when the minutes-until value equals the threshold at a scan.
  A slow or paused process can step over that minute and miss the reminder.
- ``crossing``: additionally fire when the previous scan was above the
  threshold and this one is at or below it (but the booking has not started).

Either way a booking fires at most once per threshold while it stays in the
upcoming list with the same start instant.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from bookwatch.datetime_utils import ensure_local, local_now, minutes_until

from .config import ReminderConfig
from .models import UpcomingBooking
from .notifications import NotificationSink, PermissionState
from .time_resolver import Clock

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ReminderAlert:
    booking_id: str
    service: str
    threshold: int
    minutes_until: int
    booking_instant: datetime
    message: str


@dataclass(slots=True)
class _BookingReminderState:
    instant: datetime
    fired: set[int] = field(default_factory=set)
    last_minutes: int | None = None


def format_reminder_message(service: str, threshold: int) -> str:
    label = service.strip() or "booking"
    unit = "minute" if threshold == 1 else "minutes"
    return f"Reminder: Your {label} is in {threshold} {unit}!"


class ReminderScheduler:
    def __init__(
        self,
        *,
        upcoming_source: Callable[[], Sequence[UpcomingBooking]],
        sink: NotificationSink,
        config: ReminderConfig,
        clock: Clock | None = None,
        on_alert: Callable[[ReminderAlert], None] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._upcoming_source = upcoming_source
        self._sink = sink
        self._config = config
        self._clock = clock or local_now
        self._on_alert = on_alert
        self._logger = logger or LOGGER
        self._runner: asyncio.Task | None = None
        self._stop_event = asyncio.Event()
        self._states: dict[str, _BookingReminderState] = {}
        self._denied_logged = False

    @property
    def running(self) -> bool:
        return self._runner is not None

    async def start(self) -> None:
        if self._runner:
            return
        self._stop_event.clear()
        self._runner = asyncio.create_task(self._run_loop())
        self._logger.info(
            "[reminders] Scanning every %ss for thresholds %s (%s mode)",
            self._config.interval_seconds,
            ", ".join(str(threshold) for threshold in self._config.thresholds),
            self._config.mode,
        )

    def halt(self) -> asyncio.Task | None:
        """Stop scanning immediately; returns the cancelled runner task, if any."""
        self._stop_event.set()
        runner = self._runner
        self._runner = None
        if runner:
            runner.cancel()
            self._logger.info("[reminders] Reminder scan stopped")
        self._states.clear()
        return runner

    async def stop(self) -> None:
        runner = self.halt()
        if runner:
            with contextlib.suppress(asyncio.CancelledError):
                await runner

    async def _run_loop(self) -> None:
        interval = max(1, self._config.interval_seconds)
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                return
            except TimeoutError:
                pass
            try:
                await self.scan_once()
            except Exception:  # pylint: disable=broad-except
                self._logger.exception("[reminders] Reminder scan failed; continuing")

    async def scan_once(self, now: datetime | None = None) -> list[ReminderAlert]:
        """Run one scan against the current upcoming list and dispatch any alerts."""
        current = ensure_local(now or self._clock())
        # One read of the published tuple; the aggregator replaces it, never mutates it
        bookings = tuple(self._upcoming_source())
        alerts = self._collect_due(bookings, current)
        for alert in alerts:
            await self._dispatch(alert)
        return alerts

    def _collect_due(self, bookings: Sequence[UpcomingBooking], now: datetime) -> list[ReminderAlert]:
        alerts: list[ReminderAlert] = []
        seen: set[str] = set()
        for booking in bookings:
            seen.add(booking.id)
            state = self._states.get(booking.id)
            if state is None or state.instant != booking.booking_instant:
                state = _BookingReminderState(instant=booking.booking_instant)
                self._states[booking.id] = state
            minutes = minutes_until(booking.booking_instant, now)
            for threshold in self._config.thresholds:
                if threshold in state.fired:
                    continue
                if not self._threshold_reached(threshold, state.last_minutes, minutes):
                    continue
                state.fired.add(threshold)
                alerts.append(
                    ReminderAlert(
                        booking_id=booking.id,
                        service=booking.service,
                        threshold=threshold,
                        minutes_until=minutes,
                        booking_instant=booking.booking_instant,
                        message=format_reminder_message(booking.service, threshold),
                    )
                )
            state.last_minutes = minutes
        for booking_id in set(self._states) - seen:
            self._states.pop(booking_id, None)
        return alerts

    def _threshold_reached(self, threshold: int, previous: int | None, current: int) -> bool:
        if current == threshold:
            return True
        if self._config.mode != "crossing" or previous is None:
            return False
        return previous > threshold and 0 <= current < threshold

    async def _dispatch(self, alert: ReminderAlert) -> None:
        self._logger.info(
            "[reminders] Booking %s (%s) starts in %d minute(s)",
            alert.booking_id,
            alert.service or "booking",
            alert.minutes_until,
        )
        if self._on_alert:
            try:
                self._on_alert(alert)
            except Exception:  # pylint: disable=broad-except
                self._logger.exception("[reminders] Alert callback failed for %s", alert.booking_id)
        if await self._ensure_permission() is not PermissionState.GRANTED:
            self._logger.debug("[reminders] Display suppressed for %s", alert.booking_id)
            return
        try:
            await self._sink.display(alert.message)
        except Exception:  # pylint: disable=broad-except
            self._logger.exception("[reminders] Failed to display reminder for %s", alert.booking_id)

    async def _ensure_permission(self) -> PermissionState:
        permission = self._sink.permission
        if permission is PermissionState.PENDING:
            permission = await self._sink.request_permission()
        if permission is PermissionState.DENIED and not self._denied_logged:
            self._denied_logged = True
            self._logger.warning("[reminders] Notification permission denied; reminders will only be logged")
        return permission
