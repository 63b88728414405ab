"""MQTT publishing of derived dashboard state.

The UI is a separate consumer; it renders whatever this module publishes on
the retained ``<topic_base>/dashboard/state`` topic. Reminder alerts go out
on ``<topic_base>/dashboard/reminder`` (not retained).
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

from bookwatch.datetime_utils import ensure_local, local_now

from .aggregator import DashboardSnapshot
from .config import DashboardConfig
from .models import ActivityEntry, Profile, UpcomingBooking
from .mqtt import DashboardMqtt
from .reminders import ReminderAlert
from .time_resolver import Clock

LOGGER = logging.getLogger(__name__)


def greeting_for(now: datetime, profile: Profile | None = None) -> str:
    """Time-of-day greeting, personalised when the profile has a name."""
    hour = ensure_local(now).hour
    if hour < 12:
        greeting = "Good morning"
    elif hour < 18:
        greeting = "Good afternoon"
    else:
        greeting = "Good evening"
    if profile and profile.name.strip():
        return f"{greeting}, {profile.name.strip()}!"
    return "Welcome back!"


def _json_safe(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, datetime):
        return ensure_local(value).isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(key): _json_safe(item) for key, item in value.items()}
    return str(value)


class DashboardMqttPublisher:
    def __init__(
        self,
        mqtt: DashboardMqtt,
        config: DashboardConfig,
        *,
        clock: Clock | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.mqtt = mqtt
        self.config = config
        self._clock = clock or local_now
        self.logger = logger or LOGGER

    def publish_snapshot(self, snapshot: DashboardSnapshot) -> None:
        payload = self.serialize_snapshot(snapshot, self._clock())
        self.logger.debug(
            "[publisher] Publishing state for %s: %d upcoming of %d",
            snapshot.user_id or "<signed out>",
            len(snapshot.upcoming),
            snapshot.total_bookings,
        )
        self.mqtt.publish(self.config.state_topic, json.dumps(payload), retain=True)

    def publish_alert(self, alert: ReminderAlert) -> None:
        payload = {
            "booking_id": alert.booking_id,
            "service": alert.service,
            "threshold_minutes": alert.threshold,
            "minutes_until": alert.minutes_until,
            "start": ensure_local(alert.booking_instant).isoformat(),
            "message": alert.message,
        }
        self.mqtt.publish(self.config.reminder_topic, json.dumps(payload))

    @classmethod
    def serialize_snapshot(cls, snapshot: DashboardSnapshot, now: datetime) -> dict[str, Any]:
        profile = snapshot.profile
        return {
            "user_id": snapshot.user_id,
            "greeting": greeting_for(now, profile),
            "profile": {"name": profile.name, "email": profile.email} if profile else None,
            "stats": {
                "active_bookings": len(snapshot.upcoming),
                "total_bookings": snapshot.total_bookings,
            },
            "upcoming": [cls.serialize_booking(booking) for booking in snapshot.upcoming],
            "activity": [cls.serialize_activity(entry) for entry in snapshot.activity],
            "updated_at": snapshot.updated_at.isoformat() if snapshot.updated_at else None,
        }

    @staticmethod
    def serialize_booking(booking: UpcomingBooking) -> dict[str, Any]:
        return {
            "id": booking.id,
            "service": booking.service,
            "location": booking.location,
            "date": _json_safe(booking.date),
            "time": booking.time,
            "start": ensure_local(booking.booking_instant).isoformat(),
            "queue_position": booking.queue_position,
            "estimated_wait": booking.estimated_wait,
        }

    @staticmethod
    def serialize_activity(entry: ActivityEntry) -> dict[str, Any]:
        return {
            "id": entry.id,
            "action": entry.action,
            "service": entry.service,
            "time": entry.time,
            "created_at": entry.created_at.isoformat() if entry.created_at else None,
        }
