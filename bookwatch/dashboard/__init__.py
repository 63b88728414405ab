"""
Booking dashboard engine

This package keeps a signed-in user's booking dashboard live and raises
reminders as appointments approach:

- Live aggregation: profile, bookings and activity subscriptions per user
- Time resolution: separate date and "hh:mm AM|PM" fields merged into one instant
- Upcoming view: future-only, time-ordered projection of the raw bookings
- Reminders: fixed-interval scan firing one alert per booking per threshold
- Transports: MQTT-backed live document store, Home Assistant notifications

Key modules:
- config: Configuration management from environment variables
- aggregator: LiveAggregator and DashboardSnapshot
- reminders: ReminderScheduler
- service: BookingDashboard wiring for the daemon
"""

from __future__ import annotations

__all__ = [
    "aggregator",
    "config",
    "models",
    "reminders",
    "service",
    "store",
    "time_resolver",
    "upcoming",
]
