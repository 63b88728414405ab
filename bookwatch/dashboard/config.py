"""Configuration helpers for the Bookwatch dashboard."""

from __future__ import annotations

import os
import socket
from dataclasses import dataclass
from typing import Literal

from bookwatch.utils import (
    parse_bool,
    parse_int,
    sanitize_hostname_for_topic,
    split_csv,
    strip_or_none,
)

DEFAULT_REMINDER_THRESHOLDS: tuple[int, ...] = (15,)
DEFAULT_REMINDER_INTERVAL_SECONDS = 60
REMINDER_MODES = {"exact", "crossing"}


@dataclass(frozen=True)
class MqttConfig:
    host: str | None
    port: int
    username: str | None
    password: str | None
    tls_enabled: bool
    cert: str | None
    key: str | None
    ca_cert: str | None
    topic_base: str


@dataclass(frozen=True)
class StoreConfig:
    topic_prefix: str
    users_collection: str
    bookings_collection: str
    activity_collection: str


@dataclass(frozen=True)
class IdentityConfig:
    static_user_id: str | None
    topic: str


@dataclass(frozen=True)
class ReminderConfig:
    interval_seconds: int
    thresholds: tuple[int, ...]  # Minutes before booking start, largest first
    mode: Literal["exact", "crossing"]


@dataclass(frozen=True)
class HomeAssistantConfig:
    base_url: str | None
    token: str | None
    verify_ssl: bool
    notify_service: str


@dataclass(frozen=True)
class DashboardConfig:
    hostname: str
    mqtt: MqttConfig
    store: StoreConfig
    identity: IdentityConfig
    reminders: ReminderConfig
    home_assistant: HomeAssistantConfig
    state_topic: str
    reminder_topic: str

    @staticmethod
    def from_env(env: dict[str, str] | None = None) -> DashboardConfig:
        source = env or os.environ
        hostname = source.get("BOOKWATCH_HOSTNAME") or socket.gethostname()

        topic_base = source.get("BOOKWATCH_TOPIC_BASE") or f"bookwatch/{sanitize_hostname_for_topic(hostname)}"
        topic_base = topic_base.rstrip("/")
        mqtt = MqttConfig(
            host=strip_or_none(source.get("MQTT_HOST")),
            port=parse_int(source.get("MQTT_PORT"), 1883),
            username=strip_or_none(source.get("MQTT_USER") or source.get("MQTT_USERNAME")),
            password=strip_or_none(source.get("MQTT_PASS") or source.get("MQTT_PASSWORD")),
            tls_enabled=parse_bool(source.get("MQTT_TLS_ENABLED"), False),
            cert=strip_or_none(source.get("MQTT_CERT")),
            key=strip_or_none(source.get("MQTT_KEY")),
            ca_cert=strip_or_none(source.get("MQTT_CA_CERT")),
            topic_base=topic_base,
        )

        store = StoreConfig(
            topic_prefix=(source.get("BOOKWATCH_STORE_PREFIX") or "bookwatch/store").strip().rstrip("/")
            or "bookwatch/store",
            users_collection=_collection_name(source.get("BOOKWATCH_USERS_COLLECTION"), "users"),
            bookings_collection=_collection_name(source.get("BOOKWATCH_BOOKINGS_COLLECTION"), "bookings"),
            activity_collection=_collection_name(source.get("BOOKWATCH_ACTIVITY_COLLECTION"), "recentActivity"),
        )

        identity = IdentityConfig(
            static_user_id=strip_or_none(source.get("BOOKWATCH_USER_ID")),
            topic=strip_or_none(source.get("BOOKWATCH_IDENTITY_TOPIC")) or f"{topic_base}/identity",
        )

        reminders = ReminderConfig(
            interval_seconds=max(
                1,
                parse_int(source.get("BOOKWATCH_REMINDER_INTERVAL_SECONDS"), DEFAULT_REMINDER_INTERVAL_SECONDS),
            ),
            thresholds=_parse_thresholds(source.get("BOOKWATCH_REMINDER_THRESHOLDS")),
            mode=_normalize_choice(source.get("BOOKWATCH_REMINDER_MODE"), REMINDER_MODES, "exact"),
        )

        ha_base_url = strip_or_none(source.get("HOME_ASSISTANT_BASE_URL"))
        if ha_base_url:
            ha_base_url = ha_base_url.rstrip("/")
        home_assistant = HomeAssistantConfig(
            base_url=ha_base_url,
            token=strip_or_none(source.get("HOME_ASSISTANT_TOKEN") or source.get("HOME_ASSISTANT_LONG_LIVED_TOKEN")),
            verify_ssl=parse_bool(source.get("HOME_ASSISTANT_VERIFY_SSL"), True),
            notify_service=strip_or_none(source.get("HOME_ASSISTANT_NOTIFY_SERVICE")) or "notify.notify",
        )

        return DashboardConfig(
            hostname=hostname,
            mqtt=mqtt,
            store=store,
            identity=identity,
            reminders=reminders,
            home_assistant=home_assistant,
            state_topic=f"{topic_base}/dashboard/state",
            reminder_topic=f"{topic_base}/dashboard/reminder",
        )


def _collection_name(value: str | None, default: str) -> str:
    return strip_or_none(value) or default


def _parse_thresholds(value: str | None) -> tuple[int, ...]:
    # isdigit() alone admits superscript digits that int() rejects
    tokens = [token for token in split_csv(value) if token.isascii() and token.isdigit()]
    thresholds = {int(token) for token in tokens if int(token) > 0}
    if not thresholds:
        return DEFAULT_REMINDER_THRESHOLDS
    return tuple(sorted(thresholds, reverse=True))


def _normalize_choice(value: str | None, allowed: set[str], default: str) -> str:
    if not value:
        return default
    lowered = value.strip().lower()
    if lowered in allowed:
        return lowered
    return default
