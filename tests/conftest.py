"""Shared test fixtures and configuration for the Bookwatch test suite.

This module provides reusable fixtures for common test scenarios including:
- MQTT broker/client mocking
- An in-memory live document store
- Configuration objects
- Fixed clocks for deterministic date/time tests
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any
from unittest.mock import Mock

import paho.mqtt.client as mqtt
import pytest
from bookwatch.dashboard.config import DashboardConfig, MqttConfig, ReminderConfig, StoreConfig
from bookwatch.dashboard.store import (
    Document,
    DocumentSnapshotCallback,
    ErrorCallback,
    LiveDocumentStore,
    Query,
    QuerySnapshotCallback,
    Subscription,
    apply_query,
)

# ============================================================================
# Pytest Configuration
# ============================================================================


@pytest.fixture(scope="session")
def anyio_backend():
    """Configure anyio backend for async tests."""
    return "asyncio"


# ============================================================================
# Logging Fixtures
# ============================================================================


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing.

    Returns a Mock with spec=logging.Logger to ensure only valid
    logger methods can be called.
    """
    return Mock(spec=logging.Logger)


# ============================================================================
# Clock Fixtures
# ============================================================================


@pytest.fixture
def fixed_now():
    """Saturday 2024-06-01 08:00 local time."""
    return datetime(2024, 6, 1, 8, 0).astimezone()


@pytest.fixture
def make_clock():
    """Factory for mutable clocks: ``clock = make_clock(start)``; ``clock.now = ...`` moves it."""

    class _Clock:
        def __init__(self, now: datetime) -> None:
            self.now = now

        def __call__(self) -> datetime:
            return self.now

    return _Clock


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def mqtt_config():
    """Create a basic MQTT configuration for testing."""
    return MqttConfig(
        host="localhost",
        port=1883,
        username=None,
        password=None,
        tls_enabled=False,
        cert=None,
        key=None,
        ca_cert=None,
        topic_base="bookwatch/test-device",
    )


@pytest.fixture
def store_config():
    return StoreConfig(
        topic_prefix="bookwatch/store",
        users_collection="users",
        bookings_collection="bookings",
        activity_collection="recentActivity",
    )


@pytest.fixture
def reminder_config():
    return ReminderConfig(interval_seconds=60, thresholds=(15,), mode="exact")


@pytest.fixture
def dashboard_config():
    return DashboardConfig.from_env({"BOOKWATCH_HOSTNAME": "test-device", "MQTT_HOST": "localhost"})


# ============================================================================
# MQTT Fixtures
# ============================================================================


@pytest.fixture
def mock_mqtt_client():
    """Create a mock paho MQTT client.

    Provides common MQTT client methods as mocks for testing
    MQTT interactions without a real broker.
    """
    client = Mock(spec=mqtt.Client)
    client.connect = Mock()
    client.disconnect = Mock()
    client.subscribe = Mock(return_value=(mqtt.MQTT_ERR_SUCCESS, 1))
    client.unsubscribe = Mock()
    client.message_callback_add = Mock()
    client.message_callback_remove = Mock()
    client.publish = Mock()
    client.loop_start = Mock()
    client.loop_stop = Mock()
    client.is_connected = Mock(return_value=True)
    return client


# ============================================================================
# Live Document Store Fixtures
# ============================================================================


class FakeDocumentStore(LiveDocumentStore):
    """In-memory store that delivers snapshots synchronously, like a retained replay."""

    def __init__(self) -> None:
        self.collections: dict[str, dict[str, dict[str, Any]]] = {}
        self.query_watchers: list[tuple[Query, QuerySnapshotCallback, ErrorCallback | None, Subscription]] = []
        self.document_watchers: list[
            tuple[str, str, DocumentSnapshotCallback, ErrorCallback | None, Subscription]
        ] = []

    def watch_query(
        self,
        query: Query,
        on_snapshot: QuerySnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        subscription = Subscription(f"query:{query.collection}")
        self.query_watchers.append((query, on_snapshot, on_error, subscription))
        on_snapshot(self._query_snapshot(query))
        return subscription

    def watch_document(
        self,
        collection: str,
        doc_id: str,
        on_snapshot: DocumentSnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        subscription = Subscription(f"doc:{collection}/{doc_id}")
        self.document_watchers.append((collection, doc_id, on_snapshot, on_error, subscription))
        on_snapshot(self._document(collection, doc_id))
        return subscription

    def put(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self.collections.setdefault(collection, {})[doc_id] = dict(data)
        self._notify(collection)

    def delete(self, collection: str, doc_id: str) -> None:
        self.collections.get(collection, {}).pop(doc_id, None)
        self._notify(collection)

    def fail(self, collection: str, exc: Exception) -> None:
        for query, _on_snapshot, on_error, subscription in list(self.query_watchers):
            if subscription.active and query.collection == collection and on_error:
                on_error(exc)
        for watched, _doc_id, _on_snapshot, on_error, subscription in list(self.document_watchers):
            if subscription.active and watched == collection and on_error:
                on_error(exc)

    def active_subscriptions(self) -> list[Subscription]:
        subscriptions = [entry[-1] for entry in self.query_watchers] + [entry[-1] for entry in self.document_watchers]
        return [subscription for subscription in subscriptions if subscription.active]

    def _query_snapshot(self, query: Query) -> list[Document]:
        documents = [{**data, "id": doc_id} for doc_id, data in self.collections.get(query.collection, {}).items()]
        return apply_query(documents, query)

    def _document(self, collection: str, doc_id: str) -> Document | None:
        data = self.collections.get(collection, {}).get(doc_id)
        if data is None:
            return None
        return {**data, "id": doc_id}

    def _notify(self, collection: str) -> None:
        for query, on_snapshot, _on_error, subscription in list(self.query_watchers):
            if subscription.active and query.collection == collection:
                on_snapshot(self._query_snapshot(query))
        for watched, doc_id, on_snapshot, _on_error, subscription in list(self.document_watchers):
            if subscription.active and watched == collection:
                on_snapshot(self._document(collection, doc_id))


@pytest.fixture
def fake_store():
    return FakeDocumentStore()


# ============================================================================
# Test Data Factories
# ============================================================================


@pytest.fixture
def make_booking_doc() -> Callable[..., dict[str, Any]]:
    """Factory for raw booking documents as the store delivers them.

    Usage:
        doc = make_booking_doc("b1", date="2024-06-01", time="09:00 AM")
    """

    def _create(doc_id: str, **overrides: Any) -> dict[str, Any]:
        document: dict[str, Any] = {
            "id": doc_id,
            "userId": "user-1",
            "date": "2024-06-01",
            "time": "09:00 AM",
            "service": "Haircut",
            "location": "Main Street",
            "queuePosition": 3,
            "estimatedWait": "10 min",
        }
        document.update(overrides)
        return document

    return _create
