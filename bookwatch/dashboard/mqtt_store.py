"""Live document store backed by retained MQTT topics.

Topic layout (under ``topic_prefix``):

- ``<prefix>/<collection>``: the whole collection, either a JSON array of
  documents (each carrying ``id``) or a JSON object mapping id -> document.
- ``<prefix>/<collection>/<id>``: one document as a JSON object. An empty
  payload (or ``null``) means the document does not exist.

The broker replays retained payloads on subscribe, so every watcher starts
with a full snapshot and receives a new one on every publish. Queries are
evaluated client-side with :func:`apply_query`.

paho delivers messages on its network thread; each delivery is handed to the
watcher's asyncio loop with ``call_soon_threadsafe`` and dropped there if the
subscription was released in the meantime.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
import threading
from collections.abc import Callable
from typing import Any

from .mqtt import DashboardMqtt
from .store import (
    Document,
    DocumentSnapshotCallback,
    ErrorCallback,
    LiveDocumentStore,
    Query,
    QuerySnapshotCallback,
    Subscription,
    SubscriptionError,
    apply_query,
)

LOGGER = logging.getLogger(__name__)

_TOPIC_RESERVED = ("+", "#", "/")


def _check_topic_segment(value: str, kind: str) -> str:
    if not value or any(token in value for token in _TOPIC_RESERVED):
        raise ValueError(f"Invalid {kind} for MQTT topic: {value!r}")
    return value


def decode_collection_payload(payload: str) -> list[Document]:
    """Parse a collection topic payload into a list of documents."""
    if not payload.strip():
        return []
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise SubscriptionError(f"collection payload is not valid JSON: {exc}") from exc
    if isinstance(data, list):
        documents: list[Document] = []
        for item in data:
            if not isinstance(item, dict):
                raise SubscriptionError(f"collection entries must be objects, got {type(item).__name__}")
            documents.append(item)
        return documents
    if isinstance(data, dict):
        documents = []
        for doc_id, item in data.items():
            if not isinstance(item, dict):
                raise SubscriptionError(f"document {doc_id!r} must be an object, got {type(item).__name__}")
            documents.append({**item, "id": doc_id})
        return documents
    raise SubscriptionError(f"collection payload must be an array or object, got {type(data).__name__}")


def decode_document_payload(payload: str, doc_id: str) -> Document | None:
    """Parse a document topic payload; None means the document does not exist."""
    if not payload.strip():
        return None
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise SubscriptionError(f"document payload is not valid JSON: {exc}") from exc
    if data is None:
        return None
    if not isinstance(data, dict):
        raise SubscriptionError(f"document payload must be an object, got {type(data).__name__}")
    return {**data, "id": doc_id}


class _Watcher:
    def __init__(
        self,
        subscription: Subscription,
        loop: asyncio.AbstractEventLoop,
        handle_payload: Callable[[str], None],
    ) -> None:
        self.subscription = subscription
        self.loop = loop
        self._handle_payload = handle_payload

    def schedule(self, payload: str) -> None:
        try:
            self.loop.call_soon_threadsafe(self._dispatch, payload)
        except RuntimeError:
            # Loop already closed; nothing left to deliver to
            pass

    def _dispatch(self, payload: str) -> None:
        if not self.subscription.active:
            return
        self._handle_payload(payload)


class MqttDocumentStore(LiveDocumentStore):
    def __init__(
        self,
        mqtt: DashboardMqtt,
        *,
        topic_prefix: str,
        loop: asyncio.AbstractEventLoop | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._mqtt = mqtt
        self._prefix = topic_prefix.rstrip("/")
        self._loop = loop
        self._logger = logger or LOGGER
        self._lock = threading.Lock()
        self._watchers: dict[str, dict[int, _Watcher]] = {}
        self._last_payload: dict[str, str] = {}
        self._ids = itertools.count(1)

    def collection_topic(self, collection: str) -> str:
        return f"{self._prefix}/{_check_topic_segment(collection, 'collection')}"

    def document_topic(self, collection: str, doc_id: str) -> str:
        return f"{self.collection_topic(collection)}/{_check_topic_segment(doc_id, 'document id')}"

    def watch_query(
        self,
        query: Query,
        on_snapshot: QuerySnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        topic = self.collection_topic(query.collection)

        def _handle(payload: str) -> None:
            try:
                documents = apply_query(decode_collection_payload(payload), query)
            except SubscriptionError as exc:
                self._report_error(topic, exc, on_error)
                return
            self._deliver(topic, on_snapshot, documents)

        return self._watch(topic, _handle)

    def watch_document(
        self,
        collection: str,
        doc_id: str,
        on_snapshot: DocumentSnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        topic = self.document_topic(collection, doc_id)

        def _handle(payload: str) -> None:
            try:
                document = decode_document_payload(payload, doc_id)
            except SubscriptionError as exc:
                self._report_error(topic, exc, on_error)
                return
            self._deliver(topic, on_snapshot, document)

        return self._watch(topic, _handle)

    def _watch(self, topic: str, handle_payload: Callable[[str], None]) -> Subscription:
        loop = self._loop or asyncio.get_running_loop()
        watcher_id = next(self._ids)
        subscription = Subscription(topic, on_release=lambda: self._remove_watcher(topic, watcher_id))
        watcher = _Watcher(subscription, loop, handle_payload)
        with self._lock:
            watchers = self._watchers.setdefault(topic, {})
            first = not watchers
            watchers[watcher_id] = watcher
            cached = self._last_payload.get(topic)
        if first:
            try:
                self._mqtt.subscribe(topic, lambda payload: self._on_message(topic, payload))
            except RuntimeError as exc:
                with self._lock:
                    self._watchers.get(topic, {}).pop(watcher_id, None)
                raise SubscriptionError(f"Cannot watch {topic}: {exc}") from exc
            self._logger.debug("[store] Subscribed to %s", topic)
        elif cached is not None:
            # The broker only replays retained payloads on a fresh subscribe
            watcher.schedule(cached)
        return subscription

    def _on_message(self, topic: str, payload: str) -> None:
        with self._lock:
            self._last_payload[topic] = payload
            watchers = list(self._watchers.get(topic, {}).values())
        for watcher in watchers:
            watcher.schedule(payload)

    def _remove_watcher(self, topic: str, watcher_id: int) -> None:
        with self._lock:
            watchers = self._watchers.get(topic)
            if not watchers:
                return
            watchers.pop(watcher_id, None)
            if watchers:
                return
            self._watchers.pop(topic, None)
            self._last_payload.pop(topic, None)
        self._mqtt.unsubscribe(topic)
        self._logger.debug("[store] Unsubscribed from %s", topic)

    def _deliver(self, topic: str, callback: Callable[[Any], None], snapshot: Any) -> None:
        try:
            callback(snapshot)
        except Exception:  # pylint: disable=broad-except
            self._logger.exception("[store] Snapshot callback failed for %s", topic)

    def _report_error(self, topic: str, exc: SubscriptionError, on_error: ErrorCallback | None) -> None:
        if on_error is None:
            self._logger.warning("[store] Dropping snapshot for %s: %s", topic, exc)
            return
        try:
            on_error(exc)
        except Exception:  # pylint: disable=broad-except
            self._logger.exception("[store] Error callback failed for %s", topic)
