"""Live aggregation of a user's profile, bookings and activity feed.

The aggregator owns three independent store subscriptions scoped to the
current user and turns their snapshots into one immutable
:class:`DashboardSnapshot`. Every change replaces the snapshot reference and
notifies listeners, so readers (the reminder scan, the state publisher)
always see a complete snapshot.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import datetime

from bookwatch.datetime_utils import local_now

from . import upcoming as upcoming_view
from .config import StoreConfig
from .models import ActivityEntry, DocumentDecodeError, Profile, RawBooking, UpcomingBooking
from .store import Document, LiveDocumentStore, Query, Subscription, SubscriptionError
from .time_resolver import Clock, TimeResolver

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class DashboardSnapshot:
    user_id: str | None
    profile: Profile | None = None
    upcoming: tuple[UpcomingBooking, ...] = ()
    total_bookings: int = 0
    activity: tuple[ActivityEntry, ...] = ()
    updated_at: datetime | None = None


SnapshotListener = Callable[[DashboardSnapshot], None]


class LiveAggregator:
    """Keep derived dashboard values current for the active user."""

    def __init__(
        self,
        *,
        store: LiveDocumentStore,
        config: StoreConfig,
        clock: Clock | None = None,
        resolver: TimeResolver | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._config = config
        self._clock = clock or local_now
        self._resolver = resolver or TimeResolver(clock=self._clock)
        self._logger = logger or LOGGER
        self._user_id: str | None = None
        self._snapshot = DashboardSnapshot(user_id=None)
        self._subscriptions: list[Subscription] = []
        self._listeners: list[SnapshotListener] = []
        # Bumped on every teardown; callbacks from an older generation are ignored
        self._generation = 0

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def snapshot(self) -> DashboardSnapshot:
        return self._snapshot

    @property
    def upcoming(self) -> tuple[UpcomingBooking, ...]:
        return self._snapshot.upcoming

    @property
    def active(self) -> bool:
        return any(subscription.active for subscription in self._subscriptions)

    def add_listener(self, listener: SnapshotListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: SnapshotListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def set_user(self, user_id: str | None) -> None:
        """Switch the aggregator to ``user_id``; None signs out and clears all values."""
        if user_id == self._user_id and (user_id is None or self._subscriptions):
            return
        self._teardown()
        self._user_id = user_id
        self._publish(DashboardSnapshot(user_id=user_id))
        if user_id is None:
            self._logger.info("[aggregator] No active user; dashboard data cleared")
            return
        self._subscribe(user_id)

    def detach(self) -> None:
        """Release every subscription; no callbacks are delivered afterwards."""
        self._teardown()
        self._user_id = None
        self._snapshot = DashboardSnapshot(user_id=None)

    def _teardown(self) -> None:
        self._generation += 1
        subscriptions = self._subscriptions
        self._subscriptions = []
        for subscription in subscriptions:
            subscription.release()
        if subscriptions:
            self._logger.debug("[aggregator] Released %d subscription(s)", len(subscriptions))

    def _subscribe(self, user_id: str) -> None:
        generation = self._generation
        config = self._config
        bookings_query = (
            Query(config.bookings_collection)
            .where("userId", "==", user_id)
            .order("date")
            .order("time")
        )
        activity_query = (
            Query(config.activity_collection)
            .where("userId", "==", user_id)
            .order("createdAt", descending=True)
        )
        watches: list[tuple[str, Callable[[], Subscription]]] = [
            (
                "profile",
                lambda: self._store.watch_document(
                    config.users_collection,
                    user_id,
                    self._guarded("profile", generation, self._on_profile),
                    self._error_handler("profile", generation),
                ),
            ),
            (
                "bookings",
                lambda: self._store.watch_query(
                    bookings_query,
                    self._guarded("bookings", generation, self._on_bookings),
                    self._error_handler("bookings", generation),
                ),
            ),
            (
                "activity",
                lambda: self._store.watch_query(
                    activity_query,
                    self._guarded("activity", generation, self._on_activity),
                    self._error_handler("activity", generation),
                ),
            ),
        ]
        for name, start_watch in watches:
            try:
                self._subscriptions.append(start_watch())
            except (SubscriptionError, ValueError) as exc:
                self._logger.warning("[aggregator] Could not subscribe to %s for %s: %s", name, user_id, exc)
        self._logger.info(
            "[aggregator] Watching dashboard data for %s (%d/%d subscriptions)",
            user_id,
            len(self._subscriptions),
            len(watches),
        )

    def _guarded(self, name: str, generation: int, handler: Callable[[object], None]) -> Callable[[object], None]:
        def _callback(payload: object) -> None:
            if generation != self._generation:
                return
            try:
                handler(payload)
            except Exception:  # pylint: disable=broad-except
                self._logger.exception("[aggregator] %s update failed; keeping last value", name)

        return _callback

    def _error_handler(self, name: str, generation: int) -> Callable[[Exception], None]:
        def _callback(exc: Exception) -> None:
            if generation != self._generation:
                return
            self._logger.warning("[aggregator] %s subscription error; keeping last value: %s", name, exc)

        return _callback

    def _on_profile(self, document: Document | None) -> None:
        if document is None:
            profile = None
        else:
            try:
                profile = Profile.from_document(document)
            except DocumentDecodeError as exc:
                self._logger.warning("[aggregator] Ignoring malformed profile for %s: %s", self._user_id, exc)
                return
        self._publish(replace(self._snapshot, profile=profile, updated_at=self._clock()))

    def _on_bookings(self, documents: Sequence[Document]) -> None:
        raw: list[RawBooking] = []
        for document in documents:
            try:
                raw.append(RawBooking.from_document(document))
            except DocumentDecodeError as exc:
                self._logger.warning("[aggregator] Malformed booking %s: %s", _document_label(document), exc)
        now = self._clock()
        upcoming = upcoming_view.project(raw, now, resolver=self._resolver)
        total = upcoming_view.total(documents)
        self._logger.debug("[aggregator] %d booking(s), %d upcoming", total, len(upcoming))
        self._publish(replace(self._snapshot, upcoming=upcoming, total_bookings=total, updated_at=now))

    def _on_activity(self, documents: Sequence[Document]) -> None:
        entries: list[ActivityEntry] = []
        for document in documents:
            try:
                entries.append(ActivityEntry.from_document(document))
            except DocumentDecodeError as exc:
                self._logger.warning("[aggregator] Skipping malformed activity %s: %s", _document_label(document), exc)
        self._publish(replace(self._snapshot, activity=tuple(entries), updated_at=self._clock()))

    def _publish(self, snapshot: DashboardSnapshot) -> None:
        self._snapshot = snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:  # pylint: disable=broad-except
                self._logger.exception("[aggregator] Snapshot listener failed")


def _document_label(document: object) -> str:
    if isinstance(document, Mapping):
        return str(document.get("id") or "<no id>")
    return f"<{type(document).__name__}>"
