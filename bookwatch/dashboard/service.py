"""Top-level wiring: identity -> live aggregation -> reminders and state publishing."""

from __future__ import annotations

import asyncio
import logging

from bookwatch.datetime_utils import local_now

from .aggregator import LiveAggregator
from .config import DashboardConfig
from .home_assistant import build_home_assistant_client
from .identity import IdentityProvider
from .mqtt import DashboardMqtt
from .mqtt_store import MqttDocumentStore
from .notifications import HomeAssistantNotificationSink, LoggingNotificationSink, NotificationSink
from .publisher import DashboardMqttPublisher
from .reminders import ReminderScheduler
from .store import LiveDocumentStore
from .time_resolver import Clock

LOGGER = logging.getLogger(__name__)


def build_notification_sink(config: DashboardConfig, logger: logging.Logger | None = None) -> NotificationSink:
    """Home Assistant notifications when configured, otherwise log-only reminders."""
    client = build_home_assistant_client(config.home_assistant)
    if client is None:
        return LoggingNotificationSink(logger=logger)
    return HomeAssistantNotificationSink(client, service=config.home_assistant.notify_service, logger=logger)


class BookingDashboard:
    """Owns the dashboard components and ties their lifecycle to the active user.

    Subscriptions and the reminder scan run only while a user is signed in.
    An identity change tears the previous user's subscriptions down before the
    next user's are created; signing out stops the scan as well.
    """

    def __init__(
        self,
        config: DashboardConfig,
        *,
        mqtt: DashboardMqtt | None = None,
        store: LiveDocumentStore | None = None,
        identity: IdentityProvider | None = None,
        sink: NotificationSink | None = None,
        clock: Clock | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self._logger = logger or LOGGER
        self._clock = clock or local_now
        self.mqtt = mqtt or DashboardMqtt(config.mqtt)
        self.store = store or MqttDocumentStore(self.mqtt, topic_prefix=config.store.topic_prefix)
        self.identity = identity or IdentityProvider(config.identity.static_user_id)
        self.sink = sink or build_notification_sink(config)
        self.publisher = DashboardMqttPublisher(self.mqtt, config, clock=self._clock)
        self.aggregator = LiveAggregator(store=self.store, config=config.store, clock=self._clock)
        self.scheduler = ReminderScheduler(
            upcoming_source=lambda: self.aggregator.upcoming,
            sink=self.sink,
            config=config.reminders,
            clock=self._clock,
            on_alert=self.publisher.publish_alert,
        )
        self._loop: asyncio.AbstractEventLoop | None = None
        self._tasks: set[asyncio.Task] = set()
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        self._loop = asyncio.get_running_loop()
        self.mqtt.connect()
        self.aggregator.add_listener(self.publisher.publish_snapshot)
        self.identity.add_listener(self._on_identity_changed)
        if not self.config.identity.static_user_id:
            self._follow_identity_topic(self._loop)
        self._on_identity_changed(self.identity.current)

    async def stop(self) -> None:
        if not self._started:
            return
        self._started = False
        self.identity.remove_listener(self._on_identity_changed)
        self.aggregator.detach()
        await self.scheduler.stop()
        self.aggregator.remove_listener(self.publisher.publish_snapshot)
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        await self.sink.close()
        self.mqtt.disconnect()

    def _follow_identity_topic(self, loop: asyncio.AbstractEventLoop) -> None:
        # The broker session may still be pending; DashboardMqtt subscribes once it is up
        try:
            self.identity.bind_mqtt(self.mqtt, self.config.identity.topic, loop)
        except RuntimeError as exc:
            self._logger.warning(
                "[dashboard] Cannot follow identity topic %s (%s); staying signed out",
                self.config.identity.topic,
                exc,
            )
            return
        self._logger.info("[dashboard] Following identity topic %s", self.config.identity.topic)

    def _on_identity_changed(self, user_id: str | None) -> None:
        self.aggregator.set_user(user_id)
        if user_id is None:
            self.scheduler.halt()
            return
        if not self.scheduler.running and self._loop is not None:
            self._track(self._loop.create_task(self._start_scheduler()))

    async def _start_scheduler(self) -> None:
        # Identity may have been cleared again before this task ran
        if self._started and self.aggregator.user_id is not None:
            await self.scheduler.start()

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)

        def _cleanup(_task: asyncio.Task) -> None:
            self._tasks.discard(_task)

        task.add_done_callback(_cleanup)
