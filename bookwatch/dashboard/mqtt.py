"""paho-mqtt client shared by the live document store, the identity feed and the state publisher.

``connect`` returns as soon as the TCP connection is open; the broker's CONNACK
arrives later on paho's network thread. Subscriptions are therefore kept in a
registry: a topic registered before the session is up is subscribed from the
on-connect hook, and every registered topic is subscribed again after a
reconnect (the client uses a clean session, so the broker forgets them).
"""

from __future__ import annotations

import logging
import ssl
import threading
from collections.abc import Callable

import paho.mqtt.client as mqtt

from .config import MqttConfig

MessageHandler = Callable[[str], None]


class DashboardMqtt:
    def __init__(self, config: MqttConfig, logger: logging.Logger | None = None) -> None:
        self.config = config
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._lock = threading.Lock()
        self._topics: set[str] = set()

    def connect(self) -> None:
        if not self.config.host:
            self._logger.debug("[mqtt] No broker host configured; store, identity and state topics are off")
            return
        with self._lock:
            if self._client is not None:
                return
            client = _build_client(self.config)
            client.on_connect = self._on_connect
            try:
                client.connect(self.config.host, self.config.port, keepalive=30)
            except Exception as exc:
                self._logger.warning(
                    "[mqtt] Failed to connect to broker %s:%s: %s", self.config.host, self.config.port, exc
                )
                return
            client.loop_start()
            self._client = client
            self._logger.info("[mqtt] Connecting to %s:%s", self.config.host, self.config.port)

    def disconnect(self) -> None:
        with self._lock:
            client = self._client
            self._client = None
            self._topics.clear()
        if client:
            client.loop_stop()
            client.disconnect()

    def is_connected(self) -> bool:
        client = self._client
        try:
            return bool(client and client.is_connected())
        except Exception:
            return False

    def publish(self, topic: str, payload: str, retain: bool = False, qos: int = 0) -> None:
        client = self._client
        if not client:
            return
        try:
            client.publish(topic, payload=payload, qos=qos, retain=retain)
        except Exception as exc:
            self._logger.debug("[mqtt] Failed to publish to %s: %s", topic, exc)

    def subscribe(self, topic: str, on_message: MessageHandler) -> None:
        """Route payloads on ``topic`` to ``on_message``, which runs on paho's network thread.

        Raises RuntimeError when there is no client (no broker configured or the
        initial connect failed).
        """
        client = self._client
        if not client:
            raise RuntimeError("MQTT client is not connected")

        def _callback(_client, _userdata, message):  # type: ignore[no-untyped-def]
            try:
                payload = message.payload.decode("utf-8", errors="ignore")
                on_message(payload)
            except Exception as exc:
                self._logger.error("[mqtt] Handler for '%s' failed: %s", topic, exc, exc_info=True)

        client.message_callback_add(topic, _callback)
        with self._lock:
            self._topics.add(topic)
        # Before CONNACK the on-connect hook picks the topic up
        if self.is_connected():
            self._send_subscribe(client, topic)

    def unsubscribe(self, topic: str) -> None:
        client = self._client
        if not client:
            return
        with self._lock:
            self._topics.discard(topic)
        client.message_callback_remove(topic)
        try:
            client.unsubscribe(topic)
        except Exception as exc:
            self._logger.debug("[mqtt] Failed to unsubscribe from %s: %s", topic, exc)

    def _on_connect(self, client, _userdata, _flags, reason_code, properties=None):  # type: ignore[no-untyped-def]
        if not _is_connect_success(reason_code):
            self._logger.error("[mqtt] Broker refused connection (reason=%s, properties=%s)", reason_code, properties)
            return
        with self._lock:
            topics = sorted(self._topics)
        for topic in topics:
            self._send_subscribe(client, topic)
        self._logger.info("[mqtt] Session established; subscribed to %d topic(s)", len(topics))

    def _send_subscribe(self, client: mqtt.Client, topic: str) -> None:
        result, _mid = client.subscribe(topic)
        if result != mqtt.MQTT_ERR_SUCCESS:
            self._logger.warning("[mqtt] Subscribe to %s failed (rc=%s)", topic, result)


def _is_connect_success(reason_code) -> bool:  # type: ignore[no-untyped-def]
    try:
        if hasattr(reason_code, "is_failure"):
            return not reason_code.is_failure
        return int(reason_code) == 0
    except (TypeError, ValueError):
        return False


def _build_client(config: MqttConfig) -> mqtt.Client:
    client_kwargs: dict[str, object] = {"client_id": f"bookwatch-{config.topic_base}", "clean_session": True}
    if hasattr(mqtt, "CallbackAPIVersion"):
        client_kwargs["callback_api_version"] = mqtt.CallbackAPIVersion.VERSION2
    client = mqtt.Client(**client_kwargs)
    if config.username:
        client.username_pw_set(config.username, config.password or "")
    if config.tls_enabled:
        client.tls_set(**_tls_options(config))
    return client


def _tls_options(config: MqttConfig) -> dict[str, object]:
    options: dict[str, object] = {"tls_version": getattr(ssl, "PROTOCOL_TLS_CLIENT", ssl.PROTOCOL_TLS)}
    if config.ca_cert:
        options["ca_certs"] = config.ca_cert
    if config.cert:
        options["certfile"] = config.cert
    if config.key:
        options["keyfile"] = config.key
    return options
