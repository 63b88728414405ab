"""Current-user identity with change notification."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from .mqtt import DashboardMqtt

LOGGER = logging.getLogger(__name__)

IdentityListener = Callable[[str | None], None]


class IdentityProvider:
    """Holds the signed-in user id (or None) and notifies listeners when it changes."""

    def __init__(self, user_id: str | None = None, logger: logging.Logger | None = None) -> None:
        self._current = _normalize_user_id(user_id)
        self._listeners: list[IdentityListener] = []
        self._logger = logger or LOGGER

    @property
    def current(self) -> str | None:
        return self._current

    def set(self, user_id: str | None) -> None:
        normalized = _normalize_user_id(user_id)
        if normalized == self._current:
            return
        self._current = normalized
        self._logger.info("[identity] Active user changed to %s", normalized or "<none>")
        for listener in list(self._listeners):
            try:
                listener(normalized)
            except Exception:  # pylint: disable=broad-except
                self._logger.exception("[identity] Identity listener failed")

    def clear(self) -> None:
        self.set(None)

    def add_listener(self, listener: IdentityListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: IdentityListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def bind_mqtt(self, mqtt: DashboardMqtt, topic: str, loop: asyncio.AbstractEventLoop) -> None:
        """Follow a retained identity topic; an empty payload means signed out."""

        def _on_message(payload: str) -> None:
            loop.call_soon_threadsafe(self.set, payload)

        mqtt.subscribe(topic, _on_message)


def _normalize_user_id(user_id: str | None) -> str | None:
    if user_id is None:
        return None
    stripped = str(user_id).strip()
    return stripped or None
