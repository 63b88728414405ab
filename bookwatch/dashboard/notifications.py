"""Notification sinks: permission handling and local alert display."""

from __future__ import annotations

import logging
from enum import Enum

from .home_assistant import HomeAssistantAuthError, HomeAssistantClient, HomeAssistantError

LOGGER = logging.getLogger(__name__)

NOTIFICATION_TITLE = "Booking reminder"


class PermissionState(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"
    PENDING = "pending"


class NotificationSink:
    """Where reminder alerts are shown. ``display`` is only called once permission is granted."""

    @property
    def permission(self) -> PermissionState:
        raise NotImplementedError

    async def request_permission(self) -> PermissionState:
        raise NotImplementedError

    async def display(self, message: str) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class LoggingNotificationSink(NotificationSink):
    """Fallback sink that writes alerts to the log."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or LOGGER

    @property
    def permission(self) -> PermissionState:
        return PermissionState.GRANTED

    async def request_permission(self) -> PermissionState:
        return PermissionState.GRANTED

    async def display(self, message: str) -> None:
        self._logger.info("[notify] %s", message)


class HomeAssistantNotificationSink(NotificationSink):
    """Deliver alerts through a Home Assistant ``notify.*`` service.

    Permission starts out pending. Requesting it probes the API: valid
    credentials grant it, a rejected token denies it, and anything else
    (network errors, HA down) leaves it pending so a later alert can ask again.
    """

    def __init__(
        self,
        client: HomeAssistantClient,
        *,
        service: str = "notify.notify",
        title: str = NOTIFICATION_TITLE,
        logger: logging.Logger | None = None,
    ) -> None:
        domain, _, name = service.partition(".")
        if not domain or not name:
            raise ValueError("Notify service must be in 'domain.service' format")
        self._client = client
        self._domain = domain
        self._service = name
        self._title = title
        self._logger = logger or LOGGER
        self._permission = PermissionState.PENDING

    @property
    def permission(self) -> PermissionState:
        return self._permission

    async def request_permission(self) -> PermissionState:
        if self._permission is not PermissionState.PENDING:
            return self._permission
        try:
            await self._client.get_info()
        except HomeAssistantAuthError:
            self._logger.warning("[notify] Home Assistant rejected the token; reminders will not be displayed")
            self._permission = PermissionState.DENIED
        except HomeAssistantError as exc:
            self._logger.warning("[notify] Could not verify Home Assistant access: %s", exc)
        else:
            self._permission = PermissionState.GRANTED
        return self._permission

    async def display(self, message: str) -> None:
        try:
            await self._client.call_service(self._domain, self._service, {"title": self._title, "message": message})
        except HomeAssistantAuthError:
            self._permission = PermissionState.DENIED
            raise

    async def close(self) -> None:
        await self._client.close()
