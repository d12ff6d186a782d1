"""
Push delivery backends.

The settlement engine only needs "notify this user"; the transport (FCM,
Expo) sits behind a backend selected by settings.NOTIFICATIONS_PUSH_BACKEND.
LoggingPushBackend is the default and records what would be sent.

Usage:
    from notifications.backends import get_push_backend

    backend = get_push_backend()
    backend.send(target, title="...", body="...", data={...})
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.utils.module_loading import import_string

if TYPE_CHECKING:
    from notifications.push_targets import PushTarget

logger = logging.getLogger(__name__)


class DeliveryError(Exception):
    """
    Raised by a backend when a push could not be delivered.

    is_permanent marks tokens the provider rejected for good (unregistered,
    malformed); the device is then deactivated instead of retried.
    """

    def __init__(self, message: str, code: str, is_permanent: bool = False):
        super().__init__(message)
        self.code = code
        self.is_permanent = is_permanent


class BasePushBackend:
    def send(self, target: PushTarget, title: str, body: str, data: dict[str, Any]) -> str:
        """
        Deliver one push.

        Returns:
            Provider message id

        Raises:
            DeliveryError: Delivery failed
        """
        raise NotImplementedError


class LoggingPushBackend(BasePushBackend):
    def send(self, target: PushTarget, title: str, body: str, data: dict[str, Any]) -> str:
        logger.info(
            f"Push to {target.device_kind}/{target.platform}: {title}",
            extra={"token_preview": target.token[:20], "data": data},
        )
        return f"logged-{target.token[-8:]}"


def get_push_backend() -> BasePushBackend:
    path = getattr(settings, "NOTIFICATIONS_PUSH_BACKEND", "notifications.backends.LoggingPushBackend")
    return import_string(path)()
