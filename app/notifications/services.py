"""
Notification service layer.

This module provides the business logic for the notification system.

Services:
    NotificationService: notify(), read status management
    PushDeviceService: push token registration

Design Principles:
    - Services are stateless (use class methods)
    - notify() never raises: callers are settlement steps whose state must
      not depend on whether a notification could be stored or sent
    - Push delivery is enqueued after the surrounding transaction commits

Usage:
    from notifications.services import NotificationService

    NotificationService.notify(
        user=buyer,
        type_key="refund_processed",
        payload={"product_title": "Desk", "amount": "4,875.00"},
        idempotency_key=f"refund_processed:{refund.id}",
    )
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from django.db import IntegrityError, transaction

from core.services import BaseService, ServiceResult

from notifications.catalog import NOTIFICATION_TYPES
from notifications.models import (
    DeliveryStatus,
    Notification,
    NotificationDelivery,
    NotificationType,
    PushDevice,
)
from notifications.push_targets import PushTarget

if TYPE_CHECKING:
    from authentication.models import User

logger = logging.getLogger(__name__)


class NotificationService(BaseService):
    """
    Service for notification operations.

    Methods:
        notify: Fire-and-forget Notify(user, type, payload)
        mark_as_read: Mark a single notification as read
        mark_all_as_read: Mark all user's unread notifications as read
    """

    @classmethod
    def get_notification_type(cls, type_key: str) -> NotificationType | None:
        defaults = NOTIFICATION_TYPES.get(type_key)
        if defaults is None:
            return NotificationType.objects.filter(key=type_key).first()
        notification_type, _ = NotificationType.objects.get_or_create(key=type_key, defaults=defaults)
        return notification_type

    @classmethod
    def notify(
        cls,
        user: User,
        type_key: str,
        payload: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
    ) -> ServiceResult[Notification]:
        """
        Store a notification for a user and enqueue its push delivery.

        Failures are logged and returned as ServiceResult.failure; nothing
        is raised to the caller.

        Error codes:
            TYPE_NOT_FOUND: Notification type key doesn't exist
            TYPE_INACTIVE: Notification type is deactivated
            DUPLICATE: Notification with this idempotency_key already exists
            NOTIFY_FAILED: Anything else (template error, database error)
        """
        payload = payload or {}
        try:
            return cls._notify(user, type_key, payload, idempotency_key)
        except Exception as e:
            cls.get_logger().error(
                f"Notification {type_key} for user {user.pk} failed: {type(e).__name__}",
                extra={"type_key": type_key, "idempotency_key": idempotency_key},
                exc_info=True,
            )
            return ServiceResult.failure(str(e), error_code="NOTIFY_FAILED")

    @classmethod
    def _notify(
        cls,
        user: User,
        type_key: str,
        payload: dict[str, Any],
        idempotency_key: str | None,
    ) -> ServiceResult[Notification]:
        from notifications import tasks

        notification_type = cls.get_notification_type(type_key)
        if notification_type is None:
            cls.get_logger().warning(f"Notification type not found: {type_key}")
            return ServiceResult.failure(
                f"Notification type not found: {type_key}",
                error_code="TYPE_NOT_FOUND",
            )

        if not notification_type.is_active:
            cls.get_logger().info(f"Notification type inactive: {type_key} - skipping creation")
            return ServiceResult.failure(
                f"Notification type is inactive: {type_key}",
                error_code="TYPE_INACTIVE",
            )

        if idempotency_key and Notification.objects.filter(idempotency_key=idempotency_key).exists():
            cls.get_logger().info(f"Duplicate notification prevented: idempotency_key={idempotency_key}")
            return ServiceResult.failure(
                f"Notification with idempotency_key already exists: {idempotency_key}",
                error_code="DUPLICATE",
            )

        title = notification_type.title_template.format(**payload)
        body = notification_type.body_template.format(**payload)

        try:
            with transaction.atomic():
                notification = Notification.objects.create(
                    notification_type=notification_type,
                    recipient=user,
                    title=title,
                    body=body,
                    data={key: str(value) for key, value in payload.items()},
                    idempotency_key=idempotency_key,
                )
                delivery = None
                if notification_type.supports_push:
                    delivery = NotificationDelivery.objects.create(notification=notification)
        except IntegrityError:
            # Lost a race with a concurrent notify for the same key
            return ServiceResult.failure(
                f"Notification with idempotency_key already exists: {idempotency_key}",
                error_code="DUPLICATE",
            )

        if delivery is not None:
            delivery_id = str(delivery.id)
            transaction.on_commit(lambda: tasks.deliver_push_notification.delay(delivery_id))

        cls.get_logger().info(
            f"Notification {type_key} created for user {user.pk}",
            extra={"notification_id": notification.pk, "idempotency_key": idempotency_key},
        )
        return ServiceResult.success(notification)

    @classmethod
    def mark_as_read(cls, notification: Notification, user: User) -> ServiceResult[Notification]:
        if notification.recipient_id != user.id:
            return ServiceResult.failure(
                "Cannot mark another user's notification as read",
                error_code="NOT_OWNER",
            )
        if not notification.is_read:
            notification.is_read = True
            notification.save(update_fields=["is_read", "updated_at"])
        return ServiceResult.success(notification)

    @classmethod
    def mark_all_as_read(cls, user: User) -> ServiceResult[int]:
        count = Notification.objects.filter(recipient=user, is_read=False).update(is_read=True)
        return ServiceResult.success(count)


class PushDeviceService(BaseService):
    """Registration of push tokens."""

    @classmethod
    def register(cls, user: User, raw_token: Any, platform: str | None = None) -> PushDevice:
        """
        Register (or move) a push token for a user.

        Raises:
            ValidationError: Malformed token
        """
        target = PushTarget.from_raw(raw_token, platform=platform)
        device, created = PushDevice.objects.update_or_create(
            token=target.token,
            defaults={
                "user": user,
                "platform": target.platform,
                "device_kind": target.device_kind,
                "is_active": True,
            },
        )
        cls.get_logger().info(
            f"{target.device_kind.upper()} token {'registered' if created else 'refreshed'} for user {user.pk}",
            extra={"platform": target.platform},
        )
        return device

    @classmethod
    def unregister(cls, user: User, token: str) -> int:
        return PushDevice.objects.filter(user=user, token=token).update(is_active=False)

    @classmethod
    def targets_for(cls, user: User) -> list[PushTarget]:
        return [
            PushTarget(platform=device.platform, device_kind=device.device_kind, token=device.token)
            for device in PushDevice.objects.filter(user=user, is_active=True)
        ]


__all__ = [
    "DeliveryStatus",
    "NotificationService",
    "PushDeviceService",
]
