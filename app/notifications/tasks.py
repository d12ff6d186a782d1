"""
Celery tasks for notification delivery.

Tasks:
    deliver_push_notification: Fan a notification out to the recipient's devices

Design:
    - Tasks receive delivery_id (UUID string) instead of notification_id
    - Each task updates the NotificationDelivery status
    - Permanent vs transient errors are classified for retry logic
    - Tasks are idempotent: re-running on non-PENDING delivery is a no-op

Usage:
    from notifications.tasks import deliver_push_notification

    # Enqueued automatically by NotificationService.notify()
    deliver_push_notification.delay(delivery_id="uuid-string")
"""

from __future__ import annotations

import logging

from celery import shared_task
from django.utils import timezone as django_timezone

from notifications.backends import DeliveryError, get_push_backend
from notifications.models import (
    DeliveryStatus,
    NotificationDelivery,
    PushDevice,
)
from notifications.push_targets import PushTarget

logger = logging.getLogger(__name__)


def _get_delivery(delivery_id: str) -> NotificationDelivery | None:
    """
    Fetch delivery with related notification.

    Returns None if delivery not found or not in PENDING status.
    """
    try:
        delivery = NotificationDelivery.objects.select_related(
            "notification",
            "notification__recipient",
        ).get(id=delivery_id)
    except NotificationDelivery.DoesNotExist:
        logger.warning(f"Delivery {delivery_id} not found")
        return None

    if delivery.status != DeliveryStatus.PENDING:
        logger.info(f"Delivery {delivery_id} status is {delivery.status}, skipping")
        return None
    return delivery


def _mark_sent(delivery: NotificationDelivery, targeted: int, reached: int) -> None:
    delivery.status = DeliveryStatus.SENT
    delivery.sent_at = django_timezone.now()
    delivery.devices_targeted = targeted
    delivery.devices_reached = reached
    delivery.attempt_count += 1
    delivery.save(
        update_fields=[
            "status",
            "sent_at",
            "devices_targeted",
            "devices_reached",
            "attempt_count",
            "updated_at",
        ]
    )


def _mark_failed(delivery: NotificationDelivery, targeted: int, reason: str) -> None:
    delivery.status = DeliveryStatus.FAILED
    delivery.failed_at = django_timezone.now()
    delivery.devices_targeted = targeted
    delivery.failure_reason = reason
    delivery.attempt_count += 1
    delivery.save(
        update_fields=[
            "status",
            "failed_at",
            "devices_targeted",
            "failure_reason",
            "attempt_count",
            "updated_at",
        ]
    )


def _mark_skipped(delivery: NotificationDelivery, reason: str) -> None:
    delivery.status = DeliveryStatus.SKIPPED
    delivery.failure_reason = reason
    delivery.save(update_fields=["status", "failure_reason", "updated_at"])


@shared_task(
    bind=True,
    autoretry_for=(DeliveryError,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def deliver_push_notification(self, delivery_id: str) -> bool:
    """
    Send a notification to every active device of its recipient.

    Flow:
        1. Fetch delivery + notification, skip if not PENDING
        2. No active devices: SKIPPED
        3. Send to each device; permanently rejected tokens are deactivated
        4. At least one device reached: SENT
        5. Only permanent failures: FAILED
        6. Transient failure with nothing reached: raise for retry

    Args:
        delivery_id: UUID string of the NotificationDelivery

    Returns:
        True if sent or skipped, False if failed permanently
    """
    delivery = _get_delivery(delivery_id)
    if delivery is None:
        return True

    notification = delivery.notification
    devices = list(PushDevice.objects.filter(user_id=notification.recipient_id, is_active=True))
    if not devices:
        _mark_skipped(delivery, "no_active_devices")
        logger.info(f"Delivery {delivery_id} skipped: user {notification.recipient_id} has no devices")
        return True

    backend = get_push_backend()
    data = {**notification.data, "notification_id": str(notification.pk)}
    reached = 0
    transient_error: DeliveryError | None = None
    last_error: DeliveryError | None = None

    for device in devices:
        target = PushTarget(platform=device.platform, device_kind=device.device_kind, token=device.token)
        try:
            backend.send(target, notification.title, notification.body, data)
            reached += 1
        except DeliveryError as e:
            last_error = e
            if e.is_permanent:
                logger.warning(f"Deactivating push device {device.pk}: {e.code}")
                PushDevice.objects.filter(pk=device.pk).update(is_active=False)
            else:
                transient_error = e

    if reached:
        _mark_sent(delivery, targeted=len(devices), reached=reached)
        return True

    if transient_error is not None and self.request.retries < self.max_retries:
        logger.warning(f"Transient push failure for delivery {delivery_id}: {transient_error.code}, will retry")
        raise transient_error

    _mark_failed(delivery, targeted=len(devices), reason=str(last_error))
    logger.error(f"Push delivery {delivery_id} failed: {last_error}")
    return False
