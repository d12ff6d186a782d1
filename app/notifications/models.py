"""
Notification system models.

This module defines the models behind the Notify(user, type, payload)
collaborator used by the settlement engine:
- NotificationType: Templates for each notification kind
- Notification: Individual notifications stored for a user's inbox
- PushDevice: Registered push tokens per user
- NotificationDelivery: Push delivery tracking for a notification

Design Decisions:
    - NotificationType uses integer PK (internal lookup table), rows are
      created on first use from notifications.types.NOTIFICATION_TYPES
    - Notification inherits from BaseModel (timestamps, ordering)
    - NotificationType uses PROTECT (prevent deletion with existing notifications)
    - idempotency_key is unique when set, so a replayed settlement step
      cannot notify twice

Usage:
    from notifications.services import NotificationService

    NotificationService.notify(
        user=seller,
        type_key="payout_queued",
        payload={"product_title": "Desk", "amount": "4,850.00"},
        idempotency_key=f"payout_queued:{txn.id}",
    )
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


# =============================================================================
# Enums
# =============================================================================


class NotificationCategory(models.TextChoices):
    TRANSACTIONAL = "transactional", "Transactional"
    SYSTEM = "system", "System"


class DevicePlatform(models.TextChoices):
    ANDROID = "android", "Android"
    IOS = "ios", "iOS"
    WEB = "web", "Web"
    UNKNOWN = "unknown", "Unknown"


class DeviceKind(models.TextChoices):
    """Which push provider a token belongs to."""

    FCM = "fcm", "Firebase Cloud Messaging"
    EXPO = "expo", "Expo"


class DeliveryStatus(models.TextChoices):
    """
    Status of a push delivery.

    State Flow:
        PENDING -> SENT
        PENDING -> FAILED (permanent error or retries exhausted)
        PENDING -> SKIPPED (no registered device)
    """

    PENDING = "pending", "Pending"
    SENT = "sent", "Sent"
    FAILED = "failed", "Failed"
    SKIPPED = "skipped", "Skipped"


# =============================================================================
# Configuration Models
# =============================================================================


class NotificationType(models.Model):
    """
    Lookup table for notification type definitions.

    Fields:
        key: Unique programmatic identifier (e.g., "payment_received")
        display_name: Human-readable name for admin/UI display
        title_template: Python format string for notification title
        body_template: Python format string for notification body
        is_active: Whether this notification type is currently enabled
        supports_push: Can be delivered via push notification

    Note:
        - Templates use Python str.format() syntax: {placeholder}
        - Missing placeholders raise KeyError during rendering
    """

    key = models.CharField(
        max_length=100,
        unique=True,
        db_index=True,
        help_text="Unique programmatic identifier (e.g., 'payout_queued')",
    )

    display_name = models.CharField(
        max_length=200,
        help_text="Human-readable name for display",
    )

    title_template = models.CharField(
        max_length=500,
        blank=True,
        default="",
        help_text="Python format string template for title",
    )

    body_template = models.TextField(
        blank=True,
        default="",
        help_text="Python format string template for body",
    )

    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Whether this notification type is currently enabled",
    )

    supports_push = models.BooleanField(
        default=True,
        help_text="Can be delivered via push notification",
    )

    category = models.CharField(
        max_length=20,
        choices=NotificationCategory.choices,
        default=NotificationCategory.TRANSACTIONAL,
        help_text="Category for grouping",
    )

    class Meta:
        db_table = "notifications_notification_type"
        verbose_name = "notification type"
        verbose_name_plural = "notification types"
        ordering = ["key"]

    def __str__(self) -> str:
        return f"{self.display_name} ({self.key})"


class Notification(BaseModel):
    """
    Individual notification record for a user.

    Notifications are immutable once created - title and body are
    fully rendered strings serving as historical records.

    Fields:
        notification_type: FK to NotificationType
        recipient: User receiving the notification (scopes all queries)
        title: Fully rendered title string
        body: Fully rendered body string
        data: Payload passed to notify (transaction id, amounts, deep links)
        is_read: Whether recipient has read this notification
        idempotency_key: Unique when set
    """

    notification_type = models.ForeignKey(
        NotificationType,
        on_delete=models.PROTECT,
        related_name="notifications",
        help_text="Type of this notification",
    )

    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notifications",
        db_index=True,
        help_text="User receiving this notification",
    )

    title = models.CharField(
        max_length=500,
        help_text="Fully rendered notification title",
    )

    body = models.TextField(
        blank=True,
        default="",
        help_text="Fully rendered notification body",
    )

    data = models.JSONField(
        default=dict,
        blank=True,
        help_text="Arbitrary context data (deep links, metadata)",
    )

    is_read = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Whether recipient has read this notification",
    )

    idempotency_key = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Idempotency key to prevent duplicate notifications",
    )

    class Meta:
        db_table = "notifications_notification"
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["recipient", "is_read", "-created_at"],
                name="notif_recipient_unread_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["idempotency_key"],
                name="notif_idempotency_key_unique",
                condition=models.Q(idempotency_key__isnull=False),
            ),
        ]

    def __str__(self) -> str:
        read_status = "read" if self.is_read else "unread"
        return f"Notification({self.notification_type.key}) -> User {self.recipient_id} [{read_status}]"


# =============================================================================
# Push Devices & Delivery
# =============================================================================


class PushDevice(BaseModel):
    """
    A push token registered by one of a user's devices.

    A token belongs to at most one user; registering it again moves it to
    the registering user and reactivates it.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="push_devices",
    )

    token = models.CharField(max_length=512, unique=True)

    platform = models.CharField(
        max_length=20,
        choices=DevicePlatform.choices,
        default=DevicePlatform.UNKNOWN,
    )

    device_kind = models.CharField(
        max_length=10,
        choices=DeviceKind.choices,
    )

    is_active = models.BooleanField(default=True, db_index=True)

    class Meta:
        db_table = "notifications_push_device"
        ordering = ["-updated_at"]

    def __str__(self) -> str:
        return f"PushDevice({self.device_kind}/{self.platform}, user={self.user_id})"


class NotificationDelivery(UUIDPrimaryKeyMixin, BaseModel):
    """
    Push delivery tracking for one Notification.

    Tasks receive the delivery id, fan the notification out to every
    active PushDevice of the recipient and record how many were reached.
    """

    notification = models.OneToOneField(
        Notification,
        on_delete=models.CASCADE,
        related_name="delivery",
    )

    status = models.CharField(
        max_length=20,
        choices=DeliveryStatus.choices,
        default=DeliveryStatus.PENDING,
        db_index=True,
    )

    attempt_count = models.PositiveSmallIntegerField(default=0)

    devices_targeted = models.PositiveSmallIntegerField(default=0)

    devices_reached = models.PositiveSmallIntegerField(default=0)

    sent_at = models.DateTimeField(null=True, blank=True)

    failed_at = models.DateTimeField(null=True, blank=True)

    failure_reason = models.TextField(blank=True, default="")

    class Meta:
        db_table = "notifications_delivery"
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"NotificationDelivery({self.notification_id}, {self.status})"
