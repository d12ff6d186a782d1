"""
WebhookEvent model for Paystack webhook event tracking.

Stores every verified webhook received from Paystack for idempotent
processing and audit trails. Paystack does not send an event id, so the
unique event_key is derived from the event name and the charge/transfer
identifier in the payload.

Usage:
    from payments.models import WebhookEvent

    event, created = WebhookEvent.objects.get_or_create(
        event_key=WebhookEvent.build_event_key(payload),
        defaults={"event_type": payload["event"], "payload": payload},
    )
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import WebhookEventStatus

MAX_WEBHOOK_RETRIES = 5


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Tracks Paystack webhook events for idempotent processing.

    Processing Flow:
        1. Webhook arrives, verify x-paystack-signature
        2. Insert/get WebhookEvent with event_key
        3. If exists and PROCESSED -> return 200 (duplicate)
        4. Queue process_webhook_event
        5. Task dispatches to the registered handler
        6. Set status to PROCESSED or FAILED
        7. If FAILED, retry_failed_webhooks picks it up later

    Fields:
        event_key: "<event>:<data.id or data.reference>", unique
        event_type: Paystack event name (charge.success, transfer.success, ...)
        payload: Full JSON payload
        status: Processing status
        processed_at: When event was successfully processed
        error_message: Error details if processing failed
        retry_count: Number of processing attempts
    """

    event_key = models.CharField(
        max_length=255,
        unique=True,
        db_index=True,
        help_text="Event name plus gateway object id - unique constraint for idempotency",
    )

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Paystack event type (e.g., 'charge.success')",
    )

    payload = models.JSONField(
        help_text="Full webhook payload from Paystack (JSON)",
    )

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
        help_text="Current processing status",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When event was successfully processed",
    )

    error_message = models.TextField(
        null=True,
        blank=True,
        help_text="Error message if processing failed",
    )

    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of processing attempts",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(fields=["status", "created_at"], name="webhook_status_created_idx"),
            models.Index(fields=["status", "retry_count"], name="webhook_status_retry_idx"),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.event_key})"

    @staticmethod
    def build_event_key(payload: dict) -> str | None:
        """
        Derive the idempotency key for a Paystack payload.

        Returns None when the payload carries neither an id nor a reference.
        """
        event = payload.get("event")
        data = payload.get("data") or {}
        object_id = data.get("id") or data.get("reference") or data.get("transfer_code")
        if not event or not object_id:
            return None
        return f"{event}:{object_id}"

    @property
    def data(self) -> dict:
        return self.payload.get("data") or {}

    @property
    def is_processed(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSED

    @property
    def can_retry(self) -> bool:
        return self.status == WebhookEventStatus.FAILED and self.retry_count < MAX_WEBHOOK_RETRIES

    def mark_processing(self) -> None:
        """
        Mark event as being processed.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.PROCESSING
        self.retry_count += 1

    def mark_processed(self) -> None:
        """
        Mark event as successfully processed.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = None

    def mark_failed(self, error_message: str) -> None:
        """
        Mark event as failed with error message.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message
