"""
Celery tasks for payment processing.

This module provides async tasks for:
- Processing Paystack webhook events
- Retrying failed webhook events
- Draining the payout queue
- Settlement side effects (receipt and notifications) after escrow entry
- Resolving transfers whose outcome is unknown
- Cancelling abandoned payments

Usage:
    from payments.tasks import process_webhook_event

    # Queue a webhook for async processing
    process_webhook_event.delay(webhook_event_id)

    # Drain the payout queue (typically via celery-beat)
    from payments.tasks import process_queued_payouts
    process_queued_payouts.delay()
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from celery import shared_task
from django.db import OperationalError
from django.utils import timezone

from payments.exceptions import InvalidStateTransitionError, PaystackError
from payments.models import WebhookEvent
from payments.models.webhook_event import MAX_WEBHOOK_RETRIES
from payments.state_machines import WebhookEventStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

STUCK_PROCESSING_THRESHOLD_MINUTES = 30


# =============================================================================
# Webhook Processing Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_WEBHOOK_RETRIES},
    acks_late=True,
)
def process_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Process a Paystack webhook event asynchronously.

    This task:
    1. Loads the WebhookEvent by ID
    2. Checks if already processed (idempotency)
    3. Marks as processing
    4. Dispatches to the registered handler
    5. Marks as processed or failed

    An illegal state transition is recorded as a failure and logged at
    ERROR without a retry; replaying it cannot succeed.

    Raises:
        Exception: Re-raised to trigger Celery retry mechanism
    """
    from payments.webhooks.handlers import dispatch_webhook

    if isinstance(webhook_event_id, str):
        webhook_event_id = UUID(webhook_event_id)

    try:
        webhook_event = WebhookEvent.objects.get(id=webhook_event_id)
    except WebhookEvent.DoesNotExist:
        logger.error("WebhookEvent not found", extra={"webhook_event_id": str(webhook_event_id)})
        return {"status": "not_found", "webhook_event_id": str(webhook_event_id)}

    if webhook_event.status == WebhookEventStatus.PROCESSED:
        logger.info(
            "WebhookEvent already processed, skipping",
            extra={"webhook_event_id": str(webhook_event_id), "event_key": webhook_event.event_key},
        )
        return {"status": "already_processed", "webhook_event_id": str(webhook_event_id)}

    webhook_event.mark_processing()
    webhook_event.save()

    logger.info(
        f"Dispatching webhook: {webhook_event.event_type}",
        extra={
            "webhook_event_id": str(webhook_event_id),
            "event_key": webhook_event.event_key,
            "retry_count": webhook_event.retry_count,
        },
    )

    try:
        result = dispatch_webhook(webhook_event)
    except InvalidStateTransitionError as e:
        webhook_event.mark_failed(f"{e.error_code}: {e.message}")
        webhook_event.retry_count = MAX_WEBHOOK_RETRIES
        webhook_event.save()
        logger.error(
            f"Webhook rejected by state machine: {e.message}",
            extra={"webhook_event_id": str(webhook_event_id), "event_key": webhook_event.event_key, **e.details},
        )
        return {"status": "invalid_transition", "webhook_event_id": str(webhook_event_id)}
    except Exception as e:
        error_msg = f"{type(e).__name__}: {str(e)}"
        webhook_event.mark_failed(error_msg)
        webhook_event.save()
        logger.exception(
            "Webhook processing failed with exception",
            extra={"webhook_event_id": str(webhook_event_id), "event_key": webhook_event.event_key},
        )
        raise

    if result.success:
        webhook_event.mark_processed()
        webhook_event.save()
        return {"status": "processed", "webhook_event_id": str(webhook_event_id)}

    error_msg = result.error or "Handler returned failure"
    webhook_event.mark_failed(error_msg)
    webhook_event.save()
    logger.warning(
        f"Webhook handler failed: {error_msg}",
        extra={
            "webhook_event_id": str(webhook_event_id),
            "event_key": webhook_event.event_key,
            "error_code": result.error_code,
        },
    )
    return {"status": "handler_failed", "webhook_event_id": str(webhook_event_id), "error": error_msg}


@shared_task
def retry_failed_webhooks() -> dict:
    """
    Periodic task to retry failed webhook events.

    Also resets events stuck in PROCESSING (worker crash) so they are
    picked up on the next run.
    """
    threshold = timezone.now() - timedelta(minutes=STUCK_PROCESSING_THRESHOLD_MINUTES)
    reset_count = 0
    for webhook in WebhookEvent.objects.filter(status=WebhookEventStatus.PROCESSING, updated_at__lt=threshold):
        webhook.mark_failed("Processing timed out - reset for retry")
        webhook.save()
        reset_count += 1
        logger.warning("Reset stuck webhook", extra={"webhook_event_id": str(webhook.id)})

    failed_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.FAILED,
        retry_count__lt=MAX_WEBHOOK_RETRIES,
    ).order_by("created_at")[:100]

    queued_count = 0
    for webhook in failed_webhooks:
        process_webhook_event.delay(str(webhook.id))
        queued_count += 1

    if queued_count or reset_count:
        logger.info(f"Queued {queued_count} failed webhooks for retry, reset {reset_count} stuck")
    return {"queued_count": queued_count, "reset_count": reset_count}


# =============================================================================
# Payout Tasks
# =============================================================================


@shared_task
def process_queued_payouts() -> dict:
    """Drain CONFIRMED_PENDING_PAYOUT while the Paystack balance lasts."""
    from payments.services import PayoutService

    run = PayoutService.process_queued_payouts()
    return {
        "skipped": run.skipped,
        "balance_kobo": run.balance_kobo,
        "initiated": run.initiated,
        "failed": run.failed,
        "remaining": run.remaining,
    }


@shared_task(
    bind=True,
    autoretry_for=(PaystackError,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_kwargs={"max_retries": 5},
)
def reconcile_transfer_status(self, transaction_id: str) -> str:
    """Resolve a TRANSFER_INITIATED Transaction whose transfer call was ambiguous."""
    from payments.services import PayoutService

    return PayoutService.reconcile_transfer_status(transaction_id)


# =============================================================================
# Settlement Side Effects
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(OperationalError,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def deliver_settlement_side_effects(self, transaction_id: str) -> bool:
    """
    Receipt and party notifications after escrow entry.

    Returns False when something is still missing; retry_pending_side_effects
    picks those up on its next sweep.
    """
    from payments.services import EscrowService

    return EscrowService.deliver_side_effects(transaction_id)


@shared_task
def retry_pending_side_effects() -> dict:
    """Sweep escrowed Transactions whose side effects never completed."""
    from payments.services import EscrowService

    pending_ids = list(EscrowService.pending_side_effects().values_list("id", flat=True)[:100])
    completed = 0
    for transaction_id in pending_ids:
        try:
            if EscrowService.deliver_side_effects(transaction_id):
                completed += 1
        except Exception:
            logger.exception("Side effect retry failed", extra={"transaction_id": str(transaction_id)})

    if pending_ids:
        logger.info(f"Side effect sweep: {completed}/{len(pending_ids)} completed")
    return {"pending": len(pending_ids), "completed": completed}


# =============================================================================
# Abandoned Payments
# =============================================================================


@shared_task
def expire_abandoned_payments() -> dict:
    from payments.services import PaymentInitiator

    return {"expired": PaymentInitiator.expire_abandoned()}
