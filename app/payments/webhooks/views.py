"""
Webhook endpoint view for Paystack.

The view:
1. Verifies the x-paystack-signature HMAC over the raw body
2. Creates/retrieves the WebhookEvent record (idempotent)
3. Queues the event for async processing
4. Returns immediately

Usage:
    # In urls.py
    from payments.webhooks.views import paystack_webhook

    urlpatterns = [
        path("webhooks/paystack/", paystack_webhook, name="paystack_webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from payments.adapters import PaystackAdapter
from payments.exceptions import PaymentValidationError, WebhookSignatureError
from payments.models import WebhookEvent
from payments.state_machines import WebhookEventStatus

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def paystack_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive and queue Paystack webhook events.

    Security:
    - The signature is checked before the body is parsed
    - CSRF exemption required for external webhooks
    - Only POST requests accepted

    Idempotency:
    - WebhookEvent.event_key is unique
    - Duplicate deliveries return 200 without reprocessing

    Returns:
        HttpResponse with status:
        - 200: Event accepted (new or duplicate)
        - 401: Missing or invalid signature
        - 400: Signed body that is not a usable event
    """
    payload = request.body
    signature = request.headers.get("x-paystack-signature")

    # Step 1: Verify signature
    try:
        event_data = PaystackAdapter.verify_webhook_signature(payload, signature)
    except WebhookSignatureError as e:
        logger.warning(
            "Webhook signature verification failed",
            extra={"error": e.message, "remote_addr": request.META.get("REMOTE_ADDR")},
        )
        return HttpResponse("Invalid signature", status=401)
    except PaymentValidationError as e:
        logger.warning("Signed webhook body rejected", extra={"error": e.message})
        return HttpResponse("Invalid event", status=400)

    event_type = event_data["event"]
    event_key = WebhookEvent.build_event_key(event_data)
    if not event_key:
        logger.warning(f"Webhook {event_type} missing data id and reference")
        return HttpResponse("Invalid event", status=400)

    logger.info(
        f"Received Paystack webhook: {event_type}",
        extra={"event_key": event_key, "event_type": event_type},
    )

    # Step 2: Create/get WebhookEvent (idempotent)
    webhook_event, created = WebhookEvent.objects.get_or_create(
        event_key=event_key,
        defaults={
            "event_type": event_type,
            "payload": event_data,
            "status": WebhookEventStatus.PENDING,
        },
    )

    # Step 3: If already processed, return success
    if not created:
        if webhook_event.status == WebhookEventStatus.PROCESSED:
            logger.info("Webhook already processed, returning success", extra={"event_key": event_key})
            return HttpResponse("Already processed", status=200)

        logger.info(
            f"Webhook already exists with status: {webhook_event.status}",
            extra={"event_key": event_key},
        )

    # Step 4: Queue for async processing
    try:
        from payments.tasks import process_webhook_event

        process_webhook_event.delay(str(webhook_event.id))
    except Exception as e:
        # The event is stored; retry_failed_webhooks picks it up
        logger.error(
            f"Failed to queue webhook: {type(e).__name__}",
            extra={"event_key": event_key},
            exc_info=True,
        )

    return HttpResponse("Accepted", status=200)
