"""
Webhook event handlers for Paystack events.

This module provides a handler registry and implementations for
processing the Paystack events the settlement engine cares about:

    charge.success      Inbound credit, reconciled against pending Transactions
    transfer.success    Seller payout confirmed
    transfer.failed     Seller payout failed
    transfer.reversed   Seller payout reversed by the bank

Usage:
    from payments.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler("custom.event")
    def handle_custom_event(webhook_event: WebhookEvent) -> ServiceResult:
        ...

    result = dispatch_webhook(webhook_event)
"""

from __future__ import annotations

import logging
from typing import Callable

from core.services import ServiceResult

from payments.models import WebhookEvent
from payments.services import InboundPayment, PayoutService, ReconciliationService

logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================


# Maps event type strings to handler functions
WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(event_type: str) -> Callable:
    """
    Decorator to register a webhook event handler.

    Args:
        event_type: The Paystack event name (e.g., "charge.success")
    """

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[event_type] = func
        logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Dispatch a webhook event to the appropriate handler.

    Unknown event types are logged and reported as success so Paystack
    does not keep redelivering them.
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)

    if not handler:
        logger.info(
            f"No handler registered for event type: {webhook_event.event_type}",
            extra={"event_key": webhook_event.event_key},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {webhook_event.event_type} to handler",
        extra={"event_key": webhook_event.event_key},
    )
    return handler(webhook_event)


# =============================================================================
# Charge Handlers
# =============================================================================


@register_handler("charge.success")
def handle_charge_success(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Reconcile an inbound credit.

    An unmatched credit is stored for manual review and still counts as
    processed: the event has been durably accounted for.
    """
    data = webhook_event.data
    if not data.get("amount"):
        return ServiceResult.failure(
            "charge.success without an amount",
            error_code="INVALID_WEBHOOK_PAYLOAD",
        )

    outcome = ReconciliationService.reconcile_event(InboundPayment.from_charge(data))

    if outcome.unmatched is not None:
        logger.warning(
            f"charge.success recorded for review ({outcome.unmatched.reason})",
            extra={"event_key": webhook_event.event_key, "unmatched_payment_id": str(outcome.unmatched.id)},
        )
    return ServiceResult.success(outcome)


# =============================================================================
# Transfer Handlers
# =============================================================================


def _transfer_reference(webhook_event: WebhookEvent) -> str | None:
    reference = webhook_event.data.get("reference")
    if not reference:
        logger.error(
            f"{webhook_event.event_type}: Could not extract transfer reference",
            extra={"event_key": webhook_event.event_key},
        )
    return reference


@register_handler("transfer.success")
def handle_transfer_success(webhook_event: WebhookEvent) -> ServiceResult:
    reference = _transfer_reference(webhook_event)
    if not reference:
        return ServiceResult.failure("Transfer event without reference", error_code="INVALID_WEBHOOK_PAYLOAD")

    txn = PayoutService.handle_transfer_success(reference, webhook_event.data)
    return ServiceResult.success(txn)


@register_handler("transfer.failed")
def handle_transfer_failed(webhook_event: WebhookEvent) -> ServiceResult:
    reference = _transfer_reference(webhook_event)
    if not reference:
        return ServiceResult.failure("Transfer event without reference", error_code="INVALID_WEBHOOK_PAYLOAD")

    reason = webhook_event.data.get("reason") or webhook_event.data.get("gateway_response") or "failed"
    txn = PayoutService.handle_transfer_failed(reference, reason=reason, data=webhook_event.data)
    return ServiceResult.success(txn)


@register_handler("transfer.reversed")
def handle_transfer_reversed(webhook_event: WebhookEvent) -> ServiceResult:
    reference = _transfer_reference(webhook_event)
    if not reference:
        return ServiceResult.failure("Transfer event without reference", error_code="INVALID_WEBHOOK_PAYLOAD")

    reason = webhook_event.data.get("reason") or "reversed"
    txn = PayoutService.handle_transfer_reversed(reference, reason=reason, data=webhook_event.data)
    return ServiceResult.success(txn)
