"""
Tests for the Paystack webhook endpoint, handler dispatch and the
process_webhook_event task.

Tests cover:
- Signature verification over the raw body
- WebhookEvent creation and idempotency
- Task queuing
- charge.success reconciliation and transfer.* outcomes
"""

import pytest

from payments.adapters import PaystackAdapter, TransferResult
from payments.models import Transaction, UnmatchedPayment, WebhookEvent
from payments.models.webhook_event import MAX_WEBHOOK_RETRIES
from payments.services import PayoutService
from payments.state_machines import TransactionStatus, UnmatchedReason, WebhookEventStatus
from payments.tasks import process_webhook_event
from payments.tests.factories import WebhookEventFactory
from payments.webhooks.handlers import WEBHOOK_HANDLERS, dispatch_webhook


def charge_event(reference="T_charge_1", amount=500000, narration="SALM-CAM1-K2QZ-9XBD", charge_id=4_100_001):
    return {
        "event": "charge.success",
        "data": {
            "id": charge_id,
            "reference": reference,
            "amount": amount,
            "status": "success",
            "channel": "dedicated_nuban",
            "paid_at": "2026-03-01T10:15:00.000Z",
            "customer": {"email": "buyer@example.com"},
            "authorization": {"narration": narration},
        },
    }


def transfer_event(event_type, reference, reason=""):
    return {
        "event": event_type,
        "data": {
            "reference": reference,
            "transfer_code": "TRF_camera01",
            "amount": 485000,
            "status": event_type.split(".")[1],
            "reason": reason,
        },
    }


@pytest.fixture
def mock_delay(mocker):
    return mocker.patch("payments.tasks.process_webhook_event.delay")


@pytest.fixture
def initiated_txn(escrowed_txn, buyer, payout_destination, mocker):
    mocker.patch.object(PaystackAdapter, "get_balance", return_value=10_000_000)
    mocker.patch.object(
        PaystackAdapter,
        "initiate_transfer",
        side_effect=lambda **kw: TransferResult(
            reference=kw["reference"], transfer_code="TRF_camera01", status="pending", amount_kobo=kw["amount_kobo"]
        ),
    )
    return PayoutService.confirm_delivery(escrowed_txn.id, buyer).transaction


# =============================================================================
# Endpoint
# =============================================================================


@pytest.mark.django_db
class TestPaystackWebhookSignature:
    def test_missing_signature_returns_401(self, post_webhook, mock_delay):
        response = post_webhook(charge_event(), signature="")

        assert response.status_code == 401
        assert response.content == b"Invalid signature"
        assert not WebhookEvent.objects.exists()
        mock_delay.assert_not_called()

    def test_invalid_signature_returns_401(self, post_webhook, mock_delay):
        response = post_webhook(charge_event(), signature="0" * 128)

        assert response.status_code == 401
        mock_delay.assert_not_called()

    def test_signed_body_without_event_returns_400(self, api_client, paystack_signature):
        body = b'{"data": {"id": 1}}'

        response = api_client.post(
            "/api/v1/payments/webhooks/paystack/",
            data=body,
            content_type="application/json",
            HTTP_X_PAYSTACK_SIGNATURE=paystack_signature(body),
        )

        assert response.status_code == 400

    def test_event_without_identifier_returns_400(self, post_webhook, mock_delay):
        response = post_webhook({"event": "charge.success", "data": {"amount": 100}})

        assert response.status_code == 400
        mock_delay.assert_not_called()

    def test_get_not_allowed(self, api_client):
        response = api_client.get("/api/v1/payments/webhooks/paystack/")

        assert response.status_code == 405


@pytest.mark.django_db
class TestPaystackWebhookEventCreation:
    def test_creates_event_and_queues(self, post_webhook, mock_delay):
        response = post_webhook(charge_event())

        assert response.status_code == 200
        assert response.content == b"Accepted"
        event = WebhookEvent.objects.get(event_key="charge.success:4100001")
        assert event.event_type == "charge.success"
        assert event.status == WebhookEventStatus.PENDING
        mock_delay.assert_called_once_with(str(event.id))

    def test_redelivery_does_not_duplicate(self, post_webhook, mock_delay):
        post_webhook(charge_event())
        post_webhook(charge_event())

        assert WebhookEvent.objects.count() == 1
        assert mock_delay.call_count == 2

    def test_processed_event_short_circuits(self, post_webhook, mock_delay):
        payload = charge_event()
        WebhookEventFactory(
            payload=payload,
            event_key=WebhookEvent.build_event_key(payload),
            status=WebhookEventStatus.PROCESSED,
        )

        response = post_webhook(payload)

        assert response.status_code == 200
        assert response.content == b"Already processed"
        mock_delay.assert_not_called()

    def test_queue_failure_still_acknowledged(self, post_webhook, mock_delay):
        mock_delay.side_effect = ConnectionError("broker down")

        response = post_webhook(charge_event())

        assert response.status_code == 200
        assert WebhookEvent.objects.filter(status=WebhookEventStatus.PENDING).count() == 1


# =============================================================================
# Handlers
# =============================================================================


class TestHandlerRegistry:
    def test_settlement_events_registered(self):
        for event_type in ("charge.success", "transfer.success", "transfer.failed", "transfer.reversed"):
            assert event_type in WEBHOOK_HANDLERS

    @pytest.mark.django_db
    def test_unknown_event_is_acknowledged(self):
        event = WebhookEventFactory(event_type="customeridentification.success")

        result = dispatch_webhook(event)

        assert result.success is True


@pytest.mark.django_db
class TestChargeSuccessHandler:
    def test_reconciles_pending_transaction(self, pending_txn):
        event = WebhookEventFactory(payload=charge_event(), event_type="charge.success")

        result = dispatch_webhook(event)

        assert result.success is True
        assert result.data.applied is True
        txn = Transaction.objects.get(pk=pending_txn.pk)
        assert txn.status == TransactionStatus.IN_ESCROW
        assert txn.payment_channel == "dedicated_nuban"

    def test_unmatched_credit_is_recorded_and_acknowledged(self, db):
        event = WebhookEventFactory(payload=charge_event(narration="gift", reference="T_stray"))

        result = dispatch_webhook(event)

        assert result.success is True
        assert UnmatchedPayment.objects.get(gateway_reference="T_stray").reason == UnmatchedReason.NO_MATCH

    def test_missing_amount_fails(self, db):
        payload = charge_event()
        del payload["data"]["amount"]
        event = WebhookEventFactory(payload=payload)

        result = dispatch_webhook(event)

        assert result.success is False
        assert result.error_code == "INVALID_WEBHOOK_PAYLOAD"


@pytest.mark.django_db
class TestTransferHandlers:
    def test_transfer_success(self, initiated_txn):
        event = WebhookEventFactory(
            event_type="transfer.success",
            payload=transfer_event("transfer.success", initiated_txn.transfer_reference),
        )

        result = dispatch_webhook(event)

        assert result.success is True
        assert Transaction.objects.get(pk=initiated_txn.pk).status == TransactionStatus.COMPLETED

    def test_transfer_failed_records_reason(self, initiated_txn):
        event = WebhookEventFactory(
            event_type="transfer.failed",
            payload=transfer_event("transfer.failed", initiated_txn.transfer_reference, reason="Account dormant"),
        )

        dispatch_webhook(event)

        txn = Transaction.objects.get(pk=initiated_txn.pk)
        assert txn.status == TransactionStatus.TRANSFER_FAILED
        assert txn.transfer_status_message == "Account dormant"

    def test_transfer_reversed(self, initiated_txn):
        event = WebhookEventFactory(
            event_type="transfer.reversed",
            payload=transfer_event("transfer.reversed", initiated_txn.transfer_reference),
        )

        dispatch_webhook(event)

        assert Transaction.objects.get(pk=initiated_txn.pk).status == TransactionStatus.REVERSED

    def test_transfer_without_reference_fails(self, db):
        event = WebhookEventFactory(
            event_type="transfer.success",
            payload={"event": "transfer.success", "data": {"transfer_code": "TRF_x"}},
            event_key="transfer.success:TRF_x",
        )

        result = dispatch_webhook(event)

        assert result.success is False
        assert result.error_code == "INVALID_WEBHOOK_PAYLOAD"


# =============================================================================
# process_webhook_event
# =============================================================================


@pytest.mark.django_db
class TestProcessWebhookEvent:
    def test_marks_processed(self, pending_txn):
        event = WebhookEventFactory(payload=charge_event())

        result = process_webhook_event(str(event.id))

        assert result["status"] == "processed"
        event = WebhookEvent.objects.get(pk=event.pk)
        assert event.status == WebhookEventStatus.PROCESSED
        assert event.processed_at is not None
        assert event.retry_count == 1

    def test_already_processed(self, db):
        event = WebhookEventFactory(status=WebhookEventStatus.PROCESSED)

        assert process_webhook_event(str(event.id))["status"] == "already_processed"

    def test_unknown_event(self, db):
        result = process_webhook_event("2b0d7b3e-0000-4000-8000-000000000000")

        assert result["status"] == "not_found"

    def test_handler_failure_is_recorded(self, db):
        payload = charge_event()
        del payload["data"]["amount"]
        event = WebhookEventFactory(payload=payload)

        result = process_webhook_event(str(event.id))

        assert result["status"] == "handler_failed"
        event = WebhookEvent.objects.get(pk=event.pk)
        assert event.status == WebhookEventStatus.FAILED
        assert event.can_retry

    def test_illegal_transition_is_not_retried(self, initiated_txn):
        PayoutService.handle_transfer_failed(initiated_txn.transfer_reference, reason="failed")
        event = WebhookEventFactory(
            event_type="transfer.success",
            payload=transfer_event("transfer.success", initiated_txn.transfer_reference),
        )

        result = process_webhook_event(str(event.id))

        assert result["status"] == "invalid_transition"
        event = WebhookEvent.objects.get(pk=event.pk)
        assert event.status == WebhookEventStatus.FAILED
        assert event.retry_count == MAX_WEBHOOK_RETRIES
        assert not event.can_retry
        assert "INVALID_STATE_TRANSITION" in event.error_message
        assert Transaction.objects.get(pk=initiated_txn.pk).status == TransactionStatus.TRANSFER_FAILED

    def test_unexpected_error_is_raised_for_retry(self, db, mocker):
        event = WebhookEventFactory()
        mocker.patch("payments.webhooks.handlers.dispatch_webhook", side_effect=RuntimeError("db went away"))

        with pytest.raises(RuntimeError):
            process_webhook_event(str(event.id))

        event = WebhookEvent.objects.get(pk=event.pk)
        assert event.status == WebhookEventStatus.FAILED
        assert "RuntimeError" in event.error_message

    def test_replayed_charge_is_processed_once(self, pending_txn):
        first = WebhookEventFactory(payload=charge_event())
        second = WebhookEventFactory(payload=charge_event(), event_key="charge.success:T_charge_1")

        process_webhook_event(str(first.id))
        process_webhook_event(str(second.id))

        assert WebhookEvent.objects.get(pk=second.pk).status == WebhookEventStatus.PROCESSED
        assert not UnmatchedPayment.objects.exists()


@pytest.mark.django_db
def test_signed_charge_end_to_end(post_webhook, pending_txn):
    """Celery runs eagerly: the POST moves the payment into escrow."""
    response = post_webhook(charge_event())

    assert response.status_code == 200
    assert Transaction.objects.get(pk=pending_txn.pk).status == TransactionStatus.IN_ESCROW
    assert WebhookEvent.objects.get().status == WebhookEventStatus.PROCESSED


