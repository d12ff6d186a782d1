"""
Tests for PayoutService.

Paystack is mocked at PaystackAdapter. The status check scheduled for an
ambiguous transfer is mocked at the task's apply_async, and the payout
queue runs against the mock_redis lock.
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from authentication.tests.factories import UserFactory
from core.exceptions import PermissionDeniedError
from notifications.models import Notification
from payments.adapters import PaystackAdapter, RecipientResult, TransferResult
from payments.exceptions import (
    InvalidStateTransitionError,
    MissingPayoutDestinationError,
    PaymentValidationError,
    PaystackInvalidRequestError,
    PaystackTimeoutError,
    PaystackUnavailableError,
)
from payments.models import Escrow, PayoutAttempt, PayoutAttemptStatus, PayoutDestination, Transaction
from payments.services import PayoutOutcome, PayoutService, WalletService
from payments.services.references import transfer_reference_for
from payments.state_machines import EscrowStatus, TransactionStatus
from payments.tests.factories import PayoutDestinationFactory, TransactionFactory


def transfer(txn, status="pending", transfer_code="TRF_camera01"):
    return TransferResult(
        reference=transfer_reference_for(txn.id),
        transfer_code=transfer_code,
        status=status,
        amount_kobo=485_000,
        raw_response={"status": status, "transfer_code": transfer_code},
    )


@pytest.fixture
def mock_verify_task(mocker):
    return mocker.patch("payments.tasks.reconcile_transfer_status.apply_async")


@pytest.fixture
def funded(mocker):
    """Paystack balance of ₦100,000."""
    return mocker.patch.object(PaystackAdapter, "get_balance", return_value=10_000_000)


def queued_txn(amount_kobo, queued_minutes_ago):
    txn = TransactionFactory(
        status=TransactionStatus.CONFIRMED_PENDING_PAYOUT,
        amount_kobo=amount_kobo,
        commission_kobo=amount_kobo * 3 // 100,
        seller_share_kobo=amount_kobo - amount_kobo * 3 // 100,
        paid_at=timezone.now() - timedelta(days=1),
        payout_queued_at=timezone.now() - timedelta(minutes=queued_minutes_ago),
    )
    PayoutDestinationFactory(seller=txn.seller)
    return txn


@pytest.mark.django_db
class TestDestinations:
    def test_register_creates_destination(self, seller):
        destination = PayoutService.register_destination(
            seller, account_number="0690000031", bank_code="044", account_name="Tolu Ade", bank_name="Access Bank"
        )

        assert destination.seller == seller
        assert destination.recipient_code == ""
        assert not destination.is_provisioned

    def test_changing_account_drops_recipient(self, payout_destination, seller):
        PayoutService.register_destination(
            seller, account_number="0123000000", bank_code="058", account_name="Tolu Ade"
        )

        destination = PayoutDestination.objects.get(seller=seller)
        assert destination.recipient_code == ""
        assert destination.bank_code == "058"

    def test_renaming_keeps_recipient(self, payout_destination, seller):
        PayoutService.register_destination(
            seller, account_number="0690000031", bank_code="044", account_name="TOLU ADE"
        )

        assert PayoutDestination.objects.get(seller=seller).recipient_code == "RCP_seller001"

    def test_ensure_provisions_recipient_once(self, seller, mocker):
        PayoutDestinationFactory(seller=seller, recipient_code="")
        create = mocker.patch.object(
            PaystackAdapter, "create_transfer_recipient", return_value=RecipientResult(recipient_code="RCP_new")
        )

        PayoutService.ensure_payout_destination(seller)
        destination = PayoutService.ensure_payout_destination(seller)

        assert destination.recipient_code == "RCP_new"
        create.assert_called_once()

    def test_ensure_without_destination(self, seller):
        with pytest.raises(MissingPayoutDestinationError):
            PayoutService.ensure_payout_destination(seller)


@pytest.mark.django_db
class TestConfirmDelivery:
    """Tests for buyer-triggered release of escrow."""

    def test_starts_transfer(self, escrowed_txn, buyer, payout_destination, funded, mocker):
        initiate = mocker.patch.object(
            PaystackAdapter, "initiate_transfer", return_value=transfer(escrowed_txn)
        )

        result = PayoutService.confirm_delivery(escrowed_txn.id, buyer)

        assert result.outcome == PayoutOutcome.INITIATED
        txn = Transaction.objects.get(pk=escrowed_txn.pk)
        assert txn.status == TransactionStatus.TRANSFER_INITIATED
        assert txn.transfer_reference == transfer_reference_for(txn.id)
        assert txn.transfer_code == "TRF_camera01"
        assert txn.seller_share_kobo == 485_000
        assert txn.commission_kobo == 15_000
        initiate.assert_called_once_with(
            amount_kobo=485_000,
            recipient_code="RCP_seller001",
            reference=txn.transfer_reference,
            reason="Payout for SALM-CAM1-K2QZ-9XBD",
        )
        assert Escrow.objects.get(transaction=txn).status == EscrowStatus.RELEASED
        attempt = PayoutAttempt.objects.get(transaction=txn)
        assert attempt.status == PayoutAttemptStatus.SUBMITTED
        assert Notification.objects.filter(idempotency_key=f"payout_initiated:{txn.id}").exists()

    def test_result_payload(self, escrowed_txn, buyer, payout_destination, funded, mocker):
        mocker.patch.object(PaystackAdapter, "initiate_transfer", return_value=transfer(escrowed_txn))

        data = PayoutService.confirm_delivery(escrowed_txn.id, buyer).to_dict()

        assert data["outcome"] == "transfer_initiated"
        assert data["status"] == TransactionStatus.TRANSFER_INITIATED
        assert data["seller_share_kobo"] == 485_000

    def test_immediate_success_completes(self, escrowed_txn, buyer, payout_destination, funded, mocker):
        mocker.patch.object(
            PaystackAdapter, "initiate_transfer", return_value=transfer(escrowed_txn, status="success")
        )

        result = PayoutService.confirm_delivery(escrowed_txn.id, buyer)

        assert result.outcome == PayoutOutcome.COMPLETED
        assert Transaction.objects.get(pk=escrowed_txn.pk).status == TransactionStatus.COMPLETED
        assert WalletService.get_wallet().balance_kobo == 15_000

    def test_otp_required(self, escrowed_txn, buyer, payout_destination, funded, mocker):
        mocker.patch.object(PaystackAdapter, "initiate_transfer", return_value=transfer(escrowed_txn, status="otp"))

        result = PayoutService.confirm_delivery(escrowed_txn.id, buyer)

        assert result.outcome == PayoutOutcome.OTP_REQUIRED
        txn = Transaction.objects.get(pk=escrowed_txn.pk)
        assert txn.otp_required is True
        assert PayoutAttempt.objects.get(transaction=txn).status == PayoutAttemptStatus.OTP_REQUIRED

    def test_insufficient_balance_queues(self, escrowed_txn, buyer, payout_destination, mocker):
        mocker.patch.object(PaystackAdapter, "get_balance", return_value=100_000)
        initiate = mocker.patch.object(PaystackAdapter, "initiate_transfer")

        result = PayoutService.confirm_delivery(escrowed_txn.id, buyer)

        assert result.outcome == PayoutOutcome.QUEUED
        txn = Transaction.objects.get(pk=escrowed_txn.pk)
        assert txn.status == TransactionStatus.CONFIRMED_PENDING_PAYOUT
        assert txn.payout_queued_at is not None
        initiate.assert_not_called()
        assert Notification.objects.filter(idempotency_key=f"payout_queued:{txn.id}").exists()

    def test_unreadable_balance_queues(self, escrowed_txn, buyer, payout_destination, mocker):
        mocker.patch.object(PaystackAdapter, "get_balance", side_effect=PaystackUnavailableError("down"))

        result = PayoutService.confirm_delivery(escrowed_txn.id, buyer)

        assert result.outcome == PayoutOutcome.QUEUED

    def test_recipient_provisioning_failure_queues(self, escrowed_txn, buyer, seller, mocker):
        PayoutDestinationFactory(seller=seller, recipient_code="")
        mocker.patch.object(
            PaystackAdapter, "create_transfer_recipient", side_effect=PaystackTimeoutError("timed out")
        )

        result = PayoutService.confirm_delivery(escrowed_txn.id, buyer)

        assert result.outcome == PayoutOutcome.QUEUED

    def test_seller_without_destination(self, escrowed_txn, buyer):
        with pytest.raises(MissingPayoutDestinationError):
            PayoutService.confirm_delivery(escrowed_txn.id, buyer)

        assert Transaction.objects.get(pk=escrowed_txn.pk).status == TransactionStatus.IN_ESCROW

    def test_only_buyer_may_confirm(self, escrowed_txn, seller):
        with pytest.raises(PermissionDeniedError) as exc_info:
            PayoutService.confirm_delivery(escrowed_txn.id, seller)

        assert exc_info.value.error_code == "NOT_TRANSACTION_BUYER"

    def test_requires_escrow(self, pending_txn, buyer):
        with pytest.raises(InvalidStateTransitionError):
            PayoutService.confirm_delivery(pending_txn.id, buyer)

    def test_second_confirmation_rejected(self, escrowed_txn, buyer, payout_destination, funded, mocker):
        initiate = mocker.patch.object(PaystackAdapter, "initiate_transfer", return_value=transfer(escrowed_txn))
        PayoutService.confirm_delivery(escrowed_txn.id, buyer)

        with pytest.raises(InvalidStateTransitionError):
            PayoutService.confirm_delivery(escrowed_txn.id, buyer)

        assert initiate.call_count == 1

    def test_rejected_transfer_fails(self, escrowed_txn, buyer, payout_destination, funded, mocker):
        mocker.patch.object(
            PaystackAdapter,
            "initiate_transfer",
            side_effect=PaystackInvalidRequestError("Recipient account is invalid", status_code=400),
        )

        result = PayoutService.confirm_delivery(escrowed_txn.id, buyer)

        assert result.outcome == PayoutOutcome.FAILED
        txn = Transaction.objects.get(pk=escrowed_txn.pk)
        assert txn.status == TransactionStatus.TRANSFER_FAILED
        assert txn.transfer_status_message == "Recipient account is invalid"
        assert PayoutAttempt.objects.get(transaction=txn).status == PayoutAttemptStatus.FAILED
        assert Escrow.objects.get(transaction=txn).status == EscrowStatus.TRANSFER_FAILED
        # Commission stays reserved until someone resolves the failed payout
        assert WalletService.get_wallet().reserved_kobo == 15_000

    def test_timeout_schedules_status_check(
        self, escrowed_txn, buyer, payout_destination, funded, mock_verify_task, mocker
    ):
        mocker.patch.object(PaystackAdapter, "initiate_transfer", side_effect=PaystackTimeoutError("timed out"))

        result = PayoutService.confirm_delivery(escrowed_txn.id, buyer)

        assert result.outcome == PayoutOutcome.PENDING_VERIFICATION
        assert Transaction.objects.get(pk=escrowed_txn.pk).status == TransactionStatus.TRANSFER_INITIATED
        assert PayoutAttempt.objects.get(transaction=escrowed_txn).status == PayoutAttemptStatus.UNKNOWN
        mock_verify_task.assert_called_once_with(args=[str(escrowed_txn.id)], countdown=60)


@pytest.mark.django_db
class TestTransferOutcomes:
    @pytest.fixture
    def initiated_txn(self, escrowed_txn, buyer, payout_destination, funded, mocker):
        mocker.patch.object(PaystackAdapter, "initiate_transfer", return_value=transfer(escrowed_txn))
        return PayoutService.confirm_delivery(escrowed_txn.id, buyer).transaction

    def test_success_captures_commission(self, initiated_txn, seller):
        txn = PayoutService.handle_transfer_success(initiated_txn.transfer_reference)

        assert txn.status == TransactionStatus.COMPLETED
        wallet = WalletService.get_wallet()
        assert wallet.balance_kobo == 15_000
        assert wallet.reserved_kobo == 0
        assert Escrow.objects.get(transaction=txn).status == EscrowStatus.COMPLETED
        assert PayoutAttempt.objects.get(transaction=txn).status == PayoutAttemptStatus.SUCCEEDED
        note = Notification.objects.get(idempotency_key=f"payout_completed:{txn.id}")
        assert note.recipient == seller

    def test_success_replay_is_idempotent(self, initiated_txn):
        PayoutService.handle_transfer_success(initiated_txn.transfer_reference)
        txn = PayoutService.handle_transfer_success(initiated_txn.transfer_reference)

        assert txn.status == TransactionStatus.COMPLETED
        assert WalletService.get_wallet().balance_kobo == 15_000
        assert Notification.objects.filter(idempotency_key=f"payout_completed:{txn.id}").count() == 1

    def test_failed(self, initiated_txn):
        txn = PayoutService.handle_transfer_failed(initiated_txn.transfer_reference, reason="Account closed")

        assert txn.status == TransactionStatus.TRANSFER_FAILED
        assert txn.transfer_status_message == "Account closed"
        assert Notification.objects.filter(idempotency_key=f"payout_failed:{txn.id}").exists()

    def test_reversed(self, initiated_txn):
        txn = PayoutService.handle_transfer_reversed(initiated_txn.transfer_reference, reason="Bank reversal")

        assert txn.status == TransactionStatus.REVERSED
        assert Escrow.objects.get(transaction=txn).status == EscrowStatus.REVERSED

    def test_success_after_failure_is_illegal(self, initiated_txn):
        PayoutService.handle_transfer_failed(initiated_txn.transfer_reference, reason="failed")

        with pytest.raises(InvalidStateTransitionError):
            PayoutService.handle_transfer_success(initiated_txn.transfer_reference)

    def test_unknown_reference(self, db):
        assert PayoutService.handle_transfer_success("payout-unknown") is None
        assert PayoutService.handle_transfer_failed(None) is None


@pytest.mark.django_db
class TestFinalizeOtp:
    @pytest.fixture
    def otp_txn(self, escrowed_txn, buyer, payout_destination, funded, mocker):
        mocker.patch.object(PaystackAdapter, "initiate_transfer", return_value=transfer(escrowed_txn, status="otp"))
        return PayoutService.confirm_delivery(escrowed_txn.id, buyer).transaction

    def test_submits_otp(self, otp_txn, admin_user, mocker):
        finalize = mocker.patch.object(
            PaystackAdapter, "finalize_transfer", return_value=transfer(otp_txn, status="pending")
        )

        result = PayoutService.finalize_otp(otp_txn.id, "928783", admin_user)

        finalize.assert_called_once_with("TRF_camera01", "928783")
        assert result.outcome == PayoutOutcome.INITIATED
        assert Transaction.objects.get(pk=otp_txn.pk).otp_required is False

    def test_rejected_otp_is_raised(self, otp_txn, admin_user, mocker):
        mocker.patch.object(
            PaystackAdapter,
            "finalize_transfer",
            side_effect=PaystackInvalidRequestError("Invalid OTP", status_code=400),
        )

        with pytest.raises(PaystackInvalidRequestError):
            PayoutService.finalize_otp(otp_txn.id, "000000", admin_user)

        assert Transaction.objects.get(pk=otp_txn.pk).status == TransactionStatus.TRANSFER_INITIATED
        assert PayoutAttempt.objects.filter(transaction=otp_txn, status=PayoutAttemptStatus.FAILED).count() == 1

    def test_not_waiting_for_otp(self, escrowed_txn, buyer, payout_destination, funded, admin_user, mocker):
        mocker.patch.object(PaystackAdapter, "initiate_transfer", return_value=transfer(escrowed_txn))
        PayoutService.confirm_delivery(escrowed_txn.id, buyer)

        with pytest.raises(PaymentValidationError) as exc_info:
            PayoutService.finalize_otp(escrowed_txn.id, "123456", admin_user)

        assert exc_info.value.error_code == "OTP_NOT_REQUIRED"


@pytest.mark.django_db
class TestPayoutQueue:
    """Tests for the CONFIRMED_PENDING_PAYOUT drain."""

    def test_pays_oldest_first_within_balance(self, mock_redis, mocker):
        oldest = queued_txn(500_000, queued_minutes_ago=30)
        middle = queued_txn(300_000, queued_minutes_ago=20)
        newest = queued_txn(100_000, queued_minutes_ago=10)
        mocker.patch.object(PaystackAdapter, "get_balance", return_value=800_000)
        initiate = mocker.patch.object(
            PaystackAdapter,
            "initiate_transfer",
            side_effect=lambda **kw: TransferResult(
                reference=kw["reference"], transfer_code="TRF_q", status="pending", amount_kobo=kw["amount_kobo"]
            ),
        )

        run = PayoutService.process_queued_payouts()

        # 485,000 + 291,000 fit in 800,000; the next 97,000 does not
        assert run.initiated == 2
        assert run.remaining == 1
        assert run.balance_kobo == 800_000
        assert [c.kwargs["amount_kobo"] for c in initiate.call_args_list] == [485_000, 291_000]
        assert Transaction.objects.get(pk=oldest.pk).status == TransactionStatus.TRANSFER_INITIATED
        assert Transaction.objects.get(pk=middle.pk).status == TransactionStatus.TRANSFER_INITIATED
        assert Transaction.objects.get(pk=newest.pk).status == TransactionStatus.CONFIRMED_PENDING_PAYOUT

    def test_large_old_payout_is_not_starved(self, mock_redis, mocker):
        big = queued_txn(2_000_000, queued_minutes_ago=30)
        small = queued_txn(100_000, queued_minutes_ago=10)
        mocker.patch.object(PaystackAdapter, "get_balance", return_value=500_000)
        initiate = mocker.patch.object(PaystackAdapter, "initiate_transfer")

        run = PayoutService.process_queued_payouts()

        assert run.initiated == 0
        assert run.remaining == 2
        initiate.assert_not_called()
        assert Transaction.objects.get(pk=big.pk).status == TransactionStatus.CONFIRMED_PENDING_PAYOUT
        assert Transaction.objects.get(pk=small.pk).status == TransactionStatus.CONFIRMED_PENDING_PAYOUT

    def test_balance_failure_leaves_queue(self, mock_redis, mocker):
        queued_txn(500_000, queued_minutes_ago=30)
        mocker.patch.object(PaystackAdapter, "get_balance", side_effect=PaystackUnavailableError("down"))

        run = PayoutService.process_queued_payouts()

        assert run.balance_kobo is None
        assert run.remaining == 1
        assert run.initiated == 0

    def test_failed_item_does_not_stop_the_run(self, mock_redis, mocker):
        orphan = TransactionFactory(
            status=TransactionStatus.CONFIRMED_PENDING_PAYOUT,
            commission_kobo=15_000,
            seller_share_kobo=485_000,
            payout_queued_at=timezone.now() - timedelta(minutes=40),
        )
        paid = queued_txn(500_000, queued_minutes_ago=30)
        mocker.patch.object(PaystackAdapter, "get_balance", return_value=10_000_000)
        mocker.patch.object(PaystackAdapter, "initiate_transfer", return_value=transfer(paid))

        run = PayoutService.process_queued_payouts()

        assert run.failed == 1
        assert run.initiated == 1
        assert Transaction.objects.get(pk=orphan.pk).status == TransactionStatus.CONFIRMED_PENDING_PAYOUT

    def test_extends_lock_per_item(self, mock_redis, mocker):
        queued_txn(500_000, queued_minutes_ago=30)
        queued_txn(300_000, queued_minutes_ago=20)
        mocker.patch.object(PaystackAdapter, "get_balance", return_value=10_000_000)
        mocker.patch.object(
            PaystackAdapter,
            "initiate_transfer",
            side_effect=lambda **kw: TransferResult(
                reference=kw["reference"], transfer_code="TRF_q", status="pending", amount_kobo=kw["amount_kobo"]
            ),
        )

        PayoutService.process_queued_payouts()

        # two extends plus the final release
        assert mock_redis.eval.call_count == 3

    def test_concurrent_run_is_skipped(self, mock_redis, mocker):
        mock_redis.set.return_value = False
        get_balance = mocker.patch.object(PaystackAdapter, "get_balance")

        run = PayoutService.process_queued_payouts()

        assert run.skipped is True
        get_balance.assert_not_called()

    def test_empty_queue_skips_balance_check(self, mock_redis, mocker, db):
        get_balance = mocker.patch.object(PaystackAdapter, "get_balance")

        run = PayoutService.process_queued_payouts()

        assert run.remaining == 0
        get_balance.assert_not_called()


@pytest.mark.django_db
class TestForcePayout:
    def test_sends_without_balance_check(self, admin_user, mocker):
        txn = queued_txn(500_000, queued_minutes_ago=30)
        get_balance = mocker.patch.object(PaystackAdapter, "get_balance")
        mocker.patch.object(PaystackAdapter, "initiate_transfer", return_value=transfer(txn))

        result = PayoutService.force_payout(txn.id, admin_user)

        assert result.outcome == PayoutOutcome.INITIATED
        assert Transaction.objects.get(pk=txn.pk).status == TransactionStatus.TRANSFER_INITIATED
        get_balance.assert_not_called()

    def test_only_queued_payouts(self, escrowed_txn, admin_user):
        with pytest.raises(InvalidStateTransitionError):
            PayoutService.force_payout(escrowed_txn.id, admin_user)


@pytest.mark.django_db
class TestReconcileTransferStatus:
    @pytest.fixture
    def ambiguous_txn(self, escrowed_txn, buyer, payout_destination, funded, mock_verify_task, mocker):
        mocker.patch.object(PaystackAdapter, "initiate_transfer", side_effect=PaystackTimeoutError("timed out"))
        return PayoutService.confirm_delivery(escrowed_txn.id, buyer).transaction

    def test_transfer_found_successful(self, ambiguous_txn, mocker):
        mocker.patch.object(
            PaystackAdapter, "verify_transfer", return_value=transfer(ambiguous_txn, status="success")
        )

        status = PayoutService.reconcile_transfer_status(ambiguous_txn.id)

        assert status == TransactionStatus.COMPLETED
        assert PayoutAttempt.objects.get(transaction=ambiguous_txn).status == PayoutAttemptStatus.SUCCEEDED

    def test_transfer_still_pending(self, ambiguous_txn, mocker):
        mocker.patch.object(
            PaystackAdapter, "verify_transfer", return_value=transfer(ambiguous_txn, status="pending")
        )

        status = PayoutService.reconcile_transfer_status(ambiguous_txn.id)

        assert status == TransactionStatus.TRANSFER_INITIATED
        assert Transaction.objects.get(pk=ambiguous_txn.pk).transfer_code == "TRF_camera01"

    def test_transfer_never_created_is_resent(self, ambiguous_txn, mocker):
        mocker.patch.object(
            PaystackAdapter,
            "verify_transfer",
            side_effect=PaystackInvalidRequestError("Transfer not found", status_code=404),
        )
        initiate = mocker.patch.object(PaystackAdapter, "initiate_transfer", return_value=transfer(ambiguous_txn))

        status = PayoutService.reconcile_transfer_status(ambiguous_txn.id)

        assert status == TransactionStatus.TRANSFER_INITIATED
        assert initiate.call_args.kwargs["reference"] == ambiguous_txn.transfer_reference
        assert PayoutAttempt.objects.filter(transaction=ambiguous_txn).count() == 2

    def test_gateway_outage_is_raised(self, ambiguous_txn, mocker):
        mocker.patch.object(PaystackAdapter, "verify_transfer", side_effect=PaystackUnavailableError("down"))

        with pytest.raises(PaystackUnavailableError):
            PayoutService.reconcile_transfer_status(ambiguous_txn.id)

    def test_settled_transaction_is_left_alone(self, escrowed_txn, mocker):
        verify = mocker.patch.object(PaystackAdapter, "verify_transfer")

        assert PayoutService.reconcile_transfer_status(escrowed_txn.id) == TransactionStatus.IN_ESCROW
        verify.assert_not_called()


@pytest.mark.django_db
def test_payouts_belong_to_their_seller(escrowed_txn, buyer, payout_destination, funded, mocker):
    """A second seller's destination is never used for this sale."""
    PayoutDestinationFactory(seller=UserFactory(), recipient_code="RCP_someone_else")
    initiate = mocker.patch.object(PaystackAdapter, "initiate_transfer", return_value=transfer(escrowed_txn))

    PayoutService.confirm_delivery(escrowed_txn.id, buyer)

    assert initiate.call_args.kwargs["recipient_code"] == "RCP_seller001"
