"""
Tests for RefundService: buyer requests, admin approval through the
Paystack refund API, and denial.
"""

import pytest

from core.exceptions import PermissionDeniedError
from notifications.models import Notification
from payments.adapters import PaystackAdapter, RefundResult
from payments.exceptions import (
    InvalidStateTransitionError,
    PaymentValidationError,
    PaystackInvalidRequestError,
    PaystackTimeoutError,
    RefundAlreadyRequestedError,
    RefundRequestNotFoundError,
)
from payments.models import Escrow, RefundRequest, Transaction
from payments.services import PayoutService, RefundService, WalletService
from payments.state_machines import EscrowStatus, RefundRequestStatus, TransactionStatus
from payments.tests.factories import RefundRequestFactory, TransactionFactory


@pytest.fixture
def refund_request(escrowed_txn, buyer):
    return RefundService.request_refund(escrowed_txn.id, buyer, reason="Camera arrived broken")


@pytest.fixture
def mock_create_refund(mocker):
    return mocker.patch.object(
        PaystackAdapter,
        "create_refund",
        return_value=RefundResult(id="rf_1001", status="pending", amount_kobo=482_500),
    )


@pytest.mark.django_db
class TestRequestRefund:
    def test_opens_request_and_notifies_seller(self, escrowed_txn, buyer, seller):
        refund = RefundService.request_refund(escrowed_txn.id, buyer, reason="  Camera arrived broken ")

        assert refund.status == RefundRequestStatus.REQUESTED
        assert refund.reason == "Camera arrived broken"
        assert refund.buyer == buyer
        note = Notification.objects.get(idempotency_key=f"refund_requested:{refund.id}")
        assert note.recipient == seller
        assert "Camera arrived broken" in note.body

    def test_pending_payment_can_be_refunded(self, pending_txn, buyer):
        refund = RefundService.request_refund(pending_txn.id, buyer, reason="Changed my mind")

        assert refund.is_open

    def test_reason_required(self, escrowed_txn, buyer):
        with pytest.raises(PaymentValidationError) as exc_info:
            RefundService.request_refund(escrowed_txn.id, buyer, reason="   ")

        assert exc_info.value.error_code == "REASON_REQUIRED"

    def test_only_buyer(self, escrowed_txn, seller):
        with pytest.raises(PermissionDeniedError):
            RefundService.request_refund(escrowed_txn.id, seller, reason="Not mine")

    def test_one_open_request_per_transaction(self, refund_request, escrowed_txn, buyer):
        with pytest.raises(RefundAlreadyRequestedError):
            RefundService.request_refund(escrowed_txn.id, buyer, reason="Asking again")

    def test_new_request_after_denial(self, refund_request, escrowed_txn, buyer, admin_user):
        RefundService.deny(refund_request.id, admin_user, comment="Courier shows delivered")

        again = RefundService.request_refund(escrowed_txn.id, buyer, reason="Still broken")

        assert again.pk != refund_request.pk

    @pytest.mark.parametrize(
        "status",
        [
            TransactionStatus.CONFIRMED_PENDING_PAYOUT,
            TransactionStatus.TRANSFER_INITIATED,
            TransactionStatus.COMPLETED,
            TransactionStatus.CANCELLED,
        ],
    )
    def test_not_refundable_after_release(self, buyer, status):
        txn = TransactionFactory(buyer=buyer, status=status)

        with pytest.raises(InvalidStateTransitionError):
            RefundService.request_refund(txn.id, buyer, reason="Too late")


@pytest.mark.django_db
class TestApprove:
    """Tests for the three-phase refund approval."""

    def test_refunds_net_of_gateway_fee(self, refund_request, escrowed_txn, admin_user, mock_create_refund):
        refund = RefundService.approve(refund_request.id, admin_user, comment="Photos confirm damage")

        mock_create_refund.assert_called_once_with("T_charge_camera", 482_500)
        assert refund.status == RefundRequestStatus.REFUNDED
        assert refund.refund_amount_kobo == 482_500
        assert refund.gateway_fee_kobo == 17_500
        assert refund.gateway_refund_id == "rf_1001"
        assert refund.resolved_by == admin_user

    def test_settles_transaction_escrow_and_wallet(self, refund_request, escrowed_txn, admin_user, mock_create_refund):
        RefundService.approve(refund_request.id, admin_user)

        txn = Transaction.objects.get(pk=escrowed_txn.pk)
        assert txn.status == TransactionStatus.REFUNDED
        assert txn.refunded_at is not None
        assert Escrow.objects.get(transaction=txn).status == EscrowStatus.REVERSED
        wallet = WalletService.get_wallet()
        assert wallet.reserved_kobo == 0
        assert wallet.balance_kobo == 0

    def test_notifies_buyer(self, refund_request, buyer, admin_user, mock_create_refund):
        RefundService.approve(refund_request.id, admin_user)

        note = Notification.objects.get(idempotency_key=f"refund_processed:{refund_request.id}")
        assert note.recipient == buyer
        assert "4,825.00" in note.body

    def test_unpaid_transaction_refunds_without_gateway(self, pending_txn, buyer, admin_user, mock_create_refund):
        refund = RefundService.request_refund(pending_txn.id, buyer, reason="Changed my mind")

        refund = RefundService.approve(refund.id, admin_user)

        mock_create_refund.assert_not_called()
        assert refund.refund_amount_kobo == 0
        assert refund.gateway_fee_kobo == 0
        assert Transaction.objects.get(pk=pending_txn.pk).status == TransactionStatus.REFUNDED

    def test_gateway_rejection_reverts_approval(self, refund_request, escrowed_txn, admin_user, mocker):
        mocker.patch.object(
            PaystackAdapter,
            "create_refund",
            side_effect=PaystackInvalidRequestError("Transaction has been fully reversed", status_code=400),
        )

        with pytest.raises(PaystackInvalidRequestError):
            RefundService.approve(refund_request.id, admin_user)

        refund = RefundRequest.objects.get(pk=refund_request.pk)
        assert refund.status == RefundRequestStatus.REQUESTED
        assert refund.failure_reason == "Transaction has been fully reversed"
        assert Transaction.objects.get(pk=escrowed_txn.pk).status == TransactionStatus.IN_ESCROW
        assert WalletService.get_wallet().reserved_kobo == 15_000

    def test_timeout_keeps_approval(self, refund_request, escrowed_txn, admin_user, mocker):
        mocker.patch.object(PaystackAdapter, "create_refund", side_effect=PaystackTimeoutError("timed out"))

        with pytest.raises(PaystackTimeoutError):
            RefundService.approve(refund_request.id, admin_user)

        refund = RefundRequest.objects.get(pk=refund_request.pk)
        assert refund.status == RefundRequestStatus.APPROVED
        assert refund.failure_reason == "timed out"
        assert Transaction.objects.get(pk=escrowed_txn.pk).status == TransactionStatus.REFUND_REQUESTED

    def test_delivery_confirmed_during_refund_call_is_refused(
        self, refund_request, escrowed_txn, buyer, admin_user, payout_destination, mocker
    ):
        mocker.patch.object(PaystackAdapter, "get_balance", return_value=10_000_000)
        initiate = mocker.patch.object(PaystackAdapter, "initiate_transfer")
        refused = []

        def confirm_while_refunding(charge_reference, amount_kobo):
            with pytest.raises(InvalidStateTransitionError) as exc_info:
                PayoutService.confirm_delivery(escrowed_txn.id, buyer)
            refused.append(exc_info.value)
            return RefundResult(id="rf_race", status="pending", amount_kobo=amount_kobo)

        refund_call = mocker.patch.object(PaystackAdapter, "create_refund", side_effect=confirm_while_refunding)

        refund = RefundService.approve(refund_request.id, admin_user)

        assert len(refused) == 1
        assert refused[0].details["current_state"] == TransactionStatus.REFUND_REQUESTED
        assert refund.status == RefundRequestStatus.REFUNDED
        assert refund_call.call_count == 1
        initiate.assert_not_called()
        assert Transaction.objects.get(pk=escrowed_txn.pk).status == TransactionStatus.REFUNDED
        assert Escrow.objects.get(transaction=escrowed_txn).status == EscrowStatus.REVERSED

    def test_rejected_refund_lets_payout_proceed(
        self, refund_request, escrowed_txn, buyer, admin_user, payout_destination, mocker
    ):
        mocker.patch.object(
            PaystackAdapter, "create_refund", side_effect=PaystackInvalidRequestError("Charge not found", status_code=400)
        )
        mocker.patch.object(PaystackAdapter, "get_balance", return_value=0)

        with pytest.raises(PaystackInvalidRequestError):
            RefundService.approve(refund_request.id, admin_user)

        result = PayoutService.confirm_delivery(escrowed_txn.id, buyer)

        assert result.transaction.status == TransactionStatus.CONFIRMED_PENDING_PAYOUT

    def test_escrowed_without_gateway_reference(self, admin_user):
        refund = RefundRequestFactory(transaction__gateway_reference=None)

        with pytest.raises(PaymentValidationError) as exc_info:
            RefundService.approve(refund.id, admin_user)

        assert exc_info.value.error_code == "NO_GATEWAY_REFERENCE"
        assert RefundRequest.objects.get(pk=refund.pk).status == RefundRequestStatus.REQUESTED

    def test_released_transaction_cannot_be_refunded(self, admin_user, mock_create_refund):
        refund = RefundRequestFactory(transaction__status=TransactionStatus.TRANSFER_INITIATED)

        with pytest.raises(InvalidStateTransitionError):
            RefundService.approve(refund.id, admin_user)

        mock_create_refund.assert_not_called()

    def test_approving_twice(self, refund_request, admin_user, mock_create_refund):
        RefundService.approve(refund_request.id, admin_user)

        with pytest.raises(InvalidStateTransitionError):
            RefundService.approve(refund_request.id, admin_user)

        assert mock_create_refund.call_count == 1

    def test_unknown_request(self, admin_user):
        with pytest.raises(RefundRequestNotFoundError):
            RefundService.approve("0b7c1e64-0000-4000-8000-000000000000", admin_user)


@pytest.mark.django_db
class TestDeny:
    def test_rejects_and_leaves_transaction(self, refund_request, escrowed_txn, buyer, admin_user):
        refund = RefundService.deny(refund_request.id, admin_user, comment="Courier shows delivered")

        assert refund.status == RefundRequestStatus.REJECTED
        assert refund.admin_comment == "Courier shows delivered"
        assert Transaction.objects.get(pk=escrowed_txn.pk).status == TransactionStatus.IN_ESCROW
        note = Notification.objects.get(idempotency_key=f"refund_denied:{refund.id}")
        assert note.recipient == buyer

    def test_cannot_deny_resolved_request(self, refund_request, admin_user, mock_create_refund):
        RefundService.approve(refund_request.id, admin_user)

        with pytest.raises(InvalidStateTransitionError):
            RefundService.deny(refund_request.id, admin_user)

    def test_pending_lists_open_requests(self, refund_request, admin_user):
        other = RefundRequestFactory()
        RefundService.deny(other.id, admin_user)

        assert list(RefundService.pending()) == [refund_request]
