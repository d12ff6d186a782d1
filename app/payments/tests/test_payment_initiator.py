"""
Tests for PaymentInitiator: purchase initiation, channel resolution,
buyer cancellation and expiry of abandoned payments.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from core.exceptions import PermissionDeniedError
from marketplace.tests.factories import ProductFactory
from notifications.models import Notification
from payments.adapters import PaystackAdapter
from payments.adapters.paystack_adapter import CustomerResult, DedicatedAccountResult
from payments.exceptions import (
    InvalidStateTransitionError,
    PaymentValidationError,
    PaystackUnavailableError,
    PendingPaymentExistsError,
    ProductAlreadySoldError,
    ProductNotFoundError,
)
from payments.models import DedicatedAccount, Transaction
from payments.services import PaymentInitiator
from payments.services.escrow_service import EscrowService
from payments.state_machines import ChannelType, TransactionStatus
from payments.tests.factories import PLATFORM_ACCOUNT, DedicatedAccountFactory, TransactionFactory


@pytest.fixture(autouse=True)
def manual_channel(settings):
    settings.PAYMENT_CHANNEL_MODE = ChannelType.MANUAL_TRANSFER
    settings.PLATFORM_COLLECTION_ACCOUNT = dict(PLATFORM_ACCOUNT, bank_code="035")


@pytest.fixture
def dedicated_mode(settings, mocker):
    settings.PAYMENT_CHANNEL_MODE = ChannelType.DEDICATED_ACCOUNT
    customer = mocker.patch.object(
        PaystackAdapter,
        "create_customer",
        return_value=CustomerResult(customer_code="CUS_ada001", email="buyer@example.com"),
    )
    account = mocker.patch.object(
        PaystackAdapter,
        "create_dedicated_account",
        return_value=DedicatedAccountResult(
            account_number="9930000001",
            bank_name="Titan Paystack",
            account_name="SALMART/ADA OBI",
        ),
    )
    return customer, account


@pytest.mark.django_db
class TestInitiate:
    """Tests for PaymentInitiator.initiate."""

    def test_creates_pending_transaction(self, buyer, product, seller):
        instructions = PaymentInitiator.initiate(buyer, product.id, expected_price=Decimal("5000.00"))

        txn = instructions.transaction
        assert instructions.reused is False
        assert txn.status == TransactionStatus.AWAITING_PAYMENT
        assert txn.amount_kobo == 500_000
        assert txn.seller == seller
        assert txn.buyer_email == "buyer@example.com"
        assert txn.channel_key == PLATFORM_ACCOUNT["account_number"]
        assert txn.product_snapshot["title"] == "Vintage Camera"
        assert txn.payment_reference.startswith("SALM-")

    def test_instructions_payload(self, buyer, product):
        data = PaymentInitiator.initiate(buyer, product.id).to_dict()

        assert data["amount"] == "5000.00"
        assert data["amount_kobo"] == 500_000
        assert data["account_number"] == "0123456789"
        assert data["bank_name"] == "Wema Bank"
        assert data["payment_reference"] in data["instructions"]
        assert "₦5,000.00" in data["instructions"]
        assert data["reused"] is False

    def test_repeat_request_reuses_pending_transaction(self, buyer, product):
        first = PaymentInitiator.initiate(buyer, product.id)
        second = PaymentInitiator.initiate(buyer, product.id)

        assert second.reused is True
        assert second.transaction.pk == first.transaction.pk
        assert Transaction.objects.filter(buyer=buyer).count() == 1

    def test_pending_payment_for_other_product_blocks(self, buyer, product):
        PaymentInitiator.initiate(buyer, product.id)
        other = ProductFactory(price=Decimal("1200.00"))

        with pytest.raises(PendingPaymentExistsError) as exc_info:
            PaymentInitiator.initiate(buyer, other.id)

        assert exc_info.value.http_status == 409
        assert exc_info.value.details["product_id"] == str(product.id)

    def test_cancelled_payment_does_not_block(self, buyer, product):
        first = PaymentInitiator.initiate(buyer, product.id)
        PaymentInitiator.cancel(first.transaction.id, buyer)

        second = PaymentInitiator.initiate(buyer, product.id)

        assert second.reused is False
        assert second.transaction.payment_reference != first.transaction.payment_reference

    def test_unknown_product(self, buyer):
        with pytest.raises(ProductNotFoundError):
            PaymentInitiator.initiate(buyer, "9b2e4c1a-0000-4000-8000-000000000000")

    def test_inactive_product(self, buyer):
        product = ProductFactory(is_active=False)

        with pytest.raises(ProductNotFoundError):
            PaymentInitiator.initiate(buyer, product.id)

    def test_sold_product(self, buyer):
        product = ProductFactory(is_sold=True)

        with pytest.raises(ProductAlreadySoldError):
            PaymentInitiator.initiate(buyer, product.id)

    def test_own_product(self, seller, product):
        with pytest.raises(PaymentValidationError) as exc_info:
            PaymentInitiator.initiate(seller, product.id)

        assert exc_info.value.error_code == "OWN_PRODUCT"

    def test_zero_price(self, buyer):
        product = ProductFactory(price=Decimal("0.00"))

        with pytest.raises(PaymentValidationError) as exc_info:
            PaymentInitiator.initiate(buyer, product.id)

        assert exc_info.value.error_code == "INVALID_PRICE"

    def test_price_changed(self, buyer, product):
        with pytest.raises(PaymentValidationError) as exc_info:
            PaymentInitiator.initiate(buyer, product.id, expected_price="4500.00")

        assert exc_info.value.error_code == "PRICE_MISMATCH"
        assert exc_info.value.details["current_price"] == "5000.00"
        assert not Transaction.objects.exists()

    def test_price_within_tolerance(self, buyer, product):
        instructions = PaymentInitiator.initiate(buyer, product.id, expected_price="5000.01")

        assert instructions.transaction.amount_kobo == 500_000

    def test_reference_collisions_exhaust_attempts(self, buyer, product, mocker):
        TransactionFactory(payment_reference="SALM-DUPE-DUPE-DUPE", channel_key="elsewhere")
        mocker.patch(
            "payments.services.payment_initiator.generate_payment_reference",
            return_value="SALM-DUPE-DUPE-DUPE",
        )

        with pytest.raises(PaymentValidationError) as exc_info:
            PaymentInitiator.initiate(buyer, product.id)

        assert exc_info.value.error_code == "REFERENCE_ALLOCATION_FAILED"


@pytest.mark.django_db
class TestChannels:
    def test_manual_channel_without_configured_account(self, buyer, settings):
        settings.PLATFORM_COLLECTION_ACCOUNT = {}

        channel = PaymentInitiator.resolve_channel(buyer)

        assert channel.channel_type == ChannelType.MANUAL_TRANSFER
        assert channel.channel_key == "platform"

    def test_dedicated_account_provisioned_once(self, buyer, product, dedicated_mode):
        create_customer, create_account = dedicated_mode

        instructions = PaymentInitiator.initiate(buyer, product.id)
        PaymentInitiator.resolve_channel(buyer)

        txn = instructions.transaction
        assert txn.channel_type == ChannelType.DEDICATED_ACCOUNT
        assert txn.channel_key == "9930000001"
        assert instructions.to_dict()["account_number"] == "9930000001"
        create_customer.assert_called_once_with(email="buyer@example.com", first_name="Ada", last_name="Obi")
        create_account.assert_called_once_with("CUS_ada001")
        assert DedicatedAccount.objects.get(buyer=buyer).customer_code == "CUS_ada001"

    def test_existing_dedicated_account_is_reused(self, buyer, dedicated_mode):
        create_customer, _ = dedicated_mode
        DedicatedAccountFactory(buyer=buyer, account_number="9930000777")

        channel = PaymentInitiator.resolve_channel(buyer)

        assert channel.channel_key == "9930000777"
        create_customer.assert_not_called()

    def test_provisioning_failure_creates_nothing(self, buyer, product, dedicated_mode):
        create_customer, _ = dedicated_mode
        create_customer.side_effect = PaystackUnavailableError("Paystack unavailable")

        with pytest.raises(PaystackUnavailableError) as exc_info:
            PaymentInitiator.initiate(buyer, product.id)

        assert exc_info.value.http_status == 503
        assert not Transaction.objects.exists()
        assert not DedicatedAccount.objects.exists()


@pytest.mark.django_db
class TestCancel:
    def test_buyer_cancels_pending_payment(self, pending_txn, buyer):
        txn = PaymentInitiator.cancel(pending_txn.id, buyer)

        assert txn.status == TransactionStatus.CANCELLED
        note = Notification.objects.get(idempotency_key=f"payment_cancelled:{pending_txn.id}")
        assert note.recipient == buyer

    def test_only_buyer_may_cancel(self, pending_txn, seller):
        with pytest.raises(PermissionDeniedError) as exc_info:
            PaymentInitiator.cancel(pending_txn.id, seller)

        assert exc_info.value.error_code == "NOT_TRANSACTION_BUYER"
        assert Transaction.objects.get(pk=pending_txn.pk).status == TransactionStatus.AWAITING_PAYMENT

    def test_paid_transaction_cannot_be_cancelled(self, escrowed_txn, buyer):
        with pytest.raises(InvalidStateTransitionError):
            PaymentInitiator.cancel(escrowed_txn.id, buyer)

    def test_cancel_twice_notifies_once(self, pending_txn, buyer):
        PaymentInitiator.cancel(pending_txn.id, buyer)
        PaymentInitiator.cancel(pending_txn.id, buyer)

        assert Notification.objects.filter(idempotency_key=f"payment_cancelled:{pending_txn.id}").count() == 1


@pytest.mark.django_db
class TestExpireAbandoned:
    def test_expires_old_pending_payments(self, pending_txn):
        Transaction.objects.filter(pk=pending_txn.pk).update(created_at=timezone.now() - timedelta(hours=49))
        fresh = TransactionFactory()

        assert PaymentInitiator.expire_abandoned() == 1

        assert Transaction.objects.get(pk=pending_txn.pk).status == TransactionStatus.CANCELLED
        assert Transaction.objects.get(pk=fresh.pk).status == TransactionStatus.AWAITING_PAYMENT

    def test_leaves_paid_transactions_alone(self, pending_txn):
        Transaction.objects.filter(pk=pending_txn.pk).update(created_at=timezone.now() - timedelta(hours=49))
        EscrowService.confirm_payment(pending_txn.id, gateway_reference="T_just_in_time")

        assert PaymentInitiator.expire_abandoned() == 0
        assert Transaction.objects.get(pk=pending_txn.pk).status == TransactionStatus.IN_ESCROW

    def test_expiry_window_from_settings(self, pending_txn, settings):
        settings.PAYMENT_EXPIRY_HOURS = 1
        Transaction.objects.filter(pk=pending_txn.pk).update(created_at=timezone.now() - timedelta(hours=2))

        assert PaymentInitiator.expire_abandoned() == 1
