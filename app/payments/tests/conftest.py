"""
Pytest fixtures for payment tests.

Fixtures provide the parties of a sale and Transactions in the states
the settlement flow cares about. Paystack is never called: tests patch
PaystackAdapter methods with mocker.patch.object.

Usage:
    def test_confirm_delivery(escrowed_txn, buyer, payout_destination, mocker):
        mocker.patch.object(PaystackAdapter, "get_balance", return_value=10_000_000)
        ...
"""

import hashlib
import hmac
import json
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from django.conf import settings
from django.utils import timezone
from rest_framework.test import APIClient

from authentication.tests.factories import UserFactory
from marketplace.tests.factories import ProductFactory
from payments.services import EscrowService
from payments.tests.factories import PayoutDestinationFactory, TransactionFactory


# =============================================================================
# Parties
# =============================================================================


@pytest.fixture
def buyer(db):
    return UserFactory(email="buyer@example.com", first_name="Ada", last_name="Obi")


@pytest.fixture
def seller(db):
    return UserFactory(email="seller@example.com", first_name="Tolu", last_name="Ade")


@pytest.fixture
def admin_user(db):
    return UserFactory(email="ops@example.com", is_staff=True)


@pytest.fixture
def product(seller):
    """₦5,000 listing by the seller."""
    return ProductFactory(seller=seller, title="Vintage Camera", price=Decimal("5000.00"))


@pytest.fixture
def payout_destination(seller):
    """Seller bank account with a provisioned Paystack recipient."""
    return PayoutDestinationFactory(seller=seller, recipient_code="RCP_seller001")


# =============================================================================
# Transaction State Fixtures
# =============================================================================


@pytest.fixture
def pending_txn(buyer, product):
    """AWAITING_PAYMENT transaction for the buyer's purchase of product."""
    return TransactionFactory(
        buyer=buyer,
        product=product,
        payment_reference="SALM-CAM1-K2QZ-9XBD",
    )


@pytest.fixture
def escrowed_txn(pending_txn):
    """
    IN_ESCROW transaction, moved there by the service so the product is
    sold, the Escrow row exists and the commission is reserved.
    """
    txn, _ = EscrowService.confirm_payment(
        pending_txn.id,
        paid_at=timezone.now(),
        gateway_reference="T_charge_camera",
        payment_channel="bank_transfer",
        narration="SALM-CAM1-K2QZ-9XBD",
    )
    return txn


# =============================================================================
# Infrastructure
# =============================================================================


@pytest.fixture
def mock_redis(mocker):
    """Redis connection for DistributedLock; every lock is free."""
    redis_instance = MagicMock()
    redis_instance.set.return_value = True
    redis_instance.eval.return_value = 1
    mocker.patch("payments.locks.get_redis_connection", return_value=redis_instance)
    return redis_instance


@pytest.fixture
def paystack_signature():
    """Sign a webhook body the way Paystack does."""

    def sign(body: bytes) -> str:
        return hmac.new(settings.PAYSTACK_SECRET_KEY.encode("utf-8"), body, hashlib.sha512).hexdigest()

    return sign


@pytest.fixture
def post_webhook(api_client, paystack_signature):
    """POST a signed Paystack event to the webhook endpoint."""

    def post(event: dict, signature: str | None = None):
        body = json.dumps(event).encode("utf-8")
        return api_client.post(
            "/api/v1/payments/webhooks/paystack/",
            data=body,
            content_type="application/json",
            HTTP_X_PAYSTACK_SIGNATURE=signature if signature is not None else paystack_signature(body),
        )

    return post


# =============================================================================
# Authenticated Clients
# =============================================================================


@pytest.fixture
def buyer_client(buyer):
    client = APIClient()
    client.force_authenticate(user=buyer)
    return client


@pytest.fixture
def seller_client(seller):
    client = APIClient()
    client.force_authenticate(user=seller)
    return client


@pytest.fixture
def staff_client(admin_user):
    client = APIClient()
    client.force_authenticate(user=admin_user)
    return client
