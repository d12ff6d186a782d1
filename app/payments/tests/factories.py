"""
Factory Boy factories for payment test data.

Factories generate realistic settlement records while allowing easy
customization. Transactions default to AWAITING_PAYMENT on the manual
transfer channel for a fresh buyer and product.

Usage:
    from payments.tests.factories import TransactionFactory, PayoutDestinationFactory

    # Pending payment for a product
    txn = TransactionFactory(product=product, buyer=buyer)

    # Transaction in a specific state
    txn = TransactionFactory(status=TransactionStatus.CONFIRMED_PENDING_PAYOUT)

    # Seller with a provisioned Paystack recipient
    destination = PayoutDestinationFactory(seller=seller)
"""

import factory
from django.utils import timezone

from authentication.tests.factories import UserFactory
from marketplace.tests.factories import ProductFactory
from payments.models import (
    DedicatedAccount,
    Escrow,
    PayoutDestination,
    RefundRequest,
    Transaction,
    UnmatchedPayment,
    WebhookEvent,
)
from payments.services.commission import calculate_commission
from payments.state_machines import (
    ChannelType,
    EscrowStatus,
    TransactionStatus,
    UnmatchedReason,
    WebhookEventStatus,
)

PLATFORM_ACCOUNT = {
    "account_number": "0123456789",
    "bank_name": "Wema Bank",
    "account_name": "Salmart Collections",
}


class TransactionFactory(factory.django.DjangoModelFactory):
    """
    Factory for Transaction model.

    Defaults to an AWAITING_PAYMENT purchase of a ₦5,000 product paid
    into the shared platform account.
    """

    class Meta:
        model = Transaction
        skip_postgeneration_save = True

    payment_reference = factory.Sequence(lambda n: f"SALM-{n:04d}-T3ST-REF0")
    buyer = factory.SubFactory(UserFactory)
    product = factory.SubFactory(ProductFactory)
    seller = factory.SelfAttribute("product.seller")
    buyer_email = factory.SelfAttribute("buyer.email")
    amount_kobo = factory.LazyAttribute(lambda o: o.product.price_kobo)
    currency = "NGN"
    status = TransactionStatus.AWAITING_PAYMENT
    channel_type = ChannelType.MANUAL_TRANSFER
    channel_key = PLATFORM_ACCOUNT["account_number"]
    channel_details = factory.LazyFunction(lambda: dict(PLATFORM_ACCOUNT))
    product_snapshot = factory.LazyAttribute(
        lambda o: {
            "title": o.product.title,
            "description": o.product.description,
            "price": str(o.product.price),
        }
    )


class EscrowFactory(factory.django.DjangoModelFactory):
    """Escrow record with the default commission split of its Transaction."""

    class Meta:
        model = Escrow

    transaction = factory.SubFactory(
        TransactionFactory,
        status=TransactionStatus.IN_ESCROW,
        paid_at=factory.LazyFunction(timezone.now),
    )
    amount_kobo = factory.LazyAttribute(lambda o: o.transaction.amount_kobo)
    commission_kobo = factory.LazyAttribute(lambda o: calculate_commission(o.amount_kobo).commission_kobo)
    seller_share_kobo = factory.LazyAttribute(lambda o: o.amount_kobo - o.commission_kobo)
    status = EscrowStatus.IN_ESCROW


class PayoutDestinationFactory(factory.django.DjangoModelFactory):
    """Seller bank account with a provisioned transfer recipient."""

    class Meta:
        model = PayoutDestination

    seller = factory.SubFactory(UserFactory)
    account_number = "0690000031"
    bank_code = "044"
    account_name = factory.Faker("name")
    bank_name = "Access Bank"
    recipient_code = factory.Sequence(lambda n: f"RCP_test{n:06d}")


class DedicatedAccountFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = DedicatedAccount

    buyer = factory.SubFactory(UserFactory)
    customer_code = factory.Sequence(lambda n: f"CUS_test{n:06d}")
    account_number = factory.Sequence(lambda n: f"98{n:08d}")
    bank_name = "Titan Paystack"
    account_name = factory.LazyAttribute(lambda o: f"SALMART/{o.buyer.email}")


class RefundRequestFactory(factory.django.DjangoModelFactory):
    """Open refund request against an escrowed Transaction."""

    class Meta:
        model = RefundRequest

    transaction = factory.SubFactory(
        TransactionFactory,
        status=TransactionStatus.IN_ESCROW,
        gateway_reference=factory.Sequence(lambda n: f"T_refund_charge_{n}"),
        paid_at=factory.LazyFunction(timezone.now),
    )
    buyer = factory.SelfAttribute("transaction.buyer")
    reason = "The item never arrived"


class UnmatchedPaymentFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = UnmatchedPayment

    reason = UnmatchedReason.NO_MATCH
    gateway_reference = factory.Sequence(lambda n: f"T_unmatched_{n}")
    amount_kobo = 500000
    narration = "transfer from ADA"
    customer_email = factory.Sequence(lambda n: f"payer{n}@example.com")
    payload = factory.LazyAttribute(lambda o: {"reference": o.gateway_reference, "amount": o.amount_kobo})


class WebhookEventFactory(factory.django.DjangoModelFactory):
    """
    Factory for WebhookEvent model.

    Builds a charge.success payload by default; pass payload= for other events.
    """

    class Meta:
        model = WebhookEvent

    class Params:
        charge_id = factory.Sequence(lambda n: 3_000_000 + n)
        charge_reference = factory.LazyAttribute(lambda o: f"T_charge_{o.charge_id}")

    event_type = "charge.success"
    payload = factory.LazyAttribute(
        lambda o: {
            "event": o.event_type,
            "data": {
                "id": o.charge_id,
                "reference": o.charge_reference,
                "amount": 500000,
                "status": "success",
                "channel": "bank_transfer",
                "customer": {"email": "buyer@example.com"},
            },
        }
    )
    event_key = factory.LazyAttribute(lambda o: WebhookEvent.build_event_key(o.payload))
    status = WebhookEventStatus.PENDING
