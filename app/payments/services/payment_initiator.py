"""
Payment initiation: the entry point of every purchase.

PaymentInitiator validates the product, resolves the buyer's payment
channel and either reuses the buyer's pending Transaction on that channel
or creates a new one with a fresh payment reference.

Channel modes (settings.PAYMENT_CHANNEL_MODE):
    manual_transfer    Shared platform account; the buyer quotes the
                       reference as transfer narration
    dedicated_account  Per-buyer Paystack virtual account, provisioned on
                       first purchase and reused afterwards

Usage:
    from payments.services import PaymentInitiator

    instructions = PaymentInitiator.initiate(buyer, product_id, expected_price=Decimal("5000"))
    instructions.to_dict()
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from core.exceptions import PermissionDeniedError
from core.services import BaseService

from marketplace.models import Product
from payments.adapters import PaystackAdapter
from payments.exceptions import (
    PaymentValidationError,
    PendingPaymentExistsError,
    ProductAlreadySoldError,
    ProductNotFoundError,
    TransactionNotFoundError,
)
from payments.locks import lock_transaction
from payments.models import DedicatedAccount, Transaction
from payments.services.commission import kobo_to_naira
from payments.services.escrow_service import EscrowService, format_naira
from payments.services.references import generate_payment_reference
from payments.state_machines import ChannelType, TransactionStatus

if TYPE_CHECKING:
    from authentication.models import User

PRICE_TOLERANCE = Decimal("0.01")
REFERENCE_ATTEMPTS = 3


@dataclass
class PaymentChannel:
    channel_type: str
    channel_key: str
    details: dict[str, Any]


@dataclass
class PaymentInstructions:
    """
    What the buyer needs to pay: amount, destination and the reference.

    Attributes:
        transaction: The pending Transaction
        reused: True when an existing pending Transaction was returned
    """

    transaction: Transaction
    reused: bool = False

    def to_dict(self) -> dict[str, Any]:
        txn = self.transaction
        details = txn.channel_details or {}
        amount = f"{kobo_to_naira(txn.amount_kobo):.2f}"
        if txn.channel_type == ChannelType.MANUAL_TRANSFER:
            message = (
                f"Transfer ₦{format_naira(txn.amount_kobo)} to {details.get('bank_name', '')} "
                f"{details.get('account_number', '')} and use {txn.payment_reference} as the narration."
            )
        else:
            message = (
                f"Transfer ₦{format_naira(txn.amount_kobo)} to your dedicated account "
                f"{details.get('account_number', '')} ({details.get('bank_name', '')})."
            )
        return {
            "transaction_id": str(txn.id),
            "payment_reference": txn.payment_reference,
            "status": txn.status,
            "amount": amount,
            "amount_kobo": txn.amount_kobo,
            "currency": txn.currency,
            "channel_type": txn.channel_type,
            "account_number": details.get("account_number", ""),
            "bank_name": details.get("bank_name", ""),
            "account_name": details.get("account_name", ""),
            "instructions": message,
            "reused": self.reused,
        }


class PaymentInitiator(BaseService):
    """
    InitiatePayment and buyer-side cancellation.

    Methods:
        initiate: Create or reuse the pending Transaction for a purchase
        cancel: Buyer cancels their own AWAITING_PAYMENT Transaction
        expire_abandoned: Cancel pending Transactions past PAYMENT_EXPIRY_HOURS
    """

    @classmethod
    def initiate(
        cls,
        buyer: User,
        product_id: uuid.UUID | str,
        expected_price: Decimal | str | None = None,
    ) -> PaymentInstructions:
        """
        Return payment instructions for a buyer/product pair.

        Raises:
            ProductNotFoundError: Unknown or inactive product
            ProductAlreadySoldError: Product is sold
            PaymentValidationError: Own product, bad price, price mismatch
            PendingPaymentExistsError: Buyer has a pending payment for
                another product on the same channel
            PaystackError: Dedicated account provisioning failed (503)
        """
        product = Product.objects.select_related("seller").filter(pk=product_id, is_active=True).first()
        if product is None:
            raise ProductNotFoundError("Product not found", details={"product_id": str(product_id)})

        if product.is_sold:
            raise ProductAlreadySoldError(
                "This item has already been sold",
                details={"product_id": str(product.id)},
            )

        if product.seller_id == buyer.id:
            raise PaymentValidationError(
                "You cannot buy your own listing",
                error_code="OWN_PRODUCT",
            )

        amount_kobo = product.price_kobo
        if amount_kobo <= 0:
            raise PaymentValidationError(
                "Product has an invalid price",
                error_code="INVALID_PRICE",
                details={"product_id": str(product.id)},
            )

        cls._check_expected_price(product, expected_price)

        channel = cls.resolve_channel(buyer)

        existing = cls._pending_on_channel(buyer, channel.channel_key)
        if existing is not None:
            return cls._reuse_or_reject(existing, product)

        for attempt in range(1, REFERENCE_ATTEMPTS + 1):
            try:
                with transaction.atomic():
                    txn = Transaction.objects.create(
                        payment_reference=generate_payment_reference(product.id),
                        buyer=buyer,
                        seller=product.seller,
                        product=product,
                        buyer_email=buyer.email,
                        amount_kobo=amount_kobo,
                        channel_type=channel.channel_type,
                        channel_key=channel.channel_key,
                        channel_details=channel.details,
                        product_snapshot={
                            "title": product.title,
                            "description": product.description,
                            "price": str(product.price),
                        },
                    )
            except IntegrityError:
                existing = cls._pending_on_channel(buyer, channel.channel_key)
                if existing is not None:
                    return cls._reuse_or_reject(existing, product)
                cls.get_logger().warning(
                    f"Payment reference collision, regenerating (attempt {attempt})",
                    extra={"product_id": str(product.id)},
                )
                continue

            cls.get_logger().info(
                "Payment initiated",
                extra={
                    "transaction_id": str(txn.id),
                    "payment_reference": txn.payment_reference,
                    "amount_kobo": amount_kobo,
                    "channel_type": channel.channel_type,
                },
            )
            return PaymentInstructions(transaction=txn, reused=False)

        raise PaymentValidationError(
            "Could not allocate a payment reference, please retry",
            error_code="REFERENCE_ALLOCATION_FAILED",
        )

    @classmethod
    def _check_expected_price(cls, product: Product, expected_price: Decimal | str | None) -> None:
        if expected_price in (None, ""):
            return
        try:
            expected = Decimal(str(expected_price))
        except InvalidOperation:
            raise PaymentValidationError("Invalid expected price", error_code="INVALID_PRICE")
        if abs(expected - product.price) > PRICE_TOLERANCE:
            raise PaymentValidationError(
                "The price of this item has changed",
                error_code="PRICE_MISMATCH",
                details={"expected_price": str(expected), "current_price": str(product.price)},
            )

    @classmethod
    def _pending_on_channel(cls, buyer: User, channel_key: str) -> Transaction | None:
        return Transaction.objects.filter(
            buyer=buyer,
            channel_key=channel_key,
            status=TransactionStatus.AWAITING_PAYMENT,
        ).first()

    @classmethod
    def _reuse_or_reject(cls, existing: Transaction, product: Product) -> PaymentInstructions:
        if existing.product_id == product.id:
            cls.get_logger().info(
                "Reusing pending transaction",
                extra={"transaction_id": str(existing.id), "payment_reference": existing.payment_reference},
            )
            return PaymentInstructions(transaction=existing, reused=True)

        raise PendingPaymentExistsError(
            "You have a pending payment for another item. Complete or cancel it first.",
            details={
                "transaction_id": str(existing.id),
                "payment_reference": existing.payment_reference,
                "product_id": str(existing.product_id),
            },
        )

    # =========================================================================
    # Channels
    # =========================================================================

    @classmethod
    def resolve_channel(cls, buyer: User) -> PaymentChannel:
        mode = getattr(settings, "PAYMENT_CHANNEL_MODE", ChannelType.MANUAL_TRANSFER)
        if mode == ChannelType.DEDICATED_ACCOUNT:
            account = cls.get_or_provision_dedicated_account(buyer)
            return PaymentChannel(
                channel_type=ChannelType.DEDICATED_ACCOUNT,
                channel_key=account.account_number,
                details=account.as_channel_details(),
            )

        platform = getattr(settings, "PLATFORM_COLLECTION_ACCOUNT", {}) or {}
        return PaymentChannel(
            channel_type=ChannelType.MANUAL_TRANSFER,
            channel_key=platform.get("account_number") or "platform",
            details={
                "account_number": platform.get("account_number", ""),
                "bank_name": platform.get("bank_name", ""),
                "account_name": platform.get("account_name", ""),
            },
        )

    @classmethod
    def get_or_provision_dedicated_account(cls, buyer: User) -> DedicatedAccount:
        """
        Return the buyer's virtual account, creating it at Paystack on first use.

        Raises:
            PaystackError: Provisioning failed
        """
        account = DedicatedAccount.objects.filter(buyer=buyer).first()
        if account is not None:
            return account

        customer = PaystackAdapter.create_customer(
            email=buyer.email,
            first_name=buyer.first_name,
            last_name=buyer.last_name,
        )
        result = PaystackAdapter.create_dedicated_account(customer.customer_code)

        account, created = DedicatedAccount.objects.get_or_create(
            buyer=buyer,
            defaults={
                "customer_code": customer.customer_code,
                "account_number": result.account_number,
                "bank_name": result.bank_name,
                "account_name": result.account_name,
                "raw_response": result.raw_response,
            },
        )
        if created:
            cls.get_logger().info(
                "Dedicated account provisioned",
                extra={"buyer_id": str(buyer.id), "account_number": account.account_number[-4:]},
            )
        return account

    # =========================================================================
    # Cancellation
    # =========================================================================

    @classmethod
    def cancel(cls, transaction_id: uuid.UUID | str, user: User) -> Transaction:
        """
        Cancel the buyer's own pending payment.

        Raises:
            TransactionNotFoundError: Unknown transaction
            PermissionDeniedError: Caller is not the buyer
            InvalidStateTransitionError: Transaction is no longer pending
        """
        from notifications.services import NotificationService

        with transaction.atomic():
            txn = lock_transaction(transaction_id)
            if txn.buyer_id != user.id:
                raise PermissionDeniedError(
                    "Only the buyer can cancel this payment",
                    error_code="NOT_TRANSACTION_BUYER",
                )
            applied = EscrowService.apply_transition(txn, "cancel")

        if applied:
            NotificationService.notify(
                txn.buyer,
                "payment_cancelled",
                {
                    "reference": txn.payment_reference,
                    "product_title": txn.product_snapshot.get("title", ""),
                    "transaction_id": str(txn.id),
                },
                idempotency_key=f"payment_cancelled:{txn.id}",
            )
        return txn

    @classmethod
    def expire_abandoned(cls, now=None) -> int:
        """
        Cancel AWAITING_PAYMENT transactions older than PAYMENT_EXPIRY_HOURS.

        A transaction paid while the sweep runs is left alone.
        """
        now = now or timezone.now()
        cutoff = now - timedelta(hours=getattr(settings, "PAYMENT_EXPIRY_HOURS", 48))
        candidate_ids = list(
            Transaction.objects.filter(
                status=TransactionStatus.AWAITING_PAYMENT,
                created_at__lt=cutoff,
            ).values_list("id", flat=True)
        )

        expired = 0
        for transaction_id in candidate_ids:
            try:
                with transaction.atomic():
                    txn = lock_transaction(transaction_id)
                    if txn.status != TransactionStatus.AWAITING_PAYMENT:
                        continue
                    EscrowService.apply_transition(txn, "cancel")
                    expired += 1
            except TransactionNotFoundError:
                continue

        if expired:
            cls.get_logger().info(f"Expired {expired} abandoned payments")
        return expired
