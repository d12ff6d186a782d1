"""
DRF serializers for payments app.

This module provides serializers for:
- Payment initiation requests and payment instructions
- Transaction history for buyers and sellers
- Payout destinations
- Refund requests and their resolution
- Admin review queues and the platform wallet

Usage:
    serializer = InitiatePaymentSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
"""

from __future__ import annotations

from rest_framework import serializers

from payments.models import (
    PayoutDestination,
    PlatformWallet,
    RefundRequest,
    Transaction,
    UnmatchedPayment,
    WalletEntry,
)
from payments.services.commission import kobo_to_naira


class KoboAmountField(serializers.Field):
    """Renders an integer kobo amount as a naira string with two decimals."""

    def __init__(self, **kwargs):
        kwargs["read_only"] = True
        super().__init__(**kwargs)

    def to_representation(self, value):
        if value is None:
            return None
        return f"{kobo_to_naira(value):.2f}"


# =============================================================================
# Initiation
# =============================================================================


class InitiatePaymentSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    expected_price = serializers.DecimalField(
        max_digits=14,
        decimal_places=2,
        required=False,
        allow_null=True,
        help_text="Price the client displayed; rejected if the listing changed",
    )


class PaymentInstructionsSerializer(serializers.Serializer):
    """Mirror of PaymentInstructions.to_dict() for the OpenAPI schema."""

    transaction_id = serializers.UUIDField()
    payment_reference = serializers.CharField()
    status = serializers.CharField()
    amount = serializers.CharField()
    amount_kobo = serializers.IntegerField()
    currency = serializers.CharField()
    channel_type = serializers.CharField()
    account_number = serializers.CharField()
    bank_name = serializers.CharField()
    account_name = serializers.CharField()
    instructions = serializers.CharField()
    reused = serializers.BooleanField()


# =============================================================================
# Transactions
# =============================================================================


class TransactionSerializer(serializers.ModelSerializer):
    """
    A Transaction as seen by its buyer or seller.

    Usage:
        serializer = TransactionSerializer(txn, context={"request": request})
    """

    amount = KoboAmountField(source="amount_kobo")
    commission = KoboAmountField(source="commission_kobo")
    seller_share = KoboAmountField(source="seller_share_kobo")
    role = serializers.SerializerMethodField()
    product_title = serializers.SerializerMethodField()

    class Meta:
        model = Transaction
        fields = [
            "id",
            "payment_reference",
            "status",
            "role",
            "product",
            "product_title",
            "amount",
            "amount_kobo",
            "commission",
            "seller_share",
            "currency",
            "channel_type",
            "channel_details",
            "otp_required",
            "receipt_url",
            "paid_at",
            "completed_at",
            "refunded_at",
            "cancelled_at",
            "created_at",
        ]
        read_only_fields = fields

    def get_role(self, obj) -> str:
        request = self.context.get("request")
        if request is not None and obj.seller_id == request.user.id:
            return "seller"
        return "buyer"

    def get_product_title(self, obj) -> str:
        return obj.product_snapshot.get("title", "")


class AdminTransactionSerializer(TransactionSerializer):
    buyer_email = serializers.EmailField(read_only=True)
    seller_id = serializers.ReadOnlyField()

    class Meta(TransactionSerializer.Meta):
        fields = TransactionSerializer.Meta.fields + [
            "buyer_email",
            "seller_id",
            "channel_key",
            "gateway_reference",
            "transfer_reference",
            "transfer_code",
            "transfer_status_message",
            "transfer_attempts",
            "payout_queued_at",
            "side_effects_completed_at",
            "version",
        ]
        read_only_fields = fields


class PayoutResultSerializer(serializers.Serializer):
    transaction_id = serializers.UUIDField()
    status = serializers.CharField()
    outcome = serializers.CharField()
    otp_required = serializers.BooleanField()
    transfer_reference = serializers.CharField(allow_null=True)
    seller_share_kobo = serializers.IntegerField(allow_null=True)
    commission_kobo = serializers.IntegerField(allow_null=True)
    message = serializers.CharField()


class FinalizeOtpSerializer(serializers.Serializer):
    otp = serializers.CharField(min_length=4, max_length=10)


# =============================================================================
# Payout destination
# =============================================================================


class PayoutDestinationSerializer(serializers.ModelSerializer):
    account_number = serializers.RegexField(r"^\d{10}$", error_messages={"invalid": "Enter a 10-digit NUBAN."})
    is_provisioned = serializers.BooleanField(read_only=True)

    class Meta:
        model = PayoutDestination
        fields = ["account_number", "bank_code", "account_name", "bank_name", "is_provisioned", "updated_at"]
        read_only_fields = ["is_provisioned", "updated_at"]


# =============================================================================
# Refunds
# =============================================================================


class RefundRequestCreateSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=2000)


class RefundResolutionSerializer(serializers.Serializer):
    comment = serializers.CharField(max_length=2000, required=False, allow_blank=True, default="")


class RefundRequestSerializer(serializers.ModelSerializer):
    transaction_reference = serializers.CharField(source="transaction.payment_reference", read_only=True)
    transaction_status = serializers.CharField(source="transaction.status", read_only=True)
    refund_amount = KoboAmountField(source="refund_amount_kobo")
    gateway_fee = KoboAmountField(source="gateway_fee_kobo")

    class Meta:
        model = RefundRequest
        fields = [
            "id",
            "transaction",
            "transaction_reference",
            "transaction_status",
            "buyer",
            "reason",
            "status",
            "admin_comment",
            "refund_amount",
            "gateway_fee",
            "failure_reason",
            "resolved_at",
            "created_at",
        ]
        read_only_fields = fields


# =============================================================================
# Admin review
# =============================================================================


class UnmatchedPaymentSerializer(serializers.ModelSerializer):
    amount = KoboAmountField(source="amount_kobo")

    class Meta:
        model = UnmatchedPayment
        fields = [
            "id",
            "reason",
            "gateway_reference",
            "amount",
            "amount_kobo",
            "narration",
            "customer_email",
            "extracted_reference",
            "candidate_transaction_ids",
            "transaction",
            "resolved",
            "resolution_note",
            "created_at",
        ]
        read_only_fields = fields


class WalletEntrySerializer(serializers.ModelSerializer):
    amount = KoboAmountField(source="amount_kobo")

    class Meta:
        model = WalletEntry
        fields = ["id", "entry_type", "amount", "amount_kobo", "reference", "purpose", "transaction", "user", "product", "created_at"]
        read_only_fields = fields


class PlatformWalletSerializer(serializers.ModelSerializer):
    balance = KoboAmountField(source="balance_kobo")
    reserved = KoboAmountField(source="reserved_kobo")
    recent_entries = serializers.SerializerMethodField()

    class Meta:
        model = PlatformWallet
        fields = ["wallet_type", "balance", "balance_kobo", "reserved", "reserved_kobo", "recent_entries"]
        read_only_fields = fields

    def get_recent_entries(self, obj) -> list[dict]:
        entries = obj.entries.order_by("-created_at")[:20]
        return WalletEntrySerializer(entries, many=True).data
