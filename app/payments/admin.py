"""
Payment admin configuration.

Registers the settlement models with the Django admin. Status fields
driven by django-fsm are read-only here; state changes go through the
service layer (EscrowService, PayoutService, RefundService).
"""

from django.contrib import admin
from django.utils import timezone

from payments.models import (
    DedicatedAccount,
    Escrow,
    PayoutAttempt,
    PayoutDestination,
    PlatformWallet,
    RefundRequest,
    Transaction,
    UnmatchedPayment,
    WalletEntry,
    WebhookEvent,
)
from payments.services import format_naira

__all__ = [
    "TransactionAdmin",
    "RefundRequestAdmin",
    "WebhookEventAdmin",
    "UnmatchedPaymentAdmin",
    "PayoutDestinationAdmin",
    "PayoutAttemptAdmin",
    "PlatformWalletAdmin",
    "DedicatedAccountAdmin",
]


class EscrowInline(admin.StackedInline):
    model = Escrow
    extra = 0
    can_delete = False
    readonly_fields = [
        "amount_kobo",
        "commission_kobo",
        "seller_share_kobo",
        "status",
        "released_at",
        "created_at",
    ]

    def has_add_permission(self, request, obj=None) -> bool:
        return False


class PayoutAttemptInline(admin.TabularInline):
    model = PayoutAttempt
    extra = 0
    can_delete = False
    fields = ["transfer_reference", "amount_kobo", "status", "transfer_code", "error_message", "created_at"]
    readonly_fields = fields

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    """
    Admin configuration for Transaction.

    Provides visibility into the settlement lifecycle.
    State changes should be made through the service layer, not admin.
    """

    list_display = [
        "payment_reference",
        "buyer",
        "seller",
        "amount_display",
        "status",
        "channel_type",
        "otp_required",
        "created_at",
    ]
    list_filter = ["status", "channel_type", "otp_required", "created_at"]
    search_fields = [
        "id",
        "payment_reference",
        "gateway_reference",
        "transfer_reference",
        "buyer__email",
        "seller__email",
    ]
    readonly_fields = [
        "id",
        "payment_reference",
        "status",
        "gateway_reference",
        "transfer_reference",
        "transfer_code",
        "commission_kobo",
        "seller_share_kobo",
        "transfer_attempts",
        "paid_at",
        "payout_queued_at",
        "released_at",
        "completed_at",
        "refunded_at",
        "cancelled_at",
        "side_effects_completed_at",
        "version",
        "created_at",
        "updated_at",
    ]
    raw_id_fields = ["buyer", "seller", "product"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    inlines = [EscrowInline, PayoutAttemptInline]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "payment_reference", "status", "buyer", "seller", "product"),
            },
        ),
        (
            "Amount",
            {
                "fields": ("amount_kobo", "currency", "commission_kobo", "seller_share_kobo"),
            },
        ),
        (
            "Payment Channel",
            {
                "fields": (
                    "channel_type",
                    "channel_key",
                    "channel_details",
                    "gateway_reference",
                    "payment_channel",
                    "narration",
                ),
            },
        ),
        (
            "Payout",
            {
                "fields": (
                    "transfer_reference",
                    "transfer_code",
                    "transfer_status_message",
                    "otp_required",
                    "transfer_attempts",
                ),
            },
        ),
        (
            "State Timestamps",
            {
                "fields": (
                    "paid_at",
                    "payout_queued_at",
                    "released_at",
                    "completed_at",
                    "refunded_at",
                    "cancelled_at",
                    "side_effects_completed_at",
                ),
                "classes": ("collapse",),
            },
        ),
        (
            "Metadata",
            {
                "fields": ("product_snapshot", "receipt_url", "metadata", "version"),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    @admin.display(description="Amount")
    def amount_display(self, obj: Transaction) -> str:
        return format_naira(obj.amount_kobo)

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for transactions (audit trail)."""
        return False


@admin.register(RefundRequest)
class RefundRequestAdmin(admin.ModelAdmin):
    list_display = ["id", "transaction", "buyer", "status", "refund_amount_kobo", "resolved_by", "created_at"]
    list_filter = ["status", "created_at"]
    search_fields = ["id", "transaction__payment_reference", "buyer__email", "gateway_refund_id"]
    readonly_fields = [
        "id",
        "transaction",
        "buyer",
        "status",
        "resolved_by",
        "resolved_at",
        "refund_amount_kobo",
        "gateway_fee_kobo",
        "gateway_refund_id",
        "failure_reason",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookEvent.

    Provides visibility into webhook processing status.
    Webhook events are immutable once received.
    """

    list_display = [
        "id",
        "event_key",
        "event_type",
        "status",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "event_type", "created_at"]
    search_fields = ["id", "event_key", "event_type"]
    readonly_fields = [
        "id",
        "created_at",
        "updated_at",
        "event_key",
        "event_type",
        "payload",
        "processed_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "event_key", "event_type", "status"),
            },
        ),
        (
            "Processing",
            {
                "fields": ("processed_at", "retry_count"),
            },
        ),
        (
            "Error Info",
            {
                "fields": ("error_message",),
                "classes": ("collapse",),
            },
        ),
        (
            "Payload",
            {
                "fields": ("payload",),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for webhook events (audit trail)."""
        return False

    def has_add_permission(self, request) -> bool:
        """Disable adding webhook events through admin."""
        return False


@admin.register(UnmatchedPayment)
class UnmatchedPaymentAdmin(admin.ModelAdmin):
    """
    Manual review queue for credits reconciliation could not apply.

    Operators mark an entry resolved once the money has been refunded
    or applied by hand; the credit details themselves stay read-only.
    """

    list_display = ["gateway_reference", "reason", "amount_display", "customer_email", "resolved", "created_at"]
    list_filter = ["reason", "resolved", "created_at"]
    search_fields = ["gateway_reference", "extracted_reference", "customer_email", "narration"]
    readonly_fields = [
        "id",
        "reason",
        "gateway_reference",
        "amount_kobo",
        "narration",
        "customer_email",
        "extracted_reference",
        "candidate_transaction_ids",
        "transaction",
        "payload",
        "resolved_by",
        "resolved_at",
        "created_at",
    ]
    ordering = ["-created_at"]

    @admin.display(description="Amount")
    def amount_display(self, obj: UnmatchedPayment) -> str:
        return format_naira(obj.amount_kobo)

    def save_model(self, request, obj, form, change):
        if "resolved" in form.changed_data and obj.resolved:
            obj.resolved_by = request.user
            obj.resolved_at = timezone.now()
        super().save_model(request, obj, form, change)


@admin.register(PayoutDestination)
class PayoutDestinationAdmin(admin.ModelAdmin):
    list_display = ["seller", "bank_name", "account_number", "account_name", "recipient_code", "updated_at"]
    search_fields = ["seller__email", "account_number", "recipient_code"]
    readonly_fields = ["recipient_code", "created_at", "updated_at"]
    raw_id_fields = ["seller"]


@admin.register(PayoutAttempt)
class PayoutAttemptAdmin(admin.ModelAdmin):
    list_display = ["transfer_reference", "transaction", "amount_kobo", "status", "transfer_code", "created_at"]
    list_filter = ["status", "created_at"]
    search_fields = ["transfer_reference", "transfer_code", "transaction__payment_reference"]
    readonly_fields = [field.name for field in PayoutAttempt._meta.fields]
    ordering = ["-created_at"]

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


class WalletEntryInline(admin.TabularInline):
    model = WalletEntry
    extra = 0
    can_delete = False
    fields = ["entry_type", "amount_kobo", "reference", "purpose", "transaction", "created_at"]
    readonly_fields = fields
    ordering = ["-created_at"]

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(PlatformWallet)
class PlatformWalletAdmin(admin.ModelAdmin):
    list_display = ["wallet_type", "balance_display", "reserved_display", "updated_at"]
    readonly_fields = ["wallet_type", "balance_kobo", "reserved_kobo", "created_at", "updated_at"]
    inlines = [WalletEntryInline]

    @admin.display(description="Balance")
    def balance_display(self, obj: PlatformWallet) -> str:
        return format_naira(obj.balance_kobo)

    @admin.display(description="Reserved")
    def reserved_display(self, obj: PlatformWallet) -> str:
        return format_naira(obj.reserved_kobo)

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(DedicatedAccount)
class DedicatedAccountAdmin(admin.ModelAdmin):
    list_display = ["buyer", "account_number", "bank_name", "customer_code", "created_at"]
    search_fields = ["buyer__email", "account_number", "customer_code"]
    readonly_fields = ["customer_code", "account_number", "raw_response", "created_at", "updated_at"]
    raw_id_fields = ["buyer"]
