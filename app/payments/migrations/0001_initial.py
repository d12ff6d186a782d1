import uuid

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("marketplace", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Transaction",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier (UUID v4)",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "payment_reference",
                    models.CharField(
                        db_index=True,
                        help_text="Reference the buyer quotes as transfer narration (SALM-XXXX-YYYY-ZZZZ)",
                        max_length=64,
                        unique=True,
                    ),
                ),
                (
                    "buyer_email",
                    models.EmailField(
                        blank=True,
                        db_index=True,
                        default="",
                        help_text="Buyer contact email, used by identity + amount matching",
                        max_length=254,
                    ),
                ),
                ("amount_kobo", models.PositiveBigIntegerField(help_text="Full price in kobo")),
                (
                    "currency",
                    models.CharField(default="NGN", help_text="ISO 4217 currency code", max_length=3),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("awaiting_payment", "Awaiting Payment"),
                            ("in_escrow", "In Escrow"),
                            ("confirmed_pending_payout", "Confirmed, Payout Pending"),
                            ("transfer_initiated", "Transfer Initiated"),
                            ("completed", "Completed"),
                            ("transfer_failed", "Transfer Failed"),
                            ("reversed", "Reversed"),
                            ("refund_requested", "Refund Requested"),
                            ("refunded", "Refunded"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="awaiting_payment",
                        help_text="Current state of the transaction (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "channel_type",
                    models.CharField(
                        choices=[
                            ("manual_transfer", "Manual Bank Transfer"),
                            ("dedicated_account", "Dedicated Virtual Account"),
                        ],
                        default="manual_transfer",
                        help_text="How the buyer was told to pay",
                        max_length=20,
                    ),
                ),
                (
                    "channel_key",
                    models.CharField(
                        db_index=True,
                        help_text="Destination identifier matched against inbound events",
                        max_length=64,
                    ),
                ),
                (
                    "channel_details",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Account number, bank and account name shown to the buyer",
                    ),
                ),
                (
                    "product_snapshot",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Title, description and price at initiation",
                    ),
                ),
                (
                    "gateway_reference",
                    models.CharField(
                        blank=True,
                        help_text="Paystack reference of the inbound charge",
                        max_length=100,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "payment_channel",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Paystack channel reported for the charge (e.g. dedicated_nuban)",
                        max_length=50,
                    ),
                ),
                (
                    "narration",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Transfer narration as reported by the gateway",
                    ),
                ),
                (
                    "commission_kobo",
                    models.PositiveBigIntegerField(
                        blank=True,
                        help_text="Platform commission, persisted when payout is computed",
                        null=True,
                    ),
                ),
                (
                    "seller_share_kobo",
                    models.PositiveBigIntegerField(
                        blank=True,
                        help_text="Amount owed to the seller (amount - commission)",
                        null=True,
                    ),
                ),
                (
                    "transfer_reference",
                    models.CharField(
                        blank=True,
                        help_text="Deterministic payout reference sent to Paystack",
                        max_length=100,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "transfer_code",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Paystack transfer code (TRF_xxx)",
                        max_length=100,
                    ),
                ),
                (
                    "transfer_status_message",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Last transfer status or failure reason from Paystack",
                    ),
                ),
                (
                    "otp_required",
                    models.BooleanField(
                        default=False,
                        help_text="Paystack is waiting for an OTP to release the transfer",
                    ),
                ),
                (
                    "transfer_attempts",
                    models.PositiveSmallIntegerField(
                        default=0,
                        help_text="Number of transfer initiations sent to Paystack",
                    ),
                ),
                (
                    "receipt_url",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Storage URL of the settlement receipt",
                        max_length=500,
                    ),
                ),
                (
                    "side_effects_completed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When receipt and party notifications were delivered",
                        null=True,
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Version for optimistic locking - incremented on each save",
                    ),
                ),
                (
                    "paid_at",
                    models.DateTimeField(
                        blank=True, help_text="When the gateway reports the buyer paid", null=True
                    ),
                ),
                (
                    "payout_queued_at",
                    models.DateTimeField(
                        blank=True, help_text="When the payout was deferred for liquidity", null=True
                    ),
                ),
                (
                    "released_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the transfer to the seller was initiated",
                        null=True,
                    ),
                ),
                (
                    "completed_at",
                    models.DateTimeField(
                        blank=True, help_text="When Paystack confirmed the transfer", null=True
                    ),
                ),
                (
                    "refunded_at",
                    models.DateTimeField(blank=True, help_text="When the buyer was refunded", null=True),
                ),
                (
                    "cancelled_at",
                    models.DateTimeField(
                        blank=True, help_text="When the pending payment was cancelled", null=True
                    ),
                ),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Arbitrary JSON metadata for extensibility",
                    ),
                ),
                (
                    "buyer",
                    models.ForeignKey(
                        help_text="User paying for the product",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="purchases",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        help_text="Product being purchased",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transactions",
                        to="marketplace.product",
                    ),
                ),
                (
                    "seller",
                    models.ForeignKey(
                        help_text="User receiving the payout",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="sales",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Transaction",
                "verbose_name_plural": "Transactions",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="txn_status_created_idx"),
                    models.Index(fields=["channel_key", "status"], name="txn_channel_status_idx"),
                    models.Index(fields=["buyer", "status"], name="txn_buyer_status_idx"),
                    models.Index(fields=["seller", "status"], name="txn_seller_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        check=models.Q(("amount_kobo__gt", 0)),
                        name="transaction_amount_positive",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("status", "awaiting_payment")),
                        fields=("buyer", "channel_key"),
                        name="transaction_one_pending_per_channel",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Escrow",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier (UUID v4)",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("amount_kobo", models.PositiveBigIntegerField(help_text="Amount held in kobo")),
                ("commission_kobo", models.PositiveBigIntegerField(help_text="Platform commission in kobo")),
                ("seller_share_kobo", models.PositiveBigIntegerField(help_text="Seller share in kobo")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("in_escrow", "In Escrow"),
                            ("released", "Released"),
                            ("completed", "Completed"),
                            ("transfer_failed", "Transfer Failed"),
                            ("reversed", "Reversed"),
                        ],
                        db_index=True,
                        default="in_escrow",
                        help_text="Where the held funds are",
                        max_length=20,
                    ),
                ),
                (
                    "released_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the funds left escrow (transfer initiated or refund)",
                        null=True,
                    ),
                ),
                (
                    "transaction",
                    models.OneToOneField(
                        help_text="Transaction whose funds are held",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="escrow",
                        to="payments.transaction",
                    ),
                ),
            ],
            options={
                "verbose_name": "Escrow",
                "verbose_name_plural": "Escrows",
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(
                        check=models.Q(("commission_kobo__lte", models.F("amount_kobo"))),
                        name="escrow_commission_within_amount",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="DedicatedAccount",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier (UUID v4)",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("customer_code", models.CharField(max_length=100)),
                ("account_number", models.CharField(max_length=20, unique=True)),
                ("bank_name", models.CharField(blank=True, default="", max_length=255)),
                ("account_name", models.CharField(blank=True, default="", max_length=255)),
                ("raw_response", models.JSONField(blank=True, default=dict)),
                (
                    "buyer",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="dedicated_account",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Dedicated Account",
                "verbose_name_plural": "Dedicated Accounts",
            },
        ),
        migrations.CreateModel(
            name="PayoutDestination",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier (UUID v4)",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("account_number", models.CharField(max_length=20)),
                ("bank_code", models.CharField(max_length=20)),
                ("account_name", models.CharField(max_length=255)),
                ("bank_name", models.CharField(blank=True, default="", max_length=255)),
                (
                    "recipient_code",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Paystack transfer recipient code, provisioned on first payout",
                        max_length=100,
                    ),
                ),
                (
                    "seller",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="payout_destination",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Payout Destination",
                "verbose_name_plural": "Payout Destinations",
            },
        ),
        migrations.CreateModel(
            name="PayoutAttempt",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier (UUID v4)",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("transfer_reference", models.CharField(db_index=True, max_length=100)),
                ("amount_kobo", models.PositiveBigIntegerField()),
                ("recipient_code", models.CharField(blank=True, default="", max_length=100)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("submitted", "Submitted"),
                            ("otp_required", "OTP Required"),
                            ("succeeded", "Succeeded"),
                            ("failed", "Failed"),
                            ("unknown", "Unknown (timed out)"),
                        ],
                        default="submitted",
                        max_length=20,
                    ),
                ),
                ("transfer_code", models.CharField(blank=True, default="", max_length=100)),
                ("gateway_response", models.JSONField(blank=True, default=dict)),
                ("error_message", models.TextField(blank=True, default="")),
                (
                    "transaction",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payout_attempts",
                        to="payments.transaction",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payout Attempt",
                "verbose_name_plural": "Payout Attempts",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="PlatformWallet",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier (UUID v4)",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "wallet_type",
                    models.CharField(
                        choices=[("commission", "Commission"), ("promotion", "Promotion")],
                        help_text="Which platform wallet this is",
                        max_length=20,
                        unique=True,
                    ),
                ),
                ("balance_kobo", models.BigIntegerField(default=0, help_text="Realised balance in kobo")),
                (
                    "reserved_kobo",
                    models.BigIntegerField(
                        default=0,
                        help_text="Commission reserved against escrowed transactions, in kobo",
                    ),
                ),
            ],
            options={
                "verbose_name": "Platform Wallet",
                "verbose_name_plural": "Platform Wallets",
                "ordering": ["wallet_type"],
                "constraints": [
                    models.CheckConstraint(
                        check=models.Q(("reserved_kobo__gte", 0)),
                        name="platform_wallet_reserved_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="RefundRequest",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier (UUID v4)",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("reason", models.TextField(help_text="Why the buyer wants a refund")),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("requested", "Refund Requested"),
                            ("approved", "Approved"),
                            ("refunded", "Refunded"),
                            ("rejected", "Rejected"),
                        ],
                        db_index=True,
                        default="requested",
                        help_text="Current state of the request (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("resolved_at", models.DateTimeField(blank=True, null=True)),
                ("admin_comment", models.TextField(blank=True, default="")),
                (
                    "refund_amount_kobo",
                    models.PositiveBigIntegerField(
                        blank=True,
                        help_text="Net amount returned to the buyer, in kobo",
                        null=True,
                    ),
                ),
                (
                    "gateway_fee_kobo",
                    models.PositiveBigIntegerField(
                        blank=True,
                        help_text="Gateway fee withheld from the refund, in kobo",
                        null=True,
                    ),
                ),
                ("gateway_refund_id", models.CharField(blank=True, default="", max_length=100)),
                (
                    "failure_reason",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Last gateway error if the refund call failed",
                    ),
                ),
                (
                    "buyer",
                    models.ForeignKey(
                        help_text="Buyer who requested the refund",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refund_requests",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "resolved_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="Administrator who approved or rejected the request",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="resolved_refund_requests",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "transaction",
                    models.ForeignKey(
                        help_text="Transaction to refund",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refund_requests",
                        to="payments.transaction",
                    ),
                ),
            ],
            options={
                "verbose_name": "Refund Request",
                "verbose_name_plural": "Refund Requests",
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status__in", ["requested", "approved"])),
                        fields=("transaction",),
                        name="refund_request_one_open_per_transaction",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="UnmatchedPayment",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier (UUID v4)",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "reason",
                    models.CharField(
                        choices=[
                            ("no_match", "No Matching Transaction"),
                            ("ambiguous", "Multiple Candidate Transactions"),
                            ("product_already_sold", "Product Already Sold"),
                            ("not_pending", "Transaction No Longer Pending"),
                            ("amount_mismatch", "Amount Below Price"),
                        ],
                        db_index=True,
                        help_text="Why the payment was not applied",
                        max_length=30,
                    ),
                ),
                (
                    "gateway_reference",
                    models.CharField(
                        blank=True,
                        help_text="Paystack reference of the credit",
                        max_length=100,
                        null=True,
                        unique=True,
                    ),
                ),
                ("amount_kobo", models.PositiveBigIntegerField(help_text="Amount credited, in kobo")),
                ("narration", models.TextField(blank=True, default="")),
                ("customer_email", models.EmailField(blank=True, default="", max_length=254)),
                (
                    "extracted_reference",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="SALM reference found in the narration, if any",
                        max_length=64,
                    ),
                ),
                (
                    "candidate_transaction_ids",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="Transactions that matched equally well",
                    ),
                ),
                (
                    "payload",
                    models.JSONField(blank=True, default=dict, help_text="Event data as received"),
                ),
                ("resolved", models.BooleanField(db_index=True, default=False)),
                ("resolved_at", models.DateTimeField(blank=True, null=True)),
                ("resolution_note", models.TextField(blank=True, default="")),
                (
                    "resolved_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "transaction",
                    models.ForeignKey(
                        blank=True,
                        help_text="Transaction the credit was addressed to, when known",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="unmatched_payments",
                        to="payments.transaction",
                    ),
                ),
            ],
            options={
                "verbose_name": "Unmatched Payment",
                "verbose_name_plural": "Unmatched Payments",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["resolved", "created_at"], name="unmatched_resolved_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="WalletEntry",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier (UUID v4)",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "entry_type",
                    models.CharField(
                        choices=[("reserve", "Reserve"), ("capture", "Capture"), ("release", "Release")],
                        max_length=20,
                    ),
                ),
                ("amount_kobo", models.PositiveBigIntegerField()),
                (
                    "reference",
                    models.CharField(
                        help_text="Idempotency key, e.g. commission-<transaction id>",
                        max_length=100,
                        unique=True,
                    ),
                ),
                ("purpose", models.CharField(blank=True, default="", max_length=255)),
                (
                    "product",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to="marketplace.product",
                    ),
                ),
                (
                    "transaction",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="wallet_entries",
                        to="payments.transaction",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "wallet",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="entries",
                        to="payments.platformwallet",
                    ),
                ),
            ],
            options={
                "verbose_name": "Wallet Entry",
                "verbose_name_plural": "Wallet Entries",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier (UUID v4)",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "event_key",
                    models.CharField(
                        db_index=True,
                        help_text="Event name plus gateway object id - unique constraint for idempotency",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "event_type",
                    models.CharField(
                        db_index=True,
                        help_text="Paystack event type (e.g., 'charge.success')",
                        max_length=100,
                    ),
                ),
                ("payload", models.JSONField(help_text="Full webhook payload from Paystack (JSON)")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("processed", "Processed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current processing status",
                        max_length=20,
                    ),
                ),
                (
                    "processed_at",
                    models.DateTimeField(
                        blank=True, help_text="When event was successfully processed", null=True
                    ),
                ),
                (
                    "error_message",
                    models.TextField(
                        blank=True, help_text="Error message if processing failed", null=True
                    ),
                ),
                (
                    "retry_count",
                    models.PositiveSmallIntegerField(default=0, help_text="Number of processing attempts"),
                ),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="webhook_status_created_idx"),
                    models.Index(fields=["status", "retry_count"], name="webhook_status_retry_idx"),
                ],
            },
        ),
    ]
