"""
Transaction and Escrow models for the marketplace settlement lifecycle.

Transaction is the central entity tracking one buyer's purchase attempt
for one product, from payment instructions through seller payout. Escrow
is the audit record of the funds held once payment is confirmed.

Usage:
    from payments.models import Transaction, Escrow
    from payments.state_machines import TransactionStatus

    # State transitions go through EscrowService, never direct assignment
    from payments.services import EscrowService

    txn, applied = EscrowService.confirm_payment(
        txn.id, gateway_reference="T123", paid_at=timezone.now()
    )
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import ChannelType, EscrowStatus, TransactionStatus


class Transaction(UUIDPrimaryKeyMixin, BaseModel):
    """
    One buyer/product purchase attempt.

    Uses django-fsm for state machine management and optimistic
    locking via version field for concurrency control.

    State Flow (immediate payout):
        AWAITING_PAYMENT -> IN_ESCROW -> TRANSFER_INITIATED -> COMPLETED

    State Flow (deferred payout):
        AWAITING_PAYMENT -> IN_ESCROW -> CONFIRMED_PENDING_PAYOUT
            -> TRANSFER_INITIATED -> COMPLETED

    Failure Flow:
        TRANSFER_INITIATED -> TRANSFER_FAILED | REVERSED

    Refund / Cancellation Flow:
        IN_ESCROW -> REFUND_REQUESTED -> REFUNDED
        REFUND_REQUESTED -> IN_ESCROW (gateway rejected the refund)
        AWAITING_PAYMENT -> REFUNDED
        AWAITING_PAYMENT -> CANCELLED

    Fields:
        payment_reference: System reference the buyer quotes (SALM-...)
        buyer / seller / product: Parties and item
        amount_kobo: Full price in kobo
        status: Current FSM state
        channel_type / channel_key / channel_details: Payment channel used
        gateway_reference: Paystack's own reference for the inbound charge
        commission_kobo / seller_share_kobo: Persisted at payout time
        transfer_reference / transfer_code: Outbound payout identifiers
        otp_required: Paystack parked the transfer awaiting an OTP
        side_effects_completed_at: Receipt + notifications delivered
        version: Optimistic locking version

    Note:
        Only one Transaction may be AWAITING_PAYMENT per (buyer, channel_key).
        This is enforced by a partial unique constraint.
    """

    # ==========================================================================
    # Identity
    # ==========================================================================

    payment_reference = models.CharField(
        max_length=64,
        unique=True,
        db_index=True,
        help_text="Reference the buyer quotes as transfer narration (SALM-XXXX-YYYY-ZZZZ)",
    )

    # ==========================================================================
    # Parties
    # ==========================================================================

    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="purchases",
        help_text="User paying for the product",
    )

    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="sales",
        help_text="User receiving the payout",
    )

    product = models.ForeignKey(
        "marketplace.Product",
        on_delete=models.PROTECT,
        related_name="transactions",
        help_text="Product being purchased",
    )

    buyer_email = models.EmailField(
        blank=True,
        default="",
        db_index=True,
        help_text="Buyer contact email, used by identity + amount matching",
    )

    # ==========================================================================
    # Amount & State
    # ==========================================================================

    amount_kobo = models.PositiveBigIntegerField(
        help_text="Full price in kobo",
    )

    currency = models.CharField(
        max_length=3,
        default="NGN",
        help_text="ISO 4217 currency code",
    )

    status = FSMField(
        default=TransactionStatus.AWAITING_PAYMENT,
        choices=TransactionStatus.choices,
        db_index=True,
        protected=True,  # Prevent direct assignment outside transitions
        help_text="Current state of the transaction (managed by FSM)",
    )

    # ==========================================================================
    # Payment Channel
    # ==========================================================================

    channel_type = models.CharField(
        max_length=20,
        choices=ChannelType.choices,
        default=ChannelType.MANUAL_TRANSFER,
        help_text="How the buyer was told to pay",
    )

    channel_key = models.CharField(
        max_length=64,
        db_index=True,
        help_text="Destination identifier matched against inbound events",
    )

    channel_details = models.JSONField(
        default=dict,
        blank=True,
        help_text="Account number, bank and account name shown to the buyer",
    )

    product_snapshot = models.JSONField(
        default=dict,
        blank=True,
        help_text="Title, description and price at initiation",
    )

    # ==========================================================================
    # Inbound Payment
    # ==========================================================================

    gateway_reference = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        unique=True,
        help_text="Paystack reference of the inbound charge",
    )

    payment_channel = models.CharField(
        max_length=50,
        blank=True,
        default="",
        help_text="Paystack channel reported for the charge (e.g. dedicated_nuban)",
    )

    narration = models.TextField(
        blank=True,
        default="",
        help_text="Transfer narration as reported by the gateway",
    )

    # ==========================================================================
    # Payout
    # ==========================================================================

    commission_kobo = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text="Platform commission, persisted when payout is computed",
    )

    seller_share_kobo = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text="Amount owed to the seller (amount - commission)",
    )

    transfer_reference = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        unique=True,
        help_text="Deterministic payout reference sent to Paystack",
    )

    transfer_code = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Paystack transfer code (TRF_xxx)",
    )

    transfer_status_message = models.TextField(
        blank=True,
        default="",
        help_text="Last transfer status or failure reason from Paystack",
    )

    otp_required = models.BooleanField(
        default=False,
        help_text="Paystack is waiting for an OTP to release the transfer",
    )

    transfer_attempts = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of transfer initiations sent to Paystack",
    )

    # ==========================================================================
    # Side Effects
    # ==========================================================================

    receipt_url = models.CharField(
        max_length=500,
        blank=True,
        default="",
        help_text="Storage URL of the settlement receipt",
    )

    side_effects_completed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When receipt and party notifications were delivered",
    )

    # ==========================================================================
    # Concurrency Control
    # ==========================================================================

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    # ==========================================================================
    # State Timestamps
    # ==========================================================================

    paid_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the gateway reports the buyer paid",
    )

    payout_queued_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payout was deferred for liquidity",
    )

    released_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the transfer to the seller was initiated",
    )

    completed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When Paystack confirmed the transfer",
    )

    refunded_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the buyer was refunded",
    )

    cancelled_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the pending payment was cancelled",
    )

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Arbitrary JSON metadata for extensibility",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Transaction"
        verbose_name_plural = "Transactions"
        indexes = [
            models.Index(fields=["status", "created_at"], name="txn_status_created_idx"),
            models.Index(fields=["channel_key", "status"], name="txn_channel_status_idx"),
            models.Index(fields=["buyer", "status"], name="txn_buyer_status_idx"),
            models.Index(fields=["seller", "status"], name="txn_seller_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                check=Q(amount_kobo__gt=0),
                name="transaction_amount_positive",
            ),
            models.UniqueConstraint(
                fields=["buyer", "channel_key"],
                condition=Q(status=TransactionStatus.AWAITING_PAYMENT),
                name="transaction_one_pending_per_channel",
            ),
        ]

    def __str__(self) -> str:
        return f"Transaction({self.payment_reference}, {self.status}, {self.amount_kobo / 100:.2f} {self.currency})"

    def save(self, *args, **kwargs):
        """
        Save with version auto-increment for optimistic locking.

        On update (not force_insert), atomically increments the version
        field to detect concurrent modifications.
        """
        is_update = not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])

    @property
    def amount_naira(self) -> Decimal:
        return Decimal(self.amount_kobo) / 100

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=TransactionStatus.AWAITING_PAYMENT,
        target=TransactionStatus.IN_ESCROW,
    )
    def confirm_payment(
        self,
        paid_at=None,
        gateway_reference: str | None = None,
        payment_channel: str = "",
        narration: str = "",
    ):
        """
        Record the reconciled inbound payment.

        Transition: AWAITING_PAYMENT -> IN_ESCROW
        """
        self.paid_at = paid_at or timezone.now()
        if gateway_reference:
            self.gateway_reference = gateway_reference
        if payment_channel:
            self.payment_channel = payment_channel
        if narration:
            self.narration = narration

    @transition(
        field=status,
        source=TransactionStatus.IN_ESCROW,
        target=TransactionStatus.CONFIRMED_PENDING_PAYOUT,
    )
    def queue_payout(self, commission_kobo: int, seller_share_kobo: int):
        """
        Defer the payout until platform liquidity returns.

        Transition: IN_ESCROW -> CONFIRMED_PENDING_PAYOUT
        """
        self.commission_kobo = commission_kobo
        self.seller_share_kobo = seller_share_kobo
        self.payout_queued_at = timezone.now()

    @transition(
        field=status,
        source=[
            TransactionStatus.IN_ESCROW,
            TransactionStatus.CONFIRMED_PENDING_PAYOUT,
        ],
        target=TransactionStatus.TRANSFER_INITIATED,
    )
    def initiate_transfer(
        self, transfer_reference: str, commission_kobo: int, seller_share_kobo: int
    ):
        """
        Claim the payout before the gateway is called.

        Transition: IN_ESCROW | CONFIRMED_PENDING_PAYOUT -> TRANSFER_INITIATED
        """
        self.transfer_reference = transfer_reference
        self.commission_kobo = commission_kobo
        self.seller_share_kobo = seller_share_kobo
        self.transfer_attempts += 1
        self.released_at = timezone.now()

    @transition(
        field=status,
        source=TransactionStatus.TRANSFER_INITIATED,
        target=TransactionStatus.COMPLETED,
    )
    def complete_transfer(self):
        """
        Paystack confirmed the transfer.

        Transition: TRANSFER_INITIATED -> COMPLETED
        """
        self.otp_required = False
        self.completed_at = timezone.now()

    @transition(
        field=status,
        source=TransactionStatus.TRANSFER_INITIATED,
        target=TransactionStatus.TRANSFER_FAILED,
    )
    def fail_transfer(self, reason: str = ""):
        """
        Transition: TRANSFER_INITIATED -> TRANSFER_FAILED
        """
        self.otp_required = False
        if reason:
            self.transfer_status_message = reason

    @transition(
        field=status,
        source=TransactionStatus.TRANSFER_INITIATED,
        target=TransactionStatus.REVERSED,
    )
    def reverse_transfer(self, reason: str = ""):
        """
        Transition: TRANSFER_INITIATED -> REVERSED
        """
        self.otp_required = False
        if reason:
            self.transfer_status_message = reason

    @transition(
        field=status,
        source=TransactionStatus.IN_ESCROW,
        target=TransactionStatus.REFUND_REQUESTED,
    )
    def hold_for_refund(self):
        """
        Claim escrowed funds for an approved refund so no payout can start.

        Transition: IN_ESCROW -> REFUND_REQUESTED
        """

    @transition(
        field=status,
        source=TransactionStatus.REFUND_REQUESTED,
        target=TransactionStatus.IN_ESCROW,
    )
    def release_refund_hold(self):
        """
        The gateway rejected the refund; funds go back to escrow.

        Transition: REFUND_REQUESTED -> IN_ESCROW
        """

    @transition(
        field=status,
        source=[TransactionStatus.AWAITING_PAYMENT, TransactionStatus.REFUND_REQUESTED],
        target=TransactionStatus.REFUNDED,
    )
    def refund(self):
        """
        Transition: AWAITING_PAYMENT | REFUND_REQUESTED -> REFUNDED
        """
        self.refunded_at = timezone.now()

    @transition(
        field=status,
        source=TransactionStatus.AWAITING_PAYMENT,
        target=TransactionStatus.CANCELLED,
    )
    def cancel(self):
        """
        Transition: AWAITING_PAYMENT -> CANCELLED
        """
        self.cancelled_at = timezone.now()


class Escrow(UUIDPrimaryKeyMixin, BaseModel):
    """
    Funds held for a paid Transaction.

    Created (or upserted) when the Transaction enters IN_ESCROW and then
    mutated only by the payout path. Never deleted; it is the audit trail
    of what the platform owed and kept.

    Fields:
        transaction: The Transaction these funds belong to
        amount_kobo: Full amount held
        commission_kobo: Platform commission reserved at escrow entry
        seller_share_kobo: amount - commission
        status: In Escrow / Released / Completed / Transfer Failed / Reversed
    """

    transaction = models.OneToOneField(
        Transaction,
        on_delete=models.PROTECT,
        related_name="escrow",
        help_text="Transaction whose funds are held",
    )

    amount_kobo = models.PositiveBigIntegerField(
        help_text="Amount held in kobo",
    )

    commission_kobo = models.PositiveBigIntegerField(
        help_text="Platform commission in kobo",
    )

    seller_share_kobo = models.PositiveBigIntegerField(
        help_text="Seller share in kobo",
    )

    status = models.CharField(
        max_length=20,
        choices=EscrowStatus.choices,
        default=EscrowStatus.IN_ESCROW,
        db_index=True,
        help_text="Where the held funds are",
    )

    released_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the funds left escrow (transfer initiated or refund)",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Escrow"
        verbose_name_plural = "Escrows"
        constraints = [
            models.CheckConstraint(
                check=Q(commission_kobo__lte=F("amount_kobo")),
                name="escrow_commission_within_amount",
            ),
        ]

    def __str__(self) -> str:
        return f"Escrow({self.transaction_id}, {self.get_status_display()})"
