"""
State enums for payment models.

This module defines all state enums used by payment models with django-fsm.
These are Django TextChoices for database storage and admin integration.

State Machines Overview:

Transaction States:
    awaiting_payment → in_escrow (payment reconciled)
    in_escrow → transfer_initiated (delivery confirmed, balance sufficient)
    in_escrow → confirmed_pending_payout (delivery confirmed, balance short)
    confirmed_pending_payout → transfer_initiated (scheduler / admin force)
    transfer_initiated → completed | transfer_failed | reversed
    in_escrow → refund_requested (refund approved, gateway call pending)
    refund_requested → refunded | in_escrow (gateway rejected the refund)
    awaiting_payment → refunded (approved refund, nothing paid)
    awaiting_payment → cancelled (abandoned / explicit cancel)

Escrow States:
    in_escrow → released → completed
    released → transfer_failed | reversed

RefundRequest States:
    requested → approved → refunded
    approved → requested (gateway refund failed, retry possible)
    requested → rejected
"""

from django.db import models


class TransactionStatus(models.TextChoices):
    """
    States for the Transaction lifecycle.

    Terminal states: COMPLETED, TRANSFER_FAILED, REVERSED, REFUNDED, CANCELLED

    REFUND_REQUESTED holds escrowed funds while an approved refund is with
    the gateway. Payout transitions do not start from it.
    """

    AWAITING_PAYMENT = "awaiting_payment", "Awaiting Payment"
    IN_ESCROW = "in_escrow", "In Escrow"
    CONFIRMED_PENDING_PAYOUT = "confirmed_pending_payout", "Confirmed, Payout Pending"
    TRANSFER_INITIATED = "transfer_initiated", "Transfer Initiated"
    COMPLETED = "completed", "Completed"
    TRANSFER_FAILED = "transfer_failed", "Transfer Failed"
    REVERSED = "reversed", "Reversed"
    REFUND_REQUESTED = "refund_requested", "Refund Requested"
    REFUNDED = "refunded", "Refunded"
    CANCELLED = "cancelled", "Cancelled"


class EscrowStatus(models.TextChoices):
    """
    States for the Escrow record attached to a paid Transaction.

    Terminal states: COMPLETED, TRANSFER_FAILED, REVERSED
    """

    IN_ESCROW = "in_escrow", "In Escrow"
    RELEASED = "released", "Released"
    COMPLETED = "completed", "Completed"
    TRANSFER_FAILED = "transfer_failed", "Transfer Failed"
    REVERSED = "reversed", "Reversed"


class RefundRequestStatus(models.TextChoices):
    """
    States for the RefundRequest model lifecycle.

    Terminal states: REFUNDED, REJECTED

    State Flow:
        REQUESTED → APPROVED → REFUNDED
        APPROVED → REQUESTED (gateway refund failed)
        REQUESTED → REJECTED
    """

    REQUESTED = "requested", "Refund Requested"
    APPROVED = "approved", "Approved"
    REFUNDED = "refunded", "Refunded"
    REJECTED = "rejected", "Rejected"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent.

    Tracks the lifecycle of webhook event processing for idempotency.

    State Flow:
        PENDING → PROCESSING → PROCESSED
        PENDING → PROCESSING → FAILED (can retry)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


class ChannelType(models.TextChoices):
    """
    How the buyer is told to pay.

    - MANUAL_TRANSFER: Shared platform account; the reference is the narration
    - DEDICATED_ACCOUNT: Per-buyer virtual account provisioned by Paystack
    """

    MANUAL_TRANSFER = "manual_transfer", "Manual Bank Transfer"
    DEDICATED_ACCOUNT = "dedicated_account", "Dedicated Virtual Account"


class UnmatchedReason(models.TextChoices):
    """Why an inbound payment could not be applied to a Transaction."""

    NO_MATCH = "no_match", "No Matching Transaction"
    AMBIGUOUS = "ambiguous", "Multiple Candidate Transactions"
    PRODUCT_ALREADY_SOLD = "product_already_sold", "Product Already Sold"
    NOT_PENDING = "not_pending", "Transaction No Longer Pending"
    AMOUNT_MISMATCH = "amount_mismatch", "Amount Below Price"
    DUPLICATE_CHARGE = "duplicate_charge", "Charge Owned By Another Transaction"


class WalletType(models.TextChoices):
    """Platform wallet kinds."""

    COMMISSION = "commission", "Commission"
    PROMOTION = "promotion", "Promotion"


class WalletEntryType(models.TextChoices):
    """
    Kinds of PlatformWallet movement.

    - RESERVE: Commission earmarked when funds enter escrow
    - CAPTURE: Reserved commission realised when the payout is sent
    - RELEASE: Reservation dropped because the buyer was refunded
    """

    RESERVE = "reserve", "Reserve"
    CAPTURE = "capture", "Capture"
    RELEASE = "release", "Release"


__all__ = [
    "ChannelType",
    "EscrowStatus",
    "RefundRequestStatus",
    "TransactionStatus",
    "UnmatchedReason",
    "WalletEntryType",
    "WalletType",
    "WebhookEventStatus",
]
