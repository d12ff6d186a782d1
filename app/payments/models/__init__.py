"""
Payment domain models.

This module contains all settlement-related models:
- Transaction: One buyer/product purchase attempt through payout
- Escrow: Funds held for a paid Transaction
- PlatformWallet / WalletEntry: Platform commission balance and its log
- RefundRequest: Buyer-initiated refund resolved by an administrator
- WebhookEvent: Paystack webhook event tracking for idempotent processing
- UnmatchedPayment: Credits awaiting manual reconciliation
- PayoutDestination / PayoutAttempt: Seller bank details and transfer log
- DedicatedAccount: Per-buyer virtual account (dedicated_account mode)
"""

from payments.models.channel import DedicatedAccount
from payments.models.payout import PayoutAttempt, PayoutAttemptStatus, PayoutDestination
from payments.models.reconciliation import UnmatchedPayment
from payments.models.refund import RefundRequest
from payments.models.transaction import Escrow, Transaction
from payments.models.wallet import PlatformWallet, WalletEntry
from payments.models.webhook_event import WebhookEvent

__all__ = [
    "DedicatedAccount",
    "Escrow",
    "PayoutAttempt",
    "PayoutAttemptStatus",
    "PayoutDestination",
    "PlatformWallet",
    "RefundRequest",
    "Transaction",
    "UnmatchedPayment",
    "WalletEntry",
    "WebhookEvent",
]
