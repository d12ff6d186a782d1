"""
Payment adapters for external services.

All Paystack API calls go through PaystackAdapter to ensure consistent
error handling, timeouts, retries, and observability.

Usage:
    from payments.adapters import PaystackAdapter

    balance_kobo = PaystackAdapter.get_balance()
"""

from payments.adapters.paystack_adapter import (
    CustomerResult,
    DedicatedAccountResult,
    LedgerCredit,
    PaystackAdapter,
    RecipientResult,
    RefundResult,
    TransferResult,
    backoff_delay,
    is_retryable_paystack_error,
)

__all__ = [
    "CustomerResult",
    "DedicatedAccountResult",
    "LedgerCredit",
    "PaystackAdapter",
    "RecipientResult",
    "RefundResult",
    "TransferResult",
    "backoff_delay",
    "is_retryable_paystack_error",
]
