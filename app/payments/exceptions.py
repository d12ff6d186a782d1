"""
Payment-specific exceptions for settlement operations.

This module provides a hierarchy of exceptions for the settlement engine,
covering payment domain errors, concurrency control errors, and
Paystack-specific errors.

Exception Hierarchy:
    PaymentError (base for payment domain, 400)
    ├── PaymentValidationError - Bad payment input (price mismatch, bad amount)
    └── MissingPayoutDestinationError - Seller has no bank details

    TransactionNotFoundError, ProductNotFoundError (inherit NotFoundError, 404)

    ProductAlreadySoldError, PendingPaymentExistsError,
    RefundAlreadyRequestedError, LockAcquisitionError,
    InvalidStateTransitionError (inherit ConflictError, 409)

    WebhookSignatureError (inherits UnauthorizedError, 401)

    PaystackError (inherits ExternalServiceError, 503)
    ├── PaystackInvalidRequestError - Rejected request (permanent)
    ├── PaystackRateLimitError - HTTP 429 (transient, retry)
    ├── PaystackUnavailableError - Connection error / 5xx (transient, retry)
    └── PaystackTimeoutError - No response in time (ambiguous)

Usage:
    from payments.exceptions import InvalidStateTransitionError, PaystackError

    try:
        PaystackAdapter.get_balance()
    except PaystackError as e:
        if e.is_retryable:
            ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    UnauthorizedError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Payment Domain Exceptions
# =============================================================================


class PaymentError(BaseApplicationError):
    """
    Base exception for payment validation failures.

    Example:
        try:
            PaymentInitiator.initiate(buyer, product_id)
        except PaymentError as e:
            logger.error(f"Payment operation failed: {e}")
            return Response(e.to_dict(), status=e.http_status)
    """

    default_error_code: str = "PAYMENT_ERROR"


class PaymentValidationError(PaymentError):
    """
    Raised when payment validation fails.

    Use for:
    - Non-positive product price
    - Client-side price differs from the listed price
    - Missing required fields
    """

    default_error_code: str = "PAYMENT_VALIDATION_ERROR"


class MissingPayoutDestinationError(PaymentError):
    """
    Raised when a seller has no bank details to pay out to.

    The seller must register a payout destination before the delivery
    confirmation can release funds.
    """

    default_error_code: str = "MISSING_PAYOUT_DESTINATION"


class TransactionNotFoundError(NotFoundError):
    default_error_code: str = "TRANSACTION_NOT_FOUND"


class ProductNotFoundError(NotFoundError):
    default_error_code: str = "PRODUCT_NOT_FOUND"


class RefundRequestNotFoundError(NotFoundError):
    default_error_code: str = "REFUND_REQUEST_NOT_FOUND"


class ProductAlreadySoldError(ConflictError):
    """
    Raised when a product is no longer available.

    Raised both at initiation (the listing is already sold) and at escrow
    entry, when a second buyer's payment lands after the first claimed the
    product. In the latter case the escrow transition is rolled back and
    the credit is recorded for manual review.
    """

    default_error_code: str = "PRODUCT_ALREADY_SOLD"


class PendingPaymentExistsError(ConflictError):
    """
    Raised when the buyer already has an unpaid transaction on the same
    payment channel for a different product.

    details carries the existing payment_reference so the client can show
    or cancel it.
    """

    default_error_code: str = "PENDING_PAYMENT_EXISTS"


class RefundAlreadyRequestedError(ConflictError):
    default_error_code: str = "REFUND_ALREADY_REQUESTED"


# =============================================================================
# Concurrency Control Exceptions
# =============================================================================


class LockAcquisitionError(ConflictError):
    """
    Raised when a distributed lock cannot be acquired.

    This exception indicates that another process holds the lock
    and it couldn't be acquired within the timeout period.

    Example:
        lock = DistributedLock("payout-queue", ttl=600, timeout=0)
        if not lock.acquire():
            raise LockAcquisitionError(
                "Failed to acquire lock 'payout-queue'",
                details={"key": "payout-queue", "timeout": 0}
            )
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


class InvalidStateTransitionError(ConflictError):
    """
    Raised when a state machine transition is not allowed.

    This exception wraps django-fsm's TransitionNotAllowed to provide
    our standard error format with additional context. It signals a bug
    or tampering and must never be caught and ignored.

    Example:
        from django_fsm import can_proceed

        if not can_proceed(txn.initiate_transfer):
            raise InvalidStateTransitionError(
                f"Cannot initiate transfer from '{txn.status}' state",
                details={
                    "current_state": txn.status,
                    "target_state": "transfer_initiated",
                    "transition": "initiate_transfer",
                }
            )

    Note:
        This exception inherits from ConflictError (HTTP 409) because
        the current state conflicts with the requested operation.
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


# =============================================================================
# Webhook Exceptions
# =============================================================================


class WebhookSignatureError(UnauthorizedError):
    """
    Raised when an inbound webhook's x-paystack-signature does not match
    the HMAC-SHA512 of its raw body. Rejected before any parsing.
    """

    default_error_code: str = "INVALID_WEBHOOK_SIGNATURE"


# =============================================================================
# Paystack-Specific Exceptions
# =============================================================================


class PaystackError(ExternalServiceError):
    """
    Base exception for all Paystack-related errors.

    Provides common attributes for Paystack error handling:
    - status_code: HTTP status returned by Paystack (if any)
    - response_body: Parsed response for operator diagnosis
    - is_retryable: Whether the operation can be retried

    Use is_retryable to determine retry behavior:
    - True: Transient error, safe to retry with backoff
    - False: Permanent or ambiguous error, do not retry blindly
    """

    default_error_code: str = "PAYSTACK_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int | None = None,
        response_body: Any = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, error_code=error_code, details=details)
        self.status_code = status_code
        self.response_body = response_body


class PaystackInvalidRequestError(PaystackError):
    """
    Paystack rejected the request (4xx other than 429, or status false).

    Permanent - the same request will never succeed. Usually a bad
    account number, unknown recipient or insufficient gateway balance.
    """

    default_error_code: str = "PAYSTACK_INVALID_REQUEST"
    is_retryable: bool = False


class PaystackRateLimitError(PaystackError):
    default_error_code: str = "PAYSTACK_RATE_LIMITED"
    is_retryable: bool = True


class PaystackUnavailableError(PaystackError):
    """
    Paystack is temporarily unreachable.

    Covers connection errors, DNS failures and 5xx responses.
    """

    default_error_code: str = "PAYSTACK_UNAVAILABLE"
    is_retryable: bool = True


class PaystackTimeoutError(PaystackError):
    """
    Paystack call timed out.

    The request was sent but no response was received within
    PAYSTACK_API_TIMEOUT_SECONDS.

    IMPORTANT: For transfers and refunds the operation may have succeeded
    on Paystack's side. Callers reconcile via verify_transfer before any
    second attempt; reads are safe to retry.
    """

    default_error_code: str = "PAYSTACK_TIMEOUT"
    is_retryable: bool = True


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    # Payment domain
    "PaymentError",
    "PaymentValidationError",
    "MissingPayoutDestinationError",
    "TransactionNotFoundError",
    "ProductNotFoundError",
    "RefundRequestNotFoundError",
    "ProductAlreadySoldError",
    "PendingPaymentExistsError",
    "RefundAlreadyRequestedError",
    # Concurrency control
    "LockAcquisitionError",
    "InvalidStateTransitionError",
    # Webhooks
    "WebhookSignatureError",
    # Paystack-specific
    "PaystackError",
    "PaystackInvalidRequestError",
    "PaystackRateLimitError",
    "PaystackUnavailableError",
    "PaystackTimeoutError",
]
