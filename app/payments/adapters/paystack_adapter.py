"""
Paystack API adapter for settlement operations.

This module provides the PaystackAdapter class which encapsulates all
Paystack API interactions. All Paystack calls should go through this
adapter to ensure consistent error handling, timeouts, retries, and
observability. Raw `requests` exceptions never leave this module.

Features:
- Bounded timeouts on all API calls
- Automatic error translation to domain exceptions
- Structured logging with timing metrics
- Exponential backoff with jitter for idempotent calls
- Thread-safe for use from Celery workers

Retry policy:
- Reads and provisioning (balance, ledger, verify, customer, recipient,
  dedicated account) are retried up to PAYSTACK_MAX_RETRIES on transient
  failure.
- Money movement (initiate_transfer, finalize_transfer, create_refund) is
  never retried here. A timeout is ambiguous: the caller must reconcile
  with verify_transfer before trying again.

Configuration (via settings):
- PAYSTACK_SECRET_KEY: Paystack secret key (also the webhook HMAC key)
- PAYSTACK_BASE_URL: API root (default: https://api.paystack.co)
- PAYSTACK_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- PAYSTACK_MAX_RETRIES: Max retry attempts (default: 3)

Usage:
    from payments.adapters import PaystackAdapter

    balance_kobo = PaystackAdapter.get_balance()
    result = PaystackAdapter.initiate_transfer(
        amount_kobo=485000,
        recipient_code="RCP_xxx",
        reference="payout-0f8e...",
        reason="Payout for SALM-AB12-CD34-EF56",
    )
    if result.otp_required:
        ...
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import random
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import requests
from django.conf import settings
from django.utils.dateparse import parse_datetime

from payments.exceptions import (
    PaymentValidationError,
    PaystackError,
    PaystackInvalidRequestError,
    PaystackRateLimitError,
    PaystackTimeoutError,
    PaystackUnavailableError,
    WebhookSignatureError,
)


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class CustomerResult:
    customer_code: str
    email: str
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class DedicatedAccountResult:
    """
    A Paystack dedicated virtual account provisioned for a buyer.

    Attributes:
        account_number: NUBAN the buyer transfers to
        bank_name: Partner bank shown to the buyer
        account_name: Account holder name shown to the buyer
        raw_response: Full Paystack response data
    """

    account_number: str
    bank_name: str
    account_name: str
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class RecipientResult:
    recipient_code: str
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class TransferResult:
    """
    Result from Paystack transfer operations.

    Attributes:
        reference: Our transfer reference
        transfer_code: Paystack transfer code (TRF_xxx)
        status: pending, otp, success, failed, reversed
        amount_kobo: Amount in kobo
        raw_response: Full Paystack response data
    """

    reference: str
    transfer_code: str
    status: str
    amount_kobo: int
    raw_response: dict[str, Any] = field(default_factory=dict)

    @property
    def otp_required(self) -> bool:
        return self.status == "otp"


@dataclass
class RefundResult:
    id: str
    status: str
    amount_kobo: int
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class LedgerCredit:
    """
    A credit line from the Paystack balance ledger.

    Used by the polling fallback when a webhook never arrived.
    """

    reference: str
    amount_kobo: int
    description: str
    transaction_date: datetime | None
    raw_response: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Retry Logic Helpers
# =============================================================================


def is_retryable_paystack_error(error: Exception) -> bool:
    """
    Check if a Paystack error is retryable.

    Args:
        error: The exception to check

    Returns:
        True if the error is a transient Paystack error that can be retried
    """
    if isinstance(error, PaystackError):
        return getattr(error, "is_retryable", False)
    return False


def backoff_delay(attempt: int, base: float = 1.0, max_delay: float = 60.0) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Jitter prevents thundering herd when multiple workers retry simultaneously.

    Args:
        attempt: Current attempt number (0-indexed)
        base: Base delay in seconds (default: 1.0)
        max_delay: Maximum delay in seconds (default: 60.0)

    Returns:
        Delay in seconds with jitter (0-25% of calculated delay)

    Example:
        # Attempt 0: 1.0 - 1.25 seconds
        # Attempt 1: 2.0 - 2.5 seconds
        # Attempt 2: 4.0 - 5.0 seconds
        delay = backoff_delay(attempt=2)
    """
    delay = min(base * (2**attempt), max_delay)
    jitter = delay * random.uniform(0, 0.25)
    return delay + jitter


# =============================================================================
# Paystack Adapter
# =============================================================================


class PaystackAdapter:
    """
    Adapter for Paystack API operations.

    All methods are classmethods - no instance state is maintained.
    Thread-safe for use from Celery workers.

    Usage:
        balance = PaystackAdapter.get_balance()
        recipient = PaystackAdapter.create_transfer_recipient(name, acct, bank)
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _headers() -> dict[str, str]:
        return {
            "Authorization": f"Bearer {settings.PAYSTACK_SECRET_KEY}",
            "Content-Type": "application/json",
        }

    @staticmethod
    def _url(path: str) -> str:
        base = getattr(settings, "PAYSTACK_BASE_URL", "https://api.paystack.co").rstrip("/")
        return f"{base}/{path.lstrip('/')}"

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Transport
    # =========================================================================

    @classmethod
    def _request(
        cls,
        method: str,
        path: str,
        log_context: dict[str, Any],
        *,
        payload: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        retry: bool = True,
    ) -> Any:
        """
        Issue one Paystack call and return the response's `data`.

        Transient failures are retried with backoff when `retry` is set;
        everything else is translated and raised on the first failure.
        """
        logger = cls.get_logger()
        timeout = getattr(settings, "PAYSTACK_API_TIMEOUT_SECONDS", 10)
        max_attempts = getattr(settings, "PAYSTACK_MAX_RETRIES", 3) if retry else 1

        attempt = 0
        while True:
            start_time = time.time()
            logger.info("Starting Paystack operation", extra={**log_context, "attempt": attempt + 1})

            try:
                response = requests.request(
                    method,
                    cls._url(path),
                    headers=cls._headers(),
                    json=payload,
                    params=params,
                    timeout=timeout,
                )
                data = cls._parse_response(response, log_context)

                duration_ms = (time.time() - start_time) * 1000
                logger.info(
                    "Paystack operation completed",
                    extra={**log_context, "status_code": response.status_code, "duration_ms": duration_ms},
                )
                return data

            except PaystackError as e:
                attempt += 1
                if not e.is_retryable or attempt >= max_attempts:
                    raise
                delay = backoff_delay(attempt - 1)
                logger.warning(
                    "Retrying Paystack operation",
                    extra={**log_context, "attempt": attempt, "delay_seconds": delay, "error_code": e.error_code},
                )
                time.sleep(delay)

            except requests.RequestException as e:
                duration_ms = (time.time() - start_time) * 1000
                translated = cls._translate_transport_error(e, log_context, duration_ms)
                attempt += 1
                if not translated.is_retryable or attempt >= max_attempts:
                    raise translated from e
                delay = backoff_delay(attempt - 1)
                logger.warning(
                    "Retrying Paystack operation",
                    extra={**log_context, "attempt": attempt, "delay_seconds": delay, "error_code": translated.error_code},
                )
                time.sleep(delay)

    @classmethod
    def _parse_response(cls, response: requests.Response, log_context: dict[str, Any]) -> Any:
        """
        Translate a Paystack HTTP response into its `data` or a domain exception.

        Paystack wraps every body as {"status": bool, "message": str, "data": ...}.
        """
        logger = cls.get_logger()
        status_code = response.status_code

        try:
            body = response.json() if response.content else {}
        except ValueError:
            body = {}

        message = body.get("message") if isinstance(body, dict) else None
        message = message or f"HTTP {status_code}"

        if status_code == 429:
            logger.warning("Rate limited by Paystack", extra=log_context)
            raise PaystackRateLimitError(
                "Paystack rate limit exceeded. Please retry.",
                status_code=status_code,
                response_body=body,
            )

        if status_code >= 500:
            logger.error(
                "Paystack server error",
                extra={**log_context, "status_code": status_code, "response_body": body},
            )
            raise PaystackUnavailableError(
                "Paystack service error. Please retry.",
                status_code=status_code,
                response_body=body,
            )

        if status_code == 401:
            logger.critical("Paystack authentication failed - check secret key", extra=log_context)
            raise PaystackInvalidRequestError(
                "Paystack authentication failed",
                status_code=status_code,
                response_body=body,
            )

        if status_code >= 400 or not isinstance(body, dict) or body.get("status") is not True:
            logger.error(
                "Invalid request to Paystack",
                extra={**log_context, "status_code": status_code, "response_body": body},
            )
            raise PaystackInvalidRequestError(
                message,
                status_code=status_code,
                response_body=body,
            )

        return body.get("data")

    @classmethod
    def _translate_transport_error(
        cls,
        error: requests.RequestException,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> PaystackError:
        """
        Map a `requests` exception to a domain exception.

        A connect timeout means the request never left; a read timeout means
        Paystack may have acted on it.
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, requests.ConnectTimeout):
            logger.error("Connection to Paystack timed out", extra=log_context)
            return PaystackUnavailableError("Could not connect to Paystack. Please retry.")

        if isinstance(error, requests.Timeout):
            logger.error("Paystack call timed out", extra=log_context)
            return PaystackTimeoutError("Paystack did not respond in time.")

        if isinstance(error, requests.ConnectionError):
            logger.error("Connection error to Paystack", extra=log_context, exc_info=True)
            return PaystackUnavailableError("Could not connect to Paystack. Please retry.")

        logger.error(
            f"Unexpected error calling Paystack: {type(error).__name__}",
            extra=log_context,
            exc_info=True,
        )
        return PaystackUnavailableError(f"Unexpected Paystack error: {error}")

    # =========================================================================
    # Customers & Dedicated Accounts
    # =========================================================================

    @classmethod
    def create_customer(cls, email: str, first_name: str = "", last_name: str = "") -> CustomerResult:
        """Create (or fetch, Paystack dedupes by email) a customer."""
        data = cls._request(
            "POST",
            "/customer",
            {"operation": "create_customer", "email": email},
            payload={"email": email, "first_name": first_name, "last_name": last_name},
        )
        return CustomerResult(
            customer_code=data["customer_code"],
            email=data.get("email", email),
            raw_response=data,
        )

    @classmethod
    def create_dedicated_account(cls, customer_code: str, preferred_bank: str | None = None) -> DedicatedAccountResult:
        """
        Provision a dedicated virtual account for a customer.

        Raises:
            PaystackUnavailableError: Provisioning failed transiently
            PaystackInvalidRequestError: Customer not eligible
        """
        preferred_bank = preferred_bank or getattr(settings, "PAYSTACK_DEDICATED_ACCOUNT_BANK", "titan-paystack")
        data = cls._request(
            "POST",
            "/dedicated_account",
            {"operation": "create_dedicated_account", "customer_code": customer_code},
            payload={"customer": customer_code, "preferred_bank": preferred_bank},
        )
        bank = data.get("bank") or {}
        return DedicatedAccountResult(
            account_number=data["account_number"],
            bank_name=bank.get("name", ""),
            account_name=data.get("account_name", ""),
            raw_response=data,
        )

    # =========================================================================
    # Transfers
    # =========================================================================

    @classmethod
    def create_transfer_recipient(cls, name: str, account_number: str, bank_code: str) -> RecipientResult:
        data = cls._request(
            "POST",
            "/transferrecipient",
            {
                "operation": "create_transfer_recipient",
                "account_number": account_number[-4:],
                "bank_code": bank_code,
            },
            payload={
                "type": "nuban",
                "name": name,
                "account_number": account_number,
                "bank_code": bank_code,
                "currency": "NGN",
            },
        )
        return RecipientResult(recipient_code=data["recipient_code"], raw_response=data)

    @classmethod
    def get_balance(cls) -> int:
        """
        Return the available NGN balance in kobo.

        Raises:
            PaystackError: Balance could not be read
        """
        data = cls._request("GET", "/balance", {"operation": "get_balance"}) or []
        for entry in data:
            if entry.get("currency", "NGN") == "NGN":
                return int(entry.get("balance") or 0)
        return 0

    @classmethod
    def initiate_transfer(
        cls,
        amount_kobo: int,
        recipient_code: str,
        reference: str,
        reason: str = "",
    ) -> TransferResult:
        """
        Send money from the Paystack balance to a recipient.

        Never retried. On PaystackTimeoutError the transfer may exist; the
        caller must call verify_transfer(reference) before another attempt.
        """
        if amount_kobo <= 0:
            raise PaymentValidationError(
                "Transfer amount must be positive",
                details={"amount_kobo": amount_kobo},
            )
        data = cls._request(
            "POST",
            "/transfer",
            {
                "operation": "initiate_transfer",
                "amount_kobo": amount_kobo,
                "recipient_code": recipient_code,
                "transfer_reference": reference,
            },
            payload={
                "source": "balance",
                "amount": amount_kobo,
                "recipient": recipient_code,
                "reference": reference,
                "reason": reason,
                "currency": "NGN",
            },
            retry=False,
        )
        return cls._transfer_result(data, reference, amount_kobo)

    @classmethod
    def finalize_transfer(cls, transfer_code: str, otp: str) -> TransferResult:
        data = cls._request(
            "POST",
            "/transfer/finalize_transfer",
            {"operation": "finalize_transfer", "transfer_code": transfer_code},
            payload={"transfer_code": transfer_code, "otp": otp},
            retry=False,
        )
        return cls._transfer_result(data, data.get("reference", ""), int(data.get("amount") or 0))

    @classmethod
    def verify_transfer(cls, reference: str) -> TransferResult:
        """
        Look up a transfer by our reference.

        Raises:
            PaystackInvalidRequestError: status_code 404 when Paystack has no such transfer
        """
        data = cls._request(
            "GET",
            f"/transfer/verify/{reference}",
            {"operation": "verify_transfer", "transfer_reference": reference},
        )
        return cls._transfer_result(data, reference, int(data.get("amount") or 0))

    @staticmethod
    def _transfer_result(data: dict[str, Any], reference: str, amount_kobo: int) -> TransferResult:
        return TransferResult(
            reference=data.get("reference") or reference,
            transfer_code=data.get("transfer_code", ""),
            status=data.get("status", ""),
            amount_kobo=int(data.get("amount") or amount_kobo),
            raw_response=data,
        )

    # =========================================================================
    # Refunds
    # =========================================================================

    @classmethod
    def create_refund(cls, transaction_reference: str, amount_kobo: int) -> RefundResult:
        """Refund part or all of an inbound charge. Never retried."""
        data = cls._request(
            "POST",
            "/refund",
            {
                "operation": "create_refund",
                "gateway_reference": transaction_reference,
                "amount_kobo": amount_kobo,
            },
            payload={"transaction": transaction_reference, "amount": amount_kobo},
            retry=False,
        )
        return RefundResult(
            id=str(data.get("id", "")),
            status=data.get("status", ""),
            amount_kobo=int(data.get("amount") or amount_kobo),
            raw_response=data,
        )

    # =========================================================================
    # Balance Ledger (polling fallback)
    # =========================================================================

    @classmethod
    def list_ledger_credits(cls, since: datetime | None = None, per_page: int = 50) -> list[LedgerCredit]:
        """
        Return recent credits from the balance ledger, newest first.
        """
        params: dict[str, Any] = {"perPage": per_page, "page": 1}
        if since is not None:
            params["from"] = since.isoformat()

        data = cls._request("GET", "/balance/ledger", {"operation": "list_ledger_credits"}, params=params) or []

        credits = []
        for entry in data:
            if entry.get("type") != "credit":
                continue
            raw_date = entry.get("transaction_date") or entry.get("createdAt")
            credits.append(
                LedgerCredit(
                    reference=entry.get("reference", ""),
                    amount_kobo=int(entry.get("amount") or 0),
                    description=entry.get("description") or entry.get("narration") or "",
                    transaction_date=parse_datetime(raw_date) if raw_date else None,
                    raw_response=entry,
                )
            )
        return credits

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    @classmethod
    def verify_webhook_signature(cls, payload: bytes, signature: str | None) -> dict[str, Any]:
        """
        Verify and parse a Paystack webhook event.

        Args:
            payload: Raw webhook body bytes
            signature: x-paystack-signature header value

        Returns:
            Parsed event dict

        Raises:
            WebhookSignatureError: Missing or invalid signature
            PaymentValidationError: Signature valid but body is not a JSON event
        """
        secret = getattr(settings, "PAYSTACK_SECRET_KEY", "") or ""
        if not secret or not signature:
            raise WebhookSignatureError("Missing webhook signature")

        digest = hmac.new(secret.encode("utf-8"), payload, hashlib.sha512).hexdigest()
        if not hmac.compare_digest(digest, signature.strip()):
            raise WebhookSignatureError("Invalid webhook signature")

        try:
            event = json.loads(payload)
        except ValueError:
            raise PaymentValidationError("Webhook body is not valid JSON")

        if not isinstance(event, dict) or not event.get("event"):
            raise PaymentValidationError("Webhook body has no event type")
        return event
