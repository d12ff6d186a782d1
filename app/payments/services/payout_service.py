"""
Payout service for releasing escrowed funds to sellers.

This module handles the critical path for money leaving the platform:
delivery confirmation, the liquidity check, the Paystack transfer and the
transfer outcome reported back by webhooks or status checks.

The service uses a two-phase pattern for safety:
1. Phase 1: Transition to TRANSFER_INITIATED under the row lock, commit
2. Phase 2: Call Paystack initiate_transfer (outside the transaction)
3. Phase 3: Record the transfer code; transfer.* webhooks finish the job

Because the transition commits before the gateway call, two workers can
never both send money for the same Transaction. The transfer reference is
deterministic per Transaction, so Paystack rejects a duplicate too.

A transfer call that times out is ambiguous. It is never retried blindly:
reconcile_transfer_status asks Paystack whether the reference exists and
only resends when Paystack has no record of it.

Usage:
    from payments.services import PayoutService

    result = PayoutService.confirm_delivery(txn.id, buyer)
    if result.outcome == PayoutOutcome.QUEUED:
        ...  # retried by process_queued_payouts
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from django.db import transaction

from core.exceptions import PermissionDeniedError
from core.services import BaseService

from payments.adapters import PaystackAdapter, TransferResult
from payments.exceptions import (
    InvalidStateTransitionError,
    LockAcquisitionError,
    MissingPayoutDestinationError,
    PaymentValidationError,
    PaystackError,
    PaystackInvalidRequestError,
    TransactionNotFoundError,
)
from payments.locks import DistributedLock, lock_transaction
from payments.models import Escrow, PayoutAttempt, PayoutAttemptStatus, PayoutDestination, Transaction
from payments.services.commission import CommissionSplit, calculate_commission
from payments.services.escrow_service import EscrowService, format_naira
from payments.services.references import transfer_reference_for
from payments.services.wallet_service import WalletService
from payments.state_machines import EscrowStatus, TransactionStatus

if TYPE_CHECKING:
    from authentication.models import User

PAYOUT_QUEUE_LOCK = "payout-queue"
TRANSFER_VERIFY_COUNTDOWN_SECONDS = 60


class PayoutOutcome(str, Enum):
    INITIATED = "transfer_initiated"
    OTP_REQUIRED = "otp_required"
    QUEUED = "queued"
    COMPLETED = "completed"
    PENDING_VERIFICATION = "pending_verification"
    FAILED = "failed"


@dataclass
class PayoutResult:
    """
    Result of a payout step.

    Attributes:
        transaction: The Transaction after the step
        outcome: What happened (see PayoutOutcome)
        message: Human-readable detail for the caller
    """

    transaction: Transaction
    outcome: PayoutOutcome
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        txn = self.transaction
        return {
            "transaction_id": str(txn.id),
            "status": txn.status,
            "outcome": self.outcome.value,
            "otp_required": txn.otp_required,
            "transfer_reference": txn.transfer_reference,
            "seller_share_kobo": txn.seller_share_kobo,
            "commission_kobo": txn.commission_kobo,
            "message": self.message,
        }


@dataclass
class QueueRunResult:
    balance_kobo: int | None = None
    initiated: int = 0
    failed: int = 0
    remaining: int = 0
    skipped: bool = False


class PayoutService(BaseService):
    """
    Service for seller payouts.

    Methods:
        confirm_delivery: ConfirmDelivery, buyer-triggered release of escrow
        process_queued_payouts: Drain CONFIRMED_PENDING_PAYOUT oldest first
        force_payout: Admin override of the liquidity check for a queued payout
        finalize_otp: Submit the OTP for a transfer Paystack parked in "otp"
        handle_transfer_success / handle_transfer_failed / handle_transfer_reversed:
            Terminal outcomes reported by Paystack
        reconcile_transfer_status: Resolve an ambiguous transfer via verify_transfer
    """

    # =========================================================================
    # Destinations
    # =========================================================================

    @classmethod
    def register_destination(
        cls,
        seller: User,
        *,
        account_number: str,
        bank_code: str,
        account_name: str,
        bank_name: str = "",
    ) -> PayoutDestination:
        """
        Create or replace the seller's bank details.

        Changing the account drops the provisioned recipient so the next
        payout provisions one for the new account.
        """
        destination = PayoutDestination.objects.filter(seller=seller).first()
        if destination is None:
            destination = PayoutDestination(seller=seller)
        elif (destination.account_number, destination.bank_code) != (account_number, bank_code):
            destination.recipient_code = ""

        destination.account_number = account_number
        destination.bank_code = bank_code
        destination.account_name = account_name
        destination.bank_name = bank_name
        destination.save()

        cls.get_logger().info(
            "Payout destination registered",
            extra={"seller_id": str(seller.id), "bank_code": bank_code, "account_number": account_number[-4:]},
        )
        return destination

    @classmethod
    def ensure_payout_destination(cls, seller: User | Any) -> PayoutDestination:
        """
        Return the seller's destination with a Paystack recipient code.

        Raises:
            MissingPayoutDestinationError: Seller never registered bank details
            PaystackError: Recipient provisioning failed
        """
        seller_id = getattr(seller, "id", seller)
        destination = PayoutDestination.objects.filter(seller_id=seller_id).first()
        if destination is None:
            raise MissingPayoutDestinationError(
                "The seller has not registered a payout account",
                details={"seller_id": str(seller_id)},
            )

        if not destination.is_provisioned:
            recipient = PaystackAdapter.create_transfer_recipient(
                name=destination.account_name,
                account_number=destination.account_number,
                bank_code=destination.bank_code,
            )
            destination.recipient_code = recipient.recipient_code
            destination.save(update_fields=["recipient_code", "updated_at"])
            cls.get_logger().info(
                "Transfer recipient provisioned",
                extra={"seller_id": str(seller_id), "recipient_code": recipient.recipient_code},
            )
        return destination

    # =========================================================================
    # ConfirmDelivery
    # =========================================================================

    @classmethod
    def confirm_delivery(cls, transaction_id: uuid.UUID | str, user: User) -> PayoutResult:
        """
        Buyer confirms delivery; release the seller's share.

        The confirmation itself never fails because of Paystack: an
        unreadable balance, insufficient liquidity or a recipient that
        could not be provisioned all defer the payout to the queue.

        Raises:
            TransactionNotFoundError: Unknown transaction
            PermissionDeniedError: Caller is not the buyer
            InvalidStateTransitionError: Transaction is not IN_ESCROW
            MissingPayoutDestinationError: Seller has no bank details
        """
        txn = cls._get_transaction(transaction_id)
        if txn.buyer_id != user.id:
            raise PermissionDeniedError(
                "Only the buyer can confirm delivery",
                error_code="NOT_TRANSACTION_BUYER",
            )
        cls._require_status(txn, TransactionStatus.IN_ESCROW, "confirm delivery for")

        split = cls._split_for(txn)
        log_extra = {"transaction_id": str(txn.id), "payment_reference": txn.payment_reference}

        try:
            destination = cls.ensure_payout_destination(txn.seller)
        except PaystackError as e:
            cls.get_logger().warning(f"Recipient provisioning failed ({e.error_code}), queueing payout", extra=log_extra)
            return cls._queue(txn.id, split)

        try:
            balance = PaystackAdapter.get_balance()
        except PaystackError as e:
            cls.get_logger().warning(f"Balance check failed ({e.error_code}), queueing payout", extra=log_extra)
            return cls._queue(txn.id, split)

        if balance < split.seller_share_kobo:
            cls.get_logger().info(
                f"Balance {balance} below seller share {split.seller_share_kobo}, queueing payout",
                extra=log_extra,
            )
            return cls._queue(txn.id, split)

        return cls._start_transfer(txn.id, destination, split)

    @classmethod
    def _get_transaction(cls, transaction_id: uuid.UUID | str) -> Transaction:
        txn = Transaction.objects.select_related("seller").filter(pk=transaction_id).first()
        if txn is None:
            raise TransactionNotFoundError(
                "Transaction not found",
                details={"transaction_id": str(transaction_id)},
            )
        return txn

    @classmethod
    def _require_status(cls, txn: Transaction, status: str, action: str) -> None:
        if txn.status != status:
            cls.get_logger().error(
                f"Cannot {action} transaction in {txn.status}",
                extra={"transaction_id": str(txn.id), "current_state": txn.status},
            )
            raise InvalidStateTransitionError(
                f"Cannot {action} a transaction in '{txn.status}' state",
                details={"transaction_id": str(txn.id), "current_state": txn.status, "required_state": status},
            )

    @classmethod
    def _split_for(cls, txn: Transaction) -> CommissionSplit:
        escrow = Escrow.objects.filter(transaction=txn).first()
        if escrow is not None:
            return CommissionSplit(
                amount_kobo=escrow.amount_kobo,
                commission_kobo=escrow.commission_kobo,
                seller_share_kobo=escrow.seller_share_kobo,
            )
        if txn.seller_share_kobo is not None and txn.commission_kobo is not None:
            return CommissionSplit(txn.amount_kobo, txn.commission_kobo, txn.seller_share_kobo)
        return calculate_commission(txn.amount_kobo)

    @classmethod
    def _queue(cls, transaction_id: uuid.UUID | str, split: CommissionSplit) -> PayoutResult:
        with transaction.atomic():
            txn = lock_transaction(transaction_id)
            applied = EscrowService.apply_transition(
                txn,
                "queue_payout",
                commission_kobo=split.commission_kobo,
                seller_share_kobo=split.seller_share_kobo,
            )

        if applied:
            cls._notify_seller(txn, "payout_queued")
        return PayoutResult(
            transaction=txn,
            outcome=PayoutOutcome.QUEUED,
            message="Delivery confirmed. The payout will be sent as soon as funds are available.",
        )

    # =========================================================================
    # Transfers
    # =========================================================================

    @classmethod
    def _start_transfer(
        cls,
        transaction_id: uuid.UUID | str,
        destination: PayoutDestination,
        split: CommissionSplit,
    ) -> PayoutResult:
        # Phase 1: claim the payout
        with transaction.atomic():
            txn = lock_transaction(transaction_id)
            applied = EscrowService.apply_transition(
                txn,
                "initiate_transfer",
                transfer_reference=transfer_reference_for(txn.id),
                commission_kobo=split.commission_kobo,
                seller_share_kobo=split.seller_share_kobo,
            )
            if applied:
                EscrowService.update_escrow_status(txn, EscrowStatus.RELEASED)

        if not applied:
            return PayoutResult(transaction=txn, outcome=PayoutOutcome.INITIATED, message="Transfer already initiated")

        # Phase 2: call Paystack
        return cls._send_transfer(txn, destination)

    @classmethod
    def _send_transfer(cls, txn: Transaction, destination: PayoutDestination) -> PayoutResult:
        log_extra = {
            "transaction_id": str(txn.id),
            "payment_reference": txn.payment_reference,
            "transfer_reference": txn.transfer_reference,
            "amount_kobo": txn.seller_share_kobo,
        }
        attempt = PayoutAttempt.objects.create(
            transaction=txn,
            transfer_reference=txn.transfer_reference,
            amount_kobo=txn.seller_share_kobo,
            recipient_code=destination.recipient_code,
        )

        try:
            result = PaystackAdapter.initiate_transfer(
                amount_kobo=txn.seller_share_kobo,
                recipient_code=destination.recipient_code,
                reference=txn.transfer_reference,
                reason=f"Payout for {txn.payment_reference}",
            )
        except PaystackInvalidRequestError as e:
            cls._close_attempt(attempt, PayoutAttemptStatus.FAILED, error=e)
            cls.get_logger().error(f"Transfer rejected by Paystack: {e.message}", extra=log_extra)
            txn = cls.handle_transfer_failed(txn.transfer_reference, reason=e.message) or txn
            return PayoutResult(transaction=txn, outcome=PayoutOutcome.FAILED, message=e.message)
        except PaystackError as e:
            # Timeout or 5xx: the transfer may exist at Paystack
            cls._close_attempt(attempt, PayoutAttemptStatus.UNKNOWN, error=e)
            cls.get_logger().warning(
                f"Transfer outcome unknown ({e.error_code}), scheduling status check",
                extra=log_extra,
            )
            cls._schedule_verification(txn.id)
            return PayoutResult(
                transaction=txn,
                outcome=PayoutOutcome.PENDING_VERIFICATION,
                message="Transfer submitted; awaiting confirmation from the bank",
            )

        return cls._record_transfer_result(txn, attempt, result)

    @classmethod
    def _record_transfer_result(
        cls, txn: Transaction, attempt: PayoutAttempt, result: TransferResult
    ) -> PayoutResult:
        status = {
            "otp": PayoutAttemptStatus.OTP_REQUIRED,
            "success": PayoutAttemptStatus.SUCCEEDED,
            "failed": PayoutAttemptStatus.FAILED,
        }.get(result.status, PayoutAttemptStatus.SUBMITTED)
        attempt.status = status
        attempt.transfer_code = result.transfer_code
        attempt.gateway_response = result.raw_response
        attempt.save(update_fields=["status", "transfer_code", "gateway_response", "updated_at"])

        Transaction.objects.filter(pk=txn.pk).update(
            transfer_code=result.transfer_code,
            otp_required=result.otp_required,
            transfer_status_message=result.status,
        )
        txn.transfer_code = result.transfer_code
        txn.otp_required = result.otp_required
        txn.transfer_status_message = result.status

        cls.get_logger().info(
            f"Transfer submitted, Paystack status {result.status}",
            extra={"transaction_id": str(txn.id), "transfer_reference": txn.transfer_reference},
        )

        if result.status == "success":
            txn = cls.handle_transfer_success(txn.transfer_reference) or txn
            return PayoutResult(transaction=txn, outcome=PayoutOutcome.COMPLETED, message="Payout completed")
        if result.status in ("failed", "reversed"):
            txn = cls.handle_transfer_failed(txn.transfer_reference, reason=result.status) or txn
            return PayoutResult(transaction=txn, outcome=PayoutOutcome.FAILED, message="Transfer failed")

        cls._notify_seller(txn, "payout_initiated")
        if result.otp_required:
            return PayoutResult(
                transaction=txn,
                outcome=PayoutOutcome.OTP_REQUIRED,
                message="Transfer awaiting OTP authorisation",
            )
        return PayoutResult(transaction=txn, outcome=PayoutOutcome.INITIATED, message="Transfer initiated")

    @classmethod
    def _close_attempt(cls, attempt: PayoutAttempt, status: str, error: PaystackError) -> None:
        attempt.status = status
        attempt.error_message = error.message
        attempt.gateway_response = error.response_body if isinstance(error.response_body, dict) else {}
        attempt.save(update_fields=["status", "error_message", "gateway_response", "updated_at"])

    @classmethod
    def _schedule_verification(cls, transaction_id: uuid.UUID | str) -> None:
        from payments.tasks import reconcile_transfer_status

        reconcile_transfer_status.apply_async(
            args=[str(transaction_id)],
            countdown=TRANSFER_VERIFY_COUNTDOWN_SECONDS,
        )

    # =========================================================================
    # Payout queue
    # =========================================================================

    @classmethod
    def process_queued_payouts(cls) -> QueueRunResult:
        """
        Pay queued sellers oldest first while the balance covers them.

        The balance is read once per run. The run stops at the first payout
        the remaining balance cannot cover, so a large old payout is never
        starved by smaller newer ones. A failure on one item is logged and
        the run moves on.
        """
        lock = DistributedLock(PAYOUT_QUEUE_LOCK, ttl=600, blocking=False)
        try:
            lock.acquire()
        except LockAcquisitionError:
            cls.get_logger().info("Payout queue already being processed, skipping run")
            return QueueRunResult(skipped=True)

        try:
            return cls._drain_queue(lock)
        finally:
            lock.release()

    @classmethod
    def _drain_queue(cls, lock: DistributedLock) -> QueueRunResult:
        queued_ids = list(
            Transaction.objects.filter(status=TransactionStatus.CONFIRMED_PENDING_PAYOUT)
            .order_by("payout_queued_at", "created_at")
            .values_list("id", flat=True)
        )
        run = QueueRunResult(remaining=len(queued_ids))
        if not queued_ids:
            return run

        try:
            run.balance_kobo = PaystackAdapter.get_balance()
        except PaystackError as e:
            cls.get_logger().warning(f"Balance check failed ({e.error_code}), payout queue left untouched")
            return run

        available = run.balance_kobo
        for transaction_id in queued_ids:
            txn = Transaction.objects.filter(pk=transaction_id).first()
            if txn is None or txn.status != TransactionStatus.CONFIRMED_PENDING_PAYOUT:
                run.remaining -= 1
                continue

            split = cls._split_for(txn)
            if split.seller_share_kobo > available:
                cls.get_logger().info(
                    f"Balance {available} cannot cover {split.seller_share_kobo}, stopping run",
                    extra={"transaction_id": str(txn.id)},
                )
                break

            try:
                destination = cls.ensure_payout_destination(txn.seller_id)
                result = cls._start_transfer(txn.id, destination, split)
            except Exception:
                run.failed += 1
                cls.get_logger().exception(
                    "Queued payout failed",
                    extra={"transaction_id": str(txn.id), "payment_reference": txn.payment_reference},
                )
                continue
            finally:
                lock.extend()

            run.remaining -= 1
            if result.outcome == PayoutOutcome.FAILED:
                run.failed += 1
            else:
                run.initiated += 1
                available -= split.seller_share_kobo

        cls.get_logger().info(
            f"Payout queue run: {run.initiated} initiated, {run.failed} failed, {run.remaining} still queued",
            extra={"balance_kobo": run.balance_kobo},
        )
        return run

    @classmethod
    def force_payout(cls, transaction_id: uuid.UUID | str, admin: User) -> PayoutResult:
        """
        Send a queued payout without the liquidity check.

        Raises:
            InvalidStateTransitionError: Transaction is not CONFIRMED_PENDING_PAYOUT
            MissingPayoutDestinationError: Seller has no bank details
            PaystackError: Recipient provisioning failed
        """
        txn = cls._get_transaction(transaction_id)
        cls._require_status(txn, TransactionStatus.CONFIRMED_PENDING_PAYOUT, "force payout for")

        cls.get_logger().warning(
            "Payout forced by administrator",
            extra={"transaction_id": str(txn.id), "admin_id": str(admin.id)},
        )
        destination = cls.ensure_payout_destination(txn.seller_id)
        return cls._start_transfer(txn.id, destination, cls._split_for(txn))

    @classmethod
    def finalize_otp(cls, transaction_id: uuid.UUID | str, otp: str, admin: User) -> PayoutResult:
        """
        Authorise a transfer that Paystack parked waiting for an OTP.

        Raises:
            PaymentValidationError: The transfer is not waiting for an OTP
            PaystackError: Paystack rejected the OTP or was unreachable
        """
        txn = cls._get_transaction(transaction_id)
        cls._require_status(txn, TransactionStatus.TRANSFER_INITIATED, "finalize OTP for")
        if not txn.otp_required or not txn.transfer_code:
            raise PaymentValidationError(
                "This transfer is not waiting for an OTP",
                error_code="OTP_NOT_REQUIRED",
                details={"transaction_id": str(txn.id)},
            )

        attempt = PayoutAttempt.objects.create(
            transaction=txn,
            transfer_reference=txn.transfer_reference,
            amount_kobo=txn.seller_share_kobo,
            transfer_code=txn.transfer_code,
        )
        try:
            result = PaystackAdapter.finalize_transfer(txn.transfer_code, otp)
        except PaystackError as e:
            cls._close_attempt(attempt, PayoutAttemptStatus.FAILED, error=e)
            raise

        cls.get_logger().info(
            "Transfer OTP submitted",
            extra={"transaction_id": str(txn.id), "admin_id": str(admin.id)},
        )
        return cls._record_transfer_result(txn, attempt, result)

    # =========================================================================
    # Transfer outcomes
    # =========================================================================

    @classmethod
    def _find_by_transfer_reference(cls, reference: str | None) -> Transaction | None:
        if not reference:
            return None
        txn = Transaction.objects.filter(transfer_reference=reference).first()
        if txn is None:
            cls.get_logger().warning(f"No transaction for transfer reference {reference}")
        return txn

    @classmethod
    def handle_transfer_success(cls, reference: str | None, data: dict | None = None) -> Transaction | None:
        txn = cls._find_by_transfer_reference(reference)
        if txn is None:
            return None

        with transaction.atomic():
            txn = lock_transaction(txn.id)
            applied = EscrowService.apply_transition(txn, "complete_transfer")
            if applied:
                WalletService.capture_commission(txn)
                EscrowService.update_escrow_status(txn, EscrowStatus.COMPLETED)
                PayoutAttempt.objects.filter(
                    transaction=txn,
                    status__in=[PayoutAttemptStatus.SUBMITTED, PayoutAttemptStatus.OTP_REQUIRED, PayoutAttemptStatus.UNKNOWN],
                ).update(status=PayoutAttemptStatus.SUCCEEDED)

        if applied:
            cls._notify_seller(txn, "payout_completed")
        return txn

    @classmethod
    def handle_transfer_failed(cls, reference: str | None, reason: str = "", data: dict | None = None) -> Transaction | None:
        return cls._handle_transfer_terminal(reference, "fail_transfer", EscrowStatus.TRANSFER_FAILED, reason)

    @classmethod
    def handle_transfer_reversed(cls, reference: str | None, reason: str = "", data: dict | None = None) -> Transaction | None:
        return cls._handle_transfer_terminal(reference, "reverse_transfer", EscrowStatus.REVERSED, reason)

    @classmethod
    def _handle_transfer_terminal(
        cls, reference: str | None, name: str, escrow_status: str, reason: str
    ) -> Transaction | None:
        txn = cls._find_by_transfer_reference(reference)
        if txn is None:
            return None

        with transaction.atomic():
            txn = lock_transaction(txn.id)
            applied = EscrowService.apply_transition(txn, name, reason=reason)
            if applied:
                EscrowService.update_escrow_status(txn, escrow_status)

        if applied:
            cls.get_logger().error(
                f"Payout {txn.status}: {reason}",
                extra={"transaction_id": str(txn.id), "transfer_reference": txn.transfer_reference},
            )
            cls._notify_seller(txn, "payout_failed")
        return txn

    @classmethod
    def reconcile_transfer_status(cls, transaction_id: uuid.UUID | str) -> str:
        """
        Settle a TRANSFER_INITIATED Transaction against Paystack.

        A 404 from verify_transfer means Paystack never created the
        transfer, so it is sent again with the same reference.

        Returns:
            The Transaction status afterwards

        Raises:
            PaystackError: Paystack could not be reached (caller retries)
        """
        txn = Transaction.objects.get(pk=transaction_id)
        if txn.status != TransactionStatus.TRANSFER_INITIATED:
            return txn.status

        try:
            result = PaystackAdapter.verify_transfer(txn.transfer_reference)
        except PaystackInvalidRequestError as e:
            if e.status_code != 404:
                raise
            cls.get_logger().warning(
                "Paystack has no record of the transfer, resending",
                extra={"transaction_id": str(txn.id), "transfer_reference": txn.transfer_reference},
            )
            destination = cls.ensure_payout_destination(txn.seller_id)
            return cls._send_transfer(txn, destination).transaction.status

        if result.status == "success":
            txn = cls.handle_transfer_success(txn.transfer_reference) or txn
        elif result.status == "failed":
            txn = cls.handle_transfer_failed(txn.transfer_reference, reason="failed") or txn
        elif result.status == "reversed":
            txn = cls.handle_transfer_reversed(txn.transfer_reference, reason="reversed") or txn
        else:
            Transaction.objects.filter(pk=txn.pk).update(
                otp_required=result.otp_required,
                transfer_code=result.transfer_code or txn.transfer_code,
                transfer_status_message=result.status,
            )
        return txn.status

    # =========================================================================
    # Notifications
    # =========================================================================

    @classmethod
    def _notify_seller(cls, txn: Transaction, type_key: str) -> None:
        from notifications.services import NotificationService

        amount = txn.seller_share_kobo if txn.seller_share_kobo is not None else txn.amount_kobo
        NotificationService.notify(
            txn.seller,
            type_key,
            {
                "amount": format_naira(amount),
                "product_title": txn.product_snapshot.get("title", ""),
                "transaction_id": str(txn.id),
            },
            idempotency_key=f"{type_key}:{txn.id}",
        )


__all__ = [
    "PayoutOutcome",
    "PayoutResult",
    "PayoutService",
    "QueueRunResult",
]
