"""
Refund service for returning money to buyers.

A buyer opens a RefundRequest; an administrator approves or denies it.
Approval follows the same two-phase pattern as payouts:

1. Phase 1: RefundRequest REQUESTED -> APPROVED and a paid Transaction
   IN_ESCROW -> REFUND_REQUESTED under the row lock, commit
2. Phase 2: Paystack create_refund for the charge minus the gateway fee
3. Phase 3: Transaction -> REFUNDED, escrow reversed, commission released

While the Transaction is REFUND_REQUESTED the payout paths refuse it. If
Paystack rejects the refund the approval is reverted and the Transaction
returns to IN_ESCROW. A timeout leaves both held with the error recorded,
since the refund may exist at Paystack.

Usage:
    from payments.services import RefundService

    refund = RefundService.request_refund(txn.id, buyer, reason="Item never arrived")
    RefundService.approve(refund.id, admin)
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction

from django_fsm import can_proceed

from core.exceptions import PermissionDeniedError
from core.services import BaseService

from payments.adapters import PaystackAdapter
from payments.exceptions import (
    InvalidStateTransitionError,
    PaymentValidationError,
    PaystackError,
    PaystackTimeoutError,
    RefundAlreadyRequestedError,
    RefundRequestNotFoundError,
)
from payments.locks import lock_transaction
from payments.models import RefundRequest, Transaction
from payments.services.commission import calculate_gateway_fee
from payments.services.escrow_service import EscrowService, format_naira
from payments.services.wallet_service import WalletService
from payments.state_machines import EscrowStatus, RefundRequestStatus, TransactionStatus

if TYPE_CHECKING:
    from authentication.models import User

REFUNDABLE_STATUSES = (TransactionStatus.AWAITING_PAYMENT, TransactionStatus.IN_ESCROW)


class RefundService(BaseService):
    """
    RequestRefund and ResolveRefund.

    Methods:
        request_refund: Buyer opens a refund request
        approve: Admin approves; money goes back through Paystack
        deny: Admin rejects; the Transaction is untouched
    """

    @classmethod
    def request_refund(cls, transaction_id: uuid.UUID | str, buyer: User, reason: str) -> RefundRequest:
        """
        Open a refund request.

        Raises:
            TransactionNotFoundError: Unknown transaction
            PermissionDeniedError: Caller is not the buyer
            PaymentValidationError: Empty reason
            InvalidStateTransitionError: Transaction is past the refundable states
            RefundAlreadyRequestedError: A request is already open
        """
        from notifications.services import NotificationService

        reason = (reason or "").strip()
        if not reason:
            raise PaymentValidationError("A reason is required", error_code="REASON_REQUIRED")

        try:
            with transaction.atomic():
                txn = lock_transaction(transaction_id)
                if txn.buyer_id != buyer.id:
                    raise PermissionDeniedError(
                        "Only the buyer can request a refund",
                        error_code="NOT_TRANSACTION_BUYER",
                    )
                cls._require_refundable(txn)
                if RefundRequest.objects.filter(
                    transaction=txn,
                    status__in=[RefundRequestStatus.REQUESTED, RefundRequestStatus.APPROVED],
                ).exists():
                    raise RefundAlreadyRequestedError(
                        "A refund request is already open for this transaction",
                        details={"transaction_id": str(txn.id)},
                    )
                refund = RefundRequest.objects.create(transaction=txn, buyer=buyer, reason=reason)
        except IntegrityError:
            raise RefundAlreadyRequestedError(
                "A refund request is already open for this transaction",
                details={"transaction_id": str(transaction_id)},
            )

        cls.get_logger().info(
            "Refund requested",
            extra={"refund_request_id": str(refund.id), "transaction_id": str(txn.id)},
        )
        NotificationService.notify(
            txn.seller,
            "refund_requested",
            {"product_title": txn.product_snapshot.get("title", ""), "reason": reason, "transaction_id": str(txn.id)},
            idempotency_key=f"refund_requested:{refund.id}",
        )
        return refund

    @classmethod
    def _require_refundable(cls, txn: Transaction) -> None:
        if txn.status not in REFUNDABLE_STATUSES:
            cls.get_logger().error(
                f"Refund not allowed for transaction in {txn.status}",
                extra={"transaction_id": str(txn.id), "current_state": txn.status},
            )
            raise InvalidStateTransitionError(
                f"Cannot refund a transaction in '{txn.status}' state",
                details={"transaction_id": str(txn.id), "current_state": txn.status, "transition": "refund"},
            )

    @classmethod
    def _lock_request(cls, request_id: uuid.UUID | str) -> RefundRequest:
        try:
            return RefundRequest.objects.select_for_update().get(pk=request_id)
        except RefundRequest.DoesNotExist:
            raise RefundRequestNotFoundError(
                "Refund request not found",
                details={"refund_request_id": str(request_id)},
            )

    @classmethod
    def _transition_request(cls, refund: RefundRequest, name: str, **kwargs) -> None:
        method = getattr(refund, name)
        if not can_proceed(method):
            raise InvalidStateTransitionError(
                f"Cannot {name.replace('_', ' ')} a refund request in '{refund.status}' state",
                details={"refund_request_id": str(refund.id), "current_state": refund.status, "transition": name},
            )
        method(**kwargs)
        refund.save()

    # =========================================================================
    # Resolution
    # =========================================================================

    @classmethod
    def approve(cls, request_id: uuid.UUID | str, admin: User, comment: str = "") -> RefundRequest:
        """
        Approve a refund and return the money.

        A Transaction still AWAITING_PAYMENT holds no money, so it is
        refunded without a gateway call and the net amount is zero.

        Raises:
            RefundRequestNotFoundError: Unknown request
            InvalidStateTransitionError: Request or Transaction not refundable
            PaymentValidationError: Paid Transaction has no gateway charge to refund
            PaystackError: The gateway refund failed
        """
        from notifications.services import NotificationService

        # Phase 1: claim the approval
        with transaction.atomic():
            refund = cls._lock_request(request_id)
            txn = lock_transaction(refund.transaction_id)
            cls._require_refundable(txn)
            if txn.status == TransactionStatus.IN_ESCROW and not txn.gateway_reference:
                raise PaymentValidationError(
                    "No gateway charge is recorded for this transaction",
                    error_code="NO_GATEWAY_REFERENCE",
                    details={"transaction_id": str(txn.id)},
                )
            paid = txn.status == TransactionStatus.IN_ESCROW
            if paid:
                EscrowService.apply_transition(txn, "hold_for_refund")
            cls._transition_request(refund, "approve", admin=admin, comment=comment)

        log_extra = {"refund_request_id": str(refund.id), "transaction_id": str(txn.id)}

        # Phase 2: gateway refund
        fee_kobo = calculate_gateway_fee(txn.amount_kobo) if paid else 0
        net_kobo = txn.amount_kobo - fee_kobo if paid else 0
        gateway_refund_id = ""
        if paid:
            try:
                result = PaystackAdapter.create_refund(txn.gateway_reference, net_kobo)
            except PaystackTimeoutError as e:
                RefundRequest.objects.filter(pk=refund.pk).update(failure_reason=e.message)
                cls.get_logger().error("Refund call timed out, verify at Paystack before retrying", extra=log_extra)
                raise
            except PaystackError as e:
                with transaction.atomic():
                    refund = cls._lock_request(refund.id)
                    cls._transition_request(refund, "revert_approval", reason=e.message)
                    txn = lock_transaction(txn.id)
                    EscrowService.apply_transition(txn, "release_refund_hold")
                cls.get_logger().error(f"Refund rejected by Paystack: {e.message}", extra=log_extra)
                raise
            gateway_refund_id = result.id

        # Phase 3: settle
        with transaction.atomic():
            txn = lock_transaction(txn.id)
            EscrowService.apply_transition(txn, "refund")
            if paid:
                WalletService.release_commission(txn)
                EscrowService.update_escrow_status(txn, EscrowStatus.REVERSED)
            refund = cls._lock_request(refund.id)
            cls._transition_request(
                refund,
                "mark_refunded",
                refund_amount_kobo=net_kobo,
                gateway_fee_kobo=fee_kobo,
                gateway_refund_id=gateway_refund_id,
            )

        cls.get_logger().info(
            f"Refund of {net_kobo} processed (fee {fee_kobo})",
            extra={**log_extra, "admin_id": str(admin.id)},
        )
        NotificationService.notify(
            txn.buyer,
            "refund_processed",
            {
                "amount": format_naira(net_kobo),
                "product_title": txn.product_snapshot.get("title", ""),
                "transaction_id": str(txn.id),
            },
            idempotency_key=f"refund_processed:{refund.id}",
        )
        return refund

    @classmethod
    def deny(cls, request_id: uuid.UUID | str, admin: User, comment: str = "") -> RefundRequest:
        """
        Reject a refund request. The Transaction is left as it is.

        Raises:
            RefundRequestNotFoundError: Unknown request
            InvalidStateTransitionError: Request is not REQUESTED
        """
        from notifications.services import NotificationService

        with transaction.atomic():
            refund = cls._lock_request(request_id)
            cls._transition_request(refund, "reject", admin=admin, comment=comment)

        txn = refund.transaction
        cls.get_logger().info(
            "Refund denied",
            extra={"refund_request_id": str(refund.id), "transaction_id": str(txn.id), "admin_id": str(admin.id)},
        )
        NotificationService.notify(
            refund.buyer,
            "refund_denied",
            {
                "product_title": txn.product_snapshot.get("title", ""),
                "comment": comment,
                "transaction_id": str(txn.id),
            },
            idempotency_key=f"refund_denied:{refund.id}",
        )
        return refund

    @classmethod
    def pending(cls):
        return RefundRequest.objects.filter(status=RefundRequestStatus.REQUESTED).select_related(
            "transaction", "buyer"
        ).order_by("created_at")
