"""
Escrow state machine service.

EscrowService is the only writer of Transaction.status. Every transition
runs inside transaction.atomic() on a row locked with SELECT ... FOR
UPDATE, so a webhook racing the polling fallback (or two webhook
deliveries) cannot both apply the same transition.

Transition results:
    applied=True   the transition happened in this call
    applied=False  the Transaction was already in the target state (replay)
    raises         InvalidStateTransitionError for any other pre-state

Usage:
    from payments.services import EscrowService

    txn, applied = EscrowService.confirm_payment(
        txn.id,
        gateway_reference="T1234",
        paid_at=timezone.now(),
    )
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Any

from django.db import transaction
from django.utils import timezone

from django_fsm import can_proceed

from core.services import BaseService

from marketplace.models import Product
from payments.exceptions import InvalidStateTransitionError, ProductAlreadySoldError
from payments.locks import lock_transaction
from payments.models import Escrow, Transaction
from payments.services.commission import calculate_commission, kobo_to_naira
from payments.services.wallet_service import WalletService
from payments.state_machines import EscrowStatus, TransactionStatus

TRANSITION_TARGETS = {
    "confirm_payment": TransactionStatus.IN_ESCROW,
    "queue_payout": TransactionStatus.CONFIRMED_PENDING_PAYOUT,
    "initiate_transfer": TransactionStatus.TRANSFER_INITIATED,
    "complete_transfer": TransactionStatus.COMPLETED,
    "fail_transfer": TransactionStatus.TRANSFER_FAILED,
    "reverse_transfer": TransactionStatus.REVERSED,
    "hold_for_refund": TransactionStatus.REFUND_REQUESTED,
    "release_refund_hold": TransactionStatus.IN_ESCROW,
    "refund": TransactionStatus.REFUNDED,
    "cancel": TransactionStatus.CANCELLED,
}

ESCROWED_STATUSES = (
    TransactionStatus.IN_ESCROW,
    TransactionStatus.CONFIRMED_PENDING_PAYOUT,
    TransactionStatus.TRANSFER_INITIATED,
    TransactionStatus.COMPLETED,
)

# Side effects older than this are left to manual follow-up
SIDE_EFFECT_RETRY_WINDOW = timedelta(days=7)


def format_naira(amount_kobo: int) -> str:
    return f"{kobo_to_naira(amount_kobo):,.2f}"


class EscrowService(BaseService):
    """
    Transaction/Escrow transitions and the side effects of escrow entry.

    Methods:
        apply_transition: Apply a named transition to an already locked row
        transition: Lock, apply, commit
        confirm_payment: AWAITING_PAYMENT -> IN_ESCROW with product claim,
            commission reservation and escrow upsert
        deliver_side_effects: Receipt and party notifications after escrow entry
    """

    @classmethod
    def apply_transition(cls, txn: Transaction, name: str, **kwargs: Any) -> bool:
        """
        Apply a transition to a Transaction the caller has locked.

        Returns:
            True if applied, False if the Transaction is already in the
            target state

        Raises:
            InvalidStateTransitionError: The current state does not permit it
        """
        target = TRANSITION_TARGETS[name]
        if txn.status == target:
            cls.get_logger().info(
                f"Transaction already {target}, skipping {name}",
                extra={"transaction_id": str(txn.id), "payment_reference": txn.payment_reference},
            )
            return False

        method = getattr(txn, name)
        if not can_proceed(method):
            cls.get_logger().error(
                f"Illegal transition {name} from {txn.status}",
                extra={
                    "transaction_id": str(txn.id),
                    "payment_reference": txn.payment_reference,
                    "current_state": txn.status,
                    "target_state": target,
                },
            )
            raise InvalidStateTransitionError(
                f"Cannot {name.replace('_', ' ')} a transaction in '{txn.status}' state",
                details={
                    "transaction_id": str(txn.id),
                    "current_state": txn.status,
                    "target_state": target,
                    "transition": name,
                },
            )

        previous = txn.status
        method(**kwargs)
        txn.save()
        cls.get_logger().info(
            f"Transaction {previous} -> {txn.status}",
            extra={"transaction_id": str(txn.id), "payment_reference": txn.payment_reference},
        )
        return True

    @classmethod
    def transition(cls, transaction_id: uuid.UUID | str, name: str, **kwargs: Any) -> tuple[Transaction, bool]:
        with transaction.atomic():
            txn = lock_transaction(transaction_id)
            applied = cls.apply_transition(txn, name, **kwargs)
        return txn, applied

    # =========================================================================
    # Escrow entry
    # =========================================================================

    @classmethod
    def confirm_payment(
        cls,
        transaction_id: uuid.UUID | str,
        *,
        paid_at: datetime | None = None,
        gateway_reference: str | None = None,
        payment_channel: str = "",
        narration: str = "",
    ) -> tuple[Transaction, bool]:
        """
        Move a reconciled Transaction into escrow.

        Any pre-state other than AWAITING_PAYMENT is reported as
        applied=False without touching the row, so a replayed event never
        repeats side effects.

        Raises:
            ProductAlreadySoldError: Another Transaction already claimed the
                product; nothing is written
        """
        with transaction.atomic():
            txn = lock_transaction(transaction_id)
            if txn.status != TransactionStatus.AWAITING_PAYMENT:
                cls.get_logger().info(
                    "Payment already applied, ignoring",
                    extra={
                        "transaction_id": str(txn.id),
                        "payment_reference": txn.payment_reference,
                        "current_state": txn.status,
                    },
                )
                return txn, False

            claimed = Product.mark_sold(
                txn.product_id,
                buyer=txn.buyer,
                price=txn.amount_naira,
                reference=txn.payment_reference,
            )
            if not claimed:
                cls.get_logger().warning(
                    "Product already sold, payment cannot enter escrow",
                    extra={
                        "transaction_id": str(txn.id),
                        "payment_reference": txn.payment_reference,
                        "product_id": str(txn.product_id),
                    },
                )
                raise ProductAlreadySoldError(
                    "This item has already been sold",
                    details={"product_id": str(txn.product_id), "payment_reference": txn.payment_reference},
                )

            cls.apply_transition(
                txn,
                "confirm_payment",
                paid_at=paid_at,
                gateway_reference=gateway_reference,
                payment_channel=payment_channel,
                narration=narration,
            )

            split = calculate_commission(txn.amount_kobo)
            WalletService.reserve_commission(txn, split.commission_kobo)
            Escrow.objects.update_or_create(
                transaction=txn,
                defaults={
                    "amount_kobo": split.amount_kobo,
                    "commission_kobo": split.commission_kobo,
                    "seller_share_kobo": split.seller_share_kobo,
                    "status": EscrowStatus.IN_ESCROW,
                },
            )

            transaction_id_str = str(txn.id)
            transaction.on_commit(lambda: _enqueue_side_effects(transaction_id_str))

        cls.get_logger().info(
            "Payment confirmed, funds in escrow",
            extra={
                "transaction_id": str(txn.id),
                "payment_reference": txn.payment_reference,
                "amount_kobo": txn.amount_kobo,
                "commission_kobo": split.commission_kobo,
            },
        )
        return txn, True

    @classmethod
    def update_escrow_status(cls, txn: Transaction, status: str) -> None:
        """Mirror a payout outcome onto the Escrow audit record."""
        updates: dict[str, Any] = {"status": status, "updated_at": timezone.now()}
        if status in (EscrowStatus.RELEASED, EscrowStatus.REVERSED):
            updates["released_at"] = timezone.now()
        Escrow.objects.filter(transaction=txn).update(**updates)

    # =========================================================================
    # Side effects
    # =========================================================================

    @classmethod
    def deliver_side_effects(cls, transaction_id: uuid.UUID | str) -> bool:
        """
        Issue the settlement receipt and notify both parties.

        Idempotent: the receipt is only generated while receipt_url is
        empty and notifications carry per-transaction idempotency keys.
        side_effects_completed_at is set once everything succeeded; until
        then the periodic sweep calls this again.

        Returns:
            True if all side effects are now complete
        """
        from notifications.services import NotificationService

        from payments.services.receipt_service import ReceiptService

        txn = Transaction.objects.select_related("buyer", "seller", "product").get(pk=transaction_id)
        if txn.side_effects_completed_at is not None:
            return True
        if txn.status not in ESCROWED_STATUSES:
            cls.get_logger().info(
                f"Skipping side effects for transaction in {txn.status}",
                extra={"transaction_id": str(txn.id)},
            )
            return True

        complete = True

        if not txn.receipt_url:
            url = ReceiptService.generate(txn)
            if url:
                Transaction.objects.filter(pk=txn.pk).update(receipt_url=url, updated_at=timezone.now())
                txn.receipt_url = url
            else:
                complete = False

        title = txn.product_snapshot.get("title") or txn.product.title
        amount = format_naira(txn.amount_kobo)
        notifications = [
            (
                txn.buyer,
                "payment_received",
                {"product_title": title, "amount": amount, "reference": txn.payment_reference},
            ),
            (txn.seller, "item_sold", {"product_title": title, "amount": amount}),
        ]
        for user, type_key, payload in notifications:
            payload = {**payload, "transaction_id": str(txn.id), "receipt_url": txn.receipt_url}
            result = NotificationService.notify(
                user, type_key, payload, idempotency_key=f"{type_key}:{txn.id}"
            )
            if not result.success and result.error_code != "DUPLICATE":
                complete = False

        if complete:
            Transaction.objects.filter(pk=txn.pk, side_effects_completed_at__isnull=True).update(
                side_effects_completed_at=timezone.now(),
                updated_at=timezone.now(),
            )
        else:
            cls.get_logger().warning(
                "Settlement side effects incomplete, will retry",
                extra={"transaction_id": str(txn.id), "payment_reference": txn.payment_reference},
            )
        return complete

    @classmethod
    def pending_side_effects(cls):
        return Transaction.objects.filter(
            status__in=ESCROWED_STATUSES,
            side_effects_completed_at__isnull=True,
            paid_at__gte=timezone.now() - SIDE_EFFECT_RETRY_WINDOW,
        ).order_by("paid_at")


def _enqueue_side_effects(transaction_id: str) -> None:
    from payments.tasks import deliver_settlement_side_effects

    deliver_settlement_side_effects.delay(transaction_id)
