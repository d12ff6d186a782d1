"""
Reconciliation service: matching inbound credits to pending Transactions.

A Paystack credit (charge.success webhook or balance-ledger line) is
loosely correlated with the order it pays for. Matching tries, in order,
and the first tier that yields exactly one Transaction wins:

    1.  Reference      SALM-XXXX-YYYY-ZZZZ found in narration/reference/metadata
    1b. Gateway ref    the charge reference is already stored on a Transaction
    2.  Channel+amount pending Transaction on the destination account with
                       exactly the credited amount
    3.  Identity       pending Transaction for the payer's email with the same
                       amount, created within RECONCILIATION_MATCH_WINDOW_MINUTES

Anything that cannot be placed with certainty is stored as an
UnmatchedPayment for manual review; the engine never guesses.

Known limitation: tier 3 cannot tell apart concurrent same-amount
purchases by one email address; those are reported as ambiguous.

Usage:
    from payments.services import ReconciliationService, InboundPayment

    outcome = ReconciliationService.reconcile_event(InboundPayment.from_charge(event["data"]))
    if not outcome.matched:
        ...  # outcome.unmatched holds the review item
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.db import IntegrityError
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from core.services import BaseService

from payments.adapters import LedgerCredit, PaystackAdapter
from payments.exceptions import PaystackError, ProductAlreadySoldError, TransactionNotFoundError
from payments.models import Transaction, UnmatchedPayment
from payments.services.escrow_service import ESCROWED_STATUSES, EscrowService, format_naira
from payments.services.references import extract_reference
from payments.state_machines import TransactionStatus, UnmatchedReason

if TYPE_CHECKING:
    from authentication.models import User


class MatchTier(str, Enum):
    REFERENCE = "reference"
    GATEWAY_REFERENCE = "gateway_reference"
    CHANNEL_AMOUNT = "channel_amount"
    IDENTITY_AMOUNT_WINDOW = "identity_amount_window"
    LEDGER_POLL = "ledger_poll"


def _match_window() -> timedelta:
    return timedelta(minutes=getattr(settings, "RECONCILIATION_MATCH_WINDOW_MINUTES", 20))


def _as_dict(value: Any) -> dict:
    if isinstance(value, dict):
        return value
    if isinstance(value, str) and value.strip().startswith("{"):
        try:
            parsed = json.loads(value)
        except ValueError:
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


@dataclass
class InboundPayment:
    """
    A credit reported by the gateway, normalised for matching.

    Attributes:
        amount_kobo: Amount credited
        gateway_reference: Paystack's reference for the credit
        narration: Free text the payer entered
        customer_email: Payer email as known to Paystack
        channel_key: Destination account number, when reported
        paid_at: When the credit happened
        payment_channel: Paystack channel (dedicated_nuban, bank_transfer, ...)
        metadata_reference: Reference passed through charge metadata
        payload: Raw data for the review queue
    """

    amount_kobo: int
    gateway_reference: str | None = None
    narration: str = ""
    customer_email: str = ""
    channel_key: str | None = None
    paid_at: datetime | None = None
    payment_channel: str = ""
    metadata_reference: str = ""
    payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_charge(cls, data: dict[str, Any]) -> InboundPayment:
        """Build from the data object of a charge.success event."""
        authorization = data.get("authorization") or {}
        metadata = _as_dict(data.get("metadata"))
        customer = data.get("customer") or {}

        narration = (
            data.get("narration")
            or authorization.get("narration")
            or metadata.get("narration")
            or ""
        )
        paid_at = parse_datetime(data["paid_at"]) if data.get("paid_at") else None

        return cls(
            amount_kobo=int(data.get("amount") or 0),
            gateway_reference=data.get("reference") or None,
            narration=str(narration),
            customer_email=(customer.get("email") or "").strip().lower(),
            channel_key=authorization.get("receiver_bank_account_number") or metadata.get("account_number"),
            paid_at=paid_at or timezone.now(),
            payment_channel=data.get("channel") or "",
            metadata_reference=str(metadata.get("payment_reference") or metadata.get("reference") or ""),
            payload=data,
        )

    @classmethod
    def from_ledger_credit(cls, credit: LedgerCredit, channel_key: str | None = None) -> InboundPayment:
        return cls(
            amount_kobo=credit.amount_kobo,
            gateway_reference=credit.reference or None,
            narration=credit.description,
            channel_key=channel_key,
            paid_at=credit.transaction_date or timezone.now(),
            payment_channel="balance_ledger",
            payload=credit.raw_response,
        )

    @property
    def extracted_reference(self) -> str | None:
        return extract_reference(self.narration, self.gateway_reference, self.metadata_reference)


@dataclass
class MatchResult:
    transaction: Transaction | None = None
    tier: MatchTier | None = None
    candidates: list[Transaction] = field(default_factory=list)

    @property
    def is_ambiguous(self) -> bool:
        return self.transaction is None and len(self.candidates) > 1


@dataclass
class ReconciliationOutcome:
    """
    Result of reconciling one inbound credit.

    Attributes:
        matched: A Transaction was identified
        applied: This call moved the Transaction into escrow
        transaction: The matched Transaction
        tier: Which matching tier found it
        unmatched: Review item created for this credit, if any
    """

    matched: bool
    applied: bool = False
    transaction: Transaction | None = None
    tier: MatchTier | None = None
    unmatched: UnmatchedPayment | None = None


class ReconciliationService(BaseService):
    """
    ReconcileEvent and VerifyByReference.

    Methods:
        match: Run the tiered matching strategy
        reconcile_event: Match and apply an inbound credit
        verify_by_reference: Polling fallback over the balance ledger
    """

    # =========================================================================
    # Matching
    # =========================================================================

    @classmethod
    def match(cls, payment: InboundPayment) -> MatchResult:
        reference = payment.extracted_reference
        if reference:
            txn = Transaction.objects.filter(payment_reference=reference).first()
            if txn is not None:
                return MatchResult(transaction=txn, tier=MatchTier.REFERENCE)

        if payment.gateway_reference:
            txn = Transaction.objects.filter(gateway_reference=payment.gateway_reference).first()
            if txn is not None:
                return MatchResult(transaction=txn, tier=MatchTier.GATEWAY_REFERENCE)

        pending = Transaction.objects.filter(
            status=TransactionStatus.AWAITING_PAYMENT,
            amount_kobo=payment.amount_kobo,
        )

        channel_candidates: list[Transaction] = []
        if payment.channel_key:
            channel_candidates = list(pending.filter(channel_key=payment.channel_key)[:10])
            if len(channel_candidates) == 1:
                return MatchResult(transaction=channel_candidates[0], tier=MatchTier.CHANNEL_AMOUNT)

        identity_candidates: list[Transaction] = []
        if payment.customer_email and payment.paid_at:
            window = _match_window()
            identity_qs = pending.filter(
                buyer_email__iexact=payment.customer_email,
                created_at__gte=payment.paid_at - window,
                created_at__lte=payment.paid_at + window,
            )
            if channel_candidates:
                identity_qs = identity_qs.filter(pk__in=[t.pk for t in channel_candidates])
            identity_candidates = list(identity_qs[:10])
            if len(identity_candidates) == 1:
                return MatchResult(transaction=identity_candidates[0], tier=MatchTier.IDENTITY_AMOUNT_WINDOW)

        return MatchResult(candidates=identity_candidates or channel_candidates)

    # =========================================================================
    # ReconcileEvent
    # =========================================================================

    @classmethod
    def reconcile_event(cls, payment: InboundPayment) -> ReconciliationOutcome:
        log_extra = {
            "gateway_reference": payment.gateway_reference,
            "amount_kobo": payment.amount_kobo,
        }

        if payment.amount_kobo <= 0:
            cls.get_logger().warning("Ignoring credit without a positive amount", extra=log_extra)
            return ReconciliationOutcome(matched=False)

        result = cls.match(payment)
        if result.transaction is None:
            reason = UnmatchedReason.AMBIGUOUS if result.is_ambiguous else UnmatchedReason.NO_MATCH
            unmatched = cls._record_unmatched(payment, reason, candidates=result.candidates)
            cls.get_logger().warning(
                f"Inbound payment unmatched ({reason})",
                extra={**log_extra, "candidates": [str(t.id) for t in result.candidates]},
            )
            return ReconciliationOutcome(matched=False, unmatched=unmatched)

        return cls.apply(payment, result.transaction, result.tier)

    @classmethod
    def apply(cls, payment: InboundPayment, txn: Transaction, tier: MatchTier) -> ReconciliationOutcome:
        """Apply a credit to the Transaction it was matched to."""
        from notifications.services import NotificationService

        log_extra = {
            "transaction_id": str(txn.id),
            "payment_reference": txn.payment_reference,
            "gateway_reference": payment.gateway_reference,
            "tier": tier.value,
        }

        if txn.status != TransactionStatus.AWAITING_PAYMENT:
            return cls._already_processed(payment, txn, tier)

        if payment.amount_kobo < txn.amount_kobo:
            unmatched = cls._record_unmatched(payment, UnmatchedReason.AMOUNT_MISMATCH, transaction=txn)
            cls.get_logger().warning(
                f"Credit of {payment.amount_kobo} below price {txn.amount_kobo}",
                extra=log_extra,
            )
            return ReconciliationOutcome(matched=True, transaction=txn, tier=tier, unmatched=unmatched)

        if payment.amount_kobo > txn.amount_kobo:
            cls.get_logger().warning(
                f"Credit of {payment.amount_kobo} exceeds price {txn.amount_kobo}",
                extra=log_extra,
            )

        if payment.gateway_reference and (
            Transaction.objects.filter(gateway_reference=payment.gateway_reference).exclude(pk=txn.pk).exists()
        ):
            return cls._charge_owned_elsewhere(payment, txn, tier)

        try:
            txn, applied = EscrowService.confirm_payment(
                txn.id,
                paid_at=payment.paid_at,
                gateway_reference=payment.gateway_reference,
                payment_channel=payment.payment_channel,
                narration=payment.narration,
            )
        except IntegrityError:
            # Another worker stored the same charge first
            return cls._charge_owned_elsewhere(payment, txn, tier)
        except ProductAlreadySoldError:
            unmatched = cls._record_unmatched(payment, UnmatchedReason.PRODUCT_ALREADY_SOLD, transaction=txn)
            NotificationService.notify(
                txn.buyer,
                "payment_under_review",
                {
                    "amount": format_naira(payment.amount_kobo),
                    "product_title": txn.product_snapshot.get("title", ""),
                    "transaction_id": str(txn.id),
                },
                idempotency_key=f"payment_under_review:{txn.id}:{payment.gateway_reference or ''}",
            )
            return ReconciliationOutcome(matched=True, transaction=txn, tier=tier, unmatched=unmatched)

        if not applied:
            return cls._already_processed(payment, txn, tier)

        cls.get_logger().info("Inbound payment reconciled", extra=log_extra)
        return ReconciliationOutcome(matched=True, applied=True, transaction=txn, tier=tier)

    @classmethod
    def _charge_owned_elsewhere(
        cls, payment: InboundPayment, txn: Transaction, tier: MatchTier
    ) -> ReconciliationOutcome:
        """The charge is already stored on a different Transaction."""
        unmatched = cls._record_unmatched(payment, UnmatchedReason.DUPLICATE_CHARGE, transaction=txn)
        cls.get_logger().warning(
            "Charge already applied to another transaction, flagged for review",
            extra={
                "transaction_id": str(txn.id),
                "payment_reference": txn.payment_reference,
                "gateway_reference": payment.gateway_reference,
                "tier": tier.value,
            },
        )
        return ReconciliationOutcome(matched=True, transaction=txn, tier=tier, unmatched=unmatched)

    @classmethod
    def _already_processed(cls, payment: InboundPayment, txn: Transaction, tier: MatchTier) -> ReconciliationOutcome:
        """
        A credit for a Transaction that is no longer pending.

        The same charge replayed is a no-op. A different charge landing on a
        paid, cancelled or refunded Transaction is money without an order
        and goes to review.
        """
        same_charge = not payment.gateway_reference or payment.gateway_reference == txn.gateway_reference
        if same_charge and (txn.status in ESCROWED_STATUSES or txn.status == TransactionStatus.REFUND_REQUESTED):
            cls.get_logger().info(
                "Payment already applied, ignoring replay",
                extra={"transaction_id": str(txn.id), "current_state": txn.status},
            )
            return ReconciliationOutcome(matched=True, transaction=txn, tier=tier)

        unmatched = cls._record_unmatched(payment, UnmatchedReason.NOT_PENDING, transaction=txn)
        cls.get_logger().warning(
            f"Credit for transaction in {txn.status}, flagged for review",
            extra={
                "transaction_id": str(txn.id),
                "gateway_reference": payment.gateway_reference,
                "current_state": txn.status,
            },
        )
        return ReconciliationOutcome(matched=True, transaction=txn, tier=tier, unmatched=unmatched)

    @classmethod
    def _record_unmatched(
        cls,
        payment: InboundPayment,
        reason: str,
        transaction: Transaction | None = None,
        candidates: list[Transaction] | None = None,
    ) -> UnmatchedPayment:
        values = {
            "reason": reason,
            "amount_kobo": payment.amount_kobo,
            "narration": payment.narration,
            "customer_email": payment.customer_email,
            "extracted_reference": payment.extracted_reference or "",
            "candidate_transaction_ids": [str(t.id) for t in candidates or []],
            "transaction": transaction,
            "payload": payment.payload,
        }
        if payment.gateway_reference:
            unmatched, _ = UnmatchedPayment.objects.get_or_create(
                gateway_reference=payment.gateway_reference,
                defaults=values,
            )
            return unmatched
        return UnmatchedPayment.objects.create(**values)

    # =========================================================================
    # VerifyByReference (polling fallback)
    # =========================================================================

    @classmethod
    def verify_by_reference(cls, reference: str, user: User | None = None) -> ReconciliationOutcome:
        """
        Look for the payment of a pending Transaction in the balance ledger.

        Used when the buyer says they paid but no webhook arrived. A credit
        matches when it quotes the reference, or when its amount is equal
        and it landed within the match window of the Transaction's creation
        and no other Transaction already owns it.

        Raises:
            TransactionNotFoundError: Unknown reference, or not visible to user
        """
        normalised = (extract_reference(reference) or reference or "").strip().upper()
        txn = Transaction.objects.filter(payment_reference=normalised).first()
        if txn is None or (
            user is not None and not user.is_staff and user.id not in (txn.buyer_id, txn.seller_id)
        ):
            raise TransactionNotFoundError("Transaction not found", details={"reference": reference})

        if txn.status != TransactionStatus.AWAITING_PAYMENT:
            return ReconciliationOutcome(matched=True, transaction=txn)

        window = _match_window()
        try:
            credits = PaystackAdapter.list_ledger_credits(since=txn.created_at - window)
        except PaystackError as e:
            cls.get_logger().warning(
                f"Ledger lookup failed: {e.error_code}",
                extra={"transaction_id": str(txn.id), "payment_reference": txn.payment_reference},
            )
            return ReconciliationOutcome(matched=False, transaction=txn)

        credit = cls._find_ledger_credit(txn, credits, window)
        if credit is None:
            return ReconciliationOutcome(matched=False, transaction=txn)

        payment = InboundPayment.from_ledger_credit(credit, channel_key=txn.channel_key)
        return cls.apply(payment, txn, MatchTier.LEDGER_POLL)

    @classmethod
    def _find_ledger_credit(
        cls, txn: Transaction, credits: list[LedgerCredit], window: timedelta
    ) -> LedgerCredit | None:
        for credit in credits:
            if extract_reference(credit.description, credit.reference) == txn.payment_reference:
                return credit

        for credit in credits:
            if credit.amount_kobo != txn.amount_kobo or credit.transaction_date is None:
                continue
            quoted = extract_reference(credit.description, credit.reference)
            if quoted and quoted != txn.payment_reference:
                continue
            if abs(credit.transaction_date - txn.created_at) > window:
                continue
            if credit.reference and (
                Transaction.objects.filter(gateway_reference=credit.reference).exclude(pk=txn.pk).exists()
                or UnmatchedPayment.objects.filter(gateway_reference=credit.reference).exists()
            ):
                continue
            return credit
        return None
