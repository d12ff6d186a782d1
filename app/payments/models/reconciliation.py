"""
UnmatchedPayment model for the manual reconciliation queue.

An inbound payment that reconciliation could not place on exactly one
awaiting Transaction, or that landed on a product somebody else already
bought, is stored here for an operator. Nothing is guessed; the money is
simply accounted for.

Usage:
    from payments.models import UnmatchedPayment

    UnmatchedPayment.objects.filter(resolved=False).order_by("created_at")
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from payments.state_machines import UnmatchedReason


class UnmatchedPayment(UUIDPrimaryKeyMixin, BaseModel):
    """
    A gateway credit that could not be applied automatically.

    Fields:
        reason: no_match, ambiguous, product_already_sold, not_pending,
            amount_mismatch or duplicate_charge
        gateway_reference: Paystack reference of the charge (unique when set)
        amount_kobo: Amount credited
        narration / customer_email / extracted_reference: What was available to match on
        candidate_transaction_ids: Transactions that matched equally well (ambiguous)
        transaction: Transaction the credit was attributed to, if any
        payload: Raw event data for the operator
        resolved / resolved_by / resolved_at / resolution_note: Manual follow-up
    """

    reason = models.CharField(
        max_length=30,
        choices=UnmatchedReason.choices,
        db_index=True,
        help_text="Why the payment was not applied",
    )

    gateway_reference = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        unique=True,
        help_text="Paystack reference of the credit",
    )

    amount_kobo = models.PositiveBigIntegerField(
        help_text="Amount credited, in kobo",
    )

    narration = models.TextField(blank=True, default="")

    customer_email = models.EmailField(blank=True, default="")

    extracted_reference = models.CharField(
        max_length=64,
        blank=True,
        default="",
        help_text="SALM reference found in the narration, if any",
    )

    candidate_transaction_ids = models.JSONField(
        default=list,
        blank=True,
        help_text="Transactions that matched equally well",
    )

    transaction = models.ForeignKey(
        "payments.Transaction",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="unmatched_payments",
        help_text="Transaction the credit was addressed to, when known",
    )

    payload = models.JSONField(
        default=dict,
        blank=True,
        help_text="Event data as received",
    )

    resolved = models.BooleanField(default=False, db_index=True)

    resolved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    resolved_at = models.DateTimeField(null=True, blank=True)

    resolution_note = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Unmatched Payment"
        verbose_name_plural = "Unmatched Payments"
        indexes = [
            models.Index(fields=["resolved", "created_at"], name="unmatched_resolved_idx"),
        ]

    def __str__(self) -> str:
        return f"UnmatchedPayment({self.reason}, {self.amount_kobo}, {self.gateway_reference})"

    def mark_resolved(self, admin, note: str = "") -> None:
        """
        Close the review item.

        Note: Does not save - caller must save after calling.
        """
        self.resolved = True
        self.resolved_by = admin
        self.resolved_at = timezone.now()
        self.resolution_note = note
