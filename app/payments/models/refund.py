"""
RefundRequest model for buyer-initiated refunds.

A buyer opens a request against an AWAITING_PAYMENT or IN_ESCROW
Transaction; an administrator approves or rejects it. Only one request
per Transaction may be open (requested or approved) at a time.

Usage:
    from payments.services import RefundService

    refund = RefundService.request_refund(txn.id, buyer, reason="Item never arrived")
    RefundService.approve(refund.id, admin)
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import RefundRequestStatus


class RefundRequest(UUIDPrimaryKeyMixin, BaseModel):
    """
    A buyer's request to be refunded for a Transaction.

    State Flow:
        REQUESTED -> APPROVED -> REFUNDED
        APPROVED -> REQUESTED (gateway refund failed)
        REQUESTED -> REJECTED

    Fields:
        transaction: The Transaction to refund
        buyer: Requesting user
        reason: Buyer's explanation
        status: Current FSM state
        resolved_by / resolved_at / admin_comment: Administrative decision
        refund_amount_kobo: Net amount returned (gross - gateway fee)
        gateway_fee_kobo: Fee withheld
        gateway_refund_id: Paystack refund identifier
    """

    transaction = models.ForeignKey(
        "payments.Transaction",
        on_delete=models.PROTECT,
        related_name="refund_requests",
        help_text="Transaction to refund",
    )

    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="refund_requests",
        help_text="Buyer who requested the refund",
    )

    reason = models.TextField(
        help_text="Why the buyer wants a refund",
    )

    status = FSMField(
        default=RefundRequestStatus.REQUESTED,
        choices=RefundRequestStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the request (managed by FSM)",
    )

    resolved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="resolved_refund_requests",
        help_text="Administrator who approved or rejected the request",
    )

    resolved_at = models.DateTimeField(null=True, blank=True)

    admin_comment = models.TextField(blank=True, default="")

    refund_amount_kobo = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text="Net amount returned to the buyer, in kobo",
    )

    gateway_fee_kobo = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text="Gateway fee withheld from the refund, in kobo",
    )

    gateway_refund_id = models.CharField(max_length=100, blank=True, default="")

    failure_reason = models.TextField(
        blank=True,
        default="",
        help_text="Last gateway error if the refund call failed",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Refund Request"
        verbose_name_plural = "Refund Requests"
        constraints = [
            models.UniqueConstraint(
                fields=["transaction"],
                condition=Q(
                    status__in=[
                        RefundRequestStatus.REQUESTED,
                        RefundRequestStatus.APPROVED,
                    ]
                ),
                name="refund_request_one_open_per_transaction",
            ),
        ]

    def __str__(self) -> str:
        return f"RefundRequest({self.id}, {self.status})"

    @property
    def is_open(self) -> bool:
        return self.status in (RefundRequestStatus.REQUESTED, RefundRequestStatus.APPROVED)

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=RefundRequestStatus.REQUESTED,
        target=RefundRequestStatus.APPROVED,
    )
    def approve(self, admin, comment: str = ""):
        """
        Claim the request for approval before the gateway refund call.

        Transition: REQUESTED -> APPROVED
        """
        self.resolved_by = admin
        self.resolved_at = timezone.now()
        self.admin_comment = comment
        self.failure_reason = ""

    @transition(
        field=status,
        source=RefundRequestStatus.APPROVED,
        target=RefundRequestStatus.REFUNDED,
    )
    def mark_refunded(self, refund_amount_kobo: int, gateway_fee_kobo: int, gateway_refund_id: str = ""):
        """
        Transition: APPROVED -> REFUNDED
        """
        self.refund_amount_kobo = refund_amount_kobo
        self.gateway_fee_kobo = gateway_fee_kobo
        self.gateway_refund_id = gateway_refund_id

    @transition(
        field=status,
        source=RefundRequestStatus.APPROVED,
        target=RefundRequestStatus.REQUESTED,
    )
    def revert_approval(self, reason: str):
        """
        The gateway refund failed; the request goes back to the queue.

        Transition: APPROVED -> REQUESTED
        """
        self.failure_reason = reason
        self.resolved_by = None
        self.resolved_at = None

    @transition(
        field=status,
        source=RefundRequestStatus.REQUESTED,
        target=RefundRequestStatus.REJECTED,
    )
    def reject(self, admin, comment: str = ""):
        """
        Transition: REQUESTED -> REJECTED
        """
        self.resolved_by = admin
        self.resolved_at = timezone.now()
        self.admin_comment = comment
