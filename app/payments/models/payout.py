"""
Seller payout destination and transfer attempt log.

PayoutDestination holds the bank details a seller registered and the
Paystack transfer recipient provisioned for them on first payout.
PayoutAttempt is an append-only record of every transfer call made for a
Transaction, with the gateway's response.

Usage:
    from payments.models import PayoutDestination

    destination = PayoutDestination.objects.filter(seller=seller).first()
    if destination and destination.is_provisioned:
        ...
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class PayoutDestination(UUIDPrimaryKeyMixin, BaseModel):
    """
    A seller's bank account registered for payouts.

    Fields:
        seller: Owner of the account
        account_number / bank_code / account_name / bank_name: Bank details
        recipient_code: Paystack transfer recipient (RCP_xxx), set lazily
    """

    seller = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="payout_destination",
    )

    account_number = models.CharField(max_length=20)

    bank_code = models.CharField(max_length=20)

    account_name = models.CharField(max_length=255)

    bank_name = models.CharField(max_length=255, blank=True, default="")

    recipient_code = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Paystack transfer recipient code, provisioned on first payout",
    )

    class Meta:
        verbose_name = "Payout Destination"
        verbose_name_plural = "Payout Destinations"

    def __str__(self) -> str:
        return f"PayoutDestination({self.seller_id}, {self.bank_code}/{self.account_number[-4:]})"

    @property
    def is_provisioned(self) -> bool:
        return bool(self.recipient_code)


class PayoutAttemptStatus(models.TextChoices):
    """Outcome of a single transfer call."""

    SUBMITTED = "submitted", "Submitted"
    OTP_REQUIRED = "otp_required", "OTP Required"
    SUCCEEDED = "succeeded", "Succeeded"
    FAILED = "failed", "Failed"
    UNKNOWN = "unknown", "Unknown (timed out)"


class PayoutAttempt(UUIDPrimaryKeyMixin, BaseModel):
    """
    One transfer initiation (or OTP finalisation) sent to Paystack.
    """

    transaction = models.ForeignKey(
        "payments.Transaction",
        on_delete=models.PROTECT,
        related_name="payout_attempts",
    )

    transfer_reference = models.CharField(max_length=100, db_index=True)

    amount_kobo = models.PositiveBigIntegerField()

    recipient_code = models.CharField(max_length=100, blank=True, default="")

    status = models.CharField(
        max_length=20,
        choices=PayoutAttemptStatus.choices,
        default=PayoutAttemptStatus.SUBMITTED,
    )

    transfer_code = models.CharField(max_length=100, blank=True, default="")

    gateway_response = models.JSONField(default=dict, blank=True)

    error_message = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payout Attempt"
        verbose_name_plural = "Payout Attempts"

    def __str__(self) -> str:
        return f"PayoutAttempt({self.transfer_reference}, {self.status})"
