"""
Per-buyer payment channel provisioned by Paystack.

In dedicated_account mode each buyer gets one virtual account number that
every purchase is paid into. It is created on the buyer's first purchase
and reused for all later ones.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class DedicatedAccount(UUIDPrimaryKeyMixin, BaseModel):
    """
    A buyer's Paystack dedicated virtual account.

    Fields:
        buyer: Owner of the account
        customer_code: Paystack customer (CUS_xxx)
        account_number: NUBAN the buyer transfers into; the channel key
        bank_name / account_name: Shown in payment instructions
    """

    buyer = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="dedicated_account",
    )

    customer_code = models.CharField(max_length=100)

    account_number = models.CharField(max_length=20, unique=True)

    bank_name = models.CharField(max_length=255, blank=True, default="")

    account_name = models.CharField(max_length=255, blank=True, default="")

    raw_response = models.JSONField(default=dict, blank=True)

    class Meta:
        verbose_name = "Dedicated Account"
        verbose_name_plural = "Dedicated Accounts"

    def __str__(self) -> str:
        return f"DedicatedAccount({self.buyer_id}, {self.account_number})"

    def as_channel_details(self) -> dict:
        return {
            "account_number": self.account_number,
            "bank_name": self.bank_name,
            "account_name": self.account_name,
        }
