"""
Platform wallet models.

PlatformWallet is the platform's own balance per wallet type; WalletEntry
is its append-only movement log. Balances are never read-modified-written:
every change is an F() increment issued together with the entry insert
(see payments.services.wallet_service).
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import Q

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import WalletEntryType, WalletType


class PlatformWallet(UUIDPrimaryKeyMixin, BaseModel):
    """
    Platform balance for one wallet type.

    Fields:
        wallet_type: commission or promotion (one row each)
        balance_kobo: Realised platform funds
        reserved_kobo: Commission earmarked on escrowed, unpaid transactions
    """

    wallet_type = models.CharField(
        max_length=20,
        choices=WalletType.choices,
        unique=True,
        help_text="Which platform wallet this is",
    )

    balance_kobo = models.BigIntegerField(
        default=0,
        help_text="Realised balance in kobo",
    )

    reserved_kobo = models.BigIntegerField(
        default=0,
        help_text="Commission reserved against escrowed transactions, in kobo",
    )

    class Meta:
        ordering = ["wallet_type"]
        verbose_name = "Platform Wallet"
        verbose_name_plural = "Platform Wallets"
        constraints = [
            models.CheckConstraint(
                check=Q(reserved_kobo__gte=0),
                name="platform_wallet_reserved_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"PlatformWallet({self.wallet_type}, balance={self.balance_kobo}, reserved={self.reserved_kobo})"


class WalletEntry(UUIDPrimaryKeyMixin, BaseModel):
    """
    Immutable record of one PlatformWallet movement.

    The reference is unique, so replaying the same capture or reservation
    inserts nothing and moves no money.
    """

    wallet = models.ForeignKey(
        PlatformWallet,
        on_delete=models.PROTECT,
        related_name="entries",
    )

    entry_type = models.CharField(
        max_length=20,
        choices=WalletEntryType.choices,
    )

    amount_kobo = models.PositiveBigIntegerField()

    reference = models.CharField(
        max_length=100,
        unique=True,
        help_text="Idempotency key, e.g. commission-<transaction id>",
    )

    purpose = models.CharField(max_length=255, blank=True, default="")

    transaction = models.ForeignKey(
        "payments.Transaction",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="wallet_entries",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    product = models.ForeignKey(
        "marketplace.Product",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Wallet Entry"
        verbose_name_plural = "Wallet Entries"

    def __str__(self) -> str:
        return f"WalletEntry({self.entry_type}, {self.amount_kobo}, {self.reference})"
