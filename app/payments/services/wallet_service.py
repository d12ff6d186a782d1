"""
Platform wallet bookkeeping.

Commission moves through three steps:
    reserve  - escrow entry earmarks the commission (reserved_kobo += c)
    capture  - transfer to the seller succeeded (reserved -= c, balance += c)
    release  - buyer refunded (reserved -= c)

Each step writes a WalletEntry whose reference is unique per Transaction
and step. If the entry already exists the step is a no-op, so replays
never move money twice. Balances are only changed with F() increments.

Must be called inside the caller's transaction.atomic() block so the
entry and the balance change commit together.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db.models import F

from core.services import BaseService

from payments.models import PlatformWallet, WalletEntry
from payments.state_machines import WalletEntryType, WalletType

if TYPE_CHECKING:
    from payments.models import Transaction


class WalletService(BaseService):
    """Idempotent commission reserve / capture / release."""

    @classmethod
    def get_wallet(cls, wallet_type: str = WalletType.COMMISSION) -> PlatformWallet:
        wallet, _ = PlatformWallet.objects.get_or_create(wallet_type=wallet_type)
        return wallet

    @classmethod
    def _record(
        cls,
        txn: Transaction,
        entry_type: str,
        reference: str,
        amount_kobo: int,
        purpose: str,
        balance_delta: int,
        reserved_delta: int,
    ) -> bool:
        """
        Insert the entry and apply the deltas, unless the reference exists.

        Returns:
            True if money moved, False if this step was already recorded
        """
        wallet = cls.get_wallet(WalletType.COMMISSION)
        wallet = PlatformWallet.objects.select_for_update().get(pk=wallet.pk)

        if WalletEntry.objects.filter(reference=reference).exists():
            cls.get_logger().info(
                "Wallet entry already recorded",
                extra={"reference": reference, "transaction_id": str(txn.id)},
            )
            return False

        WalletEntry.objects.create(
            wallet=wallet,
            entry_type=entry_type,
            amount_kobo=amount_kobo,
            reference=reference,
            purpose=purpose,
            transaction=txn,
            user_id=txn.seller_id,
            product_id=txn.product_id,
        )
        PlatformWallet.objects.filter(pk=wallet.pk).update(
            balance_kobo=F("balance_kobo") + balance_delta,
            reserved_kobo=F("reserved_kobo") + reserved_delta,
        )

        cls.get_logger().info(
            f"Wallet {entry_type} recorded",
            extra={
                "reference": reference,
                "transaction_id": str(txn.id),
                "amount_kobo": amount_kobo,
            },
        )
        return True

    @classmethod
    def reserve_commission(cls, txn: Transaction, commission_kobo: int) -> bool:
        return cls._record(
            txn,
            WalletEntryType.RESERVE,
            f"reserve-{txn.id}",
            commission_kobo,
            f"Commission reserved for {txn.payment_reference}",
            balance_delta=0,
            reserved_delta=commission_kobo,
        )

    @classmethod
    def capture_commission(cls, txn: Transaction) -> bool:
        """
        Realise the reserved commission once the seller has been paid.

        Uses the reserved amount, so a commission recomputed at payout time
        cannot drift from what was earmarked.
        """
        reserved = WalletEntry.objects.filter(reference=f"reserve-{txn.id}").first()
        amount = reserved.amount_kobo if reserved else (txn.commission_kobo or 0)
        return cls._record(
            txn,
            WalletEntryType.CAPTURE,
            f"commission-{txn.id}",
            amount,
            f"Commission for {txn.payment_reference}",
            balance_delta=amount,
            reserved_delta=-amount if reserved else 0,
        )

    @classmethod
    def release_commission(cls, txn: Transaction) -> bool:
        reserved = WalletEntry.objects.filter(reference=f"reserve-{txn.id}").first()
        if reserved is None:
            return False
        return cls._record(
            txn,
            WalletEntryType.RELEASE,
            f"release-{txn.id}",
            reserved.amount_kobo,
            f"Commission released, {txn.payment_reference} refunded",
            balance_delta=0,
            reserved_delta=-reserved.amount_kobo,
        )
