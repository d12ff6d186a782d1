"""
Settlement receipt generation.

The receipt is rendered from payments/receipt.html and written to the
default storage backend. Generation is best-effort and bounded by
RECEIPT_TIMEOUT_SECONDS: on any failure or timeout the error is logged,
None is returned and the side-effect sweep tries again later.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from django.template.loader import render_to_string

from core.services import BaseService

from payments.services.commission import kobo_to_naira

if TYPE_CHECKING:
    from payments.models import Transaction

# Shared by all receipts in the process; a stalled storage write holds one
# worker until the backend gives up.
_store_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="receipt-store")


class ReceiptService(BaseService):
    @classmethod
    def render(cls, txn: Transaction) -> str:
        return render_to_string(
            "payments/receipt.html",
            {
                "reference": txn.payment_reference,
                "product_title": txn.product_snapshot.get("title") or txn.product.title,
                "amount": f"{kobo_to_naira(txn.amount_kobo):,.2f}",
                "buyer_email": txn.buyer_email or txn.buyer.email,
                "seller_name": txn.seller.get_full_name(),
                "paid_at": txn.paid_at,
            },
        )

    @classmethod
    def generate(cls, txn: Transaction) -> str | None:
        """
        Render and store the receipt for a Transaction.

        Returns:
            Storage URL, or None if generation failed or timed out
        """
        timeout = getattr(settings, "RECEIPT_TIMEOUT_SECONDS", 30)
        path = f"receipts/{txn.payment_reference}.html"

        try:
            content = cls.render(txn)
        except Exception:
            cls.get_logger().error(
                "Receipt rendering failed",
                extra={"transaction_id": str(txn.id), "payment_reference": txn.payment_reference},
                exc_info=True,
            )
            return None

        future = _store_executor.submit(cls._store, path, content)
        try:
            url = future.result(timeout=timeout)
        except FutureTimeoutError:
            cls.get_logger().error(
                f"Receipt storage timed out after {timeout}s",
                extra={"transaction_id": str(txn.id), "payment_reference": txn.payment_reference},
            )
            return None
        except Exception:
            cls.get_logger().error(
                "Receipt storage failed",
                extra={"transaction_id": str(txn.id), "payment_reference": txn.payment_reference},
                exc_info=True,
            )
            return None

        cls.get_logger().info(
            "Receipt generated",
            extra={"transaction_id": str(txn.id), "receipt_url": url},
        )
        return url

    @staticmethod
    def _store(path: str, content: str) -> str:
        if default_storage.exists(path):
            default_storage.delete(path)
        saved = default_storage.save(path, ContentFile(content.encode("utf-8")))
        return default_storage.url(saved)
