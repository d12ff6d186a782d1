"""
Product listing model.

Usage:
    from marketplace.models import Product

    product = Product.objects.create(
        seller=seller,
        title="Used iPhone 12",
        price=Decimal("5000.00"),
    )

    # Claim the item for a buyer; False means someone else already did
    if not Product.mark_sold(product.id, buyer=buyer, price=product.price,
                             reference="SALM-AB12-K9Z0-QW3E"):
        raise ProductAlreadySoldError(...)
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin


class Product(UUIDPrimaryKeyMixin, BaseModel):
    """
    A listed item that can be bought through escrow.

    Fields:
        seller: User who listed the item and receives the payout
        title / description: Listing text, snapshotted onto transactions
        price: Asking price in naira (two decimal places)
        is_active: Whether the listing is visible for purchase
        is_sold: Set exactly once, by mark_sold()
        sold_at / sold_to / sold_price / sold_reference: Sale bookkeeping

    Note:
        is_sold must only ever be set through mark_sold(), which performs a
        conditional UPDATE ... WHERE is_sold = false. Two payments racing
        for the same item cannot both succeed.
    """

    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="products",
        help_text="User selling this item",
    )

    title = models.CharField(
        max_length=200,
        help_text="Listing title",
    )

    description = models.TextField(
        blank=True,
        default="",
        help_text="Listing description",
    )

    price = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
        help_text="Asking price in naira",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Whether the listing can be purchased",
    )

    # ==========================================================================
    # Sale Bookkeeping
    # ==========================================================================

    is_sold = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Whether the item has been paid for and escrowed",
    )

    sold_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the item was marked sold",
    )

    sold_to = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="purchased_products",
        help_text="Buyer whose payment claimed the item",
    )

    sold_price = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Price the item sold for",
    )

    sold_reference = models.CharField(
        max_length=64,
        blank=True,
        default="",
        help_text="Payment reference of the transaction that bought the item",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Product"
        verbose_name_plural = "Products"
        indexes = [
            models.Index(fields=["seller", "is_sold"], name="product_seller_sold_idx"),
        ]

    def __str__(self) -> str:
        return f"Product({self.id}, {self.title!r}, {self.price})"

    @property
    def price_kobo(self) -> int:
        """Asking price in kobo."""
        return int((self.price * 100).to_integral_value())

    @classmethod
    def mark_sold(cls, product_id, *, buyer, price: Decimal, reference: str) -> bool:
        """
        Atomically claim the product for a buyer.

        Args:
            product_id: Product to claim
            buyer: The purchasing User
            price: Price paid, in naira
            reference: Payment reference of the buying transaction

        Returns:
            True if this call set the flag, False if the product was
            already sold (or does not exist).
        """
        now = timezone.now()
        updated = cls.objects.filter(pk=product_id, is_sold=False).update(
            is_sold=True,
            sold_at=now,
            sold_to=buyer,
            sold_price=price,
            sold_reference=reference,
            updated_at=now,
        )
        return updated == 1
