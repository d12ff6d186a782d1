"""
Tests for the Product model and its atomic sold flag.
"""

import uuid
from decimal import Decimal

from authentication.tests.factories import UserFactory
from marketplace.models import Product
from marketplace.tests.factories import ProductFactory


class TestProductPrice:
    def test_price_kobo_converts_naira(self, db):
        product = ProductFactory(price=Decimal("5000.50"))

        assert product.price_kobo == 500050


class TestMarkSold:
    """Tests for Product.mark_sold()."""

    def test_first_claim_sets_sale_bookkeeping(self, db):
        """
        Given an unsold product
        When mark_sold is called
        Then the product is sold to that buyer with price and reference
        """
        product = ProductFactory()
        buyer = UserFactory()

        claimed = Product.mark_sold(
            product.id,
            buyer=buyer,
            price=product.price,
            reference="SALM-AB12-K9Z0-QW3E",
        )

        product.refresh_from_db()
        assert claimed is True
        assert product.is_sold is True
        assert product.sold_to == buyer
        assert product.sold_price == Decimal("5000.00")
        assert product.sold_reference == "SALM-AB12-K9Z0-QW3E"
        assert product.sold_at is not None

    def test_second_claim_is_rejected(self, db):
        """
        Given a product already claimed by one buyer
        When a second buyer tries to claim it
        Then mark_sold returns False and the first sale is untouched
        """
        product = ProductFactory()
        first, second = UserFactory(), UserFactory()
        Product.mark_sold(product.id, buyer=first, price=product.price, reference="SALM-1")

        claimed = Product.mark_sold(
            product.id, buyer=second, price=product.price, reference="SALM-2"
        )

        product.refresh_from_db()
        assert claimed is False
        assert product.sold_to == first
        assert product.sold_reference == "SALM-1"

    def test_unknown_product_returns_false(self, db):
        assert (
            Product.mark_sold(
                uuid.uuid4(), buyer=UserFactory(), price=Decimal("1.00"), reference="x"
            )
            is False
        )
