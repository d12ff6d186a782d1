import decimal
import uuid

import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Product",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier (UUID v4)",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("title", models.CharField(help_text="Listing title", max_length=200)),
                (
                    "description",
                    models.TextField(blank=True, default="", help_text="Listing description"),
                ),
                (
                    "price",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Asking price in naira",
                        max_digits=14,
                        validators=[
                            django.core.validators.MinValueValidator(decimal.Decimal("0.01"))
                        ],
                    ),
                ),
                (
                    "is_active",
                    models.BooleanField(
                        default=True, help_text="Whether the listing can be purchased"
                    ),
                ),
                (
                    "is_sold",
                    models.BooleanField(
                        db_index=True,
                        default=False,
                        help_text="Whether the item has been paid for and escrowed",
                    ),
                ),
                (
                    "sold_at",
                    models.DateTimeField(
                        blank=True, help_text="When the item was marked sold", null=True
                    ),
                ),
                (
                    "sold_price",
                    models.DecimalField(
                        blank=True,
                        decimal_places=2,
                        help_text="Price the item sold for",
                        max_digits=14,
                        null=True,
                    ),
                ),
                (
                    "sold_reference",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Payment reference of the transaction that bought the item",
                        max_length=64,
                    ),
                ),
                (
                    "seller",
                    models.ForeignKey(
                        help_text="User selling this item",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="products",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "sold_to",
                    models.ForeignKey(
                        blank=True,
                        help_text="Buyer whose payment claimed the item",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="purchased_products",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Product",
                "verbose_name_plural": "Products",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["seller", "is_sold"], name="product_seller_sold_idx"),
                ],
            },
        ),
    ]
