from django.contrib import admin

from marketplace.models import Product


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ["title", "seller", "price", "is_active", "is_sold", "sold_at"]
    list_filter = ["is_active", "is_sold"]
    search_fields = ["title", "seller__email", "sold_reference"]
    readonly_fields = [
        "id",
        "is_sold",
        "sold_at",
        "sold_to",
        "sold_price",
        "sold_reference",
        "created_at",
        "updated_at",
    ]
    raw_id_fields = ["seller"]
