"""
Django admin configuration for notification models.

Registers:
- NotificationType (templates are editable here)
- Notification
- PushDevice
- NotificationDelivery
"""

from django.contrib import admin

from notifications.models import (
    Notification,
    NotificationDelivery,
    NotificationType,
    PushDevice,
)


@admin.register(NotificationType)
class NotificationTypeAdmin(admin.ModelAdmin):
    list_display = ["key", "display_name", "category", "is_active", "supports_push"]
    list_filter = ["is_active", "category", "supports_push"]
    search_fields = ["key", "display_name"]
    ordering = ["category", "key"]
    fieldsets = (
        (None, {"fields": ("key", "display_name", "category", "is_active", "supports_push")}),
        ("Templates", {"fields": ("title_template", "body_template")}),
    )


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    """Read-only view of notifications for debugging and support."""

    list_display = ["id", "notification_type", "recipient", "title", "is_read", "created_at"]
    list_filter = ["is_read", "notification_type", "created_at"]
    search_fields = ["title", "recipient__email", "idempotency_key"]
    ordering = ["-created_at"]
    readonly_fields = [
        "notification_type",
        "recipient",
        "title",
        "body",
        "data",
        "idempotency_key",
        "created_at",
        "updated_at",
    ]
    raw_id_fields = ["recipient"]


@admin.register(PushDevice)
class PushDeviceAdmin(admin.ModelAdmin):
    list_display = ["id", "user", "device_kind", "platform", "is_active", "updated_at"]
    list_filter = ["device_kind", "platform", "is_active"]
    search_fields = ["user__email", "token"]
    raw_id_fields = ["user"]
    readonly_fields = ["created_at", "updated_at"]


@admin.register(NotificationDelivery)
class NotificationDeliveryAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "notification",
        "status",
        "attempt_count",
        "devices_targeted",
        "devices_reached",
        "sent_at",
        "failed_at",
    ]
    list_filter = ["status"]
    search_fields = ["notification__recipient__email"]
    ordering = ["-created_at"]
    readonly_fields = [
        "notification",
        "status",
        "attempt_count",
        "devices_targeted",
        "devices_reached",
        "sent_at",
        "failed_at",
        "failure_reason",
        "created_at",
        "updated_at",
    ]
    raw_id_fields = ["notification"]

    def has_add_permission(self, request):
        """Deliveries are created by the system, not manually."""
        return False

    def has_delete_permission(self, request, obj=None):
        """Deliveries should not be deleted for audit purposes."""
        return False
