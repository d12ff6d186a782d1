"""
Serializers for notification API.

Serializers:
    NotificationSerializer: Read-only serializer for notification details
    UnreadCountSerializer: Response for unread count endpoint
    MarkAllReadResponseSerializer: Response for mark all read endpoint
    PushDeviceSerializer: Push token registration
"""

from __future__ import annotations

from rest_framework import serializers

from notifications.models import DevicePlatform, Notification, PushDevice


class NotificationSerializer(serializers.ModelSerializer):
    """
    Read-only serializer for the notification inbox.

    Usage:
        serializer = NotificationSerializer(notification)
        serializer = NotificationSerializer(notifications, many=True)
    """

    type_key = serializers.CharField(source="notification_type.key", read_only=True)

    class Meta:
        model = Notification
        fields = [
            "id",
            "type_key",
            "title",
            "body",
            "data",
            "is_read",
            "created_at",
        ]
        read_only_fields = fields


class UnreadCountSerializer(serializers.Serializer):
    unread_count = serializers.IntegerField(read_only=True)


class MarkAllReadResponseSerializer(serializers.Serializer):
    marked_count = serializers.IntegerField(read_only=True)


class PushDeviceSerializer(serializers.ModelSerializer):
    """
    Push token registration.

    token accepts either a bare string or {"token": ..., "platform": ...};
    the shape is resolved by PushTarget.from_raw in the service layer.
    """

    token = serializers.JSONField(write_only=True)
    platform = serializers.ChoiceField(
        choices=DevicePlatform.choices,
        required=False,
        allow_null=True,
    )

    class Meta:
        model = PushDevice
        fields = ["id", "token", "platform", "device_kind", "is_active", "created_at"]
        read_only_fields = ["id", "device_kind", "is_active", "created_at"]

    def validate_token(self, value):
        if not isinstance(value, (str, dict)):
            raise serializers.ValidationError("Token must be a string or an object with a 'token' key.")
        return value
