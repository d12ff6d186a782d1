"""
Unit tests for notification models.

Test Classes:
    TestNotificationType: Tests for NotificationType model
    TestNotification: Tests for Notification model
    TestPushDevice: Tests for PushDevice model
"""

import pytest
from django.db import IntegrityError
from django.db.models import ProtectedError

from notifications.tests.factories import (
    NotificationFactory,
    NotificationTypeFactory,
    PushDeviceFactory,
)


class TestNotificationType:
    def test_key_must_be_unique(self, db):
        from notifications.models import NotificationType

        NotificationType.objects.create(key="unique_key", display_name="First")

        with pytest.raises(IntegrityError):
            NotificationType.objects.create(key="unique_key", display_name="Second")

    def test_defaults(self, db):
        from notifications.models import NotificationType

        nt = NotificationType.objects.create(key="defaults", display_name="Defaults")

        assert nt.is_active is True
        assert nt.supports_push is True
        assert nt.category == "transactional"

    def test_str(self, db):
        nt = NotificationTypeFactory(key="item_sold", display_name="Item Sold")

        assert str(nt) == "Item Sold (item_sold)"

    def test_cannot_delete_type_with_notifications(self, db):
        notification = NotificationFactory()

        with pytest.raises(ProtectedError):
            notification.notification_type.delete()


class TestNotification:
    def test_defaults_to_unread(self, db):
        notification = NotificationFactory()

        assert notification.is_read is False
        assert notification.idempotency_key is None

    def test_idempotency_key_unique_when_set(self, db):
        NotificationFactory(idempotency_key="payout_completed:abc")

        with pytest.raises(IntegrityError):
            NotificationFactory(idempotency_key="payout_completed:abc")

    def test_multiple_notifications_without_idempotency_key(self, db):
        first = NotificationFactory(idempotency_key=None)
        second = NotificationFactory(idempotency_key=None)

        assert first.pk != second.pk

    def test_str_shows_read_status(self, db):
        notification = NotificationFactory(is_read=True)

        assert "[read]" in str(notification)


class TestPushDevice:
    def test_token_unique(self, db):
        PushDeviceFactory(token="ExponentPushToken[same]")

        with pytest.raises(IntegrityError):
            PushDeviceFactory(token="ExponentPushToken[same]")
