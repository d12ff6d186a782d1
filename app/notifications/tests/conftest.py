"""
Fixtures for notification tests.

The settlement flow creates notification types lazily from the catalog;
fixtures here create types directly so list/read endpoints can be tested
without running a sale.

Usage:
    def test_example(user, unread_notification, authenticated_client):
        response = authenticated_client.get("/api/v1/notifications/")
        assert response.status_code == 200
"""

import pytest
from rest_framework.test import APIClient

from authentication.tests.factories import UserFactory


@pytest.fixture
def user(db):
    return UserFactory()


@pytest.fixture
def other_user(db):
    return UserFactory()


@pytest.fixture
def notification_type(db):
    """Active settlement type with plain templates."""
    from notifications.models import NotificationType

    return NotificationType.objects.create(
        key="escrow_reminder",
        display_name="Escrow Reminder",
        title_template="Confirm your delivery",
        body_template="Your payment is held in escrow until you confirm delivery.",
        category="transactional",
        is_active=True,
        supports_push=True,
    )


@pytest.fixture
def inactive_notification_type(db):
    from notifications.models import NotificationType

    return NotificationType.objects.create(
        key="listing_digest",
        display_name="Weekly Listing Digest",
        is_active=False,
    )


@pytest.fixture
def unread_notification(db, user, notification_type):
    from notifications.models import Notification

    return Notification.objects.create(
        notification_type=notification_type,
        recipient=user,
        title="Confirm your delivery",
        body="₦5,000.00 for \"Vintage Camera\" is held in escrow.",
        is_read=False,
    )


@pytest.fixture
def read_notification(db, user, notification_type):
    from notifications.models import Notification

    return Notification.objects.create(
        notification_type=notification_type,
        recipient=user,
        title="Payout sent",
        body="₦4,850.00 is on its way to your bank account.",
        is_read=True,
    )


@pytest.fixture
def authenticated_client(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client
