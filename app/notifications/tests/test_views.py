"""
Integration tests for notification API endpoints.

Test Classes:
    TestNotificationList
    TestUnreadCount
    TestMarkRead
    TestPushDevices
"""

from notifications.tests.factories import EXPO_TOKEN, NotificationFactory, PushDeviceFactory

BASE_URL = "/api/v1/notifications/"


class TestNotificationList:
    def test_returns_only_own_notifications(self, db, authenticated_client, user, other_user):
        NotificationFactory.create_batch(2, recipient=user)
        NotificationFactory(recipient=other_user)

        response = authenticated_client.get(BASE_URL)

        assert response.status_code == 200
        assert response.data["count"] == 2

    def test_filter_by_is_read(self, db, authenticated_client, unread_notification, read_notification):
        response = authenticated_client.get(BASE_URL, {"is_read": "false"})

        ids = [item["id"] for item in response.data["results"]]
        assert ids == [unread_notification.id]

    def test_filter_by_type(self, db, authenticated_client, user):
        sold = NotificationFactory(recipient=user, notification_type__key="item_sold")
        NotificationFactory(recipient=user, notification_type__key="payout_completed")

        response = authenticated_client.get(BASE_URL, {"type": "item_sold"})

        assert [item["id"] for item in response.data["results"]] == [sold.id]
        assert response.data["results"][0]["type_key"] == "item_sold"

    def test_requires_authentication(self, db, api_client):
        response = api_client.get(BASE_URL)

        assert response.status_code == 401

    def test_404_for_other_users_notification(self, db, authenticated_client, other_user):
        notification = NotificationFactory(recipient=other_user)

        response = authenticated_client.get(f"{BASE_URL}{notification.id}/")

        assert response.status_code == 404


class TestUnreadCount:
    def test_returns_count(self, db, authenticated_client, unread_notification, read_notification):
        response = authenticated_client.get(f"{BASE_URL}unread-count/")

        assert response.status_code == 200
        assert response.data == {"unread_count": 1}


class TestMarkRead:
    def test_mark_single(self, db, authenticated_client, unread_notification):
        response = authenticated_client.post(f"{BASE_URL}{unread_notification.id}/read/")

        assert response.status_code == 200
        assert response.data["is_read"] is True

    def test_mark_single_other_user_404(self, db, authenticated_client, other_user):
        notification = NotificationFactory(recipient=other_user)

        response = authenticated_client.post(f"{BASE_URL}{notification.id}/read/")

        assert response.status_code == 404

    def test_mark_all(self, db, authenticated_client, user):
        NotificationFactory.create_batch(3, recipient=user)

        response = authenticated_client.post(f"{BASE_URL}read-all/")

        assert response.data == {"marked_count": 3}


class TestPushDevices:
    def test_register_structured_token(self, db, authenticated_client, user):
        response = authenticated_client.post(
            f"{BASE_URL}devices/",
            {"token": {"token": EXPO_TOKEN, "platform": "ios"}},
            format="json",
        )

        assert response.status_code == 201
        assert response.data["device_kind"] == "expo"
        assert response.data["platform"] == "ios"
        assert user.push_devices.count() == 1

    def test_register_string_token(self, db, authenticated_client):
        response = authenticated_client.post(
            f"{BASE_URL}devices/",
            {"token": EXPO_TOKEN, "platform": "android"},
            format="json",
        )

        assert response.status_code == 201
        assert response.data["platform"] == "android"

    def test_register_invalid_token(self, db, authenticated_client):
        response = authenticated_client.post(f"{BASE_URL}devices/", {"token": "nope"}, format="json")

        assert response.status_code == 400
        assert response.data["error_code"] == "INVALID_PUSH_TOKEN"

    def test_unregister(self, db, authenticated_client, user):
        device = PushDeviceFactory(user=user)

        response = authenticated_client.delete(f"{BASE_URL}devices/{device.id}/")

        assert response.status_code == 204
        device.refresh_from_db()
        assert device.is_active is False
