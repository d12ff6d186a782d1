"""
Notifications app: the Notify(user, type, payload) collaborator.

This app provides:
- NotificationType model holding the templates for each notification kind
- Notification model for storing user notifications
- PushDevice model for FCM / Expo tokens
- NotificationService.notify() used by the payment settlement services
- Celery task for async push delivery
- REST API for the inbox and push token registration

Usage:
    from notifications.services import NotificationService

    result = NotificationService.notify(
        user=seller,
        type_key="item_sold",
        payload={"product_title": "Desk", "amount": "5,000.00"},
    )
"""
