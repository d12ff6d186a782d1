"""
Factory Boy factories for notification models.

Usage:
    from notifications.tests.factories import (
        NotificationTypeFactory,
        NotificationFactory,
        PushDeviceFactory,
    )

    notification = NotificationFactory(recipient=user)
    device = PushDeviceFactory(user=user)
"""

import factory

from authentication.tests.factories import UserFactory

EXPO_TOKEN = "ExponentPushToken[xxxxxxxxxxxxxxxxxxxxxx]"
FCM_TOKEN = "d" * 40 + ":APA91b" + "F" * 100


class NotificationTypeFactory(factory.django.DjangoModelFactory):
    """
    Factory for NotificationType model.

    Examples:
        nt = NotificationTypeFactory(
            key="payout_completed",
            title_template="Payout of {amount} completed",
        )
        nt = NotificationTypeFactory(is_active=False)
    """

    class Meta:
        model = "notifications.NotificationType"
        django_get_or_create = ("key",)

    key = factory.Sequence(lambda n: f"notification_type_{n}")
    display_name = factory.LazyAttribute(lambda obj: obj.key.replace("_", " ").title())
    category = "transactional"
    title_template = factory.LazyAttribute(lambda obj: f"{obj.display_name} Title")
    body_template = factory.LazyAttribute(lambda obj: f"{obj.display_name} body message.")
    is_active = True
    supports_push = True


class NotificationFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = "notifications.Notification"

    notification_type = factory.SubFactory(NotificationTypeFactory)
    recipient = factory.SubFactory(UserFactory)
    title = factory.Faker("sentence", nb_words=5)
    body = factory.Faker("paragraph", nb_sentences=2)
    data = factory.LazyFunction(dict)
    is_read = False


class NotificationDeliveryFactory(factory.django.DjangoModelFactory):
    """Pending push delivery by default."""

    class Meta:
        model = "notifications.NotificationDelivery"

    notification = factory.SubFactory(NotificationFactory)
    status = "pending"


class PushDeviceFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = "notifications.PushDevice"

    user = factory.SubFactory(UserFactory)
    token = factory.Sequence(lambda n: f"ExponentPushToken[device-{n:06d}]")
    platform = "android"
    device_kind = "expo"
    is_active = True
