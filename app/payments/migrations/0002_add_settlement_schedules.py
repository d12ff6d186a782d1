"""
Add celery-beat schedules for the settlement background jobs.

Creates periodic tasks for:
- retrying failed webhook events (every 5 minutes)
- draining the payout queue (every PAYOUT_RETRY_INTERVAL_MINUTES)
- sweeping escrowed transactions whose side effects never completed
- cancelling abandoned pending payments (hourly)
"""

from django.conf import settings
from django.db import migrations

PERIODIC_TASKS = [
    {
        "name": "Retry Failed Paystack Webhooks",
        "task": "payments.tasks.retry_failed_webhooks",
        "every": 5,
        "description": "Re-queues failed webhook events below the retry limit.",
    },
    {
        "name": "Process Queued Payouts",
        "task": "payments.tasks.process_queued_payouts",
        "every": getattr(settings, "PAYOUT_RETRY_INTERVAL_MINUTES", 15),
        "description": (
            "Initiates transfers for confirmed deliveries that were deferred "
            "because the Paystack balance was too low."
        ),
    },
    {
        "name": "Retry Settlement Side Effects",
        "task": "payments.tasks.retry_pending_side_effects",
        "every": 10,
        "description": "Delivers receipts and notifications that failed after escrow entry.",
    },
    {
        "name": "Expire Abandoned Payments",
        "task": "payments.tasks.expire_abandoned_payments",
        "every": 60,
        "description": "Cancels pending payments older than PAYMENT_EXPIRY_HOURS.",
    },
]


def create_periodic_tasks(apps, schema_editor):
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for entry in PERIODIC_TASKS:
        schedule, _ = IntervalSchedule.objects.get_or_create(
            every=entry["every"],
            period="minutes",
        )
        PeriodicTask.objects.get_or_create(
            name=entry["name"],
            defaults={
                "task": entry["task"],
                "interval": schedule,
                "enabled": True,
                "description": entry["description"],
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(name__in=[entry["name"] for entry in PERIODIC_TASKS]).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("payments", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
