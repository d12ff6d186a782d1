"""
Celery configuration for the Django application.

Celery runs everything in the settlement engine that must not block a
request or a webhook acknowledgement:
- Processing stored gateway webhook events
- Receipt generation and party notifications after escrow entry
- Draining deferred payouts as platform liquidity returns
- Reconciling transfers whose initiation timed out
- Cancelling abandoned payments

Periodic schedules live in django-celery-beat's DatabaseScheduler and are
installed by data migrations (see payments/migrations).

Usage:
    from payments.tasks import process_queued_payouts

    process_queued_payouts.delay()

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Celery will look for a tasks.py module in each installed app
app.autodiscover_tasks()
