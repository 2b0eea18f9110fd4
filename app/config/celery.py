"""
Celery configuration for the escrow service.

Celery runs the work that must not block a web request:
- Webhook processing (events are persisted first, then handled here)
- The periodic auto-release sweep
- Payout retries and replay of failed webhook events

Periodic schedules live in the database (django-celery-beat) and are
registered by escrow's migrations. Tasks are auto-discovered from all
installed Django apps.

Usage:
    # Call a task asynchronously:
    process_webhook_event.delay(str(webhook_event.id))

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

# Looks for tasks.py in each installed app; worker modules that are not
# named tasks.py are imported from escrow.tasks
app.autodiscover_tasks()
