"""
Celery configuration for the settlement service.

Celery runs two kinds of work here:
- Periodic polling of pending orders at providers without reliable push
  (scheduled by celery beat, see payments migration 0002)
- Background tasks declared in each app's tasks.py

Tasks are auto-discovered from all installed Django apps.

Usage:
    from payments.tasks import poll_pending_orders

    poll_pending_orders.delay(window_hours=48)

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
