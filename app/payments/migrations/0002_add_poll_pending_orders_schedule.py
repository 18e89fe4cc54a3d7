"""
Add celery-beat schedule for polling pending orders.

Providers without reliable push (AppyPay references, SISLOG mobile money)
are queried every 5 minutes for orders still pending inside the poll window.
"""

from django.db import migrations


def create_periodic_task(apps, schema_editor):
    """Create the periodic task for polling pending orders."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    schedule, _ = IntervalSchedule.objects.get_or_create(
        every=5,
        period="minutes",
    )

    PeriodicTask.objects.get_or_create(
        name="Poll Pending Orders",
        defaults={
            "task": "payments.tasks.poll_pending_orders",
            "interval": schedule,
            "enabled": True,
            "description": (
                "Queries poll-capable providers for pending orders created "
                "within PENDING_ORDER_POLL_WINDOW_HOURS and settles them."
            ),
        },
    )


def remove_periodic_task(apps, schema_editor):
    """Remove the periodic task on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(name="Poll Pending Orders").delete()


class Migration(migrations.Migration):
    dependencies = [
        ("payments", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_task, remove_periodic_task),
    ]
