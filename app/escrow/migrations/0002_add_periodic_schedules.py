"""
Add celery-beat schedules for the escrow engine.

- Auto-release sweep: hourly
- Payout retry: every 30 minutes
- Failed webhook replay: every 15 minutes
"""

from django.db import migrations

PERIODIC_TASKS = [
    {
        "name": "Escrow Auto-Release Sweep",
        "task": "escrow.workers.auto_release.run_auto_release_sweep",
        "every": 1,
        "period": "hours",
        "description": (
            "Captures and pays out shipped transactions whose auto-release "
            "date has passed without buyer confirmation or dispute."
        ),
    },
    {
        "name": "Escrow Payout Retry",
        "task": "escrow.workers.payout_retry.retry_outstanding_payouts",
        "every": 30,
        "period": "minutes",
        "description": "Retries seller payouts that were skipped or failed.",
    },
    {
        "name": "Escrow Webhook Replay",
        "task": "escrow.tasks.retry_failed_webhooks",
        "every": 15,
        "period": "minutes",
        "description": "Re-queues failed or stranded gateway webhook events.",
    },
]


def create_periodic_tasks(apps, schema_editor):
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for task in PERIODIC_TASKS:
        schedule, _ = IntervalSchedule.objects.get_or_create(
            every=task["every"],
            period=task["period"],
        )
        PeriodicTask.objects.get_or_create(
            name=task["name"],
            defaults={
                "task": task["task"],
                "interval": schedule,
                "enabled": True,
                "description": task["description"],
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name__in=[task["name"] for task in PERIODIC_TASKS],
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("escrow", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
