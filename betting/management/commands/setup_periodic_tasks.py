from django.conf import settings
from django.core.management.base import BaseCommand
from django_celery_beat.models import CrontabSchedule, PeriodicTask


def _has_field(model, field_name: str) -> bool:
    return any(f.name == field_name for f in model._meta.fields)


def _crontab(minute: str) -> CrontabSchedule:
    kwargs = dict(minute=minute, hour="*", day_of_week="*", day_of_month="*", month_of_year="*")
    if _has_field(CrontabSchedule, "timezone"):
        kwargs["timezone"] = getattr(settings, "TIME_ZONE", "UTC")
    cron, _ = CrontabSchedule.objects.get_or_create(**kwargs)
    return cron


class Command(BaseCommand):
    help = "Create/update Celery Beat periodic tasks (window opener + settlement sweep)."

    def handle(self, *args, **options):
        window = settings.GAME_WINDOW_MINUTES
        boundaries = ",".join(str(m) for m in range(0, 60, window)) if 60 % window == 0 else "0"

        PeriodicTask.objects.update_or_create(
            name=f"Games: open window (every {window} min)",
            defaults={
                "task": "games.tasks.open_game_window",
                "crontab": _crontab(boundaries),
                "enabled": True,
            },
        )

        PeriodicTask.objects.update_or_create(
            name="Games: settle expired windows (every 5 min)",
            defaults={
                "task": "betting.tasks.settle_expired_games",
                "crontab": _crontab("*/5"),
                "enabled": True,
            },
        )

        self.stdout.write(self.style.SUCCESS("Periodic tasks created/updated OK."))
