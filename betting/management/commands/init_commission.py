from django.core.management.base import BaseCommand

from betting.commission import current_settings, get_commission_settings


class Command(BaseCommand):
    help = "Seed the default commission settings if none exist yet."

    def handle(self, *args, **options):
        existed = current_settings() is not None
        record = get_commission_settings()
        if existed:
            self.stdout.write(self.style.WARNING(f"Commission settings already present: {record}"))
        else:
            self.stdout.write(self.style.SUCCESS(f"Default commission settings created: {record}"))
