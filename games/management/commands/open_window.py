from django.core.management.base import BaseCommand

from games.services import open_current_window


class Command(BaseCommand):
    help = "Create the game for the current betting window if it does not exist."

    def handle(self, *args, **options):
        game, created = open_current_window()
        label = "Created" if created else "Already open"
        self.stdout.write(self.style.SUCCESS(f"{label}: {game}"))
