# betting/management/commands/settle_games.py
from django.core.management.base import BaseCommand, CommandError

from core.exceptions import ServiceError
from betting.settle import settle_due_games, settle_game


class Command(BaseCommand):
    help = "Settle open games whose window passed the settlement cutoff (or one game with --game)."

    def add_arguments(self, parser):
        parser.add_argument("--limit", type=int, default=None, help="How many due games to settle in one run.")
        parser.add_argument("--game", type=int, default=None, help="Settle only this game id.")

    def handle(self, *args, **options):
        if options["game"] is not None:
            try:
                result = settle_game(options["game"])
            except ServiceError as e:
                raise CommandError(e.message) from e
            if result is None:
                self.stdout.write(self.style.WARNING("Game already settled, nothing to do."))
            else:
                self.stdout.write(self.style.SUCCESS(f"Done. {result.as_dict()}"))
            return

        res = settle_due_games(limit=options["limit"])
        self.stdout.write(self.style.SUCCESS(f"Done. {res}"))
