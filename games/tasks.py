# games/tasks.py
from __future__ import annotations

import logging

from celery import shared_task

from .services import open_current_window

logger = logging.getLogger(__name__)


@shared_task
def open_game_window() -> dict:
    """Runs at every window boundary (:00 and :30)."""
    game, created = open_current_window()
    if created:
        logger.info("opened window %s (game %s)", game.time_window.isoformat(), game.pk)
    return {"game_id": game.pk, "time_window": game.time_window.isoformat(), "created": created}
