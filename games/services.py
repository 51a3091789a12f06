# games/services.py
from __future__ import annotations

import logging
from datetime import datetime

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from core.exceptions import GameAlreadyExistsError, NotFoundError, ValidationError

from .models import Game

logger = logging.getLogger(__name__)


def current_time_window(now: datetime | None = None) -> datetime:
    """Floor `now` to the start of its window (:00 / :30 for 30 minute windows)."""
    now = now or timezone.now()
    size = settings.GAME_WINDOW_MINUTES
    minutes = now.hour * 60 + now.minute
    slot = (minutes // size) * size
    return now.replace(hour=slot // 60, minute=slot % 60, second=0, microsecond=0)


def _normalize_window(time_window) -> datetime:
    if isinstance(time_window, str):
        try:
            time_window = datetime.fromisoformat(time_window.replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError("time window must be an ISO-8601 timestamp") from None
    if not isinstance(time_window, datetime):
        raise ValidationError("time window must be a datetime")
    if timezone.is_naive(time_window):
        time_window = timezone.make_aware(time_window)
    return time_window


def create_game(time_window) -> Game:
    time_window = _normalize_window(time_window)
    try:
        with transaction.atomic():
            game = Game.objects.create(time_window=time_window, status=Game.STATUS_OPEN, total_pool=0)
    except IntegrityError:
        raise GameAlreadyExistsError("game already exists for this window") from None
    logger.info("game %s created for window %s", game.pk, time_window.isoformat())
    return game


def open_current_window(now: datetime | None = None) -> tuple[Game, bool]:
    """Create the game for the current window unless it exists already."""
    window = current_time_window(now)
    existing = Game.objects.filter(time_window=window).first()
    if existing is not None:
        return existing, False
    try:
        return create_game(window), True
    except GameAlreadyExistsError:
        # another worker opened it between the lookup and the insert
        return Game.objects.get(time_window=window), False


def get_game(game_id) -> Game:
    try:
        return Game.objects.get(pk=game_id)
    except (Game.DoesNotExist, ValueError, TypeError):
        raise NotFoundError("game not found") from None


def list_games(status: str | None = None, limit: int = 100):
    qs = Game.objects.all()
    if status:
        qs = qs.filter(status=status)
    return list(qs.order_by("-time_window")[:limit])
