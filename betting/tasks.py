from celery import shared_task

from .settle import settle_due_games


@shared_task
def settle_expired_games() -> dict:
    """
    Every 5 minutes: settle open games whose window started at least
    SETTLEMENT_CUTOFF_MINUTES ago (manual override first, then the automatic rule).
    """
    return settle_due_games()
