# betting/commission.py
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

from django.conf import settings
from django.db import transaction

from core.exceptions import PreconditionError, ValidationError
from core.permissions import require

from .models import CommissionSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommissionSplit:
    total_pool: int
    agent_commission_amount: int
    winner_payout_amount: int
    admin_fee_amount: int

    def as_dict(self) -> dict:
        return asdict(self)


def split_pool(total_pool: int, commission) -> CommissionSplit:
    """
    Split a pool between agents, winners and the platform.

    Agent and winner shares are floored; the admin fee takes whatever is left, so the
    three parts always add back up to `total_pool`.
    """
    total_pool = int(total_pool)
    agent = (total_pool * int(commission.agent_commission_percentage)) // 100
    winner = (total_pool * int(commission.winner_payout_percentage)) // 100
    return CommissionSplit(
        total_pool=total_pool,
        agent_commission_amount=agent,
        winner_payout_amount=winner,
        admin_fee_amount=total_pool - agent - winner,
    )


def validate_percentages(agent: int, winner: int, admin: int):
    for name, value in (("agent", agent), ("winner", winner), ("admin", admin)):
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 100:
            raise ValidationError(f"{name} percentage must be an integer between 0 and 100")
    if agent + winner + admin > 100:
        raise PreconditionError("total percentages cannot exceed 100%")


def current_settings() -> CommissionSettings | None:
    return CommissionSettings.objects.current()


def get_commission_settings() -> CommissionSettings:
    """Current settings, seeding the configured defaults on first use."""
    current = current_settings()
    if current is not None:
        return current
    return CommissionSettings.objects.create(updated_by="System", **settings.COMMISSION_DEFAULTS)


def update_commission_settings(
    admin,
    *,
    agent_commission_percentage: int,
    winner_payout_percentage: int,
    admin_fee_percentage: int,
    min_bet_amount: int,
    max_bet_amount: int,
) -> CommissionSettings:
    require(admin, "can_update_commission")
    validate_percentages(agent_commission_percentage, winner_payout_percentage, admin_fee_percentage)
    if min_bet_amount < 1 or max_bet_amount < 1:
        raise ValidationError("bet limits must be at least 1")
    if min_bet_amount >= max_bet_amount:
        raise ValidationError("minimum bet amount must be less than maximum bet amount")

    with transaction.atomic():
        record = CommissionSettings.objects.create(
            agent_commission_percentage=agent_commission_percentage,
            winner_payout_percentage=winner_payout_percentage,
            admin_fee_percentage=admin_fee_percentage,
            min_bet_amount=min_bet_amount,
            max_bet_amount=max_bet_amount,
            updated_by=f"Admin ({admin.pk})",
        )
    logger.info("commission settings updated by %s: %s", admin.pk, record)
    return record


def commission_history(limit: int = 20):
    return list(CommissionSettings.objects.order_by("-created_at", "-id")[:limit])
