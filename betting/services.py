from __future__ import annotations

import logging
from collections import OrderedDict

from django.db import transaction

from accounts.ledger import wallet_sub
from core.exceptions import GameNotOpenError, InvalidNumberError, NotFoundError, ValidationError
from core.permissions import ADMIN, AGENT, policy_for, require
from games.models import MAX_NUMBER, MIN_NUMBER, Game

from .models import Bid, CommissionSettings, Counter

logger = logging.getLogger(__name__)

BID_COUNTER = "bid"


def check_number(number) -> int:
    if isinstance(number, bool) or not isinstance(number, int) or not MIN_NUMBER <= number <= MAX_NUMBER:
        raise InvalidNumberError(f"number must be between {MIN_NUMBER} and {MAX_NUMBER}")
    return number


def _check_amount(amount) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 1:
        raise ValidationError("amount must be a positive integer")
    limits = CommissionSettings.objects.current()
    if limits is not None and not limits.min_bet_amount <= amount <= limits.max_bet_amount:
        raise ValidationError(
            f"amount must be between {limits.min_bet_amount} and {limits.max_bet_amount}"
        )
    return amount


def place_bid(*, user, game_id: int, number: int, amount: int) -> Bid:
    """
    Debit the stake, number the bid, record it and grow the pool as one transaction.
    """
    require(user, "can_place_bids")
    number = check_number(number)
    amount = _check_amount(amount)

    with transaction.atomic():
        try:
            game = Game.objects.select_for_update().get(pk=game_id)
        except (Game.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("game not found") from None
        if not game.accepts_bids():
            raise GameNotOpenError("game is not open for bids")

        wallet_sub(
            user,
            amount,
            wallet_type="main",
            tx_type="debit",
            initiator=user,
            initiator_role="user",
            note=f"Bid on game {game.pk} number {number}",
        )

        bid = Bid.objects.create(
            user=user,
            game=game,
            number=number,
            amount=amount,
            sequence=Counter.next_value(BID_COUNTER),
        )
        Game.objects.add_to_pool(game.pk, amount)

    logger.info("bid #%s: user %s game %s number %s amount %s", bid.sequence, user.pk, game.pk, number, amount)
    return bid


def aggregate_by_number(game) -> "OrderedDict[int, list[tuple]]":
    """number -> [(user, bid), ...] in ascending number order, only numbers that were bid on."""
    game_id = getattr(game, "pk", game)
    grouped: OrderedDict[int, list[tuple]] = OrderedDict()
    bids = Bid.objects.select_related("user").filter(game_id=game_id).order_by("number", "sequence")
    for bid in bids:
        grouped.setdefault(bid.number, []).append((bid.user, bid))
    return grouped


def list_bids(viewer, limit: int = 100):
    policy = policy_for(viewer)
    qs = Bid.objects.select_related("user", "game")
    if policy.role == AGENT:
        qs = qs.filter(user__assigned_agent=viewer)
    elif policy.role != ADMIN:
        qs = qs.filter(user=viewer)
    return list(qs.order_by("-created_at", "-sequence")[:limit])


def list_game_bids(viewer, game_id: int):
    require(viewer, "can_manage_games")
    return list(Bid.objects.select_related("user").filter(game_id=game_id).order_by("-created_at", "-sequence"))
