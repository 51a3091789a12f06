# betting/settle.py
"""
Settlement of game windows.

Two independent ways a game reaches `result`:

* `settle_game` (scheduled sweep): a recorded manual override decides the number and pays
  `stake * multiplier` to the listed winners; otherwise the first number from 1 to 12 with
  exactly one bid whose doubled stake the pool can cover wins `stake * 2`. No commission.
* `declare_winner` (admin): the pool is split by the current CommissionSettings, the winner
  share is divided evenly between all bids on the declared number and agents earn a cut of
  their users' winnings.

Both lock the game row and go through `Game.objects.finalize`, so whichever runs first
wins and the other sees `result` and stops before touching any wallet.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import DatabaseError, transaction

from accounts.ledger import lock_wallets, wallet_add
from accounts.models import WalletTransaction
from core.exceptions import (
    GameNotOpenError,
    NoCommissionSettingsError,
    NotFoundError,
    PreconditionError,
    ServiceError,
    ValidationError,
)
from core.permissions import require
from games.models import MAX_NUMBER, MIN_NUMBER, Game, ManualOverride

from .commission import CommissionSplit, current_settings, split_pool
from .models import Bid
from .services import aggregate_by_number, check_number

logger = logging.getLogger(__name__)


@dataclass
class Payout:
    user_id: int
    amount: int
    ref: str
    note: str
    bid_id: int | None = None

    def as_dict(self) -> dict:
        return {"user_id": self.user_id, "bid_id": self.bid_id, "amount": self.amount}


@dataclass
class SettlementResult:
    game_id: int
    mode: str
    winner_number: int | None
    total_pool: int
    payouts: list[Payout] = field(default_factory=list)

    @property
    def total_paid(self) -> int:
        return sum(p.amount for p in self.payouts)

    def as_dict(self) -> dict:
        return {
            "game_id": self.game_id,
            "mode": self.mode,
            "winner_number": self.winner_number,
            "total_pool": self.total_pool,
            "total_paid": self.total_paid,
            "payouts": [p.as_dict() for p in self.payouts],
        }


@dataclass
class DeclarationResult:
    game: Game
    commission: CommissionSplit
    winner_number: int
    payout_per_winner: int
    remaining_amount: int
    winners: list[dict] = field(default_factory=list)
    agent_commissions: list[dict] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "game": self.game.as_dict(),
            "commission": {
                **self.commission.as_dict(),
                "agent_commission_details": self.agent_commissions,
            },
            "winners": {
                "count": len(self.winners),
                "payout_per_winner": self.payout_per_winner,
                "remaining_amount": self.remaining_amount,
                "winner_details": self.winners,
            },
        }


def _get_locked_game(game_id) -> Game:
    try:
        return Game.objects.select_for_update().get(pk=game_id)
    except (Game.DoesNotExist, ValueError, TypeError):
        raise NotFoundError("game not found") from None


def _credit(payouts: list[Payout]):
    lock_wallets(*(p.user_id for p in payouts))
    for p in payouts:
        wallet_add(
            p.user_id,
            p.amount,
            wallet_type="main",
            tx_type="bonus",
            initiator_role="system",
            ref=p.ref,
            note=p.note,
        )


# =========================================
# Automatic / override settlement
# =========================================
def pick_auto_winner(by_number, total_pool: int, multiplier: int | None = None) -> Bid | None:
    """
    First number (ascending) with exactly one bid whose `amount * multiplier` does not
    exceed the pool. `by_number` is the output of aggregate_by_number().
    """
    multiplier = multiplier or settings.AUTO_PAYOUT_MULTIPLIER
    for number in range(MIN_NUMBER, MAX_NUMBER + 1):
        entries = by_number.get(number) or []
        if len(entries) != 1:
            continue
        _, bid = entries[0]
        if bid.amount * multiplier <= total_pool:
            return bid
    return None


def _override_payouts(game: Game, override: ManualOverride) -> list[Payout]:
    multiplier = override.effective_multiplier()
    payouts = []
    for user in override.manual_winners.order_by("pk"):
        bid = (
            Bid.objects.filter(game=game, user=user, number=override.winner_number)
            .order_by("sequence")
            .first()
        )
        if bid is None:
            logger.warning(
                "override %s lists user %s without a bid on %s in game %s",
                override.pk, user.pk, override.winner_number, game.pk,
            )
            continue
        payouts.append(
            Payout(
                user_id=user.pk,
                bid_id=bid.pk,
                amount=int(bid.amount) * multiplier,
                ref=f"game:{game.pk}:override:{user.pk}",
                note=f"Game win payout for game {game.pk}",
            )
        )
    return payouts


def first_override(game) -> ManualOverride | None:
    return (
        ManualOverride.objects.filter(game=game, kind=ManualOverride.KIND_OVERRIDE)
        .order_by("created_at", "id")
        .first()
    )


def settle_game(game_id: int, override: ManualOverride | None = None) -> SettlementResult | None:
    """
    Settle one open game. Returns None when the game was already settled.

    The sweep passes no `override` and the earliest recorded one decides; an admin applying
    a specific override passes it explicitly.
    """
    with transaction.atomic():
        game = _get_locked_game(game_id)
        if not game.is_open():
            logger.info("game %s already settled, skipping", game.pk)
            return None

        if override is None:
            override = first_override(game)
        elif override.game_id != game.pk:
            raise ValidationError("override belongs to another game")
        if override is not None:
            mode = "override"
            winner_number = override.winner_number
            payouts = _override_payouts(game, override)
        else:
            multiplier = settings.AUTO_PAYOUT_MULTIPLIER
            bid = pick_auto_winner(aggregate_by_number(game), game.total_pool, multiplier)
            if bid is None:
                mode, winner_number, payouts = "none", None, []
            else:
                mode = "auto"
                winner_number = bid.number
                payouts = [
                    Payout(
                        user_id=bid.user_id,
                        bid_id=bid.pk,
                        amount=int(bid.amount) * multiplier,
                        ref=f"game:{game.pk}:win:{bid.pk}",
                        note=f"Game win payout for game {game.pk}",
                    )
                ]

        if not Game.objects.finalize(game.pk, winner_number, mode):
            return None
        _credit(payouts)

    result = SettlementResult(
        game_id=game.pk,
        mode=mode,
        winner_number=winner_number,
        total_pool=int(game.total_pool),
        payouts=payouts,
    )
    if winner_number is None:
        logger.info("no winner for game %s (pool %s)", game.pk, game.total_pool)
    else:
        logger.info(
            "game %s settled (%s): number %s, %s payout(s) totalling %s",
            game.pk, mode, winner_number, len(payouts), result.total_paid,
        )
    return result


def settle_due_games(now=None, limit: int | None = None) -> dict:
    """Sweep: settle every open game whose window passed the settlement cutoff."""
    limit = limit or settings.SETTLEMENT_BATCH_LIMIT
    summary = {"games_checked": 0, "settled": 0, "skipped": 0, "failed": 0, "payouts": 0}

    game_ids = list(Game.objects.due_for_settlement(now).values_list("id", flat=True)[:limit])
    for game_id in game_ids:
        summary["games_checked"] += 1
        try:
            result = settle_game(game_id)
        except (ServiceError, DatabaseError):
            # one bad game must not block the rest of the sweep; it stays open and is retried
            logger.exception("settlement of game %s failed", game_id)
            summary["failed"] += 1
            continue
        if result is None:
            summary["skipped"] += 1
            continue
        summary["settled"] += 1
        summary["payouts"] += len(result.payouts)

    return summary


# =========================================
# Admin declaration (commission split)
# =========================================
def declare_winner(game_id: int, winner_number: int, *, declared_by) -> DeclarationResult:
    require(declared_by, "can_manage_games")
    winner_number = check_number(winner_number)
    User = get_user_model()

    with transaction.atomic():
        game = _get_locked_game(game_id)
        if not game.is_open():
            raise GameNotOpenError("can only declare winner for open games")

        commission = current_settings()
        if commission is None:
            raise NoCommissionSettingsError("commission settings not found")

        split = split_pool(game.total_pool, commission)
        winning = list(
            Bid.objects.select_related("user").filter(game=game, number=winner_number).order_by("sequence")
        )
        total_winners = len(winning)
        if total_winners:
            payout_per_winner = split.winner_payout_amount // total_winners
            remaining = split.winner_payout_amount % total_winners
        else:
            payout_per_winner = 0
            remaining = split.winner_payout_amount

        payouts: list[Payout] = []
        winners: list[dict] = []
        per_agent: OrderedDict[int, int] = OrderedDict()
        for bid in winning:
            winners.append(
                {
                    "user_id": bid.user_id,
                    "user_name": bid.user.display_name(),
                    "bid_amount": int(bid.amount),
                    "payout_amount": payout_per_winner,
                }
            )
            if payout_per_winner > 0:
                payouts.append(
                    Payout(
                        user_id=bid.user_id,
                        bid_id=bid.pk,
                        amount=payout_per_winner,
                        ref=f"game:{game.pk}:declared:{bid.pk}",
                        note=f"Game win payout for game {game.pk}",
                    )
                )
            agent_id = bid.user.assigned_agent_id
            if agent_id:
                cut = (payout_per_winner * commission.agent_commission_percentage) // 100
                per_agent[agent_id] = per_agent.get(agent_id, 0) + cut

        agents = User.objects.in_bulk(list(per_agent))
        agent_details = []
        for agent_id, amount in per_agent.items():
            if amount <= 0:
                continue
            payouts.append(
                Payout(
                    user_id=agent_id,
                    amount=amount,
                    ref=f"game:{game.pk}:agent:{agent_id}",
                    note=f"Agent commission for game {game.pk}",
                )
            )
            agent = agents.get(agent_id)
            agent_details.append(
                {
                    "agent_id": agent_id,
                    "agent_name": agent.display_name() if agent else "Unknown Agent",
                    "commission_amount": amount,
                }
            )

        if not Game.objects.finalize(game.pk, winner_number, "declared"):
            raise GameNotOpenError("game was settled concurrently")
        _credit(payouts)

        ManualOverride.objects.create(
            game=game,
            kind=ManualOverride.KIND_AUDIT,
            winner_number=winner_number,
            payout_multiplier=1,
            created_by=declared_by,
            note=(
                f"Winner declared by admin. {total_winners} winners. Payout: {payout_per_winner} each. "
                f"Agent commission: {split.agent_commission_amount} total."
            ),
        )
        game.refresh_from_db()

    logger.info(
        "winner %s declared for game %s by %s: pool %s, %s winner(s) x %s, remainder %s",
        winner_number, game.pk, declared_by.pk, split.total_pool, total_winners, payout_per_winner, remaining,
    )
    return DeclarationResult(
        game=game,
        commission=split,
        winner_number=winner_number,
        payout_per_winner=payout_per_winner,
        remaining_amount=remaining,
        winners=winners,
        agent_commissions=agent_details,
    )


# =========================================
# Manual overrides
# =========================================
def override_result(
    game_id: int,
    winner_number: int,
    manual_winners,
    *,
    created_by,
    note: str | None = None,
    payout_multiplier: int | None = None,
    apply_now: bool = False,
) -> ManualOverride:
    """
    Record an admin's winner decision. An open game picks it up at its next settlement
    (immediately with `apply_now`); for a game that already has a result use apply_override().
    """
    require(created_by, "can_manage_games")
    winner_number = check_number(winner_number)
    if payout_multiplier is not None and (
        isinstance(payout_multiplier, bool) or not isinstance(payout_multiplier, int) or payout_multiplier < 1
    ):
        raise ValidationError("payout multiplier must be a positive integer")

    User = get_user_model()
    winner_ids = [getattr(u, "pk", u) for u in manual_winners]
    users = User.objects.in_bulk(winner_ids)
    missing = [uid for uid in winner_ids if uid not in users]
    if missing:
        raise NotFoundError(f"unknown users: {', '.join(str(m) for m in missing)}")

    with transaction.atomic():
        game = _get_locked_game(game_id)
        override = ManualOverride.objects.create(
            game=game,
            kind=ManualOverride.KIND_OVERRIDE,
            winner_number=winner_number,
            payout_multiplier=payout_multiplier,
            created_by=created_by,
            note=note or f"Manual override. {len(users)} listed winner(s).",
        )
        override.manual_winners.set(users.values())

    logger.info(
        "override %s recorded for game %s: number %s, winners %s, multiplier %s",
        override.pk, game.pk, winner_number, sorted(users), override.effective_multiplier(),
    )
    if apply_now and game.is_open():
        settle_game(game.pk, override=override)
    return override


def apply_override(override_id: int, *, applied_by) -> SettlementResult:
    """
    Recovery path for a game that already reached `result`: set the overridden number and
    pay the listed winners. Winners already paid by an override of this game are skipped.
    """
    require(applied_by, "can_manage_games")
    try:
        override = ManualOverride.objects.get(pk=override_id, kind=ManualOverride.KIND_OVERRIDE)
    except ManualOverride.DoesNotExist:
        raise NotFoundError("override not found") from None

    if Game.objects.filter(pk=override.game_id, status=Game.STATUS_OPEN).exists():
        result = settle_game(override.game_id, override=override)
        if result is not None:
            return result

    with transaction.atomic():
        game = _get_locked_game(override.game_id)
        if game.is_open():
            raise PreconditionError("game is still open")
        payouts = [
            p for p in _override_payouts(game, override)
            if not WalletTransaction.objects.filter(ref=p.ref).exists()
        ]
        Game.objects.filter(pk=game.pk).update(
            result_number=override.winner_number,
            settlement_mode="override",
        )
        _credit(payouts)

    logger.info(
        "override %s applied to settled game %s by %s: %s payout(s)",
        override.pk, game.pk, applied_by.pk, len(payouts),
    )
    return SettlementResult(
        game_id=game.pk,
        mode="override",
        winner_number=override.winner_number,
        total_pool=int(game.total_pool),
        payouts=payouts,
    )
