import pytest

from accounts.ledger import get_or_create_wallet
from accounts.models import WalletTransaction
from betting.commission import update_commission_settings
from betting.services import place_bid
from betting.settle import declare_winner
from core.exceptions import (
    GameNotOpenError,
    InvalidNumberError,
    NoCommissionSettingsError,
    PermissionDeniedError,
)
from games.models import Game, ManualOverride


def test_end_to_end_single_winner(admin, player, game, commission):
    place_bid(user=player, game_id=game.pk, number=5, amount=100)
    game.refresh_from_db()
    assert game.total_pool == 100
    balance_before = get_or_create_wallet(player).main

    result = declare_winner(game.pk, 5, declared_by=admin)

    game.refresh_from_db()
    assert game.status == Game.STATUS_RESULT
    assert game.result_number == 5
    assert game.settlement_mode == "declared"
    assert result.commission.winner_payout_amount == 80
    assert result.payout_per_winner == 80
    assert get_or_create_wallet(player).main == balance_before + 80

    payout = WalletTransaction.objects.get(user=player, tx_type="bonus")
    assert payout.amount == 80
    assert payout.wallet_type == "main"


def test_breakdown_with_agents_and_remainder(admin, make_user, game, commission):
    agent_a = make_user("agent")
    agent_b = make_user("agent")
    w1 = make_user(agent=agent_a, balance=5000)
    w2 = make_user(agent=agent_a, balance=5000)
    w3 = make_user(agent=agent_b, balance=5000)
    loser = make_user(balance=5000)

    for user in (w1, w2, w3):
        place_bid(user=user, game_id=game.pk, number=7, amount=100)
    place_bid(user=loser, game_id=game.pk, number=3, amount=701)

    result = declare_winner(game.pk, 7, declared_by=admin)

    # pool 1001 -> agent 50, winners 800, admin 151
    assert result.commission.total_pool == 1001
    assert result.commission.agent_commission_amount == 50
    assert result.commission.winner_payout_amount == 800
    assert result.commission.admin_fee_amount == 151
    # 800 // 3 = 266, remainder 2 is reported only
    assert result.payout_per_winner == 266
    assert result.remaining_amount == 2
    assert [w["user_id"] for w in result.winners] == [w1.pk, w2.pk, w3.pk]

    # floor(266 * 5 / 100) = 13 per winning user, summed per agent
    agents = {d["agent_id"]: d["commission_amount"] for d in result.agent_commissions}
    assert agents == {agent_a.pk: 26, agent_b.pk: 13}
    assert get_or_create_wallet(agent_a).main == 26
    assert get_or_create_wallet(agent_b).main == 13
    assert WalletTransaction.objects.filter(user=agent_a, tx_type="bonus").count() == 1

    for w in (w1, w2, w3):
        assert get_or_create_wallet(w).main == 5000 - 100 + 266
    assert get_or_create_wallet(loser).main == 5000 - 701

    body = result.as_dict()
    assert body["winners"]["count"] == 3
    assert body["commission"]["agent_commission_details"][0]["agent_name"] == agent_a.full_name


def test_no_winning_bids(admin, player, game, commission):
    place_bid(user=player, game_id=game.pk, number=1, amount=100)

    result = declare_winner(game.pk, 12, declared_by=admin)

    game.refresh_from_db()
    assert game.status == Game.STATUS_RESULT
    assert game.result_number == 12
    assert result.payout_per_winner == 0
    assert result.remaining_amount == 80
    assert not WalletTransaction.objects.filter(tx_type="bonus").exists()


def test_audit_entry_is_written(admin, player, game, commission):
    place_bid(user=player, game_id=game.pk, number=5, amount=100)
    declare_winner(game.pk, 5, declared_by=admin)

    audit = ManualOverride.objects.get(game=game)
    assert audit.kind == ManualOverride.KIND_AUDIT
    assert audit.winner_number == 5
    assert audit.payout_multiplier == 1
    assert audit.created_by == admin
    assert "1 winners" in audit.note


def test_uses_latest_settings(admin, player, game, commission):
    update_commission_settings(
        admin,
        agent_commission_percentage=0,
        winner_payout_percentage=50,
        admin_fee_percentage=50,
        min_bet_amount=1,
        max_bet_amount=1000,
    )
    place_bid(user=player, game_id=game.pk, number=2, amount=100)

    result = declare_winner(game.pk, 2, declared_by=admin)

    assert result.payout_per_winner == 50


def test_requires_commission_settings(admin, player, game):
    place_bid(user=player, game_id=game.pk, number=5, amount=100)

    with pytest.raises(NoCommissionSettingsError):
        declare_winner(game.pk, 5, declared_by=admin)

    game.refresh_from_db()
    assert game.status == Game.STATUS_OPEN


def test_game_must_be_open(admin, game, commission):
    Game.objects.finalize(game.pk, None, "none")
    with pytest.raises(GameNotOpenError):
        declare_winner(game.pk, 5, declared_by=admin)


def test_second_declaration_rejected(admin, player, game, commission):
    place_bid(user=player, game_id=game.pk, number=5, amount=100)
    declare_winner(game.pk, 5, declared_by=admin)

    with pytest.raises(GameNotOpenError):
        declare_winner(game.pk, 5, declared_by=admin)
    assert WalletTransaction.objects.filter(tx_type="bonus").count() == 1


def test_admin_only(agent, game, commission):
    with pytest.raises(PermissionDeniedError):
        declare_winner(game.pk, 5, declared_by=agent)


def test_number_validated(admin, game, commission):
    with pytest.raises(InvalidNumberError):
        declare_winner(game.pk, 0, declared_by=admin)
