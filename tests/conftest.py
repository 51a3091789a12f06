from __future__ import annotations

import itertools
from datetime import timedelta

import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone

from accounts.ledger import wallet_add
from betting.commission import get_commission_settings
from games.models import Game
from games.services import current_time_window

_seq = itertools.count(1)


@pytest.fixture
def make_user(db):
    User = get_user_model()

    def _make(role: str = "user", *, agent=None, balance: int = 0, **extra):
        n = next(_seq)
        user = User.objects.create_user(
            username=extra.pop("username", f"{role}{n}"),
            password="pw",
            role=role,
            assigned_agent=agent,
            full_name=extra.pop("full_name", f"{role.title()} {n}"),
            **extra,
        )
        if balance:
            wallet_add(user, balance, tx_type="recharge", note="test funding")
        return user

    return _make


@pytest.fixture
def admin(make_user):
    return make_user("admin")


@pytest.fixture
def agent(make_user):
    return make_user("agent")


@pytest.fixture
def player(make_user):
    return make_user("user", balance=10_000)


@pytest.fixture
def commission(db):
    """The default 5 / 80 / 15 settings."""
    return get_commission_settings()


@pytest.fixture
def make_game(db):
    def _make(minutes_ago: int = 0, **extra):
        window = current_time_window(timezone.now() - timedelta(minutes=minutes_ago))
        game, _ = Game.objects.get_or_create(time_window=window, defaults=extra)
        return game

    return _make


@pytest.fixture
def game(make_game):
    return make_game()


@pytest.fixture
def expired_game(make_game):
    return make_game(minutes_ago=60)
