import random

import pytest

from accounts.ledger import get_or_create_wallet, wallet_add, wallet_sub
from accounts.models import Wallet, WalletTransaction
from core.exceptions import InsufficientBalanceError, ValidationError


def test_wallet_created_lazily_on_first_credit(make_user):
    user = make_user()
    assert not Wallet.objects.filter(user=user).exists()

    tx = wallet_add(user, 500, tx_type="recharge")

    wallet = Wallet.objects.get(user=user)
    assert (wallet.main, wallet.bonus) == (500, 0)
    assert tx.balance_after == 500
    assert tx.tx_type == "recharge"
    assert tx.initiator_role == "system"


def test_credit_and_debit_use_independent_balances(make_user):
    user = make_user()
    wallet_add(user, 300, wallet_type="bonus", tx_type="bonus")
    wallet_add(user, 200)

    with pytest.raises(InsufficientBalanceError):
        wallet_sub(user, 250, wallet_type="main")

    wallet_sub(user, 250, wallet_type="bonus")
    wallet = get_or_create_wallet(user)
    assert (wallet.main, wallet.bonus) == (200, 50)


def test_rejected_debit_changes_nothing(make_user):
    user = make_user(balance=100)
    before = WalletTransaction.objects.filter(user=user).count()

    with pytest.raises(InsufficientBalanceError):
        wallet_sub(user, 101)

    assert get_or_create_wallet(user).main == 100
    assert WalletTransaction.objects.filter(user=user).count() == before


@pytest.mark.parametrize("amount", [0, -5, 1.5, "10", True])
def test_invalid_amounts_rejected(make_user, amount):
    user = make_user()
    with pytest.raises(ValidationError):
        wallet_add(user, amount)


def test_unknown_wallet_type_rejected(make_user):
    with pytest.raises(ValidationError):
        wallet_add(make_user(), 10, wallet_type="savings")


def test_debit_type_cannot_credit(make_user):
    with pytest.raises(ValidationError):
        wallet_add(make_user(), 10, tx_type="debit")


def test_ref_makes_credit_idempotent(make_user):
    user = make_user()
    first = wallet_add(user, 80, tx_type="bonus", ref="game:1:win:1")
    again = wallet_add(user, 80, tx_type="bonus", ref="game:1:win:1")

    assert first.pk == again.pk
    assert get_or_create_wallet(user).main == 80
    assert WalletTransaction.objects.filter(ref="game:1:win:1").count() == 1


@pytest.mark.parametrize("seed", range(5))
def test_random_sequences_never_go_negative(make_user, seed):
    rng = random.Random(seed)
    user = make_user()
    expected = {"main": 0, "bonus": 0}
    writes = 0

    for _ in range(60):
        wallet_type = rng.choice(["main", "bonus"])
        amount = rng.randint(1, 300)
        if rng.random() < 0.5:
            wallet_add(user, amount, wallet_type=wallet_type)
            expected[wallet_type] += amount
            writes += 1
        elif amount <= expected[wallet_type]:
            wallet_sub(user, amount, wallet_type=wallet_type)
            expected[wallet_type] -= amount
            writes += 1
        else:
            with pytest.raises(InsufficientBalanceError):
                wallet_sub(user, amount, wallet_type=wallet_type)

        wallet = get_or_create_wallet(user)
        assert wallet.main >= 0 and wallet.bonus >= 0
        assert (wallet.main, wallet.bonus) == (expected["main"], expected["bonus"])

    # one audit row per successful mutation
    assert WalletTransaction.objects.filter(user=user).count() == writes


def test_transaction_log_replays_to_balance(make_user):
    user = make_user()
    wallet_add(user, 1000)
    wallet_sub(user, 300)
    wallet_add(user, 50, tx_type="refund")
    total = sum(tx.signed_amount for tx in WalletTransaction.objects.filter(user=user, wallet_type="main"))
    assert total == get_or_create_wallet(user).main == 750


def test_missing_note_is_stored_blank(make_user):
    user = make_user()
    tx = wallet_add(user, 40, note=None)
    assert tx.note == ""
    assert wallet_sub(user, 15, note=None).note == ""
