# accounts/ledger.py
"""
The only code allowed to change a wallet balance.

Every mutation locks the wallet row, checks, applies an F() update and writes exactly
one WalletTransaction inside the same transaction. Credits may carry a `ref`; a ref that
was already written turns the call into a no-op returning the original row.
"""
from __future__ import annotations

import logging

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from core.exceptions import InsufficientBalanceError, ValidationError

from .models import Wallet, WalletTransaction

logger = logging.getLogger(__name__)


def _user_id(user) -> int:
    return getattr(user, "pk", user)


def _check(amount, wallet_type: str) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError("amount must be an integer")
    if amount <= 0:
        raise ValidationError("amount must be > 0")
    if wallet_type not in Wallet.WALLET_TYPES:
        raise ValidationError(f"wallet type must be one of {', '.join(Wallet.WALLET_TYPES)}")
    return amount


def get_or_create_wallet(user) -> Wallet:
    wallet, _ = Wallet.objects.get_or_create(user_id=_user_id(user))
    return wallet


def lock_wallets(*users) -> dict[int, Wallet]:
    """
    Lock the wallets of several users in ascending user id order (creating missing ones)
    so that multi-wallet operations never deadlock against each other.
    Must run inside transaction.atomic().
    """
    ids = sorted({_user_id(u) for u in users})
    for uid in ids:
        Wallet.objects.get_or_create(user_id=uid)
    locked = Wallet.objects.select_for_update().filter(user_id__in=ids).order_by("user_id")
    return {w.user_id: w for w in locked}


def _lock_one(user) -> Wallet:
    return lock_wallets(user)[_user_id(user)]


def _write(wallet: Wallet, delta: int, wallet_type: str, *, tx_type, amount, initiator, initiator_role, ref, note):
    Wallet.objects.filter(pk=wallet.pk).update(**{wallet_type: F(wallet_type) + delta, "updated_at": timezone.now()})
    wallet.refresh_from_db(fields=[wallet_type, "updated_at"])
    return WalletTransaction.objects.create(
        user_id=wallet.user_id,
        initiator_id=_user_id(initiator) if initiator is not None else None,
        initiator_role=initiator_role,
        amount=amount,
        wallet_type=wallet_type,
        tx_type=tx_type,
        balance_after=wallet.balance(wallet_type),
        ref=ref,
        note=(note or "")[:255],
    )


def wallet_add(
    user,
    amount: int,
    *,
    wallet_type: str = "main",
    tx_type: str = "recharge",
    initiator=None,
    initiator_role: str = "system",
    ref: str = "",
    note: str = "",
) -> WalletTransaction:
    amount = _check(amount, wallet_type)
    if tx_type not in WalletTransaction.CREDIT_TYPES:
        raise ValidationError(f"'{tx_type}' is not a credit transaction type")

    with transaction.atomic():
        wallet = _lock_one(user)
        if ref:
            existing = WalletTransaction.objects.filter(ref=ref).first()
            if existing is not None:
                logger.info("ledger credit %s already applied, skipping", ref)
                return existing
        return _write(
            wallet,
            amount,
            wallet_type,
            tx_type=tx_type,
            amount=amount,
            initiator=initiator,
            initiator_role=initiator_role,
            ref=ref,
            note=note,
        )


def wallet_sub(
    user,
    amount: int,
    *,
    wallet_type: str = "main",
    tx_type: str = "debit",
    initiator=None,
    initiator_role: str = "system",
    ref: str = "",
    note: str = "",
    error_cls=InsufficientBalanceError,
) -> WalletTransaction:
    amount = _check(amount, wallet_type)

    with transaction.atomic():
        wallet = _lock_one(user)
        if ref:
            existing = WalletTransaction.objects.filter(ref=ref).first()
            if existing is not None:
                return existing
        if wallet.balance(wallet_type) < amount:
            raise error_cls(f"insufficient {wallet_type} balance")
        return _write(
            wallet,
            -amount,
            wallet_type,
            tx_type=tx_type,
            amount=amount,
            initiator=initiator,
            initiator_role=initiator_role,
            ref=ref,
            note=note,
        )
