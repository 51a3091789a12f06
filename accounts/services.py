from __future__ import annotations

import logging

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import Q

from core.exceptions import (
    BelowMinimumError,
    ConflictError,
    InsufficientInitiatorBalanceError,
    NotFoundError,
    PermissionDeniedError,
    PreconditionError,
    ValidationError,
)
from core.permissions import ADMIN, AGENT, USER, policy_for, require

from .ledger import get_or_create_wallet, lock_wallets, wallet_add, wallet_sub
from .models import Wallet, WalletTransaction, Withdrawal

logger = logging.getLogger(__name__)


def get_user(user_or_id):
    User = get_user_model()
    if isinstance(user_or_id, User):
        return user_or_id
    try:
        return User.objects.get(pk=user_or_id)
    except (User.DoesNotExist, ValueError, TypeError):
        raise NotFoundError("user not found") from None


# =========================================
# Users
# =========================================
def create_user(
    creator,
    *,
    username: str,
    password: str,
    role: str = USER,
    full_name: str = "",
    email: str = "",
    phone: str = "",
    assigned_agent=None,
):
    """
    Admins create agents and users (optionally assigning the user to an agent);
    agents create users only, and those are always assigned to the creating agent.
    """
    policy = require(creator, "can_manage_users")
    if role not in policy.creatable_roles:
        raise PermissionDeniedError(f"role '{policy.role}' cannot create '{role}' accounts")
    username = (username or "").strip()
    if not username:
        raise ValidationError("username is required")
    if len(password or "") < 6:
        raise ValidationError("password must be at least 6 characters")

    if policy.role == AGENT:
        agent = creator
    elif role == USER and assigned_agent is not None:
        agent = _get_agent(assigned_agent)
    else:
        agent = None

    User = get_user_model()
    if User.objects.filter(username__iexact=username).exists():
        raise ConflictError("username already exists")
    if phone and User.objects.filter(phone=phone).exists():
        raise ConflictError("phone already exists")

    try:
        with transaction.atomic():
            user = User.objects.create_user(
                username=username,
                password=password,
                email=(email or "").lower(),
                role=role,
                status="active",
                full_name=full_name,
                phone=phone,
                assigned_agent=agent,
                created_by=creator,
            )
    except IntegrityError:
        raise ConflictError("username already exists") from None

    logger.info("%s %s created %s %s (agent %s)", policy.role, creator.pk, role, user.pk, getattr(agent, "pk", None))
    return user


def _get_agent(agent):
    agent = get_user(agent)
    if agent.role != AGENT:
        raise ValidationError("assigned agent must have the agent role")
    return agent


def list_users(viewer, limit: int = 100):
    policy = require(viewer, "can_manage_users")
    qs = get_user_model().objects.select_related("assigned_agent")
    if policy.role != ADMIN:
        qs = qs.filter(assigned_agent=viewer)
    return list(qs.order_by("-date_joined", "-pk")[:limit])


def set_user_status(actor, target, status: str):
    policy = require(actor, "can_manage_users")
    target = get_user(target)
    if status not in dict(target.STATUS_CHOICES):
        raise ValidationError(f"unknown status '{status}'")
    if not policy.manages(actor, target):
        raise PermissionDeniedError("you can only manage your assigned users")
    if target.pk == actor.pk:
        raise PreconditionError("you cannot change your own status")

    target.status = status
    target.save(update_fields=["status"])
    logger.info("user %s set to %s by %s %s", target.pk, status, policy.role, actor.pk)
    return target


def disable_user(actor, target):
    return set_user_status(actor, target, "disabled")


def ban_user(actor, target):
    return set_user_status(actor, target, "banned")


def activate_user(actor, target):
    return set_user_status(actor, target, "active")


def assign_agent(actor, target, agent):
    """Move a user under another agent, or detach it with `agent=None`."""
    require(actor, "can_assign_agents")
    target = get_user(target)
    if target.role != USER:
        raise ValidationError("only user accounts can be assigned to an agent")
    target.assigned_agent = _get_agent(agent) if agent is not None else None
    target.save(update_fields=["assigned_agent"])
    logger.info("user %s assigned to agent %s by %s", target.pk, target.assigned_agent_id, actor.pk)
    return target


# =========================================
# Wallet operations
# =========================================
def recharge(target, amount: int, wallet_type: str, initiator, note: str = "") -> Wallet:
    """
    Credit `target`'s wallet.
    - admin: anyone, minimum RECHARGE_MIN_AGENT for agents / RECHARGE_MIN_USER for users
    - agent: only its assigned users, paid out of the agent's own main wallet
    """
    policy = require(initiator, "can_recharge")
    target = get_user(target)

    if not policy.manages(initiator, target):
        raise PermissionDeniedError("you can only recharge your assigned users")
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 1:
        raise ValidationError("amount must be a positive integer")
    minimum = policy.recharge_minimum(target)
    if amount < minimum:
        raise BelowMinimumError(f"minimum recharge for {target.role} is {minimum}")

    with transaction.atomic():
        if policy.recharge_funded_by_initiator:
            lock_wallets(initiator, target)
            wallet_sub(
                initiator,
                amount,
                wallet_type="main",
                tx_type="debit",
                initiator=initiator,
                initiator_role=policy.role,
                note=f"Recharge to user {target.pk}",
                error_cls=InsufficientInitiatorBalanceError,
            )
        wallet_add(
            target,
            amount,
            wallet_type=wallet_type,
            tx_type="recharge",
            initiator=initiator,
            initiator_role=policy.role,
            note=note,
        )
        wallet = Wallet.objects.get(user=target)

    logger.info("recharge %s %s to user %s by %s %s", amount, wallet_type, target.pk, policy.role, initiator.pk)
    return wallet


def manual_debit(target, amount: int, wallet_type: str, initiator, note: str = "") -> Wallet:
    policy = require(initiator, "can_debit")
    target = get_user(target)
    if not policy.manages(initiator, target):
        raise PermissionDeniedError("you can only debit your assigned users")

    with transaction.atomic():
        wallet_sub(
            target,
            amount,
            wallet_type=wallet_type,
            tx_type="debit",
            initiator=initiator,
            initiator_role=policy.role,
            note=note or f"Manual debit by {policy.role}",
        )
        wallet = Wallet.objects.get(user=target)

    logger.info("manual debit %s %s from user %s by %s", amount, wallet_type, target.pk, initiator.pk)
    return wallet


# =========================================
# Withdrawals
# =========================================
def request_withdrawal(user, amount: int, wallet_type: str = "main", note: str = "") -> Withdrawal:
    require(user, "can_request_withdrawal")

    with transaction.atomic():
        wallet_sub(
            user,
            amount,
            wallet_type=wallet_type,
            tx_type="debit",
            initiator=user,
            initiator_role="user",
            note=note or "Withdrawal request",
        )
        withdrawal = Withdrawal.objects.create(user=user, amount=amount, wallet_type=wallet_type, note=note)

    logger.info("withdrawal %s requested by user %s (%s %s)", withdrawal.pk, user.pk, amount, wallet_type)
    return withdrawal


withdraw = request_withdrawal


def _locked_withdrawal(withdrawal_id, processor, allowed_from: tuple[str, ...]) -> Withdrawal:
    policy = require(processor, "can_process_withdrawals")
    try:
        w = Withdrawal.objects.select_for_update().select_related("user").get(pk=withdrawal_id)
    except Withdrawal.DoesNotExist:
        raise NotFoundError("withdrawal not found") from None
    if not policy.manages(processor, w.user):
        raise PermissionDeniedError("you can only process withdrawals of your assigned users")
    if w.status not in allowed_from:
        raise PreconditionError(f"withdrawal is {w.status}")
    return w


def _transition(withdrawal_id, processor, to_status: str, allowed_from: tuple[str, ...]) -> Withdrawal:
    with transaction.atomic():
        w = _locked_withdrawal(withdrawal_id, processor, allowed_from)
        w.status = to_status
        w.processed_by = processor
        w.save(update_fields=["status", "processed_by", "updated_at"])
    logger.info("withdrawal %s -> %s by %s", w.pk, to_status, processor.pk)
    return w


def approve_withdrawal(withdrawal_id, processor) -> Withdrawal:
    return _transition(withdrawal_id, processor, "approved", ("pending",))


def complete_withdrawal(withdrawal_id, processor) -> Withdrawal:
    return _transition(withdrawal_id, processor, "completed", ("approved",))


def reject_withdrawal(withdrawal_id, processor) -> Withdrawal:
    """Reject and give the held amount back to the same balance it came from."""
    with transaction.atomic():
        w = _locked_withdrawal(withdrawal_id, processor, ("pending", "approved"))
        w.status = "rejected"
        w.processed_by = processor
        w.save(update_fields=["status", "processed_by", "updated_at"])
        wallet_add(
            w.user,
            int(w.amount),
            wallet_type=w.wallet_type,
            tx_type="refund",
            initiator=processor,
            initiator_role=policy_for(processor).role,
            ref=f"withdrawal:{w.pk}:refund",
            note=f"Withdrawal {w.pk} rejected",
        )
    logger.info("withdrawal %s rejected by %s, refunded %s", w.pk, processor.pk, w.amount)
    return w


# =========================================
# Read side
# =========================================
def _visible_user_filter(viewer, target=None) -> Q:
    policy = policy_for(viewer)
    if target is not None:
        target = get_user(target)
        if policy.role != ADMIN and target.pk != viewer.pk and not policy.manages(viewer, target):
            raise PermissionDeniedError("you can only view your assigned users")
        return Q(user=target)
    if policy.role == ADMIN:
        return Q()
    if policy.role == AGENT:
        return Q(user__assigned_agent=viewer) | Q(user=viewer)
    return Q(user=viewer)


def list_transactions(viewer, target=None, limit: int = 100):
    return list(
        WalletTransaction.objects.filter(_visible_user_filter(viewer, target))
        .select_related("user")
        .order_by("-created_at")[:limit]
    )


def list_wallets(viewer):
    policy = policy_for(viewer)
    if policy.role == ADMIN:
        qs = Wallet.objects.all()
    elif policy.role == AGENT:
        qs = Wallet.objects.filter(user__assigned_agent=viewer)
    else:
        raise PermissionDeniedError("only admins and agents can list wallets")
    return list(qs.select_related("user").order_by("-updated_at"))


def list_withdrawals(viewer, limit: int = 100):
    return list(
        Withdrawal.objects.filter(_visible_user_filter(viewer)).order_by("-created_at")[:limit]
    )


def my_wallet(user) -> Wallet:
    return get_or_create_wallet(user)
