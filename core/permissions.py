# core/permissions.py
"""
Role capabilities.

Every service resolves the acting user's policy once with `policy_for()` and asks it
questions, instead of branching on `user.role` inline.
"""
from __future__ import annotations

from dataclasses import dataclass

from django.conf import settings

from .exceptions import PermissionDeniedError

ADMIN = "admin"
AGENT = "agent"
USER = "user"


@dataclass(frozen=True)
class RolePolicy:
    role: str
    can_place_bids: bool = False
    can_manage_games: bool = False
    can_update_commission: bool = False
    can_recharge: bool = False
    can_debit: bool = False
    can_request_withdrawal: bool = False
    can_process_withdrawals: bool = False
    can_manage_users: bool = False
    can_assign_agents: bool = False
    creatable_roles: tuple[str, ...] = ()
    # agent recharges are funded from the agent's own main wallet
    recharge_funded_by_initiator: bool = False

    def manages(self, actor, target) -> bool:
        """True when `actor` may act on `target`'s wallet under this role."""
        if self.role == ADMIN:
            return True
        if self.role == AGENT:
            return target.role == USER and target.assigned_agent_id == actor.pk
        return actor.pk == target.pk

    def recharge_minimum(self, target) -> int:
        if self.role == ADMIN and target.role == AGENT:
            return settings.RECHARGE_MIN_AGENT
        if target.role == USER:
            return settings.RECHARGE_MIN_USER
        return 1

    def require(self, capability: str):
        if not getattr(self, capability):
            raise PermissionDeniedError(f"role '{self.role}' is not allowed to do this ({capability})")


POLICIES = {
    ADMIN: RolePolicy(
        role=ADMIN,
        can_manage_games=True,
        can_update_commission=True,
        can_recharge=True,
        can_debit=True,
        can_process_withdrawals=True,
        can_manage_users=True,
        can_assign_agents=True,
        creatable_roles=(AGENT, USER),
    ),
    AGENT: RolePolicy(
        role=AGENT,
        can_recharge=True,
        can_debit=True,
        can_process_withdrawals=True,
        can_manage_users=True,
        creatable_roles=(USER,),
        recharge_funded_by_initiator=True,
    ),
    USER: RolePolicy(
        role=USER,
        can_place_bids=True,
        can_request_withdrawal=True,
    ),
}


def policy_for(user) -> RolePolicy:
    if user is None:
        raise PermissionDeniedError("authentication required")
    policy = POLICIES.get(getattr(user, "role", ""))
    if policy is None:
        raise PermissionDeniedError("unknown role")
    if getattr(user, "status", "active") != "active":
        raise PermissionDeniedError("account is not active")
    return policy


def require(user, capability: str) -> RolePolicy:
    policy = policy_for(user)
    policy.require(capability)
    return policy
