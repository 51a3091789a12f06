import pytest

from accounts.services import (
    activate_user,
    assign_agent,
    ban_user,
    create_user,
    disable_user,
    list_users,
    recharge,
    set_user_status,
)
from betting.services import place_bid
from core.exceptions import ConflictError, NotFoundError, PermissionDeniedError, PreconditionError, ValidationError


class TestCreateUser:
    def test_agent_creates_assigned_user(self, agent):
        user = create_user(agent, username="walker", password="secret1", full_name="Walker")

        assert user.role == "user"
        assert user.status == "active"
        assert user.assigned_agent == agent
        assert user.created_by == agent
        assert user.check_password("secret1")

    def test_agent_cannot_pick_another_agent(self, agent, make_user):
        other = make_user("agent")
        user = create_user(agent, username="walker", password="secret1", assigned_agent=other)
        assert user.assigned_agent == agent

    def test_agent_cannot_create_agents(self, agent):
        with pytest.raises(PermissionDeniedError):
            create_user(agent, username="boss", password="secret1", role="agent")

    def test_admin_creates_agent_and_assigns_users(self, admin):
        new_agent = create_user(admin, username="agent-x", password="secret1", role="agent")
        user = create_user(admin, username="u-x", password="secret1", assigned_agent=new_agent.pk)

        assert new_agent.assigned_agent is None
        assert user.assigned_agent == new_agent

    def test_admin_cannot_assign_to_non_agent(self, admin, make_user):
        with pytest.raises(ValidationError):
            create_user(admin, username="u-x", password="secret1", assigned_agent=make_user())

    @pytest.mark.parametrize("role", ["admin", "root"])
    def test_admin_cannot_create_other_roles(self, admin, role):
        with pytest.raises(PermissionDeniedError):
            create_user(admin, username="x", password="secret1", role=role)

    def test_users_cannot_create_accounts(self, player):
        with pytest.raises(PermissionDeniedError):
            create_user(player, username="friend", password="secret1")

    def test_duplicates_conflict(self, admin):
        create_user(admin, username="walker", password="secret1", phone="9876543210")
        with pytest.raises(ConflictError):
            create_user(admin, username="Walker", password="secret1")
        with pytest.raises(ConflictError):
            create_user(admin, username="other", password="secret1", phone="9876543210")

    def test_input_validation(self, admin):
        with pytest.raises(ValidationError):
            create_user(admin, username="  ", password="secret1")
        with pytest.raises(ValidationError):
            create_user(admin, username="walker", password="123")


def test_list_users_is_scoped(admin, agent, make_user, player):
    mine = make_user(agent=agent)

    assert [u.pk for u in list_users(agent)] == [mine.pk]
    assert {mine.pk, agent.pk, player.pk} <= {u.pk for u in list_users(admin)}
    with pytest.raises(PermissionDeniedError):
        list_users(player)


class TestStatus:
    def test_agent_disables_and_reactivates_own_user(self, agent, make_user):
        mine = make_user(agent=agent)

        assert disable_user(agent, mine.pk).status == "disabled"
        assert activate_user(agent, mine).status == "active"

    def test_agent_cannot_touch_other_users(self, agent, make_user):
        with pytest.raises(PermissionDeniedError):
            ban_user(agent, make_user())
        with pytest.raises(PermissionDeniedError):
            ban_user(agent, make_user("agent"))

    def test_banned_user_loses_access(self, admin, player, game):
        ban_user(admin, player)
        player.refresh_from_db()
        with pytest.raises(PermissionDeniedError):
            place_bid(user=player, game_id=game.pk, number=1, amount=10)

    def test_disabled_agent_cannot_recharge(self, admin, make_user):
        agent = make_user("agent", balance=5000)
        user = make_user(agent=agent)
        disable_user(admin, agent)
        agent.refresh_from_db()
        with pytest.raises(PermissionDeniedError):
            recharge(user, 500, "main", agent)

    def test_rejects_unknown_status_and_self(self, admin):
        with pytest.raises(ValidationError):
            set_user_status(admin, admin, "sleeping")
        with pytest.raises(PreconditionError):
            disable_user(admin, admin)

    def test_unknown_user(self, admin):
        with pytest.raises(NotFoundError):
            ban_user(admin, 987654)


class TestAssignAgent:
    def test_admin_moves_user_between_agents(self, admin, agent, make_user):
        user = make_user(agent=agent)
        other = make_user("agent")

        assert assign_agent(admin, user, other).assigned_agent == other
        assert assign_agent(admin, user, None).assigned_agent is None

    def test_agents_cannot_reassign(self, agent, make_user):
        with pytest.raises(PermissionDeniedError):
            assign_agent(agent, make_user(agent=agent), make_user("agent"))

    def test_only_users_get_agents(self, admin, agent):
        with pytest.raises(ValidationError):
            assign_agent(admin, agent, agent)
