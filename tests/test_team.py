"""
Tests for member role changes, removal and ownership transfer.
"""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, patch

import pytest
from sqlmodel import select

from orgkit.core.errors import Conflict, Forbidden, NotFound
from orgkit.models.audit_log import AuditLog
from orgkit.models.membership import Membership
from orgkit.services import team as team_service


async def _role_of(fetch, membership: Membership) -> str:
    [row] = await fetch(select(Membership).where(Membership.id == membership.id))
    return row.role


@pytest.fixture
async def team(factory, owner, org):
    """Owner plus one admin and one member."""
    alice = await factory.user("alice@acme.io", "Alice Admin")
    bob = await factory.user("bob@acme.io", "Bob Member")
    return {
        "owner": await factory.ctx(owner, org),
        "admin_user": alice,
        "admin": await factory.member(org, alice, "admin"),
        "member_user": bob,
        "member": await factory.member(org, bob, "member"),
    }


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

class TestListMembers:
    async def test_any_member_sees_roster(self, session, factory, org, team):
        ctx = await factory.ctx(team["member_user"], org)
        members = await team_service.list_members(session, ctx)
        assert [m.email for m in members] == ["owner@acme.io", "alice@acme.io", "bob@acme.io"]
        assert members[0].role == "owner"
        assert members[0].name == "Olivia Owner"


# ---------------------------------------------------------------------------
# Role changes
# ---------------------------------------------------------------------------

class TestUpdateMemberRole:
    async def test_admin_promotes_member(self, session, factory, org, team, flags_on, fetch):
        ctx = await factory.ctx(team["admin_user"], org)
        record = await team_service.update_member_role(
            session, ctx, team["member"].id, "admin", flags=flags_on
        )
        assert record.role == "admin"
        assert await _role_of(fetch, team["member"]) == "admin"
        [entry] = await fetch(select(AuditLog))
        assert entry.action == "member.updateRole"
        assert entry.event_metadata == {"previous_role": "member", "new_role": "admin"}

    async def test_member_cannot_change_roles(self, session, factory, org, team):
        ctx = await factory.ctx(team["member_user"], org)
        with pytest.raises(Forbidden):
            await team_service.update_member_role(session, ctx, team["admin"].id, "member")

    async def test_cannot_change_own_role(self, session, factory, org, team):
        ctx = await factory.ctx(team["admin_user"], org)
        with pytest.raises(Conflict):
            await team_service.update_member_role(session, ctx, team["admin"].id, "member")

    async def test_owner_grants_owner_role(self, session, team, fetch):
        record = await team_service.update_member_role(
            session, team["owner"], team["admin"].id, "owner"
        )
        assert record.role == "owner"
        assert await _role_of(fetch, team["admin"]) == "owner"
        assert await _role_of(fetch, team["owner"].membership) == "owner"

    async def test_admin_cannot_grant_owner_role(self, session, factory, org, team, fetch):
        ctx = await factory.ctx(team["admin_user"], org)
        with pytest.raises(Forbidden):
            await team_service.update_member_role(session, ctx, team["member"].id, "owner")
        assert await _role_of(fetch, team["member"]) == "member"

    async def test_suspended_member_cannot_become_owner(self, session, factory, org, team):
        carol = await factory.user("carol@acme.io", "Carol")
        suspended = await factory.member(org, carol, "member", status="suspended")
        with pytest.raises(Conflict) as exc_info:
            await team_service.update_member_role(session, team["owner"], suspended.id, "owner")
        assert exc_info.value.code == "inactive_member"

    async def test_admin_demoting_sole_owner_is_conflict(self, session, factory, org, team, fetch):
        ctx = await factory.ctx(team["admin_user"], org)
        with pytest.raises(Conflict) as exc_info:
            await team_service.update_member_role(
                session, ctx, team["owner"].membership.id, "member"
            )
        assert exc_info.value.code == "last_owner"
        assert await _role_of(fetch, team["owner"].membership) == "owner"

    async def test_member_demoting_sole_owner_is_conflict(self, session, factory, org, team):
        ctx = await factory.ctx(team["member_user"], org)
        with pytest.raises(Conflict) as exc_info:
            await team_service.update_member_role(
                session, ctx, team["owner"].membership.id, "admin"
            )
        assert exc_info.value.code == "last_owner"

    async def test_admin_cannot_demote_co_owner(self, session, factory, org, team, fetch):
        carol = await factory.user("carol@acme.io", "Carol")
        co_owner = await factory.member(org, carol, "owner")
        ctx = await factory.ctx(team["admin_user"], org)
        with pytest.raises(Forbidden):
            await team_service.update_member_role(session, ctx, co_owner.id, "member")
        assert await _role_of(fetch, co_owner) == "owner"

    async def test_last_owner_cannot_be_demoted(self, session, factory, org, team):
        # A stale context: the caller still believes they are an owner
        stale = await factory.ctx(team["admin_user"], org)
        stale.role = "owner"
        with pytest.raises(Conflict) as exc_info:
            await team_service.update_member_role(
                session, stale, team["owner"].membership.id, "admin"
            )
        assert exc_info.value.code == "last_owner"

    async def test_co_owner_can_be_demoted(self, session, factory, org, team, fetch):
        carol = await factory.user("carol@acme.io", "Carol")
        co_owner = await factory.member(org, carol, "owner")
        await team_service.update_member_role(session, team["owner"], co_owner.id, "admin")
        assert await _role_of(fetch, co_owner) == "admin"

    async def test_unknown_member(self, session, team):
        with pytest.raises(NotFound):
            await team_service.update_member_role(session, team["owner"], uuid.uuid4(), "admin")


# ---------------------------------------------------------------------------
# Removal
# ---------------------------------------------------------------------------

class TestRemoveMember:
    async def test_owner_removes_member(self, session, team, flags_on, fetch):
        await team_service.remove_member(session, team["owner"], team["member"].id, flags=flags_on)
        assert await fetch(select(Membership).where(Membership.id == team["member"].id)) == []
        [entry] = await fetch(select(AuditLog))
        assert entry.action == "member.remove"
        assert entry.target_id == str(team["member_user"].id)

    async def test_admin_cannot_remove(self, session, factory, org, team, fetch):
        ctx = await factory.ctx(team["admin_user"], org)
        with pytest.raises(Forbidden):
            await team_service.remove_member(session, ctx, team["member"].id)
        assert len(await fetch(select(Membership).where(Membership.id == team["member"].id))) == 1

    async def test_sole_owner_conflict_comes_before_permission(self, session, factory, org, team):
        ctx = await factory.ctx(team["member_user"], org)
        with pytest.raises(Conflict) as exc_info:
            await team_service.remove_member(session, ctx, team["owner"].membership.id)
        assert exc_info.value.code == "last_owner"

    async def test_owner_cannot_remove_self(self, session, factory, org, team, fetch):
        carol = await factory.user("carol@acme.io", "Carol")
        await factory.member(org, carol, "owner")
        with pytest.raises(Forbidden):
            await team_service.remove_member(session, team["owner"], team["owner"].membership.id)

    async def test_owner_removes_co_owner(self, session, factory, org, team, fetch):
        carol = await factory.user("carol@acme.io", "Carol")
        co_owner = await factory.member(org, carol, "owner")
        await team_service.remove_member(session, team["owner"], co_owner.id)
        assert await fetch(select(Membership).where(Membership.id == co_owner.id)) == []


# ---------------------------------------------------------------------------
# Ownership transfer
# ---------------------------------------------------------------------------

class TestTransferOwnership:
    async def test_transfer(self, session, team, mailer, flags_on, fetch):
        previous, current = await team_service.transfer_ownership(
            session, team["owner"], team["admin"].id, mailer=mailer, flags=flags_on
        )

        assert previous.role == "admin"
        assert current.role == "owner"
        assert await _role_of(fetch, team["owner"].membership) == "admin"
        assert await _role_of(fetch, team["admin"]) == "owner"

        owners = await fetch(
            select(Membership).where(
                Membership.organization_id == team["owner"].org_id, Membership.role == "owner"
            )
        )
        assert len(owners) == 1

        [(template, recipient, _)] = mailer.sent
        assert (template, recipient) == ("ownership_transfer", "alice@acme.io")

        [entry] = await fetch(select(AuditLog))
        assert entry.action == "organization.transferOwnership"
        assert entry.event_metadata == {
            "previous_owner_id": str(team["owner"].user_id),
            "new_owner_id": str(team["admin_user"].id),
        }

    async def test_admin_cannot_transfer(self, session, factory, org, team, mailer):
        ctx = await factory.ctx(team["admin_user"], org)
        with pytest.raises(Forbidden):
            await team_service.transfer_ownership(session, ctx, team["member"].id, mailer=mailer)

    async def test_target_must_exist(self, session, team, mailer):
        with pytest.raises(NotFound):
            await team_service.transfer_ownership(session, team["owner"], uuid.uuid4(), mailer=mailer)

    async def test_target_in_other_org_is_not_found(self, session, factory, team, mailer):
        boss = await factory.user("boss@globex.io", "Boss")
        globex = await factory.org(boss, "Globex", "globex")
        outsider = await factory.member(globex, team["member_user"])
        with pytest.raises(NotFound):
            await team_service.transfer_ownership(session, team["owner"], outsider.id, mailer=mailer)

    async def test_cannot_transfer_to_self(self, session, team, mailer):
        with pytest.raises(Conflict):
            await team_service.transfer_ownership(
                session, team["owner"], team["owner"].membership.id, mailer=mailer
            )

    async def test_stale_owner_is_detected(self, session, factory, org, team, mailer, fetch):
        # Someone else already moved ownership away from this caller
        await team_service.transfer_ownership(session, team["owner"], team["admin"].id, mailer=mailer)

        with pytest.raises(Conflict) as exc_info:
            await team_service.transfer_ownership(
                session, team["owner"], team["member"].id, mailer=mailer
            )
        assert exc_info.value.code == "not_owner"
        assert await _role_of(fetch, team["admin"]) == "owner"
        assert await _role_of(fetch, team["member"]) == "member"

    async def test_failed_promotion_restores_owner(self, session, factory, org, team, mailer, fetch):
        carol = await factory.user("carol@acme.io", "Carol")
        suspended = await factory.member(org, carol, "member", status="suspended")

        with pytest.raises(Conflict) as exc_info:
            await team_service.transfer_ownership(session, team["owner"], suspended.id, mailer=mailer)

        assert exc_info.value.code == "transfer_failed"
        assert await _role_of(fetch, team["owner"].membership) == "owner"
        assert await _role_of(fetch, suspended) == "member"
        assert mailer.sent == []

    async def test_promotion_error_restores_owner(self, session, team, mailer, fetch):
        with patch(
            "orgkit.services.team.store.promote_to_owner",
            new=AsyncMock(side_effect=RuntimeError("connection reset")),
        ):
            with pytest.raises(RuntimeError):
                await team_service.transfer_ownership(
                    session, team["owner"], team["admin"].id, mailer=mailer
                )
        assert await _role_of(fetch, team["owner"].membership) == "owner"

    async def test_email_failure_is_not_fatal(self, session, team, failing_mailer, fetch):
        await team_service.transfer_ownership(
            session, team["owner"], team["admin"].id, mailer=failing_mailer
        )
        assert await _role_of(fetch, team["admin"]) == "owner"
