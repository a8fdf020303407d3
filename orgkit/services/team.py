"""
Team management: member roles, removal and ownership transfer.

Invariant: an organization always keeps at least one active owner. Role
writes are conditional updates whose affected-row counts are checked.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from orgkit.core.auth import OrgContext
from orgkit.core.email import Mailer, send_ownership_transfer_email
from orgkit.core.errors import Conflict, NotFound
from orgkit.core.features import FeatureFlags
from orgkit.core.permissions import (
    can_change_roles,
    can_remove_members,
    can_transfer_ownership,
    require,
)
from orgkit.schemas.common import Role
from orgkit.schemas.team import MemberRecord
from orgkit.services import memberships as store
from orgkit.services.audit import record_event

log = structlog.get_logger()

OWNER = "owner"
LAST_OWNER_MESSAGE = "The organization must keep at least one owner"


async def list_members(session: AsyncSession, ctx: OrgContext) -> list[MemberRecord]:
    # Any active member may see the roster
    return await store.list_members(session, ctx.org_id)


async def _get_target(session: AsyncSession, ctx: OrgContext, member_id: uuid.UUID) -> MemberRecord:
    target = await store.get_member_record(session, ctx.org_id, member_id)
    if not target:
        raise NotFound("Member not found")
    return target


async def update_member_role(
    session: AsyncSession,
    ctx: OrgContext,
    member_id: uuid.UUID,
    new_role: str,
    *,
    flags: Optional[FeatureFlags] = None,
) -> MemberRecord:
    new_role = getattr(new_role, "value", new_role)
    target = await _get_target(session, ctx, member_id)

    # Sole owner is a conflict whatever the caller's role
    if target.role == OWNER and new_role != OWNER:
        if await store.count_active_owners(session, ctx.org_id) <= 1:
            raise Conflict(LAST_OWNER_MESSAGE, code="last_owner")

    require(can_change_roles(ctx.role), "You do not have permission to change roles")
    if target.user_id == ctx.user_id:
        raise Conflict("You cannot change your own role", code="own_role")

    if OWNER in (new_role, target.role):
        require(ctx.role == OWNER, "Only owners can grant or revoke the owner role")
        if new_role == OWNER and target.status != "active":
            raise Conflict("Only active members can become owners", code="inactive_member")

    previous_role = target.role.value
    if previous_role == new_role:
        return target

    updated = await store.set_role(
        session, ctx.org_id, member_id, new_role, expected_role=previous_role
    )
    if updated == 0:
        raise Conflict("The member's role changed concurrently; reload and try again")

    log.info(
        "member.role_updated",
        org_id=str(ctx.org_id),
        member_id=str(member_id),
        previous_role=previous_role,
        new_role=new_role,
    )
    await record_event(
        session,
        organization_id=ctx.org_id,
        actor_id=ctx.user_id,
        action="member.updateRole",
        target_type="member",
        target_id=target.user_id,
        metadata={"previous_role": previous_role, "new_role": new_role},
        meta=ctx.meta,
        flags=flags,
    )
    return target.model_copy(update={"role": Role(new_role)})


async def remove_member(
    session: AsyncSession,
    ctx: OrgContext,
    member_id: uuid.UUID,
    *,
    flags: Optional[FeatureFlags] = None,
) -> None:
    target = await _get_target(session, ctx, member_id)

    owner_count = None
    if target.role == OWNER:
        owner_count = await store.count_active_owners(session, ctx.org_id)
        if owner_count <= 1:
            raise Conflict(LAST_OWNER_MESSAGE, code="last_owner")

    removing_self = target.user_id == ctx.user_id
    require(
        can_remove_members(
            ctx.role,
            target.role,
            active_owner_count=owner_count,
            removing_self=removing_self,
        ),
        "You do not have permission to remove this member",
    )
    if removing_self:
        raise Conflict("You cannot remove yourself from the organization", code="self_removal")

    deleted = await store.delete_member(session, ctx.org_id, member_id)
    if deleted == 0:
        raise NotFound("Member not found")

    log.info("member.removed", org_id=str(ctx.org_id), member_id=str(member_id))
    await record_event(
        session,
        organization_id=ctx.org_id,
        actor_id=ctx.user_id,
        action="member.remove",
        target_type="member",
        target_id=target.user_id,
        metadata={"email": target.email, "role": target.role.value},
        meta=ctx.meta,
        flags=flags,
    )


async def transfer_ownership(
    session: AsyncSession,
    ctx: OrgContext,
    new_owner_member_id: uuid.UUID,
    *,
    mailer: Mailer,
    flags: Optional[FeatureFlags] = None,
) -> tuple[MemberRecord, MemberRecord]:
    """
    Hand ownership to another member.

    The actor is demoted to admin, then the target promoted to owner. Both
    writes share the request transaction; if the promotion affects no rows
    the actor's ownership is restored before the error is raised, so the
    organization is never left without an owner.

    Returns (previous owner, new owner) as they are after the transfer.
    """
    require(can_transfer_ownership(ctx.role), "Only the owner can transfer ownership")

    target = await _get_target(session, ctx, new_owner_member_id)
    if target.user_id == ctx.user_id:
        raise Conflict("You already own this organization", code="self_transfer")

    demoted = await store.demote_owner(session, ctx.org_id, ctx.user_id)
    if demoted == 0:
        log.warning("ownership.transfer_stale", org_id=str(ctx.org_id), user_id=str(ctx.user_id))
        raise Conflict("You are no longer the owner of this organization", code="not_owner")

    try:
        promoted = await store.promote_to_owner(session, ctx.org_id, new_owner_member_id)
        if promoted == 0:
            raise Conflict("The selected member can no longer receive ownership", code="transfer_failed")
    except Exception:
        log.error(
            "ownership.transfer_failed",
            org_id=str(ctx.org_id),
            new_owner_member_id=str(new_owner_member_id),
        )
        await store.restore_owner(session, ctx.org_id, ctx.user_id)
        raise

    log.info(
        "ownership.transferred",
        org_id=str(ctx.org_id),
        previous_owner_id=str(ctx.user_id),
        new_owner_id=str(target.user_id),
    )

    try:
        await send_ownership_transfer_email(
            mailer,
            email=target.email,
            organization_name=ctx.org.name,
            organization_slug=ctx.org.slug,
            new_owner_name=target.name or target.email,
            previous_owner_name=ctx.user.name or ctx.user.email,
        )
    except Exception as exc:
        log.warning("ownership.email_failed", org_id=str(ctx.org_id), error=str(exc))

    await record_event(
        session,
        organization_id=ctx.org_id,
        actor_id=ctx.user_id,
        action="organization.transferOwnership",
        target_type="organization",
        target_id=ctx.org_id,
        metadata={
            "previous_owner_id": str(ctx.user_id),
            "new_owner_id": str(target.user_id),
        },
        meta=ctx.meta,
        flags=flags,
    )

    previous = await store.get_member_record(session, ctx.org_id, ctx.membership.id)
    current = await store.get_member_record(session, ctx.org_id, new_owner_member_id)
    return previous, current
