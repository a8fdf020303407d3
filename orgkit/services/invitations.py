"""
Invitation lifecycle: create -> (resend)* -> accept | cancel | expire.

Accepted and cancelled invitations are deleted. Expired rows stay in the
table but are treated as absent by resend and accept.
"""

from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from orgkit.core.auth import OrgContext
from orgkit.core.config import get_settings
from orgkit.core.email import Mailer, send_invitation_email
from orgkit.core.email_domain import normalize_email
from orgkit.core.errors import Conflict, Expired, Forbidden, NotFound
from orgkit.core.features import FeatureFlags
from orgkit.core.permissions import can_invite_members, can_manage_members, require
from orgkit.models.base import as_aware, utcnow
from orgkit.models.invitation import Invitation
from orgkit.models.membership import Membership
from orgkit.models.user import User
from orgkit.schemas.team import InvitationRecord, MemberRecord
from orgkit.services import memberships as store
from orgkit.services.audit import RequestMeta, record_event

log = structlog.get_logger()

EMAIL_WARNING = "Invitation saved, but the e-mail could not be sent. Use resend to try again."


@dataclass
class DispatchResult:
    invitation: InvitationRecord
    email_sent: bool
    warning: Optional[str] = None


def generate_invitation_token() -> str:
    """256 bits of randomness, hex encoded."""
    return secrets.token_hex(32)


def is_expired(invitation: Invitation) -> bool:
    return utcnow() > as_aware(invitation.expires_at)


async def _deliver(mailer: Mailer, invitation: Invitation, ctx: OrgContext) -> bool:
    """Send the invitation e-mail; failures are logged, never raised."""
    try:
        await send_invitation_email(
            mailer,
            email=invitation.email,
            token=invitation.token,
            organization_name=ctx.org.name,
            inviter_name=ctx.user.name or ctx.user.email,
        )
        return True
    except Exception as exc:
        log.warning(
            "invitation.email_failed",
            invitation_id=str(invitation.id),
            org_id=str(ctx.org_id),
            error=str(exc),
        )
        return False


async def create_invitation(
    session: AsyncSession,
    ctx: OrgContext,
    email: str,
    role: str,
    *,
    mailer: Mailer,
    flags: Optional[FeatureFlags] = None,
) -> DispatchResult:
    require(can_invite_members(ctx.role), "You do not have permission to invite members")
    email = normalize_email(email)
    role = getattr(role, "value", role)

    if await store.find_active_membership_by_email(session, ctx.org_id, email):
        raise Conflict("This user is already a member of the organization", code="already_member")

    if await store.find_pending_invitation(session, ctx.org_id, email):
        raise Conflict(
            "A pending invitation already exists for this e-mail", code="invitation_pending"
        )

    invitation = Invitation(
        organization_id=ctx.org_id,
        email=email,
        role=role,
        token=generate_invitation_token(),
        invited_by=ctx.user_id,
        expires_at=utcnow() + timedelta(days=get_settings().invitation_ttl_days),
    )
    session.add(invitation)
    await session.flush()
    log.info("invitation.created", invitation_id=str(invitation.id), org_id=str(ctx.org_id), role=role)

    email_sent = await _deliver(mailer, invitation, ctx)

    await record_event(
        session,
        organization_id=ctx.org_id,
        actor_id=ctx.user_id,
        action="invitation.create",
        target_type="invitation",
        target_id=invitation.id,
        metadata={"email": email, "role": role, "email_sent": email_sent},
        meta=ctx.meta,
        flags=flags,
    )
    return DispatchResult(
        invitation=store.to_invitation_record(invitation, ctx.user),
        email_sent=email_sent,
        warning=None if email_sent else EMAIL_WARNING,
    )


async def resend_invitation(
    session: AsyncSession,
    ctx: OrgContext,
    invitation_id: uuid.UUID,
    *,
    mailer: Mailer,
    flags: Optional[FeatureFlags] = None,
) -> DispatchResult:
    require(can_manage_members(ctx.role), "You do not have permission to manage invitations")

    invitation = await store.get_invitation(session, ctx.org_id, invitation_id)
    if not invitation:
        raise NotFound("Invitation not found")
    if is_expired(invitation):
        raise Expired("This invitation has expired")

    email_sent = await _deliver(mailer, invitation, ctx)
    log.info("invitation.resent", invitation_id=str(invitation.id), email_sent=email_sent)

    await record_event(
        session,
        organization_id=ctx.org_id,
        actor_id=ctx.user_id,
        action="invitation.resend",
        target_type="invitation",
        target_id=invitation.id,
        metadata={"email": invitation.email, "email_sent": email_sent},
        meta=ctx.meta,
        flags=flags,
    )
    inviter = await session.get(User, invitation.invited_by) if invitation.invited_by else None
    return DispatchResult(
        invitation=store.to_invitation_record(invitation, inviter),
        email_sent=email_sent,
        warning=None if email_sent else EMAIL_WARNING,
    )


async def cancel_invitation(
    session: AsyncSession,
    ctx: OrgContext,
    invitation_id: uuid.UUID,
    *,
    flags: Optional[FeatureFlags] = None,
) -> int:
    """Delete the invitation. Cancelling an invitation that is already gone is fine."""
    require(can_manage_members(ctx.role), "You do not have permission to manage invitations")

    deleted = await store.delete_invitation(session, ctx.org_id, invitation_id)
    log.info("invitation.cancelled", invitation_id=str(invitation_id), deleted=deleted)

    await record_event(
        session,
        organization_id=ctx.org_id,
        actor_id=ctx.user_id,
        action="invitation.cancel",
        target_type="invitation",
        target_id=invitation_id,
        metadata={"deleted": deleted},
        meta=ctx.meta,
        flags=flags,
    )
    return deleted


async def accept_invitation(
    session: AsyncSession,
    user: User,
    token: str,
    *,
    meta: Optional[RequestMeta] = None,
    flags: Optional[FeatureFlags] = None,
) -> tuple[str, MemberRecord]:
    """Join the invited organization. Returns (organization slug, new member)."""
    invitation = await store.get_invitation_by_token(session, token)
    if not invitation:
        raise NotFound("Invitation not found")

    if normalize_email(user.email) != normalize_email(invitation.email):
        raise Forbidden("This invitation was sent to a different e-mail address")

    if is_expired(invitation):
        raise Expired("This invitation has expired")

    org_id = invitation.organization_id
    invitation_id = invitation.id
    if await store.get_membership(session, org_id, user.id):
        raise Conflict("You are already a member of this organization", code="already_member")

    membership = Membership(
        user_id=user.id,
        organization_id=org_id,
        role=invitation.role,
        status="active",
        invited_by=invitation.invited_by,
    )
    try:
        async with session.begin_nested():
            session.add(membership)
    except IntegrityError:
        log.warning("invitation.accept_conflict", invitation_id=str(invitation_id), user_id=str(user.id))
        raise Conflict("You are already a member of this organization", code="already_member")

    await store.delete_invitation(session, org_id, invitation_id)
    log.info("invitation.accepted", org_id=str(org_id), user_id=str(user.id), role=membership.role)

    await record_event(
        session,
        organization_id=org_id,
        actor_id=user.id,
        action="invitation.accept",
        target_type="membership",
        target_id=membership.id,
        metadata={"invitation_id": str(invitation_id), "role": membership.role},
        meta=meta,
        flags=flags,
    )

    org = await store.get_organization_by_id(session, org_id)
    return org.slug, store.to_member_record(membership, user)


async def list_pending_invitations(session: AsyncSession, ctx: OrgContext) -> list[InvitationRecord]:
    require(can_manage_members(ctx.role), "You do not have permission to view invitations")
    return await store.list_pending_invitations(session, ctx.org_id)
