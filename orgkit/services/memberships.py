"""
Membership store: data access for organizations, members and invitations.

Read helpers return ``MemberRecord`` / ``InvitationRecord`` so callers never
handle joined rows. Role mutations are conditional updates; they return the
number of rows affected and leave interpretation to the caller.
"""

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import delete, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from orgkit.core.email_domain import normalize_email
from orgkit.models.base import utcnow
from orgkit.models.invitation import Invitation
from orgkit.models.membership import Membership
from orgkit.models.organization import Organization
from orgkit.models.user import User
from orgkit.schemas.team import InvitationRecord, MemberRecord

ACTIVE = "active"
OWNER = "owner"


def to_member_record(membership: Membership, user: User) -> MemberRecord:
    return MemberRecord(
        id=membership.id,
        user_id=membership.user_id,
        organization_id=membership.organization_id,
        role=membership.role,
        status=membership.status,
        invited_by=membership.invited_by,
        name=user.name,
        email=user.email,
        avatar_url=user.avatar_url,
        joined_at=membership.created_at,
    )


def to_invitation_record(invitation: Invitation, inviter: Optional[User] = None) -> InvitationRecord:
    return InvitationRecord(
        id=invitation.id,
        organization_id=invitation.organization_id,
        email=invitation.email,
        role=invitation.role,
        invited_by=invitation.invited_by,
        inviter_name=(inviter.name or inviter.email) if inviter else None,
        expires_at=invitation.expires_at,
        created_at=invitation.created_at,
    )


# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------

async def get_organization_by_slug(session: AsyncSession, slug: str) -> Optional[Organization]:
    result = await session.execute(select(Organization).where(Organization.slug == slug))
    return result.scalar_one_or_none()


async def get_organization_by_id(
    session: AsyncSession, organization_id: uuid.UUID
) -> Optional[Organization]:
    return await session.get(Organization, organization_id)


async def list_user_organizations(
    session: AsyncSession, user_id: uuid.UUID
) -> list[tuple[Organization, str]]:
    """(organization, role) for each active membership of the user."""
    result = await session.execute(
        select(Organization, Membership.role)
        .join(Membership, Membership.organization_id == Organization.id)
        .where(Membership.user_id == user_id, Membership.status == ACTIVE)
        .order_by(Organization.name)
    )
    return [(org, role) for org, role in result.all()]


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

async def get_membership(
    session: AsyncSession, organization_id: uuid.UUID, user_id: uuid.UUID
) -> Optional[Membership]:
    result = await session.execute(
        select(Membership).where(
            Membership.organization_id == organization_id,
            Membership.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def get_member_record(
    session: AsyncSession, organization_id: uuid.UUID, membership_id: uuid.UUID
) -> Optional[MemberRecord]:
    result = await session.execute(
        select(Membership, User)
        .join(User, User.id == Membership.user_id)
        .where(Membership.id == membership_id, Membership.organization_id == organization_id)
    )
    row = result.first()
    return to_member_record(*row) if row else None


async def list_members(session: AsyncSession, organization_id: uuid.UUID) -> list[MemberRecord]:
    result = await session.execute(
        select(Membership, User)
        .join(User, User.id == Membership.user_id)
        .where(Membership.organization_id == organization_id)
        .order_by(Membership.created_at, Membership.id)
    )
    return [to_member_record(m, u) for m, u in result.all()]


async def count_active_owners(session: AsyncSession, organization_id: uuid.UUID) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(Membership)
        .where(
            Membership.organization_id == organization_id,
            Membership.role == OWNER,
            Membership.status == ACTIVE,
        )
    )
    return result.scalar_one()


async def find_active_membership_by_email(
    session: AsyncSession, organization_id: uuid.UUID, email: str
) -> Optional[Membership]:
    result = await session.execute(
        select(Membership)
        .join(User, User.id == Membership.user_id)
        .where(
            Membership.organization_id == organization_id,
            Membership.status == ACTIVE,
            func.lower(User.email) == normalize_email(email),
        )
    )
    return result.scalars().first()


# ---------------------------------------------------------------------------
# Conditional role writes
# ---------------------------------------------------------------------------

async def _update_role(session: AsyncSession, *predicates, role: str) -> int:
    result = await session.execute(
        update(Membership)
        .where(*predicates)
        .values(role=role, updated_at=utcnow())
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount


async def demote_owner(
    session: AsyncSession, organization_id: uuid.UUID, user_id: uuid.UUID
) -> int:
    """owner -> admin, only if the user is still an owner."""
    return await _update_role(
        session,
        Membership.organization_id == organization_id,
        Membership.user_id == user_id,
        Membership.role == OWNER,
        role="admin",
    )


async def promote_to_owner(
    session: AsyncSession, organization_id: uuid.UUID, membership_id: uuid.UUID
) -> int:
    return await _update_role(
        session,
        Membership.organization_id == organization_id,
        Membership.id == membership_id,
        Membership.status == ACTIVE,
        role=OWNER,
    )


async def restore_owner(
    session: AsyncSession, organization_id: uuid.UUID, user_id: uuid.UUID
) -> int:
    return await _update_role(
        session,
        Membership.organization_id == organization_id,
        Membership.user_id == user_id,
        role=OWNER,
    )


async def set_role(
    session: AsyncSession,
    organization_id: uuid.UUID,
    membership_id: uuid.UUID,
    role: str,
    *,
    expected_role: Optional[str] = None,
) -> int:
    """Set a member's role; with ``expected_role`` the write only applies if unchanged."""
    predicates = [Membership.organization_id == organization_id, Membership.id == membership_id]
    if expected_role is not None:
        predicates.append(Membership.role == expected_role)
    return await _update_role(session, *predicates, role=role)


async def delete_member(
    session: AsyncSession, organization_id: uuid.UUID, membership_id: uuid.UUID
) -> int:
    result = await session.execute(
        delete(Membership)
        .where(Membership.organization_id == organization_id, Membership.id == membership_id)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------

async def find_pending_invitation(
    session: AsyncSession, organization_id: uuid.UUID, email: str
) -> Optional[Invitation]:
    result = await session.execute(
        select(Invitation).where(
            Invitation.organization_id == organization_id,
            Invitation.email == normalize_email(email),
            Invitation.expires_at > utcnow(),
        )
    )
    return result.scalars().first()


async def get_invitation(
    session: AsyncSession, organization_id: uuid.UUID, invitation_id: uuid.UUID
) -> Optional[Invitation]:
    result = await session.execute(
        select(Invitation).where(
            Invitation.id == invitation_id, Invitation.organization_id == organization_id
        )
    )
    return result.scalar_one_or_none()


async def get_invitation_by_token(session: AsyncSession, token: str) -> Optional[Invitation]:
    result = await session.execute(select(Invitation).where(Invitation.token == token))
    return result.scalar_one_or_none()


async def list_pending_invitations(
    session: AsyncSession, organization_id: uuid.UUID
) -> list[InvitationRecord]:
    result = await session.execute(
        select(Invitation, User)
        .outerjoin(User, User.id == Invitation.invited_by)
        .where(
            Invitation.organization_id == organization_id,
            Invitation.expires_at > utcnow(),
        )
        .order_by(Invitation.created_at.desc())
    )
    return [to_invitation_record(inv, inviter) for inv, inviter in result.all()]


async def delete_invitation(
    session: AsyncSession, organization_id: uuid.UUID, invitation_id: uuid.UUID
) -> int:
    result = await session.execute(
        delete(Invitation)
        .where(Invitation.id == invitation_id, Invitation.organization_id == organization_id)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount
