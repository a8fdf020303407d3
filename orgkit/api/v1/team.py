"""
Team API endpoints.

GET    /api/v1/orgs/{orgSlug}/members               - List members
PATCH  /api/v1/orgs/{orgSlug}/members/{memberId}    - Change a member's role
DELETE /api/v1/orgs/{orgSlug}/members/{memberId}    - Remove a member
POST   /api/v1/orgs/{orgSlug}/transfer-ownership    - Hand ownership to a member
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from orgkit.core.auth import OrgContext, get_org_context
from orgkit.core.database import get_session
from orgkit.core.email import Mailer, get_mailer
from orgkit.core.features import FeatureFlags, get_feature_flags
from orgkit.schemas.team import (
    MemberListResponse,
    MemberRecord,
    RoleUpdateRequest,
    TransferOwnershipRequest,
    TransferOwnershipResponse,
)
from orgkit.services import team as team_service

router = APIRouter()


@router.get("/members", response_model=MemberListResponse)
async def list_members(
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
):
    members = await team_service.list_members(session, ctx)
    return MemberListResponse(data=members)


@router.patch("/members/{memberId}", response_model=MemberRecord)
async def update_member_role(
    memberId: uuid.UUID,
    body: RoleUpdateRequest,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
    flags: FeatureFlags = Depends(get_feature_flags),
):
    return await team_service.update_member_role(session, ctx, memberId, body.role, flags=flags)


@router.delete("/members/{memberId}", status_code=204)
async def remove_member(
    memberId: uuid.UUID,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
    flags: FeatureFlags = Depends(get_feature_flags),
):
    await team_service.remove_member(session, ctx, memberId, flags=flags)
    return Response(status_code=204)


@router.post("/transfer-ownership", response_model=TransferOwnershipResponse)
async def transfer_ownership(
    body: TransferOwnershipRequest,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
    mailer: Mailer = Depends(get_mailer),
    flags: FeatureFlags = Depends(get_feature_flags),
):
    previous, current = await team_service.transfer_ownership(
        session, ctx, body.new_owner_member_id, mailer=mailer, flags=flags
    )
    return TransferOwnershipResponse(previous_owner=previous, new_owner=current)
