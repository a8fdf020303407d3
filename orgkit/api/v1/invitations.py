"""
Invitation API endpoints.

GET    /api/v1/orgs/{orgSlug}/invitations                  - List pending invitations
POST   /api/v1/orgs/{orgSlug}/invitations                  - Invite by e-mail
POST   /api/v1/orgs/{orgSlug}/invitations/{id}/resend      - Re-send the e-mail
DELETE /api/v1/orgs/{orgSlug}/invitations/{id}             - Cancel (idempotent)
POST   /api/v1/invitations/accept                          - Accept with a token
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from orgkit.core.auth import OrgContext, get_current_user, get_org_context, get_request_meta
from orgkit.core.database import get_session
from orgkit.core.email import Mailer, get_mailer
from orgkit.core.features import FeatureFlags, get_feature_flags
from orgkit.models.user import User
from orgkit.schemas.team import (
    InvitationAcceptRequest,
    InvitationAcceptResponse,
    InvitationCreateRequest,
    InvitationDispatchResponse,
    InvitationListResponse,
)
from orgkit.services import invitations as invitation_service
from orgkit.services.audit import RequestMeta

router_scoped = APIRouter()
router_global = APIRouter()


@router_scoped.get("", response_model=InvitationListResponse)
async def list_invitations(
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
):
    items = await invitation_service.list_pending_invitations(session, ctx)
    return InvitationListResponse(data=items)


@router_scoped.post("", response_model=InvitationDispatchResponse, status_code=201)
async def create_invitation(
    body: InvitationCreateRequest,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
    mailer: Mailer = Depends(get_mailer),
    flags: FeatureFlags = Depends(get_feature_flags),
):
    result = await invitation_service.create_invitation(
        session, ctx, body.email, body.role, mailer=mailer, flags=flags
    )
    return InvitationDispatchResponse(
        invitation=result.invitation, email_sent=result.email_sent, warning=result.warning
    )


@router_scoped.post("/{invitationId}/resend", response_model=InvitationDispatchResponse)
async def resend_invitation(
    invitationId: uuid.UUID,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
    mailer: Mailer = Depends(get_mailer),
    flags: FeatureFlags = Depends(get_feature_flags),
):
    result = await invitation_service.resend_invitation(
        session, ctx, invitationId, mailer=mailer, flags=flags
    )
    return InvitationDispatchResponse(
        invitation=result.invitation, email_sent=result.email_sent, warning=result.warning
    )


@router_scoped.delete("/{invitationId}", status_code=204)
async def cancel_invitation(
    invitationId: uuid.UUID,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
    flags: FeatureFlags = Depends(get_feature_flags),
):
    await invitation_service.cancel_invitation(session, ctx, invitationId, flags=flags)
    return Response(status_code=204)


@router_global.post("/invitations/accept", response_model=InvitationAcceptResponse)
async def accept_invitation(
    body: InvitationAcceptRequest,
    user: User = Depends(get_current_user),
    meta: RequestMeta = Depends(get_request_meta),
    session: AsyncSession = Depends(get_session),
    flags: FeatureFlags = Depends(get_feature_flags),
):
    slug, member = await invitation_service.accept_invitation(
        session, user, body.token, meta=meta, flags=flags
    )
    return InvitationAcceptResponse(
        organization_id=member.organization_id, organization_slug=slug, membership=member
    )
