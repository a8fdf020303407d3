"""
Organization API endpoints.

GET    /api/v1/orgs                     - List orgs for authenticated user
POST   /api/v1/orgs                     - Create a new org
GET    /api/v1/orgs/{orgSlug}           - Get org details
PATCH  /api/v1/orgs/{orgSlug}           - Rename org
DELETE /api/v1/orgs/{orgSlug}           - Delete org (owner, typed confirmation)
PATCH  /api/v1/orgs/{orgSlug}/settings  - Toggle domain auto-accept
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from orgkit.core.auth import OrgContext, get_current_user, get_org_context, get_request_meta
from orgkit.core.database import get_session
from orgkit.core.features import FeatureFlags, get_feature_flags
from orgkit.models.organization import Organization
from orgkit.models.user import User
from orgkit.schemas.organizations import (
    OrgCreateRequest,
    OrgDeleteRequest,
    OrgListResponse,
    OrgResponse,
    OrgSettingsUpdateRequest,
    OrgUpdateRequest,
)
from orgkit.services import organizations as org_service
from orgkit.services.audit import RequestMeta


def _to_response(org: Organization) -> OrgResponse:
    return OrgResponse(
        id=org.id,
        name=org.name,
        slug=org.slug,
        plan=org.plan,
        logo_url=org.logo_url,
        settings=org_service.org_settings(org),
        created_at=org.created_at,
        updated_at=org.updated_at,
    )


# ---------------------------------------------------------------------------
# Non-org-scoped routes (no orgSlug in path)
# ---------------------------------------------------------------------------
router_global = APIRouter()


@router_global.get("/orgs", response_model=OrgListResponse, tags=["Organizations"])
async def list_orgs(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    items = await org_service.list_user_orgs(session, user.id)
    return OrgListResponse(data=items)


@router_global.post("/orgs", response_model=OrgResponse, status_code=201, tags=["Organizations"])
async def create_org(
    body: OrgCreateRequest,
    user: User = Depends(get_current_user),
    meta: RequestMeta = Depends(get_request_meta),
    session: AsyncSession = Depends(get_session),
    flags: FeatureFlags = Depends(get_feature_flags),
):
    """Create a new organization. The creator becomes its owner."""
    org = await org_service.create_org(session, user, body.name, body.slug, meta=meta, flags=flags)
    return _to_response(org)


# ---------------------------------------------------------------------------
# Org-scoped routes (orgSlug in path)
# ---------------------------------------------------------------------------
router_scoped = APIRouter()


@router_scoped.get("", response_model=OrgResponse)
async def get_org(ctx: OrgContext = Depends(get_org_context)):
    return _to_response(ctx.org)


@router_scoped.patch("", response_model=OrgResponse)
async def rename_org(
    body: OrgUpdateRequest,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
    flags: FeatureFlags = Depends(get_feature_flags),
):
    org = await org_service.rename_org(session, ctx, body.name, flags=flags)
    return _to_response(org)


@router_scoped.delete("", status_code=204)
async def delete_org(
    body: OrgDeleteRequest,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
    flags: FeatureFlags = Depends(get_feature_flags),
):
    """Delete the organization with its memberships and invitations (owner only)."""
    await org_service.delete_org(session, ctx, body.confirm_text, flags=flags)
    return Response(status_code=204)


@router_scoped.patch("/settings", response_model=OrgResponse)
async def update_settings(
    body: OrgSettingsUpdateRequest,
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
    flags: FeatureFlags = Depends(get_feature_flags),
):
    org = await org_service.update_auto_accept(
        session, ctx, body.auto_accept_domain_members, flags=flags
    )
    return _to_response(org)
