"""
Tenant page routes.

``TenantMiddleware`` has already rewritten subdomain requests to
``/{tenant}/...`` and stored the tenant on ``request.state``; these
handlers check the caller belongs to it and return the page model the UI
renders.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from orgkit.core.auth import get_current_user
from orgkit.core.database import get_session
from orgkit.core.errors import Forbidden, NotFound
from orgkit.core.permissions import get_accessible_routes, has_permission
from orgkit.models.membership import Membership
from orgkit.models.organization import Organization
from orgkit.models.user import User
from orgkit.services import memberships as store

router = APIRouter()


async def _tenant_membership(
    request: Request, tenant: str, user: User, session: AsyncSession
) -> tuple[Organization, Membership]:
    slug = getattr(request.state, "tenant", None) or tenant
    org = await store.get_organization_by_slug(session, slug)
    if not org:
        raise NotFound("Organization not found")
    membership = await store.get_membership(session, org.id, user.id)
    if not membership or membership.status != "active":
        raise Forbidden("You are not a member of this organization")
    return org, membership


def _page(request: Request, org: Organization, membership: Membership) -> dict:
    return {
        "tenant": org.slug,
        "is_subdomain": getattr(request.state, "is_subdomain", False),
        "organization": {"id": str(org.id), "name": org.name, "slug": org.slug, "plan": org.plan},
        "role": membership.role,
        "routes": get_accessible_routes(membership.role),
    }


@router.get("/{tenant}/dashboard")
async def dashboard(
    tenant: str,
    request: Request,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    org, membership = await _tenant_membership(request, tenant, user, session)
    return _page(request, org, membership)


@router.get("/{tenant}/team")
async def team(
    tenant: str,
    request: Request,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    org, membership = await _tenant_membership(request, tenant, user, session)
    if not has_permission(membership.role, "users", "read"):
        raise Forbidden("You cannot view the team")
    page = _page(request, org, membership)
    page["members"] = [m.model_dump(mode="json") for m in await store.list_members(session, org.id)]
    return page
