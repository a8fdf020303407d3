"""
API v1 Router

All org-scoped endpoints are prefixed with /orgs/{orgSlug}.
"""

from fastapi import APIRouter

from . import audit_logs, profile, team
from .invitations import router_global as invitations_global_router
from .invitations import router_scoped as invitations_scoped_router
from .organizations import router_global as orgs_global_router
from .organizations import router_scoped as orgs_scoped_router

router = APIRouter()

# Non-org-scoped: list/create orgs, accept invitation
router.include_router(orgs_global_router)
router.include_router(invitations_global_router, tags=["Invitations"])

router.include_router(profile.router, prefix="/me", tags=["Profile"])

# Org-scoped
router.include_router(orgs_scoped_router, prefix="/orgs/{orgSlug}", tags=["Organizations"])
router.include_router(team.router, prefix="/orgs/{orgSlug}", tags=["Team"])
router.include_router(
    invitations_scoped_router, prefix="/orgs/{orgSlug}/invitations", tags=["Invitations"]
)
router.include_router(audit_logs.router, prefix="/orgs/{orgSlug}", tags=["Audit"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/me",
            "/orgs",
            "/orgs/{orgSlug}/members",
            "/orgs/{orgSlug}/invitations",
            "/orgs/{orgSlug}/transfer-ownership",
            "/orgs/{orgSlug}/audit-logs",
            "/invitations/accept",
        ],
    }
