"""
Audit log read endpoint.

GET /api/v1/orgs/{orgSlug}/audit-logs?page=&pageSize=

404 while the auditLog feature is off, 401 without a session, 403 unless
the caller is an owner or admin.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from orgkit.core.auth import OrgContext, get_org_context
from orgkit.core.database import get_session
from orgkit.core.errors import NotFound
from orgkit.core.features import FeatureFlags, get_feature_flags
from orgkit.core.permissions import can_view_audit_log, require
from orgkit.schemas.audit import AuditLogPage
from orgkit.services import audit as audit_service

router = APIRouter()


def require_audit_log_enabled(flags: FeatureFlags = Depends(get_feature_flags)) -> None:
    if not audit_service.is_audit_enabled(flags):
        raise NotFound("Not found")


def _parse_int(raw: Optional[str], default: int) -> int:
    try:
        return int(raw) if raw is not None else default
    except ValueError:
        return default


@router.get(
    "/audit-logs",
    response_model=AuditLogPage,
    dependencies=[Depends(require_audit_log_enabled)],
)
async def list_audit_logs(
    page: Optional[str] = Query(None),
    page_size: Optional[str] = Query(None, alias="pageSize"),
    ctx: OrgContext = Depends(get_org_context),
    session: AsyncSession = Depends(get_session),
):
    require(can_view_audit_log(ctx.role), "Only owners and admins can view the audit log")
    return await audit_service.fetch_audit_logs(
        session,
        ctx.org_id,
        page=_parse_int(page, 1),
        page_size=_parse_int(page_size, audit_service.DEFAULT_PAGE_SIZE),
    )
