"""
Audit trail: feature-flag gated, append-only, never fails the caller.

Writers call ``record_event`` after a successful privileged mutation. The
row is written inside a SAVEPOINT so a failing insert cannot poison the
surrounding request transaction.
"""

from __future__ import annotations

import math
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional

import structlog
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select
from starlette.requests import Request

from orgkit.core.features import FeatureFlags, get_feature_flags
from orgkit.models.audit_log import AuditLog
from orgkit.models.user import User
from orgkit.schemas.audit import AuditActor, AuditLogEntry, AuditLogPage

log = structlog.get_logger()

AUDIT_FEATURE = "auditLog"
DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class RequestMeta:
    """Client details captured once per request."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @classmethod
    def from_headers(cls, headers: Mapping[str, str], peer: Optional[str] = None) -> "RequestMeta":
        ip = None
        forwarded = headers.get("x-forwarded-for")
        if forwarded:
            ip = forwarded.split(",")[0].strip() or None
        if not ip:
            ip = peer or headers.get("x-real-ip") or None
        return cls(ip_address=ip, user_agent=headers.get("user-agent") or None)

    @classmethod
    def from_request(cls, request: Request) -> "RequestMeta":
        peer = request.client.host if request.client else None
        return cls.from_headers(request.headers, peer)


def is_audit_enabled(flags: Optional[FeatureFlags] = None) -> bool:
    return (flags or get_feature_flags()).is_enabled(AUDIT_FEATURE)


async def record_event(
    session: AsyncSession,
    *,
    organization_id: uuid.UUID,
    action: str,
    actor_id: Optional[uuid.UUID] = None,
    target_type: Optional[str] = None,
    target_id: Optional[Any] = None,
    metadata: Optional[dict[str, Any]] = None,
    meta: Optional[RequestMeta] = None,
    flags: Optional[FeatureFlags] = None,
) -> None:
    """Append one audit row. Never raises."""
    try:
        if not is_audit_enabled(flags):
            return
        meta = meta or RequestMeta()
        entry = AuditLog(
            organization_id=organization_id,
            actor_id=actor_id,
            action=action,
            target_type=target_type,
            target_id=str(target_id) if target_id is not None else None,
            event_metadata=dict(metadata or {}),
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
        )
        async with session.begin_nested():
            session.add(entry)
    except Exception as exc:
        log.error(
            "audit.write_failed",
            action=action,
            organization_id=str(organization_id),
            error=str(exc),
        )


def clamp_page(page: Optional[int], page_size: Optional[int]) -> tuple[int, int]:
    page = page if page and page >= 1 else 1
    if not page_size or page_size < 1:
        page_size = DEFAULT_PAGE_SIZE
    return page, min(page_size, MAX_PAGE_SIZE)


async def fetch_audit_logs(
    session: AsyncSession,
    organization_id: uuid.UUID,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> AuditLogPage:
    page, page_size = clamp_page(page, page_size)

    total = (
        await session.execute(
            select(func.count()).select_from(AuditLog).where(
                AuditLog.organization_id == organization_id
            )
        )
    ).scalar_one()

    result = await session.execute(
        select(AuditLog, User)
        .outerjoin(User, User.id == AuditLog.actor_id)
        .where(AuditLog.organization_id == organization_id)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    logs = [
        AuditLogEntry(
            id=entry.id,
            organization_id=entry.organization_id,
            actor_id=entry.actor_id,
            actor=AuditActor(id=actor.id, name=actor.name, email=actor.email) if actor else None,
            action=entry.action,
            target_type=entry.target_type,
            target_id=entry.target_id,
            metadata=entry.event_metadata or {},
            ip_address=entry.ip_address,
            user_agent=entry.user_agent,
            created_at=entry.created_at,
        )
        for entry, actor in result.all()
    ]

    page_count = 1 if total == 0 else math.ceil(total / page_size)
    return AuditLogPage(
        logs=logs, page=page, page_size=page_size, total=total, page_count=page_count
    )
