"""Audit log read models. Serialized with camelCase keys."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from .common import CamelModel


class AuditActor(CamelModel):
    id: uuid.UUID
    name: Optional[str] = None
    email: Optional[str] = None


class AuditLogEntry(CamelModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    actor_id: Optional[uuid.UUID] = None
    actor: Optional[AuditActor] = None
    action: str
    target_type: Optional[str] = None
    target_id: Optional[str] = None
    metadata: dict[str, Any] = {}
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime


class AuditLogPage(CamelModel):
    logs: list[AuditLogEntry]
    page: int
    page_size: int
    total: int
    page_count: int
