"""Append-only audit trail. Rows are never updated or deleted by the application."""

import uuid
from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import JSONType, UUIDMixin, utcnow


class AuditLog(UUIDMixin, SQLModel, table=True):
    __tablename__ = "audit_logs"
    __table_args__ = (sa.Index("ix_audit_logs_org_created", "organization_id", "created_at"),)

    # No FK: entries outlive the organization they describe.
    organization_id: uuid.UUID = Field(nullable=False)
    actor_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="users.id", ondelete="SET NULL", nullable=True
    )
    action: str = Field(nullable=False)
    target_type: Optional[str] = None
    target_id: Optional[str] = None
    # "metadata" is reserved on declarative models
    event_metadata: dict = Field(default_factory=dict, sa_type=JSONType, nullable=False)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.func.now()},
        sa_type=sa.DateTime(timezone=True),
    )
