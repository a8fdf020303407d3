"""Pending invitation to join an organization."""

import uuid
from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow


class Invitation(UUIDMixin, SQLModel, table=True):
    __tablename__ = "invitations"

    organization_id: uuid.UUID = Field(
        foreign_key="organizations.id", ondelete="CASCADE", index=True
    )
    email: str = Field(nullable=False, index=True)  # stored lower-cased
    role: str = Field(nullable=False, default="member")  # admin | member
    token: str = Field(unique=True, nullable=False, index=True)
    invited_by: Optional[uuid.UUID] = Field(
        default=None, foreign_key="users.id", ondelete="SET NULL", nullable=True
    )
    expires_at: datetime = Field(nullable=False, sa_type=sa.DateTime(timezone=True))
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.func.now()},
        sa_type=sa.DateTime(timezone=True),
    )
