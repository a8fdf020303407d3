"""Organization membership (one row per user per organization)."""

import uuid
from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Membership(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "memberships"
    __table_args__ = (
        sa.UniqueConstraint("user_id", "organization_id", name="uq_memberships_user_org"),
    )

    user_id: uuid.UUID = Field(foreign_key="users.id", ondelete="CASCADE", index=True)
    organization_id: uuid.UUID = Field(
        foreign_key="organizations.id", ondelete="CASCADE", index=True
    )
    role: str = Field(nullable=False, default="member")  # owner | admin | member
    status: str = Field(nullable=False, default="active")  # active | pending | suspended
    invited_by: Optional[uuid.UUID] = Field(
        default=None, foreign_key="users.id", ondelete="SET NULL", nullable=True
    )
