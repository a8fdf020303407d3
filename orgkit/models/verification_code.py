"""One-time codes and links sent by e-mail."""

import uuid
from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow


class VerificationCode(UUIDMixin, SQLModel, table=True):
    __tablename__ = "verification_codes"

    user_id: uuid.UUID = Field(foreign_key="users.id", ondelete="CASCADE", index=True)
    purpose: str = Field(nullable=False, index=True)  # email_2fa | verify_email | reset_password
    # bcrypt for 6-digit login codes, SHA-256 hex for link tokens
    code_hash: str = Field(nullable=False, index=True)
    expires_at: datetime = Field(nullable=False, sa_type=sa.DateTime(timezone=True))
    used_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.func.now()},
        sa_type=sa.DateTime(timezone=True),
    )
