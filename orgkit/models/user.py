"""User model."""

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import JSONType, TimestampMixin, UUIDMixin


class User(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    email: str = Field(unique=True, index=True, nullable=False)
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    password_hash: Optional[str] = Field(default=None)  # None for OAuth-only accounts

    # TOTP
    mfa_enabled: bool = Field(default=False, nullable=False)
    mfa_secret: Optional[str] = None
    mfa_backup_codes: list = Field(default_factory=list, sa_type=JSONType, nullable=False)

    email_verified: bool = Field(default=False, nullable=False)

    # {"language": "en-US", "theme": "system"}
    preferences: dict = Field(default_factory=dict, sa_type=JSONType, nullable=False)

    # Lockout
    failed_login_attempts: int = Field(default=0, nullable=False)
    locked_until: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
