"""Profile and two-factor schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .common import Language, Theme


class Preferences(BaseModel):
    language: Language = Language.PT_BR
    theme: Theme = Theme.SYSTEM


class ProfileResponse(BaseModel):
    id: uuid.UUID
    email: str
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    mfa_enabled: bool
    preferences: Preferences
    created_at: datetime


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    preferences: Optional[Preferences] = None


class TwoFactorSetupResponse(BaseModel):
    secret: str
    otpauth_url: str


class TwoFactorCodeRequest(BaseModel):
    code: str = Field(min_length=6, max_length=16)


class TwoFactorEnableResponse(BaseModel):
    """Backup codes are shown exactly once."""
    backup_codes: list[str]
