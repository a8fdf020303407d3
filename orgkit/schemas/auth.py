"""Authentication request/response schemas."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    name: str = Field(min_length=1, max_length=200)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class VerifyTwoFactorRequest(BaseModel):
    challenge_token: str
    code: str = Field(min_length=6, max_length=16)
    method: Literal["totp", "email"] = "totp"  # totp also accepts backup codes


class ResendTwoFactorRequest(BaseModel):
    challenge_token: str


class EmailRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=1)
    password: str


class VerifyEmailRequest(BaseModel):
    token: str = Field(min_length=1)


class AuthResponse(BaseModel):
    user_id: str
    email: str
    message: str
    mfa_required: bool = False
    challenge_token: Optional[str] = None
