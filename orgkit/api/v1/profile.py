"""
Profile endpoints for the signed-in user.

GET   /api/v1/me               - Profile and preferences
PATCH /api/v1/me               - Update name / preferences
POST  /api/v1/me/2fa/setup     - Generate a TOTP secret
POST  /api/v1/me/2fa/enable    - Confirm a code, receive backup codes
POST  /api/v1/me/2fa/disable   - Confirm a code, turn TOTP off
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from orgkit.core.auth import get_current_user
from orgkit.core.database import get_session
from orgkit.models.user import User
from orgkit.schemas.common import MessageResponse
from orgkit.schemas.users import (
    ProfileResponse,
    ProfileUpdateRequest,
    TwoFactorCodeRequest,
    TwoFactorEnableResponse,
    TwoFactorSetupResponse,
)
from orgkit.services import users as user_service

router = APIRouter()


def _to_response(user: User) -> ProfileResponse:
    return ProfileResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        avatar_url=user.avatar_url,
        mfa_enabled=user.mfa_enabled,
        preferences=user_service.preferences_for(user),
        created_at=user.created_at,
    )


@router.get("", response_model=ProfileResponse)
async def get_profile(user: User = Depends(get_current_user)):
    return _to_response(user)


@router.patch("", response_model=ProfileResponse)
async def update_profile(
    body: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    user = await user_service.update_profile(
        session, user, name=body.name, preferences=body.preferences
    )
    return _to_response(user)


@router.post("/2fa/setup", response_model=TwoFactorSetupResponse)
async def setup_two_factor(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    secret, uri = await user_service.begin_two_factor_setup(session, user)
    return TwoFactorSetupResponse(secret=secret, otpauth_url=uri)


@router.post("/2fa/enable", response_model=TwoFactorEnableResponse)
async def enable_two_factor(
    body: TwoFactorCodeRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    codes = await user_service.enable_two_factor(session, user, body.code)
    return TwoFactorEnableResponse(backup_codes=codes)


@router.post("/2fa/disable", response_model=MessageResponse)
async def disable_two_factor(
    body: TwoFactorCodeRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await user_service.disable_two_factor(session, user, body.code)
    return MessageResponse(message="Two-factor authentication disabled")
