"""
Authentication endpoints.

- Email/Password registration & login, with account lockout
- Second login step (TOTP, backup code or e-mailed code) via a short-lived
  challenge token
- Password reset and e-mail verification links
- JWT session management (refresh, logout)
"""

from __future__ import annotations

import uuid

import jwt
import structlog
from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from orgkit.core.auth import (
    CSRF_COOKIE,
    PURPOSE_MFA,
    SESSION_COOKIE,
    create_jwt,
    decode_jwt,
    generate_csrf_token,
    is_jwt_revoked,
    revoke_jwt,
)
from orgkit.core.config import get_settings
from orgkit.core.database import get_session
from orgkit.core.email import Mailer, get_mailer
from orgkit.core.errors import Unauthorized
from orgkit.models.user import User
from orgkit.schemas.auth import (
    AuthResponse,
    EmailRequest,
    LoginRequest,
    RegisterRequest,
    ResendTwoFactorRequest,
    ResetPasswordRequest,
    VerifyEmailRequest,
    VerifyTwoFactorRequest,
)
from orgkit.schemas.common import MessageResponse
from orgkit.services import users as user_service

log = structlog.get_logger()
settings = get_settings()
router = APIRouter()

# Cookie config
COOKIE_KWARGS = {
    "secure": not settings.debug,  # allow non-HTTPS in dev
    "samesite": "lax",
    "path": "/",
    "max_age": settings.jwt_expire_minutes * 60,
}


def _start_session(response: Response, user: User) -> None:
    """Issue a session JWT and CSRF token as cookies."""
    token, _jti = create_jwt(user.id, user.email)
    response.set_cookie(key=SESSION_COOKIE, value=token, httponly=True, **COOKIE_KWARGS)
    # JS must read the CSRF cookie
    response.set_cookie(key=CSRF_COOKIE, value=generate_csrf_token(), httponly=False, **COOKIE_KWARGS)


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(
    body: RegisterRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
    mailer: Mailer = Depends(get_mailer),
):
    user = await user_service.register_user(
        session, body.email, body.password, body.name, mailer=mailer
    )
    _start_session(response, user)
    return AuthResponse(user_id=str(user.id), email=user.email, message="Registration successful")


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    user = await user_service.authenticate(session, body.email, body.password)

    if user.mfa_enabled:
        challenge, _jti = create_jwt(user.id, user.email, purpose=PURPOSE_MFA)
        log.info("auth.mfa_challenge", user_id=str(user.id))
        return AuthResponse(
            user_id=str(user.id),
            email=user.email,
            message="Two-factor verification required",
            mfa_required=True,
            challenge_token=challenge,
        )

    _start_session(response, user)
    log.info("auth.login_success", user_id=str(user.id))
    return AuthResponse(user_id=str(user.id), email=user.email, message="Login successful")


async def _challenge_user(session: AsyncSession, challenge_token: str) -> tuple[User, dict]:
    """Resolve a live MFA challenge to its user. Returns (user, token payload)."""
    try:
        payload = decode_jwt(challenge_token, purpose=PURPOSE_MFA)
    except jwt.PyJWTError:
        raise Unauthorized("Verification expired. Please sign in again.")

    if await is_jwt_revoked(payload["jti"]):
        raise Unauthorized("Verification expired. Please sign in again.")

    user = await session.get(User, uuid.UUID(payload["sub"]))
    if not user or not user.mfa_enabled:
        raise Unauthorized("Verification expired. Please sign in again.")
    return user, payload


@router.post("/verify-2fa", response_model=AuthResponse)
async def verify_two_factor(
    body: VerifyTwoFactorRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    user, payload = await _challenge_user(session, body.challenge_token)

    await user_service.complete_two_factor(session, user, body.code, method=body.method)
    # A challenge is single use
    await revoke_jwt(payload["jti"], ttl_seconds=settings.mfa_challenge_minutes * 60)

    _start_session(response, user)
    log.info("auth.login_success", user_id=str(user.id), mfa=True)
    return AuthResponse(user_id=str(user.id), email=user.email, message="Login successful")


@router.post("/resend-2fa", response_model=MessageResponse)
async def resend_two_factor_code(
    body: ResendTwoFactorRequest,
    session: AsyncSession = Depends(get_session),
    mailer: Mailer = Depends(get_mailer),
):
    """E-mail a one-time code that completes the pending challenge."""
    user, _payload = await _challenge_user(session, body.challenge_token)
    await user_service.send_login_code(session, user, mailer)
    return MessageResponse(message="Verification code sent successfully")


# ---------------------------------------------------------------------------
# Password Reset & Email Verification
# ---------------------------------------------------------------------------

@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    body: EmailRequest,
    session: AsyncSession = Depends(get_session),
    mailer: Mailer = Depends(get_mailer),
):
    await user_service.request_password_reset(session, body.email, mailer)
    # Same answer whether or not the account exists
    return MessageResponse(
        message="If an account with that email exists, we have sent a password reset link."
    )


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(body: ResetPasswordRequest, session: AsyncSession = Depends(get_session)):
    await user_service.reset_password(session, body.token, body.password)
    return MessageResponse(message="Password reset successfully")


@router.post("/verify-email", response_model=MessageResponse)
async def verify_email(body: VerifyEmailRequest, session: AsyncSession = Depends(get_session)):
    await user_service.verify_email(session, body.token)
    return MessageResponse(message="Email verified successfully")


@router.post("/resend-verification", response_model=MessageResponse)
async def resend_verification(
    body: EmailRequest,
    session: AsyncSession = Depends(get_session),
    mailer: Mailer = Depends(get_mailer),
):
    await user_service.resend_verification(session, body.email, mailer)
    return MessageResponse(message="Verification email sent successfully")


# ---------------------------------------------------------------------------
# Session Management
# ---------------------------------------------------------------------------

@router.post("/refresh", response_model=MessageResponse)
async def refresh_session(
    request: Request,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    """Issue a new session JWT and revoke the current one."""
    token = request.cookies.get(SESSION_COOKIE)
    if not token:
        raise Unauthorized("No active session")

    try:
        payload = decode_jwt(token)
    except jwt.PyJWTError:
        raise Unauthorized("Invalid or expired session")

    jti = payload.get("jti")
    if jti and await is_jwt_revoked(jti):
        raise Unauthorized("Session has been revoked")

    user = await session.get(User, uuid.UUID(payload["sub"]))
    if not user:
        raise Unauthorized("User not found")

    if jti:
        await revoke_jwt(jti)
    _start_session(response, user)
    return MessageResponse(message="Session refreshed")


@router.post("/logout", response_model=MessageResponse)
async def logout(request: Request, response: Response):
    token = request.cookies.get(SESSION_COOKIE)
    if token:
        try:
            payload = decode_jwt(token)
        except jwt.PyJWTError:
            payload = {}  # already invalid, just clear cookies
        if payload.get("jti"):
            await revoke_jwt(payload["jti"])

    response.delete_cookie(SESSION_COOKIE, path="/")
    response.delete_cookie(CSRF_COOKIE, path="/")
    return MessageResponse(message="Logged out")
