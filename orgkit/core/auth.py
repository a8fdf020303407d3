"""
Authentication and request-scoped authorization context.

Supports:
- Email/Password with bcrypt
- JWT sessions (cookie or Bearer) with a Redis revocation list
- Short-lived MFA challenge tokens for TOTP logins
- ``OrgContext``: the caller's user, organization and active membership,
  resolved once per request and handed to services explicitly
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
import structlog
from fastapi import Depends, Request
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from orgkit.core.config import get_settings
from orgkit.core.database import get_session
from orgkit.core.errors import Forbidden, NotFound, Unauthorized
from orgkit.core.redis import get_redis, revoked_jti_key
from orgkit.models.membership import Membership
from orgkit.models.organization import Organization
from orgkit.models.user import User
from orgkit.services.audit import RequestMeta

log = structlog.get_logger()
settings = get_settings()

SESSION_COOKIE = "orgkit_session"
CSRF_COOKIE = "orgkit_csrf"

PURPOSE_SESSION = "session"
PURPOSE_MFA = "mfa"

authorization_header = APIKeyHeader(name="Authorization", auto_error=False)

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def hash_password(password: str) -> str:
    """Hash a password using bcrypt with cost factor 12."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=12)).decode()


def verify_password(password: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    return bcrypt.checkpw(password.encode(), hashed.encode())


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_jwt(
    user_id: uuid.UUID,
    email: str,
    *,
    purpose: str = PURPOSE_SESSION,
    expires_delta: timedelta | None = None,
) -> tuple[str, str]:
    """Create a signed JWT. Returns (token, jti)."""
    jti = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    if expires_delta is None:
        minutes = (
            settings.mfa_challenge_minutes if purpose == PURPOSE_MFA else settings.jwt_expire_minutes
        )
        expires_delta = timedelta(minutes=minutes)
    payload = {
        "sub": str(user_id),
        "email": email,
        "purpose": purpose,
        "iat": now,
        "exp": now + expires_delta,
        "jti": jti,
    }
    token = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
    return token, jti


def decode_jwt(token: str, *, purpose: str = PURPOSE_SESSION) -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure or wrong purpose."""
    payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    if payload.get("purpose", PURPOSE_SESSION) != purpose:
        raise jwt.InvalidTokenError(f"Token purpose is not {purpose!r}")
    return payload


# ---------------------------------------------------------------------------
# JWT Revocation (Redis)
# ---------------------------------------------------------------------------

async def revoke_jwt(jti: str, ttl_seconds: int | None = None) -> None:
    """Add a JWT ID to the revocation list in Redis."""
    redis = await get_redis()
    ttl = ttl_seconds or settings.jwt_expire_minutes * 60
    await redis.setex(revoked_jti_key(jti), ttl, "1")


async def is_jwt_revoked(jti: str) -> bool:
    redis = await get_redis()
    return await redis.exists(revoked_jti_key(jti)) > 0


# ---------------------------------------------------------------------------
# CSRF Token
# ---------------------------------------------------------------------------

def generate_csrf_token() -> str:
    return secrets.token_urlsafe(32)


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------

class OrgContext:
    """The caller's identity within one organization."""

    def __init__(
        self,
        user: User,
        org: Organization,
        membership: Membership,
        meta: RequestMeta | None = None,
    ):
        self.user = user
        self.org = org
        self.membership = membership
        self.meta = meta or RequestMeta()
        self.user_id = user.id
        self.org_id = org.id
        self.role = membership.role


def _extract_token(request: Request, authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip() or None
    return request.cookies.get(SESSION_COOKIE)


async def authenticate_token(token: str, session: AsyncSession) -> User:
    try:
        payload = decode_jwt(token)
    except jwt.PyJWTError:
        raise Unauthorized("Invalid or expired session")

    jti = payload.get("jti")
    if jti and await is_jwt_revoked(jti):
        raise Unauthorized("Session has been revoked")

    try:
        user_id = uuid.UUID(payload["sub"])
    except (KeyError, ValueError):
        raise Unauthorized("Invalid or expired session")

    user = await session.get(User, user_id)
    if not user:
        raise Unauthorized("User not found")
    return user


async def get_current_user(
    request: Request,
    authorization: Optional[str] = Depends(authorization_header),
    session: AsyncSession = Depends(get_session),
) -> User:
    """Authenticate the caller from a Bearer token or the session cookie."""
    token = _extract_token(request, authorization)
    if not token:
        raise Unauthorized("Authentication required")
    user = await authenticate_token(token, session)
    request.state.user_id = user.id
    return user


def get_request_meta(request: Request) -> RequestMeta:
    return RequestMeta.from_request(request)


async def get_org_context(
    orgSlug: str,
    user: User = Depends(get_current_user),
    meta: RequestMeta = Depends(get_request_meta),
    session: AsyncSession = Depends(get_session),
) -> OrgContext:
    """Resolve the org by slug and the caller's active membership in it."""
    result = await session.execute(select(Organization).where(Organization.slug == orgSlug))
    org = result.scalar_one_or_none()
    if not org:
        raise NotFound("Organization not found")

    result = await session.execute(
        select(Membership).where(
            Membership.user_id == user.id,
            Membership.organization_id == org.id,
            Membership.status == "active",
        )
    )
    membership = result.scalar_one_or_none()
    if not membership:
        log.warning("auth.not_a_member", user_id=str(user.id), org_id=str(org.id))
        raise Forbidden("You are not a member of this organization")

    return OrgContext(user=user, org=org, membership=membership, meta=meta)
