"""
User service: registration, password login with lockout, the second login
step (TOTP, backup code or e-mailed code), password reset, e-mail
verification and profile.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Optional

import structlog
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from orgkit.core.auth import hash_password, verify_password
from orgkit.core.config import get_settings
from orgkit.core.email import (
    Mailer,
    send_password_reset_email,
    send_two_factor_code_email,
    send_verification_email,
)
from orgkit.core.email_domain import normalize_email
from orgkit.core.errors import Conflict, Expired, Locked, NotFound, Unauthorized, ValidationError
from orgkit.core.two_factor import (
    consume_backup_code,
    generate_backup_codes,
    generate_totp_secret,
    get_provisioning_uri,
    hash_backup_code,
    verify_totp,
)
from orgkit.models.base import as_aware, utcnow
from orgkit.models.user import User
from orgkit.schemas.users import Preferences
from orgkit.services import verification
from orgkit.services.organizations import ensure_auto_accepted_domain_membership

log = structlog.get_logger()

MIN_PASSWORD_LENGTH = 8


async def get_user_by_email(session: AsyncSession, email: str) -> Optional[User]:
    result = await session.execute(
        select(User).where(func.lower(User.email) == normalize_email(email))
    )
    return result.scalar_one_or_none()


def preferences_for(user: User) -> Preferences:
    return Preferences.model_validate(user.preferences or {})


# ---------------------------------------------------------------------------
# Registration & login
# ---------------------------------------------------------------------------

def _check_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters", field="password"
        )


async def register_user(
    session: AsyncSession,
    email: str,
    password: str,
    name: str,
    *,
    mailer: Optional[Mailer] = None,
) -> User:
    email = normalize_email(email)
    _check_password(password)
    if await get_user_by_email(session, email):
        raise Conflict("Email already registered", code="email_taken")

    user = User(
        email=email,
        name=name.strip(),
        password_hash=hash_password(password),
        preferences=Preferences().model_dump(mode="json"),
    )
    session.add(user)
    await session.flush()

    await ensure_auto_accepted_domain_membership(session, user)
    log.info("user.registered", user_id=str(user.id), email=email)

    if mailer is not None:
        # The account exists either way; the user can ask for another link
        try:
            await send_verification(session, user, mailer)
        except Exception as exc:
            log.warning("user.verification_email_failed", user_id=str(user.id), error=str(exc))
    return user


def _is_locked(user: User) -> bool:
    return user.locked_until is not None and as_aware(user.locked_until) > utcnow()


async def _register_failure(session: AsyncSession, user: User) -> None:
    settings = get_settings()
    user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
    if user.failed_login_attempts >= settings.max_failed_logins:
        user.locked_until = utcnow() + timedelta(minutes=settings.lockout_minutes)
        log.warning("auth.account_locked", user_id=str(user.id), until=user.locked_until.isoformat())
    session.add(user)
    # Survives the rollback triggered by the error the caller raises next
    await session.commit()


async def _register_success(session: AsyncSession, user: User) -> None:
    user.failed_login_attempts = 0
    user.locked_until = None
    session.add(user)
    await session.flush()


async def authenticate(session: AsyncSession, email: str, password: str) -> User:
    """
    Check e-mail/password. Raises ``Unauthorized`` or ``Locked``.

    The caller decides whether a TOTP step follows (``user.mfa_enabled``).
    """
    user = await get_user_by_email(session, email)

    # OAuth-only accounts have no password hash
    if not user or not user.password_hash:
        log.warning("auth.login_failure", email=normalize_email(email), reason="unknown_user")
        raise Unauthorized("Invalid email or password")

    if _is_locked(user):
        log.warning("auth.login_failure", user_id=str(user.id), reason="locked")
        raise Locked("Account is locked. Please try again later.")

    if not verify_password(password, user.password_hash):
        log.warning("auth.login_failure", user_id=str(user.id), reason="bad_password")
        await _register_failure(session, user)
        raise Unauthorized("Invalid email or password")

    if not user.mfa_enabled:
        await _register_success(session, user)
        await ensure_auto_accepted_domain_membership(session, user)
    return user


async def complete_two_factor(
    session: AsyncSession, user: User, code: str, *, method: str = "totp"
) -> User:
    """Second login step: a TOTP code, an unused backup code or an e-mailed code."""
    if _is_locked(user):
        raise Locked("Account is locked. Please try again later.")

    if method == "email":
        if not await verification.consume_email_code(session, user.id, code):
            log.warning("auth.mfa_failure", user_id=str(user.id), method="email")
            await _register_failure(session, user)
            raise Unauthorized("Invalid or expired verification code")
    elif verify_totp(user.mfa_secret, code):
        method = "totp"
    else:
        remaining = consume_backup_code(list(user.mfa_backup_codes or []), code)
        if remaining is None:
            log.warning("auth.mfa_failure", user_id=str(user.id))
            await _register_failure(session, user)
            raise Unauthorized("Invalid verification code")
        user.mfa_backup_codes = remaining
        method = "backup_code"

    await _register_success(session, user)
    await ensure_auto_accepted_domain_membership(session, user)
    log.info("auth.mfa_success", user_id=str(user.id), method=method)
    return user


async def send_login_code(session: AsyncSession, user: User, mailer: Mailer) -> None:
    """E-mail a fresh six-digit code for a pending MFA challenge."""
    if _is_locked(user):
        raise Locked("Account is locked. Please try again later.")
    ttl = timedelta(minutes=get_settings().email_2fa_code_minutes)
    code = await verification.issue(session, user.id, verification.EMAIL_2FA, ttl)
    await send_two_factor_code_email(mailer, email=user.email, code=code, name=user.name or user.email)
    log.info("auth.mfa_code_sent", user_id=str(user.id))


# ---------------------------------------------------------------------------
# Password reset & e-mail verification
# ---------------------------------------------------------------------------

async def request_password_reset(session: AsyncSession, email: str, mailer: Mailer) -> None:
    """Send a reset link if the account exists. Silent either way."""
    user = await get_user_by_email(session, email)
    if not user:
        log.info("auth.password_reset_unknown", email=normalize_email(email))
        return

    ttl = timedelta(minutes=get_settings().password_reset_minutes)
    token = await verification.issue(session, user.id, verification.RESET_PASSWORD, ttl)
    try:
        await send_password_reset_email(mailer, email=user.email, token=token, name=user.name or user.email)
    except Exception as exc:
        log.warning("auth.password_reset_email_failed", user_id=str(user.id), error=str(exc))
        return
    log.info("auth.password_reset_requested", user_id=str(user.id))


async def _redeem_link(session: AsyncSession, token: str, purpose: str, what: str) -> User:
    row = await verification.find_link_token(session, token, purpose)
    if row is None or row.used_at is not None:
        raise ValidationError(f"Invalid {what} link", field="token", code="invalid_token")
    if verification.is_expired(row):
        raise Expired(f"This {what} link has expired")

    user = await session.get(User, row.user_id)
    await verification.retire_codes(session, row.user_id, purpose)
    return user


async def reset_password(session: AsyncSession, token: str, password: str) -> User:
    """Set a new password from a reset link. Also lifts any lockout."""
    _check_password(password)
    user = await _redeem_link(session, token, verification.RESET_PASSWORD, "password reset")

    user.password_hash = hash_password(password)
    user.failed_login_attempts = 0
    user.locked_until = None
    user.updated_at = utcnow()
    session.add(user)
    await session.flush()
    log.info("auth.password_reset", user_id=str(user.id))
    return user


async def send_verification(session: AsyncSession, user: User, mailer: Mailer) -> None:
    ttl = timedelta(hours=get_settings().email_verification_hours)
    token = await verification.issue(session, user.id, verification.VERIFY_EMAIL, ttl)
    await send_verification_email(mailer, email=user.email, token=token, name=user.name or user.email)


async def resend_verification(session: AsyncSession, email: str, mailer: Mailer) -> None:
    user = await get_user_by_email(session, email)
    if not user:
        raise NotFound("User not found")
    if user.email_verified:
        raise Conflict("Email is already verified", code="already_verified")
    await send_verification(session, user, mailer)
    log.info("user.verification_resent", user_id=str(user.id))


async def verify_email(session: AsyncSession, token: str) -> User:
    user = await _redeem_link(session, token, verification.VERIFY_EMAIL, "verification")
    user.email_verified = True
    session.add(user)
    await session.flush()
    log.info("user.email_verified", user_id=str(user.id))
    return user


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------

async def update_profile(
    session: AsyncSession,
    user: User,
    *,
    name: Optional[str] = None,
    preferences: Optional[Preferences] = None,
) -> User:
    if name is not None:
        user.name = name.strip()
    if preferences is not None:
        user.preferences = preferences.model_dump(mode="json")
    user.updated_at = utcnow()
    session.add(user)
    await session.flush()
    log.info("user.profile_updated", user_id=str(user.id))
    return user


# ---------------------------------------------------------------------------
# TOTP
# ---------------------------------------------------------------------------

async def begin_two_factor_setup(session: AsyncSession, user: User) -> tuple[str, str]:
    """Store a fresh secret (not yet active). Returns (secret, otpauth URI)."""
    if user.mfa_enabled:
        raise Conflict("Two-factor authentication is already enabled", code="mfa_enabled")
    secret = generate_totp_secret()
    user.mfa_secret = secret
    session.add(user)
    await session.flush()
    return secret, get_provisioning_uri(secret, user.email, get_settings().app_name)


async def enable_two_factor(session: AsyncSession, user: User, code: str) -> list[str]:
    """Activate TOTP after confirming a code. Returns the plaintext backup codes."""
    if user.mfa_enabled:
        raise Conflict("Two-factor authentication is already enabled", code="mfa_enabled")
    if not user.mfa_secret:
        raise ValidationError("Start two-factor setup first", field="code")
    if not verify_totp(user.mfa_secret, code):
        raise ValidationError("Invalid verification code", field="code")

    codes = generate_backup_codes()
    user.mfa_enabled = True
    user.mfa_backup_codes = [hash_backup_code(c) for c in codes]
    session.add(user)
    await session.flush()
    log.info("user.mfa_enabled", user_id=str(user.id))
    return codes


async def disable_two_factor(session: AsyncSession, user: User, code: str) -> None:
    if not user.mfa_enabled:
        raise Conflict("Two-factor authentication is not enabled", code="mfa_disabled")
    if not verify_totp(user.mfa_secret, code):
        raise ValidationError("Invalid verification code", field="code")

    user.mfa_enabled = False
    user.mfa_secret = None
    user.mfa_backup_codes = []
    session.add(user)
    await session.flush()
    log.info("user.mfa_disabled", user_id=str(user.id))
