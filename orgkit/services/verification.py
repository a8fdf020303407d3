"""
One-time codes delivered by e-mail.

Three purposes share one table. Login codes are six digits and checked with
bcrypt against the newest live code only. Verification and reset links carry
a 256-bit token stored as a SHA-256 digest, so they can be looked up directly.
Every row is single use; issuing a new one retires the user's older rows of
the same purpose.
"""

from __future__ import annotations

import hashlib
import secrets
import uuid
from datetime import timedelta
from typing import Optional

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from orgkit.core.auth import hash_password, verify_password
from orgkit.models.base import as_aware, utcnow
from orgkit.models.verification_code import VerificationCode

log = structlog.get_logger()

EMAIL_2FA = "email_2fa"
VERIFY_EMAIL = "verify_email"
RESET_PASSWORD = "reset_password"


def generate_email_code() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


def generate_link_token() -> str:
    return secrets.token_urlsafe(32)


def hash_link_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def is_expired(row: VerificationCode) -> bool:
    return utcnow() > as_aware(row.expires_at)


async def retire_codes(session: AsyncSession, user_id: uuid.UUID, purpose: str) -> int:
    """Mark every unused code of this purpose as used. Returns the row count."""
    result = await session.execute(
        update(VerificationCode)
        .where(
            VerificationCode.user_id == user_id,
            VerificationCode.purpose == purpose,
            VerificationCode.used_at.is_(None),
        )
        .values(used_at=utcnow())
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount


async def issue(session: AsyncSession, user_id: uuid.UUID, purpose: str, ttl: timedelta) -> str:
    """Store a new code and return its plaintext, which is never persisted."""
    await retire_codes(session, user_id, purpose)
    if purpose == EMAIL_2FA:
        plaintext = generate_email_code()
        code_hash = hash_password(plaintext)
    else:
        plaintext = generate_link_token()
        code_hash = hash_link_token(plaintext)

    session.add(
        VerificationCode(
            user_id=user_id,
            purpose=purpose,
            code_hash=code_hash,
            expires_at=utcnow() + ttl,
        )
    )
    await session.flush()
    log.info("verification.issued", user_id=str(user_id), purpose=purpose)
    return plaintext


async def consume_email_code(session: AsyncSession, user_id: uuid.UUID, code: str) -> bool:
    """Check a login code against the newest live one and spend it on success."""
    result = await session.execute(
        select(VerificationCode)
        .where(
            VerificationCode.user_id == user_id,
            VerificationCode.purpose == EMAIL_2FA,
            VerificationCode.used_at.is_(None),
            VerificationCode.expires_at > utcnow(),
        )
        .order_by(VerificationCode.created_at.desc())
        .limit(1)
    )
    row = result.scalar_one_or_none()
    if row is None or not verify_password(code.strip(), row.code_hash):
        return False

    row.used_at = utcnow()
    session.add(row)
    await session.flush()
    return True


async def find_link_token(
    session: AsyncSession, token: str, purpose: str
) -> Optional[VerificationCode]:
    """Look up a link token of the given purpose, used or not."""
    result = await session.execute(
        select(VerificationCode).where(
            VerificationCode.code_hash == hash_link_token(token),
            VerificationCode.purpose == purpose,
        )
    )
    return result.scalar_one_or_none()


async def mark_used(session: AsyncSession, row: VerificationCode) -> None:
    row.used_at = utcnow()
    session.add(row)
    await session.flush()
