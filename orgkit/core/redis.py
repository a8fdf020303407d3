"""
Redis client for short-lived auth state.

orgkit keeps exactly one kind of data here: the JWT revocation list. Logged-out
session tokens and spent MFA challenge tokens are stored by ``jti`` with a TTL
matching the token lifetime, so entries vanish once the token would have
expired anyway. Nothing in Redis is authoritative; the database is.
"""

from __future__ import annotations

import redis.asyncio as redis

from orgkit.core.config import get_settings

settings = get_settings()

REVOKED_JTI_PREFIX = "orgkit:jwt:revoked:"

_client: redis.Redis | None = None


def revoked_jti_key(jti: str) -> str:
    return f"{REVOKED_JTI_PREFIX}{jti}"


async def get_redis() -> redis.Redis:
    """Return the shared client, connecting lazily on first revocation check."""
    global _client
    if _client is None:
        _client = redis.from_url(settings.redis_url, decode_responses=True)
    return _client


async def close_redis() -> None:
    """Drop the shared client on shutdown."""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
