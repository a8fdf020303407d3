"""
TOTP two-factor helpers.

Backup codes are shown once and stored as SHA-256 digests; each code is
single use.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from typing import Optional

import pyotp

BACKUP_CODE_COUNT = 10
_BACKUP_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def generate_totp_secret() -> str:
    return pyotp.random_base32()


def get_provisioning_uri(secret: str, email: str, issuer: str) -> str:
    return pyotp.TOTP(secret).provisioning_uri(email, issuer_name=issuer)


def verify_totp(secret: Optional[str], code: str) -> bool:
    """Accept the current code and one step either side for clock drift."""
    if not secret or not code:
        return False
    return pyotp.TOTP(secret).verify(code.strip(), valid_window=1)


def generate_backup_codes(count: int = BACKUP_CODE_COUNT) -> list[str]:
    return ["".join(secrets.choice(_BACKUP_ALPHABET) for _ in range(8)) for _ in range(count)]


def _normalize(code: str) -> str:
    return code.strip().replace("-", "").replace(" ", "").upper()


def hash_backup_code(code: str) -> str:
    return hashlib.sha256(_normalize(code).encode()).hexdigest()


def consume_backup_code(hashes: list[str], code: str) -> Optional[list[str]]:
    """Return the remaining hashes if ``code`` matched one, else ``None``."""
    candidate = hash_backup_code(code)
    for i, stored in enumerate(hashes):
        if hmac.compare_digest(stored, candidate):
            return hashes[:i] + hashes[i + 1:]
    return None
