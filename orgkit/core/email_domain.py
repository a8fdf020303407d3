"""Helpers for e-mail domain based auto-join."""

from __future__ import annotations

from typing import Optional

PERSONAL_EMAIL_DOMAINS = frozenset(
    {
        "gmail.com",
        "googlemail.com",
        "hotmail.com",
        "hotmail.com.br",
        "hotmail.co.uk",
        "live.com",
        "live.com.br",
        "outlook.com",
        "outlook.com.br",
        "outlook.com.au",
        "msn.com",
        "yahoo.com",
        "yahoo.com.br",
        "yahoo.co.uk",
        "icloud.com",
        "me.com",
        "mac.com",
        "aol.com",
        "protonmail.com",
        "proton.me",
        "pm.me",
        "zoho.com",
        "mail.com",
        "gmx.com",
        "gmx.de",
        "yandex.com",
        "yandex.ru",
        "yandex.ua",
        "yandex.kz",
        "yopmail.com",
        "bol.com.br",
        "uol.com.br",
        "terra.com.br",
    }
)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def normalize_email_domain(domain: Optional[str]) -> Optional[str]:
    if not domain:
        return None
    return domain.strip().lower() or None


def get_email_domain(email: Optional[str]) -> Optional[str]:
    if not email:
        return None
    at = email.rfind("@")
    if at == -1 or at == len(email) - 1:
        return None
    return normalize_email_domain(email[at + 1:])


def is_personal_email_domain(domain: Optional[str]) -> bool:
    normalized = normalize_email_domain(domain)
    return bool(normalized) and normalized in PERSONAL_EMAIL_DOMAINS
