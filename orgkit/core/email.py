"""
Outbound e-mail.

Delivery providers plug in by subclassing ``Mailer``. The default
``LogMailer`` renders the message and logs it instead of sending, which is
what local development and tests want.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import structlog

from orgkit.core.config import get_settings

log = structlog.get_logger()


@dataclass(frozen=True)
class EmailTemplate:
    subject: str
    body: str


TEMPLATES: dict[str, EmailTemplate] = {
    "invitation": EmailTemplate(
        subject="You've been invited to join {organization_name}",
        body=(
            "{inviter_name} has invited you to join {organization_name} on {app_name}.\n\n"
            "Accept the invitation: {accept_url}\n\n"
            "This invitation expires in {expires_in_days} days."
        ),
    ),
    "ownership_transfer": EmailTemplate(
        subject="You're now the owner of {organization_name}",
        body=(
            "Hi {new_owner_name},\n\n"
            "{previous_owner_name} has transferred ownership of {organization_name} to you.\n\n"
            "Manage your organization: {dashboard_url}"
        ),
    ),
    "email_verification": EmailTemplate(
        subject="Verify your email address",
        body=(
            "Hi {name},\n\n"
            "Welcome to {app_name}! Please verify your email address:\n{verification_url}\n\n"
            "This link will expire in {expires_in_hours} hours."
        ),
    ),
    "password_reset": EmailTemplate(
        subject="Reset your password",
        body=(
            "Hi {name},\n\n"
            "Use the link below to reset your password:\n{reset_url}\n\n"
            "This link will expire in {expires_in_minutes} minutes. "
            "If you didn't request this, you can ignore this email."
        ),
    ),
    "two_factor_code": EmailTemplate(
        subject="Your {app_name} sign-in code",
        body=(
            "Hi {name},\n\n"
            "Your verification code is {code}.\n\n"
            "It expires in {expires_in_minutes} minutes and can be used once."
        ),
    ),
}


class EmailError(Exception):
    """Raised by a mailer when a message cannot be delivered."""


def render(template: str, variables: dict[str, Any]) -> tuple[str, str]:
    try:
        tpl = TEMPLATES[template]
    except KeyError:
        raise EmailError(f"Unknown e-mail template: {template}")
    try:
        return tpl.subject.format(**variables), tpl.body.format(**variables)
    except KeyError as exc:
        raise EmailError(f"Missing variable {exc} for template {template}")


class Mailer:
    """Base class for e-mail transports."""

    async def send(self, template: str, recipient: str, variables: dict[str, Any]) -> None:
        raise NotImplementedError


class LogMailer(Mailer):
    async def send(self, template: str, recipient: str, variables: dict[str, Any]) -> None:
        subject, _body = render(template, variables)
        log.info(
            "email.sent",
            template=template,
            sender=get_settings().email_from,
            to=recipient,
            subject=subject,
        )


@lru_cache
def get_mailer() -> Mailer:
    return LogMailer()


# ---------------------------------------------------------------------------
# Message builders
# ---------------------------------------------------------------------------

async def send_invitation_email(
    mailer: Mailer,
    *,
    email: str,
    token: str,
    organization_name: str,
    inviter_name: str,
) -> None:
    settings = get_settings()
    await mailer.send(
        "invitation",
        email,
        {
            "organization_name": organization_name,
            "inviter_name": inviter_name,
            "app_name": settings.app_name,
            "accept_url": f"{settings.app_url.rstrip('/')}/accept-invite?token={token}",
            "expires_in_days": settings.invitation_ttl_days,
        },
    )


async def send_ownership_transfer_email(
    mailer: Mailer,
    *,
    email: str,
    organization_name: str,
    organization_slug: str,
    new_owner_name: str,
    previous_owner_name: str,
) -> None:
    settings = get_settings()
    await mailer.send(
        "ownership_transfer",
        email,
        {
            "organization_name": organization_name,
            "new_owner_name": new_owner_name,
            "previous_owner_name": previous_owner_name,
            "dashboard_url": f"{settings.app_url.rstrip('/')}/{organization_slug}/dashboard",
        },
    )


async def send_verification_email(mailer: Mailer, *, email: str, token: str, name: str) -> None:
    settings = get_settings()
    await mailer.send(
        "email_verification",
        email,
        {
            "name": name,
            "app_name": settings.app_name,
            "verification_url": f"{settings.app_url.rstrip('/')}/auth/verify-email?token={token}",
            "expires_in_hours": settings.email_verification_hours,
        },
    )


async def send_password_reset_email(mailer: Mailer, *, email: str, token: str, name: str) -> None:
    settings = get_settings()
    await mailer.send(
        "password_reset",
        email,
        {
            "name": name,
            "reset_url": f"{settings.app_url.rstrip('/')}/auth/reset-password?token={token}",
            "expires_in_minutes": settings.password_reset_minutes,
        },
    )


async def send_two_factor_code_email(mailer: Mailer, *, email: str, code: str, name: str) -> None:
    settings = get_settings()
    await mailer.send(
        "two_factor_code",
        email,
        {
            "name": name,
            "app_name": settings.app_name,
            "code": code,
            "expires_in_minutes": settings.email_2fa_code_minutes,
        },
    )
