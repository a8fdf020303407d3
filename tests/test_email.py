"""
Tests for e-mail rendering, message builders and domain helpers.
"""

from __future__ import annotations

import pytest
from structlog.testing import capture_logs

from orgkit.core.email import (
    EmailError,
    LogMailer,
    render,
    send_invitation_email,
    send_ownership_transfer_email,
    send_password_reset_email,
    send_two_factor_code_email,
)
from orgkit.core.email_domain import get_email_domain, is_personal_email_domain, normalize_email


class TestRender:
    def test_invitation(self):
        subject, body = render(
            "invitation",
            {
                "organization_name": "Acme",
                "inviter_name": "Olivia",
                "app_name": "orgkit",
                "accept_url": "http://x/accept-invite?token=t",
                "expires_in_days": 7,
            },
        )
        assert subject == "You've been invited to join Acme"
        assert "http://x/accept-invite?token=t" in body

    def test_unknown_template(self):
        with pytest.raises(EmailError):
            render("newsletter", {})

    def test_missing_variable(self):
        with pytest.raises(EmailError):
            render("ownership_transfer", {"organization_name": "Acme"})


class TestBuilders:
    async def test_invitation_link(self, mailer):
        await send_invitation_email(
            mailer, email="new@acme.io", token="tok123", organization_name="Acme", inviter_name="Olivia"
        )
        [(template, recipient, variables)] = mailer.sent
        assert (template, recipient) == ("invitation", "new@acme.io")
        assert variables["accept_url"].endswith("/accept-invite?token=tok123")
        assert variables["expires_in_days"] == 7

    async def test_transfer_dashboard_link(self, mailer):
        await send_ownership_transfer_email(
            mailer,
            email="alice@acme.io",
            organization_name="Acme",
            organization_slug="acme",
            new_owner_name="Alice",
            previous_owner_name="Olivia",
        )
        [(_, _, variables)] = mailer.sent
        assert variables["dashboard_url"].endswith("/acme/dashboard")

    async def test_log_mailer_logs_subject(self):
        with capture_logs() as logs:
            await send_ownership_transfer_email(
                LogMailer(),
                email="alice@acme.io",
                organization_name="Acme",
                organization_slug="acme",
                new_owner_name="Alice",
                previous_owner_name="Olivia",
            )
        [entry] = [e for e in logs if e["event"] == "email.sent"]
        assert entry["subject"] == "You're now the owner of Acme"
        assert entry["to"] == "alice@acme.io"

    async def test_password_reset_link(self, mailer):
        await send_password_reset_email(mailer, email="bob@acme.io", token="abc", name="Bob")
        [(template, _, variables)] = mailer.sent
        assert template == "password_reset"
        assert variables["reset_url"].endswith("/auth/reset-password?token=abc")
        subject, body = render(template, variables)
        assert subject == "Reset your password"
        assert "60 minutes" in body

    async def test_code_stays_out_of_the_log(self):
        with capture_logs() as logs:
            await send_two_factor_code_email(LogMailer(), email="bob@acme.io", code="123456", name="Bob")
        [entry] = [e for e in logs if e["event"] == "email.sent"]
        assert entry["subject"] == "Your orgkit sign-in code"
        assert "123456" not in str(entry)


class TestEmailDomain:
    def test_normalize(self):
        assert normalize_email("  Bob@Acme.IO ") == "bob@acme.io"

    def test_domain(self):
        assert get_email_domain("bob@Acme.io") == "acme.io"
        assert get_email_domain("not-an-email") is None

    @pytest.mark.parametrize("domain", ["gmail.com", "OUTLOOK.com", "hotmail.com"])
    def test_personal(self, domain):
        assert is_personal_email_domain(domain)

    def test_business(self):
        assert not is_personal_email_domain("acme.io")
