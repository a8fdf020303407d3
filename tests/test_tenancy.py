"""
Tests for tenant resolution and the tenant middleware.
"""

from __future__ import annotations

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from orgkit.core.middleware import TenantMiddleware
from orgkit.core.tenancy import (
    TenantContext,
    generate_tenant_slug,
    get_tenant_url,
    is_valid_tenant_slug,
    resolve_tenant,
    should_bypass,
)


class TestResolveTenant:
    def test_subdomain(self):
        assert resolve_tenant("acme.app.example.com", "/dashboard") == TenantContext(
            tenant="acme", is_subdomain=True, hostname="app.example.com"
        )

    def test_subdomain_port_is_stripped(self):
        ctx = resolve_tenant("acme.example.com:8443", "/")
        assert ctx.tenant == "acme"
        assert ctx.hostname == "example.com"

    def test_two_labels_fall_back_to_path(self):
        ctx = resolve_tenant("example.com", "/acme/team")
        assert ctx == TenantContext(tenant="acme", is_subdomain=False, hostname="example.com")

    def test_localhost_is_not_a_tenant(self):
        ctx = resolve_tenant("localhost.example.com", "/acme/dashboard")
        assert ctx.tenant == "acme"
        assert ctx.is_subdomain is False

    def test_ipv4_is_not_a_tenant(self):
        ctx = resolve_tenant("10.0.0.12:3000", "/acme")
        assert ctx == TenantContext(tenant="acme", is_subdomain=False, hostname="10.0.0.12")

    def test_no_tenant(self):
        assert resolve_tenant("localhost:3000", "/") == TenantContext(
            tenant=None, is_subdomain=False, hostname="localhost"
        )

    def test_empty_segments_are_skipped(self):
        assert resolve_tenant("localhost", "//acme//dashboard").tenant == "acme"


class TestShouldBypass:
    @pytest.mark.parametrize(
        "path",
        [
            "/api/v1/orgs",
            "/auth/login",
            "/setup",
            "/static/app.css",
            "/_next/chunk.js",
            "/favicon.ico",
            "/acme/logo.png",
            "/health",
            "/ready",
            "/docs",
            "/openapi.json",
        ],
    )
    def test_bypassed(self, path):
        assert should_bypass(path)

    @pytest.mark.parametrize("path", ["/", "/acme/dashboard", "/apiary/team", "/setup-co/team"])
    def test_resolved(self, path):
        assert not should_bypass(path)


class TestSlugs:
    @pytest.mark.parametrize("slug", ["acme", "acme-co", "a1b", "x" * 50])
    def test_valid(self, slug):
        assert is_valid_tenant_slug(slug)

    @pytest.mark.parametrize("slug", ["ab", "x" * 51, "-acme", "acme-", "Acme", "acme_co", "acme co", ""])
    def test_invalid(self, slug):
        assert not is_valid_tenant_slug(slug)

    def test_generate(self):
        assert generate_tenant_slug("  Acme & Sons, Ltd.  ") == "acme-sons-ltd"
        assert generate_tenant_slug("Hello   World") == "hello-world"
        assert len(generate_tenant_slug("a" * 80)) == 50

    def test_tenant_url(self):
        assert get_tenant_url("acme", "/team", True, "https://app.example.com") == (
            "https://acme.app.example.com/team"
        )
        assert get_tenant_url("acme", "/team", False) == "/acme/team"


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

def _make_app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(TenantMiddleware)

    @app.get("/{tenant}/dashboard")
    async def dashboard(tenant: str, request: Request):
        return {
            "tenant": tenant,
            "state_tenant": getattr(request.state, "tenant", None),
            "is_subdomain": getattr(request.state, "is_subdomain", None),
            "original_path": getattr(request.state, "original_path", None),
        }

    @app.get("/api/ping")
    async def ping(request: Request):
        return {"tenant": getattr(request.state, "tenant", None)}

    return app


class TestTenantMiddleware:
    def test_subdomain_request_is_rewritten(self):
        client = TestClient(_make_app(), base_url="http://acme.example.com")
        resp = client.get("/dashboard")
        assert resp.status_code == 200
        assert resp.json() == {
            "tenant": "acme",
            "state_tenant": "acme",
            "is_subdomain": True,
            "original_path": "/dashboard",
        }
        assert resp.headers["x-tenant"] == "acme"
        assert resp.headers["x-is-subdomain"] == "true"

    def test_path_tenant_is_not_rewritten(self):
        client = TestClient(_make_app(), base_url="http://localhost")
        resp = client.get("/acme/dashboard")
        assert resp.status_code == 200
        assert resp.json()["state_tenant"] == "acme"
        assert resp.json()["is_subdomain"] is False
        assert resp.headers["x-is-subdomain"] == "false"

    def test_bypassed_paths_pass_through(self):
        client = TestClient(_make_app(), base_url="http://acme.example.com")
        resp = client.get("/api/ping")
        assert resp.status_code == 200
        assert resp.json() == {"tenant": None}
        assert "x-tenant" not in resp.headers
