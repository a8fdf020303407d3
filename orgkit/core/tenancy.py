"""
Tenant resolution.

A tenant is addressed either by subdomain (``acme.app.example.com``) or by
the first path segment (``app.example.com/acme/...``). Everything here is
pure; the ASGI wiring lives in ``orgkit.core.middleware``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

_IPV4_RE = re.compile(r"^\d+\.\d+\.\d+\.\d+$")
_SLUG_RE = re.compile(r"^[a-z0-9-]{3,50}$")

BYPASS_PREFIXES = (
    "/static",
    "/_next",
    "/favicon.ico",
    "/api",
    "/auth",
    "/setup",
    "/health",
    "/ready",
    "/docs",
    "/redoc",
    "/openapi.json",
)


@dataclass(frozen=True)
class TenantContext:
    tenant: Optional[str]
    is_subdomain: bool
    hostname: str


def _strip_port(host: str) -> str:
    return host.split(":", 1)[0].strip().lower()


def resolve_tenant(host: str, path: str) -> TenantContext:
    """Resolve the tenant for a request from its Host header and path."""
    hostname = _strip_port(host or "")

    parts = hostname.split(".")
    if len(parts) >= 3 and parts[0] != "localhost" and not _IPV4_RE.match(hostname):
        return TenantContext(
            tenant=parts[0],
            is_subdomain=True,
            hostname=".".join(parts[1:]),
        )

    segments = [s for s in (path or "").split("/") if s]
    if segments:
        return TenantContext(tenant=segments[0], is_subdomain=False, hostname=hostname)

    return TenantContext(tenant=None, is_subdomain=False, hostname=hostname)


def _matches_prefix(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix + "/")


def should_bypass(path: str) -> bool:
    """True for static assets, API/auth routes and health checks."""
    if any(_matches_prefix(path, prefix) for prefix in BYPASS_PREFIXES):
        return True
    last_segment = path.rstrip("/").rsplit("/", 1)[-1]
    return "." in last_segment


def is_valid_tenant_slug(slug: str) -> bool:
    return bool(_SLUG_RE.match(slug or "")) and not slug.startswith("-") and not slug.endswith("-")


def generate_tenant_slug(name: str) -> str:
    """Derive a slug candidate from an organization display name."""
    slug = name.lower()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug[:50].strip("-")


def get_tenant_url(
    tenant: str,
    path: str = "",
    is_subdomain: bool = True,
    base_url: str = "http://localhost:3000",
) -> str:
    if is_subdomain:
        domain = urlsplit(base_url).hostname or "localhost"
        return f"https://{tenant}.{domain}{path}"
    return f"/{tenant}{path}"
