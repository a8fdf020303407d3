"""
HTTP middleware: security headers, CSRF protection, tenant resolution.
"""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from orgkit.core.auth import CSRF_COOKIE, SESSION_COOKIE
from orgkit.core.errors import error_body
from orgkit.core.tenancy import resolve_tenant, should_bypass

SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}

# ---------------------------------------------------------------------------
# Security Headers
# ---------------------------------------------------------------------------

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "0",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
    "Content-Security-Policy": "default-src 'self'; frame-ancestors 'none';",
    "Strict-Transport-Security": "max-age=63072000; includeSubDomains",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        for header, value in SECURITY_HEADERS.items():
            response.headers[header] = value
        return response


# ---------------------------------------------------------------------------
# CSRF Protection (Double-Submit Cookie)
# ---------------------------------------------------------------------------

class CSRFMiddleware(BaseHTTPMiddleware):
    """
    Double-submit cookie CSRF protection.

    Skipped for:
    - Safe HTTP methods (GET, HEAD, OPTIONS)
    - Requests carrying an Authorization header (Bearer tokens, not cookies)
    - Requests without a session cookie
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method in SAFE_METHODS:
            return await call_next(request)

        if request.headers.get("Authorization"):
            return await call_next(request)

        if SESSION_COOKIE not in request.cookies:
            return await call_next(request)

        cookie_token = request.cookies.get(CSRF_COOKIE)
        header_token = request.headers.get("X-CSRF-Token")

        if not cookie_token or not header_token or cookie_token != header_token:
            return JSONResponse(
                status_code=403,
                content=error_body(403, "CSRF_VALIDATION_FAILED", "Invalid or missing CSRF token."),
            )

        return await call_next(request)


# ---------------------------------------------------------------------------
# Tenant resolution
# ---------------------------------------------------------------------------

class TenantMiddleware(BaseHTTPMiddleware):
    """
    Resolve the tenant for page requests.

    ``acme.example.com/dashboard`` is rewritten to ``/acme/dashboard`` so a
    single set of ``/{tenant}/...`` routes serves both addressing styles.
    The result is kept on ``request.state``: ``tenant``, ``is_subdomain``
    and ``original_path``.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        if should_bypass(path):
            return await call_next(request)

        ctx = resolve_tenant(request.headers.get("host", ""), path)
        if ctx.tenant is None:
            return await call_next(request)

        request.state.tenant = ctx.tenant
        request.state.is_subdomain = ctx.is_subdomain
        request.state.original_path = path

        if ctx.is_subdomain:
            rewritten = f"/{ctx.tenant}{path}"
            request.scope["path"] = rewritten
            request.scope["raw_path"] = rewritten.encode()

        response = await call_next(request)
        response.headers["x-tenant"] = ctx.tenant
        response.headers["x-is-subdomain"] = "true" if ctx.is_subdomain else "false"
        return response
