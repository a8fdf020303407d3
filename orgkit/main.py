"""
orgkit API Server

Entry point for the FastAPI application.
"""

import structlog
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from orgkit.api.v1 import router as api_v1_router
from orgkit.api.v1.auth import router as auth_router
from orgkit.api.v1.pages import router as pages_router
from orgkit.core.config import get_settings
from orgkit.core.database import get_session, init_db
from orgkit.core.errors import register_exception_handlers
from orgkit.core.features import get_feature_flags
from orgkit.core.logging import configure_logging
from orgkit.core.middleware import CSRFMiddleware, SecurityHeadersMiddleware, TenantMiddleware
from orgkit.core.redis import close_redis

settings = get_settings()
log = structlog.get_logger()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="orgkit",
        description="Multi-tenant organizations, memberships and invitations.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    register_exception_handlers(app)

    # Middleware (last added runs first)
    app.add_middleware(TenantMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(CSRFMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-CSRF-Token"],
    )

    app.include_router(auth_router, prefix="/auth", tags=["Authentication"])
    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Liveness check."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check(session: AsyncSession = Depends(get_session)):
        """Readiness check: the database answers."""
        await session.execute(text("SELECT 1"))
        return {"status": "ready"}

    # Tenant pages last: /{tenant}/... must not shadow the routes above
    app.include_router(pages_router, tags=["Pages"])

    @app.on_event("startup")
    async def on_startup():
        log.info(
            "orgkit.starting",
            features=get_feature_flags().enabled_keys(),
            log_format=settings.log_format,
        )
        if settings.debug:
            await init_db()

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("orgkit.shutting_down")
        await close_redis()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)
