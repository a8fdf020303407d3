"""
Error taxonomy shared by services and API handlers.

Services raise these directly; FastAPI renders them through the handlers
registered in ``register_exception_handlers``.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

log = structlog.get_logger()


class AppError(HTTPException):
    """Base class for expected, user-facing failures."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(status_code=self.status_code, detail=message)
        if code is not None:
            self.code = code

    @property
    def message(self) -> str:
        return str(self.detail)


class Unauthorized(AppError):
    status_code = 401
    code = "unauthorized"


class Forbidden(AppError):
    status_code = 403
    code = "forbidden"


class NotFound(AppError):
    status_code = 404
    code = "not_found"


class Conflict(AppError):
    status_code = 409
    code = "conflict"


class Expired(AppError):
    status_code = 410
    code = "expired"


class ValidationError(AppError):
    status_code = 400
    code = "validation_error"

    def __init__(self, message: str, *, field: str | None = None, code: str | None = None):
        super().__init__(message, code=code)
        self.field = field


class Locked(AppError):
    status_code = 423
    code = "locked"


def error_body(status: int, code: str, message: str, **extra) -> dict:
    return {"error": {"code": code, "message": message, "status": status, **extra}}


async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    extra = {}
    if isinstance(exc, ValidationError) and exc.field:
        extra["field"] = exc.field
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, exc.code, exc.message, **extra),
        headers=exc.headers,
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log.error("request.unhandled_error", path=request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content=error_body(500, "internal_error", "Something went wrong. Please try again."),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, _app_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
