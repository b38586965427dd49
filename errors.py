"""
Error taxonomy shared by every service module, and the FastAPI handlers that
turn it into JSON responses.

Each error carries a stable machine-readable ``code`` (e.g. ``vote_exists``)
alongside its ``kind`` and a human-readable message.
"""

import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import exc as sa_exc

logger = logging.getLogger(__name__)


class AppError(Exception):
    kind = "internal"
    status_code = 500
    default_code = "internal_error"

    def __init__(self, message: str = "", code: str | None = None):
        super().__init__(message or self.kind)
        self.message = message or self.kind
        self.code = code or self.default_code

    def to_dict(self) -> dict:
        return {"error": self.code, "kind": self.kind, "message": self.message}


class BadRequest(AppError):
    kind = "bad_request"
    status_code = 400
    default_code = "bad_request"


class Unauthorized(AppError):
    kind = "unauthorized"
    status_code = 401
    default_code = "invalid_token"


class NotFound(AppError):
    kind = "not_found"
    status_code = 404
    default_code = "not_found"


class Forbidden(AppError):
    kind = "forbidden"
    status_code = 403
    default_code = "forbidden"


class Conflict(AppError):
    kind = "conflict"
    status_code = 409
    default_code = "conflict"


class Locked(AppError):
    kind = "locked"
    status_code = 423
    default_code = "locked"


class Timeout(AppError):
    kind = "timeout"
    status_code = 504
    default_code = "timeout"


class Internal(AppError):
    pass


_TIMEOUT_MARKERS = ("statement timeout", "canceling statement", "lock wait timeout", "database is locked")


def translate_db_error(exc: sa_exc.SQLAlchemyError) -> AppError:
    """Map a storage failure onto the taxonomy (Timeout or Internal)."""
    if isinstance(exc, sa_exc.TimeoutError):
        return Timeout("Database pool timed out", code="db_timeout")
    if isinstance(exc, sa_exc.OperationalError):
        text = str(exc.orig).lower() if exc.orig is not None else str(exc).lower()
        if any(marker in text for marker in _TIMEOUT_MARKERS):
            return Timeout("Database call exceeded its deadline", code="db_timeout")
    return Internal("Database error", code="db_error")


# ── Handlers ─────────────────────────────────────────────────────

async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def db_error_handler(request: Request, exc: sa_exc.SQLAlchemyError) -> JSONResponse:
    logger.error("%s %s storage failure: %s", request.method, request.url.path, exc)
    return await app_error_handler(request, translate_db_error(exc))


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{field}: {first.get('msg', 'invalid value')}" if field else first.get("msg", "invalid request")
    return JSONResponse(
        status_code=400,
        content=BadRequest(message, code="missing_fields").to_dict(),
    )
