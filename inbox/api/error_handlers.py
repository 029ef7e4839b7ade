"""
Exception handlers for FastAPI.

Every error leaves the API in the same envelope:
    {"success": false, "error": <type>, "message": <text>, "details": {...}}
"""

import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from inbox.core.exceptions import (
    InboxException,
    DatabaseError,
    ExternalAPIError,
    ValidationError,
    AuthenticationError,
    PermissionDeniedError,
    NotFoundError,
)

logger = logging.getLogger(__name__)


def _status_for(exc: InboxException) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, AuthenticationError):
        return 401
    if isinstance(exc, PermissionDeniedError):
        return 403
    if isinstance(exc, ExternalAPIError):
        # Upstream 4xx are the caller's problem (bad id, missing permission)
        if exc.status_code in (400, 401, 403, 404, 429):
            return exc.status_code
        return 502
    if isinstance(exc, DatabaseError):
        return 503
    return 500


def error_body(error: str, message: str, details: dict = None) -> dict:
    return {"success": False, "error": error, "message": message, "details": details or {}}


async def inbox_exception_handler(request: Request, exc: InboxException) -> JSONResponse:
    """Handler for every domain exception."""
    status_code = _status_for(exc)
    error_type = exc.__class__.__name__

    logger.error(
        f"{error_type}: {exc.message}",
        extra={"error_type": error_type, "details": exc.details, "path": request.url.path},
    )

    return JSONResponse(
        status_code=status_code,
        content=error_body(error_type, exc.message, exc.details),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Missing or malformed request fields."""
    logger.warning(f"Invalid request on {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=400,
        content=error_body(
            "ValidationError",
            "Invalid request",
            {"errors": [{"loc": list(e.get("loc", [])), "msg": e.get("msg")} for e in exc.errors()]},
        ),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception(f"Unhandled error: {exc}", extra={"path": request.url.path})

    return JSONResponse(
        status_code=500,
        content=error_body("InternalServerError", "Internal server error"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register every exception handler on the app.

    Usage:
        from inbox.api.error_handlers import register_exception_handlers

        app = FastAPI()
        register_exception_handlers(app)
    """
    app.add_exception_handler(InboxException, inbox_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
