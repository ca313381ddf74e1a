"""
Typed API errors and the handlers that turn them into the response envelope.

Handlers and services raise these; only the exception handlers registered in
``main.py`` decide what the client sees.
"""
from __future__ import annotations

from typing import Any, List, Optional

import structlog
from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = structlog.get_logger(__name__)


class ApiError(HTTPException):
    status = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Any]] = None):
        super().__init__(status_code=self.status, detail=message or self.default_message)
        self.errors = errors or []

    @property
    def message(self) -> str:
        return self.detail


class ValidationError(ApiError):
    status = 400
    default_message = "Invalid request"


class Unauthorized(ApiError):
    status = 401
    default_message = "Unauthorized request"


class Forbidden(ApiError):
    status = 403
    default_message = "You are not allowed to perform this action"


class NotFoundError(ApiError):
    status = 404
    default_message = "Resource not found"


class ConflictError(ApiError):
    status = 409
    default_message = "Resource already exists"


class UpstreamFailure(ApiError):
    status = 500
    default_message = "Something went wrong while talking to an upstream service"


def error_body(status_code: int, message: str, errors: Optional[List[Any]] = None) -> dict:
    return {
        "statusCode": status_code,
        "success": False,
        "message": message,
        "data": None,
        "errors": errors or [],
    }


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    errors = getattr(exc, "errors", [])
    if exc.status_code >= 500:
        # Upstream details stay in the log.
        logger.error("request_failed", path=request.url.path, status=exc.status_code, detail=exc.detail)
        message = UpstreamFailure.default_message if isinstance(exc, UpstreamFailure) else ApiError.default_message
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.status_code, message))
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, str(exc.detail), errors),
        headers=getattr(exc, "headers", None),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": ".".join(str(part) for part in err.get("loc", ())), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content=error_body(400, "Invalid request", errors))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", path=request.url.path)
    return JSONResponse(status_code=500, content=error_body(500, ApiError.default_message))
