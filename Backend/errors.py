"""
Error taxonomy and the handlers that turn every failure into the JSON envelope
``{success: false, error, message, code, timestamp}``.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

UNAUTHORIZED_MESSAGE = "Valid authentication token required"


class ApiError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code


class BadRequestError(ApiError):
    status_code = 400


class AuthError(ApiError):
    status_code = 401


class NotFoundError(ApiError):
    status_code = 404


class ConflictError(ApiError):
    status_code = 409


class OAuthError(ApiError):
    status_code = 400


def error_response(status_code: int, error: str, message: Optional[str] = None,
                   data: Any = None, headers: Optional[dict] = None) -> JSONResponse:
    body = {
        "success": False,
        "error": error,
        "message": message or error,
        "code": status_code,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if data is not None:
        body["data"] = jsonable_encoder(data)
    return JSONResponse(status_code=status_code, content=body, headers=headers)


# ── Handlers ─────────────────────────────────────────────────────

async def _api_error_handler(request: Request, exc: ApiError):
    return error_response(exc.status_code, exc.message, exc.detail)


async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 401:
        return error_response(401, "Unauthorized", UNAUTHORIZED_MESSAGE)
    return error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


async def _validation_error_handler(request: Request, exc: RequestValidationError):
    return error_response(422, "Validation failed", "Request body or parameters are invalid",
                          data=exc.errors())


async def _rate_limit_handler(request: Request, exc: RateLimitExceeded):
    retry_after = "60"
    limit = getattr(exc, "limit", None)
    if limit is not None:
        retry_after = str(limit.limit.get_expiry())
    return error_response(429, "Rate limit exceeded", f"Rate limit exceeded: {exc.detail}",
                          headers={"Retry-After": retry_after})


async def _unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return error_response(500, "Internal Server Error")


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(ApiError, _api_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
