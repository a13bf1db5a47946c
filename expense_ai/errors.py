"""Typed application errors and the handlers that serialize them."""
import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from expense_ai.config import get_settings

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Any = None,
    ):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.details = details
        super().__init__(self.message)


class AuthenticationError(AppError):
    status_code = 401
    code = "AUTHENTICATION_FAILED"
    default_message = "Authentication failed"


class InvalidTokenError(AppError):
    status_code = 401
    code = "INVALID_TOKEN"
    default_message = "Invalid or expired token"


class AuthorizationError(AppError):
    status_code = 403
    code = "AUTHORIZATION_FAILED"
    default_message = "Access denied"


class SubscriptionRequiredError(AppError):
    status_code = 403
    code = "SUBSCRIPTION_REQUIRED"
    default_message = "Active subscription required to access this feature"


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Validation failed"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"
    default_message = "Resource conflict"


class DuplicateError(AppError):
    status_code = 409
    code = "DUPLICATE_ERROR"
    default_message = "Resource already exists"


class ExternalServiceError(AppError):
    status_code = 502
    code = "EXTERNAL_SERVICE_ERROR"
    default_message = "External service error"


class RateLimitError(AppError):
    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"
    default_message = "Rate limit exceeded"


def error_body(message: str, code: str, details: Any = None) -> dict:
    body = {"success": False, "message": message, "error": code}
    if details is not None and get_settings().is_development:
        body["details"] = details
    return body


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code} {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, exc.code, exc.details),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    parts = []
    for err in errors:
        location = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path"))
        parts.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    message = "Validation failed: " + ", ".join(parts) if parts else "Validation failed"
    return JSONResponse(
        status_code=400,
        content=error_body(
            message,
            "VALIDATION_ERROR",
            details=[{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in errors],
        ),
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        message = exc.detail if exc.detail != "Not Found" else f"Route {request.url.path} not found"
        code = "ROUTE_NOT_FOUND" if exc.detail == "Not Found" else "NOT_FOUND"
    elif exc.status_code == 401:
        message, code = str(exc.detail), "AUTHENTICATION_FAILED"
    elif exc.status_code == 405:
        message, code = "Method not allowed", "METHOD_NOT_ALLOWED"
    else:
        message, code = str(exc.detail), "HTTP_ERROR"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(message, code),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    settings = get_settings()
    message = str(exc) if settings.is_development else "Internal server error"
    return JSONResponse(status_code=500, content=error_body(message, "INTERNAL_ERROR"))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
