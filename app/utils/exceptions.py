import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from app.utils.response import error_response

logger = logging.getLogger(__name__)


class AppException(Exception):
    status_code = 400

    def __init__(self, message: str, status_code: int | None = None, **extra):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra


class ValidationError(AppException):
    status_code = 400


class AuthError(AppException):
    """Missing, unknown, expired or unverified guest session."""

    status_code = 401

    def __init__(self, reason: str, message: str = "Authentication required"):
        super().__init__(message, reason=reason, requiresAuth=True)
        self.reason = reason


class ForbiddenError(AppException):
    status_code = 403


class NotFoundError(AppException):
    status_code = 404


class PayloadTooLargeError(AppException):
    status_code = 413


class RateLimitedError(AppException):
    status_code = 429

    def __init__(self, wait_time: int):
        super().__init__(
            f"Please wait {wait_time} seconds before requesting a new OTP",
            waitTime=wait_time,
        )
        self.wait_time = wait_time


class TransportError(AppException):
    """An external call (SMS gateway, object storage) failed."""

    status_code = 500


def _describe_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "form"))
    if first.get("type") == "missing":
        return f"{field} is required" if field else "Missing required field"
    return f"Invalid {field}: {first.get('msg')}" if field else str(first.get("msg"))


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(exc.message, **exc.extra),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content=error_response(_describe_validation_error(exc)),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=error_response("Internal server error"),
        )
