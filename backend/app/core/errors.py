import enum
import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ErrorCode(str, enum.Enum):
    validation_error = "VALIDATION_ERROR"
    password_mismatch = "PASSWORD_MISMATCH"
    invalid_credentials = "INVALID_CREDENTIALS"
    rate_limited = "RATE_LIMITED"
    weak_password = "WEAK_PASSWORD"
    password_reused = "PASSWORD_REUSED"
    invalid_or_expired_token = "INVALID_OR_EXPIRED_TOKEN"
    unauthorized = "UNAUTHORIZED"
    forbidden = "FORBIDDEN"
    not_found = "NOT_FOUND"
    conflict = "CONFLICT"
    internal_error = "INTERNAL_ERROR"


_STATUS_CODES: dict[int, ErrorCode] = {
    400: ErrorCode.validation_error,
    401: ErrorCode.unauthorized,
    403: ErrorCode.forbidden,
    404: ErrorCode.not_found,
    409: ErrorCode.conflict,
    429: ErrorCode.rate_limited,
}


class PasswordPolicyError(Exception):
    """A policy gate refused the request. Rendered as a structured error response."""

    def __init__(self, code: ErrorCode, message: str, status_code: int = 400, data: dict[str, Any] | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.data = data or {}


def error_response(status_code: int, code: ErrorCode, message: str, data: dict[str, Any] | None = None) -> JSONResponse:
    content: dict[str, Any] = {"code": code.value, "message": message}
    if data:
        content["data"] = jsonable_encoder(data)
    return JSONResponse(status_code=status_code, content=content)


async def policy_error_handler(request: Request, exc: PasswordPolicyError):
    return error_response(exc.status_code, exc.code, exc.message, exc.data)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    return error_response(400, ErrorCode.validation_error, "Request validation failed", {"errors": errors})


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    code = _STATUS_CODES.get(exc.status_code, ErrorCode.internal_error if exc.status_code >= 500 else ErrorCode.validation_error)
    response = error_response(exc.status_code, code, str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    logger.warning("Admission limit hit on %s: %s", request.url.path, exc.detail)
    return error_response(429, ErrorCode.rate_limited, "Too many requests, please try again later")


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(500, ErrorCode.internal_error, "Internal server error")


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PasswordPolicyError, policy_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
