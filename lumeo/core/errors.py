import logging

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from lumeo.core.request_id import request_id_ctx


logger = logging.getLogger(__name__)


class SignupError(Exception):
    """Base class for errors surfaced by the signup flow"""

    status_code = 500
    code = "SIGNUP_ERROR"
    message = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class SignupValidationError(SignupError):
    status_code = 400
    code = "VALIDATION_ERROR"
    message = "A valid email is required"


class DuplicateSignupError(SignupError):
    """Unique constraint on email hit by a concurrent insert; never sent to clients"""

    status_code = 409
    code = "DUPLICATE_SIGNUP"
    message = "Email already registered"


class InvalidConfirmationError(SignupError):
    status_code = 400
    code = "INVALID_CONFIRMATION"
    message = "Invalid or expired confirmation link"


class SignupRateLimitedError(SignupError):
    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"
    message = "Too many attempts. Please wait a minute and try again."

    def __init__(self, retry_after: int | None = None):
        super().__init__()
        self.retry_after = retry_after


class StoreUnavailableError(SignupError):
    status_code = 500
    code = "STORE_UNAVAILABLE"
    message = "Internal server error"


class EmailDeliveryError(Exception):
    """Raised by email backends; EmailService.send_email turns it into False"""


def _get_request_id(request: Request) -> str:
    header_request_id = request.headers.get("X-Request-ID")
    if header_request_id:
        return header_request_id
    return request_id_ctx.get() or ""


def _error_response(request: Request, status_code: int, error: str, code: str, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "code": code,
            "request_id": _get_request_id(request),
        },
        headers=headers,
    )


def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return _error_response(request, exc.status_code, str(exc.detail), "HTTP_EXCEPTION", getattr(exc, "headers", None))


def starlette_http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error_response(request, exc.status_code, str(exc.detail), "HTTP_EXCEPTION")


def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = SignupValidationError.message
    if errors:
        first = errors[0]
        field = first.get("loc", [])[-1] if first.get("loc") else None
        if first.get("type") == "value_error":
            message = str(first.get("ctx", {}).get("error", first.get("msg", message)))
        elif field == "token":
            message = "Token is required"
        elif field == "source":
            message = "Source must be a string of at most 64 characters"
    return _error_response(request, 400, message, SignupValidationError.code)


def signup_error_handler(request: Request, exc: SignupError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Signup flow failure: %s", exc.__class__.__name__)
    retry_after = getattr(exc, "retry_after", None)
    headers = {"Retry-After": str(retry_after)} if retry_after else None
    return _error_response(request, exc.status_code, exc.message, exc.code, headers)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    retry_after = getattr(exc, "retry_after", None)
    return _error_response(
        request,
        429,
        SignupRateLimitedError.message,
        SignupRateLimitedError.code,
        headers={"Retry-After": str(retry_after)} if retry_after else None,
    )


def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error", extra={"request_id": _get_request_id(request)})
    return _error_response(request, 500, "Internal server error", "INTERNAL_ERROR")


def register_exception_handlers(app) -> None:
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, starlette_http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SignupError, signup_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
