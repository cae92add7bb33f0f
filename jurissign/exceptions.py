"""
Custom exceptions and error handlers.

Domain errors used by the signing engine:
- ValidationError: malformed geometry, missing capture, bad step data
- ConflictError / AlreadySignedOrCancelled: terminal state conflicts
- MediaProcessingError: image decode/strip failures, always recovered internally
- DocumentLoadError: the original document cannot be loaded (fatal)
- NotFoundError: generic, never reveals whether a resource ever existed
"""
import logging
from typing import Optional

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from jurissign.config import is_allowed_origin
from jurissign.utils.logging import get_request_id

logger = logging.getLogger(__name__)


def _add_cors_headers(response: JSONResponse, request: Request) -> JSONResponse:
    """Add CORS headers to error response."""
    origin = request.headers.get("origin")
    if origin and is_allowed_origin(origin):
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
        response.headers["Vary"] = "Origin"
    return response


class AppException(HTTPException):
    """Base application exception."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(status_code=status_code, detail=message)

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class NotFoundError(AppException):
    """
    Resource not found.

    The message is deliberately generic: callers cannot tell an unknown id
    from an expired, archived or cancelled one.
    """

    def __init__(self, resource: str = "Resource"):
        super().__init__(
            status_code=404,
            code="NOT_FOUND",
            message=f"{resource} not found",
        )


class ValidationError(AppException):
    """Invalid input for an operation or signing step."""

    def __init__(self, message: str, details: Optional[dict] = None, code: str = "VALIDATION_ERROR"):
        super().__init__(
            status_code=400,
            code=code,
            message=message,
            details=details,
        )


class InvalidTransitionError(ValidationError):
    """Signing step action not allowed from the current step."""

    def __init__(self, current_step: str, action: str):
        super().__init__(
            f"Action '{action}' is not allowed at step '{current_step}'",
            details={"current_step": current_step, "action": action},
            code="INVALID_STEP_TRANSITION",
        )


class ConflictError(AppException):
    """Operation conflicts with the current state of a record."""

    def __init__(self, message: str, code: str = "CONFLICT", details: Optional[dict] = None):
        super().__init__(
            status_code=409,
            code=code,
            message=message,
            details=details,
        )


class AlreadySignedOrCancelled(ConflictError):
    """Signer is no longer pending. Terminal; never retried."""

    def __init__(self, message: str = "Document already signed or cancelled"):
        super().__init__(message, code="ALREADY_SIGNED_OR_CANCELLED")


class MediaProcessingError(AppException):
    """Image could not be decoded or processed."""

    def __init__(self, message: str):
        super().__init__(
            status_code=422,
            code="MEDIA_PROCESSING_ERROR",
            message=message,
        )


class DocumentLoadError(AppException):
    """Original document could not be loaded. Fatal for certification."""

    def __init__(self, message: str):
        super().__init__(
            status_code=422,
            code="DOCUMENT_LOAD_ERROR",
            message=message,
        )


class StorageError(AppException):
    """Object storage operation failed."""

    def __init__(self, message: str):
        super().__init__(
            status_code=502,
            code="STORAGE_ERROR",
            message=message,
        )


class AuthenticationError(AppException):
    """Missing or invalid credentials."""

    def __init__(self, message: str, code: str = "AUTH_ERROR"):
        super().__init__(
            status_code=401,
            code=code,
            message=message,
        )


class RateLimitException(AppException):
    """Rate limit exceeded."""

    def __init__(self, retry_after: int, message: Optional[str] = None):
        super().__init__(
            status_code=429,
            code="RATE_LIMIT_EXCEEDED",
            message=message or f"Too many requests. Please try again in {retry_after} seconds.",
            details={"retry_after": retry_after},
        )


def build_error_response(
    status_code: int,
    code: str,
    message: str,
    details: Optional[dict] = None,
) -> dict:
    """Build standardized error response."""
    response = {
        "error": True,
        "code": code,
        "message": message,
        "request_id": get_request_id(),
    }
    if details:
        response["details"] = details
    return response


async def app_exception_handler(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    """Handle application exceptions."""
    logger.warning(f"AppException: {exc.code} - {exc.message}")
    response = JSONResponse(
        status_code=exc.status_code,
        content=build_error_response(
            exc.status_code,
            exc.code,
            exc.message,
            exc.details,
        ),
    )
    if isinstance(exc, RateLimitException):
        response.headers["Retry-After"] = str(exc.details["retry_after"])
    return _add_cors_headers(response, request)


async def http_exception_handler(
    request: Request,
    exc: HTTPException,
) -> JSONResponse:
    """Handle HTTP exceptions."""
    logger.warning(f"HTTPException: {exc.status_code} - {exc.detail}")

    if isinstance(exc.detail, dict):
        code = exc.detail.get("code", "HTTP_ERROR")
        message = exc.detail.get("message", str(exc.detail))
    else:
        code = "HTTP_ERROR"
        message = str(exc.detail)

    response = JSONResponse(
        status_code=exc.status_code,
        content=build_error_response(exc.status_code, code, message),
    )
    return _add_cors_headers(response, request)


async def validation_exception_handler(
    request: Request,
    exc: PydanticValidationError,
) -> JSONResponse:
    """Handle Pydantic validation errors (request bodies and models)."""
    logger.warning(f"ValidationError: {exc.errors()}")

    errors = []
    for error in exc.errors():
        errors.append({
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        })

    response = JSONResponse(
        status_code=422,
        content=build_error_response(
            422,
            "VALIDATION_ERROR",
            "Request validation failed",
            {"errors": errors},
        ),
    )
    return _add_cors_headers(response, request)


async def generic_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")

    response = JSONResponse(
        status_code=500,
        content=build_error_response(
            500,
            "INTERNAL_ERROR",
            "An unexpected error occurred",
        ),
    )
    return _add_cors_headers(response, request)
