"""
Error Handling
==============

Standardized error codes and exception handlers.
"""

import logging
from typing import Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# =============================================================================
# Error Codes
# =============================================================================

class ErrorCodes:
    """Standardized error codes."""

    # Streams (STREAM_001 - STREAM_010)
    STREAM_NOT_FOUND = "STREAM_001"
    STREAM_INACTIVE = "STREAM_002"
    STREAM_NO_FRAME = "STREAM_003"
    STREAM_SEGMENT_NOT_FOUND = "STREAM_004"
    STREAM_PAYLOAD_TOO_LARGE = "STREAM_005"
    STREAM_EMPTY_PAYLOAD = "STREAM_006"

    # Live Activities (ACTIVITY_001 - ACTIVITY_010)
    ACTIVITY_DUPLICATE = "ACTIVITY_001"
    ACTIVITY_INVALID_TOKEN = "ACTIVITY_002"
    ACTIVITY_INVALID_PAYLOAD = "ACTIVITY_003"
    ACTIVITY_DELIVERY_FAILED = "ACTIVITY_004"

    # General
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"


# =============================================================================
# Custom Exceptions
# =============================================================================

class AppException(HTTPException):
    """Base application exception with structured error response."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        field: Optional[str] = None,
        **extra,
    ):
        self.code = code
        self.message = message
        self.field = field
        self.extra = extra

        detail = {
            "code": code,
            "message": message,
        }

        if field:
            detail["field"] = field

        detail.update(extra)

        super().__init__(status_code=status_code, detail=detail)


class NotFoundError(AppException):
    """Resource not found errors."""

    def __init__(
        self,
        code: str = ErrorCodes.NOT_FOUND,
        message: str = "Resource not found",
        **extra,
    ):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            code=code,
            message=message,
            **extra,
        )


class ConflictError(AppException):
    """Resource conflict errors."""

    def __init__(
        self,
        code: str,
        message: str,
        **extra,
    ):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            code=code,
            message=message,
            **extra,
        )


class ValidationError(AppException):
    """Validation errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        code: str = ErrorCodes.VALIDATION_ERROR,
        **extra,
    ):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            code=code,
            message=message,
            field=field,
            **extra,
        )


# -----------------------------------------------------------------------------
# Stream errors
# -----------------------------------------------------------------------------

class SessionNotFoundError(NotFoundError):
    """Session was never created or has already been evicted."""

    def __init__(self, key: str, kind: str = "stream"):
        super().__init__(
            code=ErrorCodes.STREAM_NOT_FOUND,
            message=f"No {kind} session found for '{key}'",
            key=key,
        )


class SessionInactiveError(ConflictError):
    """Session exists but has been stopped."""

    def __init__(self, key: str, kind: str = "stream"):
        super().__init__(
            code=ErrorCodes.STREAM_INACTIVE,
            message=f"The {kind} session '{key}' has been stopped",
            key=key,
        )


class NoFrameDataError(NotFoundError):
    """No frame has been uploaded to the session yet."""

    def __init__(self, key: Optional[str] = None):
        extra = {"key": key} if key else {}
        super().__init__(
            code=ErrorCodes.STREAM_NO_FRAME,
            message="No frame data available",
            **extra,
        )


class SegmentNotFoundError(NotFoundError):
    """Segment was evicted from the window or never existed."""

    def __init__(self, filename: str):
        super().__init__(
            code=ErrorCodes.STREAM_SEGMENT_NOT_FOUND,
            message="Video segment not found",
            filename=filename,
        )


class PayloadTooLargeError(AppException):
    """Uploaded body exceeds the configured size limit."""

    def __init__(self, max_size_mb: int, field: str = "payload"):
        super().__init__(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            code=ErrorCodes.STREAM_PAYLOAD_TOO_LARGE,
            message=f"Payload too large. Maximum size is {max_size_mb}MB",
            field=field,
        )


# -----------------------------------------------------------------------------
# Live Activity errors
# -----------------------------------------------------------------------------

class DuplicateActivityError(ConflictError):
    """A start was attempted for an activity that is already live."""

    def __init__(self, activity_id: str):
        super().__init__(
            code=ErrorCodes.ACTIVITY_DUPLICATE,
            message=f"Duplicate ride request - activity {activity_id} already exists",
            activity_id=activity_id,
        )


class InvalidTokenError(ValidationError):
    """Push token failed the format check."""

    def __init__(self, message: str = "Invalid push token"):
        super().__init__(
            message=message,
            field="push_token",
            code=ErrorCodes.ACTIVITY_INVALID_TOKEN,
        )


class InvalidPayloadError(ValidationError):
    """Content state or attributes blob could not be decoded."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message=message,
            field=field,
            code=ErrorCodes.ACTIVITY_INVALID_PAYLOAD,
        )


# =============================================================================
# Exception Handlers
# =============================================================================

async def app_exception_handler(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    """Handler for AppException."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.detail,
        },
        headers=getattr(exc, "headers", None),
    )


async def http_exception_handler(
    request: Request,
    exc: HTTPException,
) -> JSONResponse:
    """Handler for standard HTTPException."""
    # Check if detail is already structured
    if isinstance(exc.detail, dict) and "code" in exc.detail:
        error = exc.detail
    else:
        error = {
            "code": "HTTP_ERROR",
            "message": str(exc.detail),
        }

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": error,
        },
    )


async def validation_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handler for request validation errors."""
    errors = exc.errors() if hasattr(exc, "errors") else []
    if errors:
        first_error = errors[0]
        field = ".".join(str(loc) for loc in first_error.get("loc", []))
        message = first_error.get("msg", "Validation error")
    else:
        field = None
        message = str(exc) or "Validation error"

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "success": False,
            "error": {
                "code": ErrorCodes.VALIDATION_ERROR,
                "message": message,
                "field": field,
            },
        },
    )


async def global_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.error(
        "Unhandled error on %s %s: %s: %s",
        request.method,
        request.url.path,
        type(exc).__name__,
        exc,
        exc_info=exc,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": {
                "code": ErrorCodes.INTERNAL_ERROR,
                "message": "An unexpected error occurred",
            },
        },
    )


def setup_exception_handlers(app):
    """
    Register exception handlers with FastAPI app.

    Usage:
        from app.core.errors import setup_exception_handlers
        setup_exception_handlers(app)
    """
    from fastapi.exceptions import RequestValidationError

    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
