"""
Error taxonomy for the booking portal.

Every failure the core can report is a PortalError subclass carrying the
HTTP status, a stable machine-readable code and a human-readable message.
Exception handlers registered on the app turn these into the uniform
response envelope (see responses.py), so route handlers simply raise.

ERROR CODES:
    - VALIDATION_ERROR: Malformed input, caller must correct it
    - INVALID_FORMAT: Booking ID does not match ^[A-Z0-9]{8}$
    - NOT_FOUND: Unknown booking ID or submission
    - NO_ACTIVE_SESSION: No pending submission for this email
    - INVALID_OR_EXPIRED_CODE: OTP mismatch, expiry or lockout
    - BOOKING_CANCELLED: Booking is cancelled (terminal)
    - NOT_VERIFIED: Record exists but is flagged unverified
    - AUTHENTICATION_REQUIRED / INVALID_TOKEN / TOKEN_EXPIRED
    - AUTHORIZATION_DENIED: Authenticated but not allowed
    - CONFLICT: Persistence uniqueness violation
    - IDENTIFIER_EXHAUSTED: Allocator hit its collision ceiling
"""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import get_settings
from .responses import ErrorCodes, error_response

logger = logging.getLogger(__name__)


class PortalError(Exception):
    """Base class for every error surfaced through the response envelope."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = ErrorCodes.INTERNAL_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Optional[dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ValidationError(PortalError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = ErrorCodes.VALIDATION_ERROR
    default_message = "Validation failed"


class InvalidFormatError(PortalError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = ErrorCodes.INVALID_FORMAT
    default_message = "Invalid booking ID format. Must be 8 alphanumeric characters."


class NotFoundError(PortalError):
    status_code = status.HTTP_404_NOT_FOUND
    code = ErrorCodes.NOT_FOUND
    default_message = "Booking ID not found. Please check your booking confirmation."


class NoActiveSessionError(PortalError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = ErrorCodes.NO_ACTIVE_SESSION
    default_message = "No active OTP session found for this email"


class InvalidOrExpiredCodeError(PortalError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = ErrorCodes.INVALID_OR_EXPIRED_CODE
    default_message = "Invalid or expired verification code. Please request a new one."


class BookingCancelledError(PortalError):
    status_code = status.HTTP_403_FORBIDDEN
    code = ErrorCodes.BOOKING_CANCELLED
    default_message = "This booking has been cancelled. Please contact your coordinator."


class NotVerifiedError(PortalError):
    status_code = status.HTTP_403_FORBIDDEN
    code = ErrorCodes.NOT_VERIFIED
    default_message = "Booking ID is not verified. Please contact your coordinator."


class AuthenticationError(PortalError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = ErrorCodes.AUTHENTICATION_REQUIRED
    default_message = "Authentication required"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message, details)
        if code:
            self.code = code


class AuthorizationError(PortalError):
    status_code = status.HTTP_403_FORBIDDEN
    code = ErrorCodes.AUTHORIZATION_DENIED
    default_message = "Forbidden: Not an admin"


class ConflictError(PortalError):
    """Raised by persistence when a booking ID is already taken."""

    status_code = status.HTTP_409_CONFLICT
    code = ErrorCodes.CONFLICT
    default_message = "Booking ID already exists"


class IdentifierExhaustedError(PortalError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = ErrorCodes.IDENTIFIER_EXHAUSTED
    default_message = "Unable to generate unique booking ID"


# ============================================================================
# FASTAPI EXCEPTION HANDLERS
# ============================================================================

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(PortalError)
    async def portal_error_handler(request: Request, exc: PortalError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(exc.code, exc.message, exc.details),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {"loc": list(err.get("loc", ())), "message": err.get("msg", "")}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_response(ErrorCodes.VALIDATION_ERROR, "Validation failed", {"errors": errors}),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            code = ErrorCodes.NOT_FOUND
        elif exc.status_code == status.HTTP_429_TOO_MANY_REQUESTS:
            code = ErrorCodes.RATE_LIMITED
        else:
            code = ErrorCodes.HTTP_ERROR
        detail: Any = exc.detail
        if isinstance(detail, dict):
            message = detail.get("message", "HTTP error")
            details = detail
        else:
            message = str(detail)
            details = None
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(code, message, details),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        details = {"exception": str(exc)} if get_settings().is_development else None
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_response(ErrorCodes.INTERNAL_ERROR, "Internal server error", details),
        )
