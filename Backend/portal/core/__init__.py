"""
Core module - configuration, clock, errors, request context, and response formatting.
"""
from .clock import utc_now
from .config import get_settings
from .errors import (
    PortalError,
    ValidationError,
    InvalidFormatError,
    NotFoundError,
    NoActiveSessionError,
    InvalidOrExpiredCodeError,
    BookingCancelledError,
    NotVerifiedError,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    IdentifierExhaustedError,
    register_exception_handlers,
)
from .request_context import (
    RequestContext,
    resolve_client_context,
    extract_bearer_token,
    get_client_ip,
)
from .responses import (
    ErrorCodes,
    success_response,
    error_response,
)

__all__ = [
    # Config
    "get_settings",
    # Clock
    "utc_now",
    # Errors
    "PortalError",
    "ValidationError",
    "InvalidFormatError",
    "NotFoundError",
    "NoActiveSessionError",
    "InvalidOrExpiredCodeError",
    "BookingCancelledError",
    "NotVerifiedError",
    "AuthenticationError",
    "AuthorizationError",
    "ConflictError",
    "IdentifierExhaustedError",
    "register_exception_handlers",
    # Request Context
    "RequestContext",
    "resolve_client_context",
    "extract_bearer_token",
    "get_client_ip",
    # Responses
    "ErrorCodes",
    "success_response",
    "error_response",
]
