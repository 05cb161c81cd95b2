"""
Standardized API Response Module

Provides the uniform envelope returned by every portal endpoint.

RESPONSE FORMAT:
    Success:
        {
            "success": true,
            "data": <response data>
        }

    Error:
        {
            "success": false,
            "error": {
                "code": "ERROR_CODE",
                "message": "Human-readable message",
                "details": {...}  # Optional extra context
            }
        }
"""

from typing import Any, Optional


# ============================================================================
# COMMON ERROR CODES
# ============================================================================

class ErrorCodes:
    """Standard error codes for API responses."""

    # Authentication errors (401)
    AUTHENTICATION_REQUIRED = "AUTHENTICATION_REQUIRED"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"

    # Authorization errors (403)
    AUTHORIZATION_DENIED = "AUTHORIZATION_DENIED"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    NOT_VERIFIED = "NOT_VERIFIED"

    # Not found errors (404)
    NOT_FOUND = "NOT_FOUND"

    # Validation errors (400)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_FORMAT = "INVALID_FORMAT"
    NO_ACTIVE_SESSION = "NO_ACTIVE_SESSION"
    INVALID_OR_EXPIRED_CODE = "INVALID_OR_EXPIRED_CODE"

    # Conflict errors (409)
    CONFLICT = "CONFLICT"

    # Rate limiting (429)
    RATE_LIMITED = "RATE_LIMITED"

    # Server errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    IDENTIFIER_EXHAUSTED = "IDENTIFIER_EXHAUSTED"
    HTTP_ERROR = "HTTP_ERROR"


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def success_response(data: Any) -> dict:
    """
    Create a standardized success response dict.

    Use this for simple responses where Pydantic model isn't needed.
    """
    return {"success": True, "data": data}


def error_response(
    code: str,
    message: str,
    details: Optional[dict] = None,
) -> dict:
    """
    Create a standardized error response dict.

    Stack traces never go in here; callers decide what lands in details.
    """
    response = {
        "success": False,
        "error": {
            "code": code,
            "message": message,
        },
    }
    if details:
        response["error"]["details"] = details
    return response
