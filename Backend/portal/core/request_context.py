"""
Request Context Resolution Module

This module is the SINGLE SOURCE OF TRUTH for who a client request acts as.

ARCHITECTURE:
    1. resolve_client_context() extracts the credential from the request
    2. An impersonation bearer token is verified by the token issuer, an
       X-Booking-Id header by the session authenticator
    3. Both paths end in SessionAuthenticator.authenticate(), so the
       cancelled-booking policy applies to every session
    4. Nothing is cached: the check runs again on every request

AUTH METHODS:
    - booking_id: the booking ID itself, sent as X-Booking-Id
    - impersonation: admin-issued bearer token scoped to one booking ID
"""

import logging
from dataclasses import dataclass
from typing import Optional, TYPE_CHECKING

from fastapi import Request

from .errors import AuthenticationError

# Deferred import to avoid circular dependency
if TYPE_CHECKING:
    from ..impersonation import ImpersonationTokenIssuer
    from ..repository import ClientRecord
    from ..session_auth import SessionAuthenticator

logger = logging.getLogger(__name__)

AUTH_METHOD_BOOKING_ID = "booking_id"
AUTH_METHOD_IMPERSONATION = "impersonation"


@dataclass
class RequestContext:
    """
    Resolved client session for a single request.

    An impersonated session carries the admin that assumed it, so handlers
    can tell it apart from the client's own session.
    """
    booking_id: str
    auth_method: str
    record: "ClientRecord"

    impersonated_by: Optional[str] = None
    token_id: Optional[str] = None

    # Request metadata
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @property
    def is_impersonation(self) -> bool:
        return self.auth_method == AUTH_METHOD_IMPERSONATION


def extract_bearer_token(request: Request) -> Optional[str]:
    """Return the token from an `Authorization: Bearer <token>` header, if any."""
    auth_header = request.headers.get("Authorization", "")
    parts = auth_header.split()
    if len(parts) == 2 and parts[0].lower() == "bearer" and parts[1]:
        return parts[1]
    return None


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


async def resolve_client_context(
    request: Request,
    authenticator: "SessionAuthenticator",
    issuer: "ImpersonationTokenIssuer",
) -> RequestContext:
    """
    Resolve the client session a request acts as.

    Raises:
        AuthenticationError: no credential supplied
        InvalidFormatError / NotFoundError / BookingCancelledError: from the
            authenticator, for either credential type
    """
    ip_address = get_client_ip(request)
    user_agent = request.headers.get("User-Agent")

    token = extract_bearer_token(request)
    if token:
        verified = await issuer.verify(token)
        logger.info(
            f"Impersonated session for {verified.record.booking_id} by {verified.claims.issued_by}"
        )
        return RequestContext(
            booking_id=verified.record.booking_id,
            auth_method=AUTH_METHOD_IMPERSONATION,
            record=verified.record,
            impersonated_by=verified.claims.issued_by,
            token_id=verified.claims.token_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    booking_id = request.headers.get("X-Booking-Id")
    if not booking_id:
        logger.warning("Client session missing: no X-Booking-Id header or bearer token")
        raise AuthenticationError("No session found")

    record = await authenticator.authenticate(booking_id)
    return RequestContext(
        booking_id=record.booking_id,
        auth_method=AUTH_METHOD_BOOKING_ID,
        record=record,
        ip_address=ip_address,
        user_agent=user_agent,
    )
