"""
Client session endpoints.

The booking ID is the client's credential. There is no server-side session:
the client keeps the booking ID and sends it as X-Booking-Id, and every
request re-runs the authenticator so a cancelled booking is locked out
immediately. An admin holding an impersonation token sends it as a bearer
header instead.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request

from ..core.config import get_settings
from ..core.errors import AuthorizationError
from ..core.request_context import RequestContext, extract_bearer_token
from ..core.responses import success_response
from ..dependencies import get_authenticator, get_client_context, get_token_issuer
from ..identifiers import normalize_booking_id
from ..impersonation import ImpersonationTokenIssuer
from ..rate_limiter import rate_limit_dependency
from ..repository import ClientRecord
from ..session_auth import SessionAuthenticator
from .schemas import CamelRequest

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/api", tags=["auth"])

login_rate_limit = rate_limit_dependency("login", settings.login_rate_limit)


class LoginRequest(CamelRequest):
    booking_id: str


def _session_payload(record: ClientRecord, impersonated_by: Optional[str] = None) -> dict:
    return {
        "client": record.summary(),
        "impersonation": {"active": impersonated_by is not None, "admin": impersonated_by},
    }


@router.post("/auth/login", dependencies=[Depends(login_rate_limit)])
async def login(
    body: LoginRequest,
    request: Request,
    authenticator: SessionAuthenticator = Depends(get_authenticator),
    issuer: ImpersonationTokenIssuer = Depends(get_token_issuer),
):
    """
    Log in with a booking ID.

    With an impersonation bearer token the token must be scoped to the same
    booking ID; the client's last-login time is left alone in that case.
    """
    token = extract_bearer_token(request)
    if token:
        verified = await issuer.verify(token)
        if verified.record.booking_id != normalize_booking_id(body.booking_id):
            logger.warning(
                f"Impersonation token for {verified.record.booking_id} used to log in as another booking"
            )
            raise AuthorizationError("Impersonation token is not valid for this booking")
        data = _session_payload(verified.record, verified.claims.issued_by)
    else:
        record = await authenticator.login(body.booking_id)
        data = _session_payload(record)

    data["message"] = "Authentication successful"
    return success_response(data)


@router.get("/auth/verify-session")
async def verify_session(context: RequestContext = Depends(get_client_context)):
    data = _session_payload(context.record, context.impersonated_by)
    data["valid"] = True
    return success_response(data)


@router.post("/auth/logout")
async def logout():
    # Nothing to tear down server-side; the client drops its booking ID
    return success_response({"message": "Logged out successfully"})


@router.get("/client/me")
async def current_client(context: RequestContext = Depends(get_client_context)):
    return success_response(_session_payload(context.record, context.impersonated_by))
