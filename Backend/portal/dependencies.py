"""
FastAPI dependency providers.

Every service object is built once per process from settings and handed to
routes through Depends(), so tests swap them with app.dependency_overrides.
The OTP store, the pending submissions and the impersonation revocation list
are in-memory state: they must stay singletons for the process.
"""

import logging
from datetime import timedelta
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Request

from .admin_auth import ADMIN_COOKIE_NAME, AdminAuthenticator, AdminPrincipal
from .booking_submission import BookingSubmissionWorkflow
from .core.config import get_settings
from .core.errors import AuthenticationError
from .core.request_context import RequestContext, extract_bearer_token, resolve_client_context
from .impersonation import ImpersonationTokenIssuer
from .notifications import Notifier, build_notifier
from .otp_store import OtpChallengeStore
from .repository import ClientRepository, InMemoryClientRepository, SqlClientRepository
from .session_auth import SessionAuthenticator

logger = logging.getLogger(__name__)


@lru_cache
def get_client_repository() -> ClientRepository:
    settings = get_settings()
    if settings.client_store == "memory":
        logger.warning("CLIENT_STORE=memory: client records will not survive a restart")
        return InMemoryClientRepository()
    from .core.db import AsyncSessionLocal

    return SqlClientRepository(AsyncSessionLocal)


@lru_cache
def get_otp_store() -> OtpChallengeStore:
    settings = get_settings()
    return OtpChallengeStore(
        ttl=timedelta(minutes=settings.otp_ttl_minutes),
        max_attempts=settings.otp_max_attempts,
    )


@lru_cache
def get_notifier() -> Notifier:
    return build_notifier()


@lru_cache
def get_workflow() -> BookingSubmissionWorkflow:
    settings = get_settings()
    return BookingSubmissionWorkflow(
        get_client_repository(),
        get_otp_store(),
        get_notifier(),
        portal_url=settings.frontend_url,
        max_allocation_attempts=settings.identifier_max_attempts,
        retention=timedelta(hours=settings.submission_retention_hours),
    )


@lru_cache
def get_authenticator() -> SessionAuthenticator:
    return SessionAuthenticator(get_client_repository())


@lru_cache
def get_admin_authenticator() -> AdminAuthenticator:
    settings = get_settings()
    return AdminAuthenticator(
        settings.admin_username,
        settings.admin_password,
        settings.jwt_secret,
        session_lifetime=timedelta(minutes=settings.admin_session_minutes),
    )


@lru_cache
def get_token_issuer() -> ImpersonationTokenIssuer:
    settings = get_settings()
    return ImpersonationTokenIssuer(
        get_authenticator(),
        settings.jwt_secret,
        lifetime=timedelta(minutes=settings.impersonation_token_minutes),
    )


# ────────────────────────────────────────────────────────────────
# Session Dependencies
# ────────────────────────────────────────────────────────────────

async def get_client_context(
    request: Request,
    authenticator: SessionAuthenticator = Depends(get_authenticator),
    issuer: ImpersonationTokenIssuer = Depends(get_token_issuer),
) -> RequestContext:
    return await resolve_client_context(request, authenticator, issuer)


def admin_token_from_request(request: Request) -> Optional[str]:
    """Admin session token from the `token` cookie, else the bearer header."""
    return request.cookies.get(ADMIN_COOKIE_NAME) or extract_bearer_token(request)


def require_admin(
    request: Request,
    admin_auth: AdminAuthenticator = Depends(get_admin_authenticator),
) -> AdminPrincipal:
    token = admin_token_from_request(request)
    if not token:
        raise AuthenticationError("Unauthorized: No token provided")
    return admin_auth.principal_from_token(token)
