"""
Admin session and impersonation endpoints.

    POST /api/auth/admin/login                -> sets the HTTP-only `token` cookie
    POST /api/auth/admin/logout               -> clears it
    GET  /api/auth/admin/verify               -> current admin
    POST /api/auth/admin/impersonate          -> short-lived token for one booking ID
    POST /api/auth/admin/impersonate/revoke   -> revoke such a token before it expires
"""

import logging

from fastapi import APIRouter, Depends, Response

from ..admin_auth import ADMIN_COOKIE_NAME, AdminAuthenticator, AdminPrincipal
from ..core.config import get_settings
from ..core.responses import success_response
from ..dependencies import get_admin_authenticator, get_token_issuer, require_admin
from ..impersonation import ImpersonationTokenIssuer
from ..rate_limiter import rate_limit_dependency
from .schemas import CamelRequest

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/api/auth/admin", tags=["admin-auth"])


class AdminLoginRequest(CamelRequest):
    username: str
    password: str


class ImpersonateRequest(CamelRequest):
    booking_id: str


class RevokeRequest(CamelRequest):
    token: str


@router.post("/login", dependencies=[Depends(rate_limit_dependency("admin-login", settings.login_rate_limit))])
async def admin_login(
    body: AdminLoginRequest,
    response: Response,
    admin_auth: AdminAuthenticator = Depends(get_admin_authenticator),
):
    session = admin_auth.login(body.username, body.password)
    response.set_cookie(
        key=ADMIN_COOKIE_NAME,
        value=session.token,
        httponly=True,
        secure=not settings.is_development,
        samesite="lax",
        max_age=int(admin_auth.session_lifetime.total_seconds()),
    )
    return success_response({
        "admin": {"username": session.principal.username, "isAdmin": True},
        "expiresAt": session.expires_at.isoformat(),
        "message": "Admin login successful",
    })


@router.post("/logout")
async def admin_logout(response: Response):
    response.delete_cookie(ADMIN_COOKIE_NAME)
    return success_response({"message": "Logged out successfully"})


@router.get("/verify")
async def admin_verify(admin: AdminPrincipal = Depends(require_admin)):
    return success_response({"admin": {"username": admin.username, "isAdmin": True}})


@router.post("/impersonate")
async def impersonate(
    body: ImpersonateRequest,
    admin: AdminPrincipal = Depends(require_admin),
    issuer: ImpersonationTokenIssuer = Depends(get_token_issuer),
):
    issued = await issuer.issue(body.booking_id, admin)
    return success_response({
        "impersonationToken": issued.token,
        "bookingId": issued.claims.booking_id,
        "expiresAt": issued.claims.expires_at.isoformat(),
    })


@router.post("/impersonate/revoke")
async def revoke_impersonation(
    body: RevokeRequest,
    admin: AdminPrincipal = Depends(require_admin),
    issuer: ImpersonationTokenIssuer = Depends(get_token_issuer),
):
    claims = issuer.revoke(body.token)
    logger.info(f"Admin '{admin.username}' revoked impersonation of {claims.booking_id}")
    return success_response({"bookingId": claims.booking_id, "revoked": True})
