"""
Admin impersonation tokens.

An administrator can assume a client's session without the client's OTP
step. The token is a short-lived HS256 JWT scoped to exactly one booking ID:

    sub  booking ID being impersonated
    typ  "impersonation"
    iss  "portal-admin" (only minted behind an admin session)
    act  {"sub": <admin username>, "isAdmin": true}
    jti  token ID, checked against the revocation list
    iat / exp

Verification re-runs SessionAuthenticator.authenticate() on the subject, so
a cancelled booking locks out impersonated sessions too. The token grants
access *as* the client only; admin endpoints never accept it.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict

import jwt

from .admin_auth import JWT_ALGORITHM, AdminPrincipal
from .core.clock import utc_now
from .core.errors import AuthenticationError, AuthorizationError
from .core.responses import ErrorCodes
from .repository import ClientRecord
from .session_auth import SessionAuthenticator

logger = logging.getLogger(__name__)

IMPERSONATION_TOKEN_TYPE = "impersonation"
ADMIN_ISSUER = "portal-admin"
DEFAULT_LIFETIME = timedelta(minutes=60)


@dataclass(frozen=True)
class ImpersonationClaims:
    booking_id: str
    token_id: str
    issued_by: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class ImpersonationToken:
    token: str
    claims: ImpersonationClaims


@dataclass(frozen=True)
class VerifiedImpersonation:
    record: ClientRecord
    claims: ImpersonationClaims


class ImpersonationTokenIssuer:
    def __init__(
        self,
        authenticator: SessionAuthenticator,
        secret: str,
        lifetime: timedelta = DEFAULT_LIFETIME,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._authenticator = authenticator
        self._secret = secret
        self.lifetime = lifetime
        self._clock = clock
        # jti -> expiry; entries are dropped once the token could no longer verify anyway
        self._revoked: Dict[str, datetime] = {}

    async def issue(self, booking_id: str, issued_by: AdminPrincipal) -> ImpersonationToken:
        """
        Mint a token for `booking_id` on behalf of an authenticated admin.

        Raises:
            AuthorizationError: issued_by is not an admin principal
            InvalidFormatError / NotFoundError / BookingCancelledError: target
                does not resolve to a usable client session
        """
        if not isinstance(issued_by, AdminPrincipal):
            raise AuthorizationError()

        record = await self._authenticator.authenticate(booking_id)

        now = self._clock()
        expires_at = now + self.lifetime
        claims = ImpersonationClaims(
            booking_id=record.booking_id,
            token_id=uuid.uuid4().hex,
            issued_by=issued_by.username,
            issued_at=now,
            expires_at=expires_at,
        )
        payload = {
            "sub": claims.booking_id,
            "typ": IMPERSONATION_TOKEN_TYPE,
            "iss": ADMIN_ISSUER,
            "act": {"sub": claims.issued_by, "isAdmin": True},
            "jti": claims.token_id,
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        token = jwt.encode(payload, self._secret, algorithm=JWT_ALGORITHM)
        logger.info(f"Impersonation token {claims.token_id} issued for {claims.booking_id} by {claims.issued_by}")
        return ImpersonationToken(token=token, claims=claims)

    def decode(self, token: str) -> ImpersonationClaims:
        """Check signature, type, issuer, expiry and revocation; no record lookup."""
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[JWT_ALGORITHM],
                issuer=ADMIN_ISSUER,
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "require": ["sub", "jti", "iat", "exp", "iss"],
                },
            )
        except jwt.InvalidTokenError as e:
            logger.warning(f"Impersonation token rejected: {e}")
            raise AuthenticationError("Invalid impersonation token", code=ErrorCodes.INVALID_TOKEN) from e

        actor = payload.get("act")
        if (
            payload.get("typ") != IMPERSONATION_TOKEN_TYPE
            or not isinstance(actor, dict)
            or actor.get("isAdmin") is not True
            or not actor.get("sub")
        ):
            raise AuthenticationError("Invalid impersonation token", code=ErrorCodes.INVALID_TOKEN)

        claims = ImpersonationClaims(
            booking_id=payload["sub"],
            token_id=payload["jti"],
            issued_by=actor["sub"],
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )

        if self._clock() >= claims.expires_at:
            raise AuthenticationError("Impersonation token has expired", code=ErrorCodes.TOKEN_EXPIRED)

        if claims.token_id in self._revoked:
            raise AuthenticationError("Impersonation token has been revoked", code=ErrorCodes.INVALID_TOKEN)

        return claims

    async def verify(self, token: str) -> VerifiedImpersonation:
        claims = self.decode(token)
        record = await self._authenticator.authenticate(claims.booking_id)
        return VerifiedImpersonation(record=record, claims=claims)

    def revoke(self, token: str) -> ImpersonationClaims:
        claims = self.decode(token)
        self._revoked[claims.token_id] = claims.expires_at
        self._purge_revoked()
        logger.info(f"Impersonation token {claims.token_id} for {claims.booking_id} revoked")
        return claims

    def _purge_revoked(self) -> None:
        now = self._clock()
        for token_id in [jti for jti, expires_at in self._revoked.items() if expires_at <= now]:
            del self._revoked[token_id]
