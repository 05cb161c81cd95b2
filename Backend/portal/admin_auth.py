"""
Administrator sessions.

Staff log in with the configured admin credentials and get a signed admin
session token (HS256 JWT with `isAdmin: true`), delivered as the HTTP-only
`token` cookie and also accepted as a bearer header. Admin endpoints accept
nothing else: in particular an impersonation token, although validly signed
with the same secret, is refused with 403.
"""

import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

import jwt

from .core.clock import utc_now
from .core.errors import AuthenticationError, AuthorizationError
from .core.responses import ErrorCodes

logger = logging.getLogger(__name__)

ADMIN_TOKEN_TYPE = "admin"
ADMIN_COOKIE_NAME = "token"
JWT_ALGORITHM = "HS256"


@dataclass(frozen=True)
class AdminPrincipal:
    username: str


@dataclass(frozen=True)
class AdminSession:
    principal: AdminPrincipal
    token: str
    expires_at: datetime


class AdminAuthenticator:
    def __init__(
        self,
        username: str,
        password: str,
        secret: str,
        session_lifetime: timedelta = timedelta(hours=8),
        clock: Callable[[], datetime] = utc_now,
    ):
        self._username = username
        self._password = password
        self._secret = secret
        self.session_lifetime = session_lifetime
        self._clock = clock

    def login(self, username: str, password: str) -> AdminSession:
        if not self._password:
            logger.error("Admin login attempted but ADMIN_PASSWORD is not set")
            raise AuthenticationError("Admin login is not configured", code=ErrorCodes.INVALID_CREDENTIALS)

        username_ok = secrets.compare_digest(username.encode(), self._username.encode())
        password_ok = secrets.compare_digest(password.encode(), self._password.encode())
        if not (username_ok and password_ok):
            logger.warning(f"Admin login failed for '{username}'")
            raise AuthenticationError("Invalid credentials", code=ErrorCodes.INVALID_CREDENTIALS)

        now = self._clock()
        expires_at = now + self.session_lifetime
        payload = {
            "sub": self._username,
            "typ": ADMIN_TOKEN_TYPE,
            "isAdmin": True,
            "jti": uuid.uuid4().hex,
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        token = jwt.encode(payload, self._secret, algorithm=JWT_ALGORITHM)
        logger.info(f"Admin session started for '{self._username}'")
        return AdminSession(principal=AdminPrincipal(self._username), token=token, expires_at=expires_at)

    def principal_from_token(self, token: str) -> AdminPrincipal:
        """
        Decode an admin session token.

        Raises:
            AuthenticationError 401: bad signature, malformed or expired
            AuthorizationError 403: valid token that is not an admin session
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[JWT_ALGORITHM],
                options={"verify_exp": False, "verify_iat": False, "require": ["sub", "exp"]},
            )
        except jwt.InvalidTokenError as e:
            logger.warning(f"Admin token rejected: {e}")
            raise AuthenticationError("Unauthorized: Invalid token", code=ErrorCodes.INVALID_TOKEN) from e

        if self._clock().timestamp() >= payload["exp"]:
            raise AuthenticationError("Unauthorized: Token has expired", code=ErrorCodes.TOKEN_EXPIRED)

        if payload.get("typ") != ADMIN_TOKEN_TYPE or payload.get("isAdmin") is not True:
            logger.warning(f"Non-admin token ({payload.get('typ')}) presented to an admin endpoint")
            raise AuthorizationError()

        return AdminPrincipal(username=payload["sub"])
