"""
Rate Limiting

Per-IP sliding-window limits for the endpoints that accept guessable
secrets. A 6-digit code or an 8-character booking ID is only as strong as
the number of guesses an attacker gets, so these endpoints are throttled on
top of the per-code lockout in OtpChallengeStore.

Each limit is a named scope ("otp", "login", ...). Endpoints sharing a scope
share one budget per IP, so an attacker cannot split guesses between
verify-email and resend-otp.

Usage:
    from .rate_limiter import rate_limit_dependency

    otp_limit = rate_limit_dependency("otp", max_requests=10)

    @router.post("/verify-email", dependencies=[Depends(otp_limit)])
    async def verify_email(...):
        ...
"""

import logging
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional, Tuple

from fastapi import HTTPException, Request, status
from starlette.middleware.base import BaseHTTPMiddleware

from .core.request_context import get_client_ip

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL_SECONDS = 300
MAX_WINDOW_SECONDS = 3600


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    window_seconds: int
    retry_after: int

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }


# ────────────────────────────────────────────────────────────────
# In-Memory Rate Limiter
# ────────────────────────────────────────────────────────────────

class RateLimiter:
    """
    Sliding-window counter keyed by (client IP, scope).

    Single-process only; several workers would each keep their own windows.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._hits: Dict[Tuple[str, str], Deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()
        self._last_cleanup = clock()

    def hit(self, client_ip: str, scope: str, max_requests: int, window_seconds: int = 60) -> RateLimitDecision:
        """Record one request if it fits in the window and report the outcome."""
        now = self._clock()
        with self._lock:
            self._maybe_cleanup(now)
            hits = self._hits[(client_ip, scope)]
            while hits and hits[0] <= now - window_seconds:
                hits.popleft()

            allowed = len(hits) < max_requests
            if allowed:
                hits.append(now)

            reset_at = int((hits[0] if hits else now) + window_seconds)
            return RateLimitDecision(
                allowed=allowed,
                limit=max_requests,
                remaining=max(0, max_requests - len(hits)),
                reset_at=reset_at,
                window_seconds=window_seconds,
                retry_after=max(0, reset_at - int(now)),
            )

    def _maybe_cleanup(self, now: float) -> None:
        if now - self._last_cleanup < CLEANUP_INTERVAL_SECONDS:
            return
        cutoff = now - MAX_WINDOW_SECONDS
        for key in [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]:
            del self._hits[key]
        self._last_cleanup = now
        logger.debug(f"Rate limiter cleanup: {len(self._hits)} windows tracked")

    def clear(self, client_ip: Optional[str] = None) -> None:
        with self._lock:
            if client_ip is None:
                self._hits.clear()
            else:
                for key in [key for key in self._hits if key[0] == client_ip]:
                    del self._hits[key]


# Global rate limiter instance
_rate_limiter = RateLimiter()


def get_rate_limiter() -> RateLimiter:
    return _rate_limiter


# ────────────────────────────────────────────────────────────────
# FastAPI Dependencies
# ────────────────────────────────────────────────────────────────

def rate_limit_dependency(scope: str, max_requests: int, window_seconds: int = 60):
    """
    Build a dependency that spends one request from `scope`'s budget.

    Over budget it raises 429 with Retry-After; otherwise it leaves the
    X-RateLimit-* headers for RateLimitHeadersMiddleware.
    """
    async def dependency(request: Request):
        client_ip = get_client_ip(request)
        decision = _rate_limiter.hit(client_ip, scope, max_requests, window_seconds)

        if not decision.allowed:
            logger.warning(
                f"[RATE_LIMIT] Blocked {client_ip} on {request.url.path} "
                f"({scope}: {max_requests} per {window_seconds}s)"
            )
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail={
                    "message": f"Too many requests. Limit: {max_requests} per {window_seconds}s",
                    "limit": max_requests,
                    "window_seconds": window_seconds,
                    "retry_after": decision.retry_after,
                },
                headers={**decision.headers(), "Retry-After": str(decision.retry_after)},
            )

        request.state.rate_limit_headers = decision.headers()

    return dependency


class RateLimitHeadersMiddleware(BaseHTTPMiddleware):
    """Copy the headers left by rate_limit_dependency onto the response."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        headers = getattr(request.state, "rate_limit_headers", None)
        if headers:
            response.headers.update(headers)
        return response
