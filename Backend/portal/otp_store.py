"""
In-process store of pending one-time passcodes.

Keyed by the recipient's email. At most one live challenge per key: issuing
again replaces the previous code. A challenge is deleted when it is verified,
when an expired entry is seen during verification, or when too many wrong
codes have been tried against it (lockout). Redis with TTL would be the
multi-process replacement; the interface stays the same.
"""

import logging
import random
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from .core.clock import utc_now

logger = logging.getLogger(__name__)

OTP_TTL = timedelta(minutes=10)
OTP_MIN = 100000
OTP_MAX = 999999
DEFAULT_MAX_ATTEMPTS = 5


@dataclass
class OtpChallenge:
    code: str
    created_at: datetime
    expires_at: datetime
    failed_attempts: int = 0

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class OtpChallengeStore:
    """
    Issue and verify 6-digit codes.

    issue() and verify() take the same lock, so a verify racing a re-issue
    can never bring a consumed code back, and two verifies racing on the same
    correct code see exactly one True.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = utc_now,
        rng: Optional[random.Random] = None,
        ttl: timedelta = OTP_TTL,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self._clock = clock
        self._rng = rng or random.SystemRandom()
        self.ttl = ttl
        self.max_attempts = max_attempts
        self._challenges: Dict[str, OtpChallenge] = {}
        self._lock = threading.Lock()

    def issue(self, key: str) -> str:
        code = str(self._rng.randint(OTP_MIN, OTP_MAX))
        now = self._clock()
        with self._lock:
            self._challenges[key] = OtpChallenge(code=code, created_at=now, expires_at=now + self.ttl)
        logger.info(f"OTP issued for {key}, expires in {int(self.ttl.total_seconds() // 60)} minutes")
        return code

    def verify(self, key: str, candidate: str) -> bool:
        now = self._clock()
        with self._lock:
            challenge = self._challenges.get(key)
            if challenge is None:
                return False

            if challenge.is_expired(now):
                del self._challenges[key]
                logger.info(f"OTP for {key} expired, discarded")
                return False

            # String comparison on purpose: "012345" must never equal 12345
            if isinstance(candidate, str) and candidate == challenge.code:
                del self._challenges[key]
                return True

            challenge.failed_attempts += 1
            if challenge.failed_attempts >= self.max_attempts:
                del self._challenges[key]
                logger.warning(f"OTP for {key} locked out after {challenge.failed_attempts} failed attempts")
            return False

    def has_live(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            challenge = self._challenges.get(key)
            return challenge is not None and not challenge.is_expired(now)

    def discard(self, key: str) -> None:
        with self._lock:
            self._challenges.pop(key, None)

    def purge_expired(self) -> int:
        """Remove expired challenges that nobody tried to verify."""
        now = self._clock()
        with self._lock:
            expired = [key for key, challenge in self._challenges.items() if challenge.is_expired(now)]
            for key in expired:
                del self._challenges[key]
        if expired:
            logger.debug(f"Purged {len(expired)} expired OTP challenges")
        return len(expired)
