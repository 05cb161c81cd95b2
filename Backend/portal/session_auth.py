"""
Booking ID session authentication.

The booking ID is the client's bearer credential: whoever presents it acts
as that client. That makes this check the one place where access policy
lives, and every client request runs it again against current record state.

POLICY:
    1. Format first: ^[A-Z0-9]{8}$ after uppercasing (no lookup on garbage)
    2. Exactly one record lookup
    3. Unknown ID -> NotFoundError
    4. Cancelled booking -> BookingCancelledError (hard failure)
    5. Record flagged unverified -> NotVerifiedError
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from .core.clock import utc_now
from .core.errors import BookingCancelledError, InvalidFormatError, NotFoundError, NotVerifiedError
from .identifiers import is_valid_booking_id, normalize_booking_id
from .repository import ClientRecord, ClientRepository

logger = logging.getLogger(__name__)


class SessionAuthenticator:
    def __init__(self, repository: ClientRepository, clock: Callable[[], datetime] = utc_now):
        self._repository = repository
        self._clock = clock

    async def lookup(self, booking_id: str) -> Optional[ClientRecord]:
        """Format-checked lookup without the session policy; None when unknown."""
        if not isinstance(booking_id, str):
            raise InvalidFormatError()
        normalized = normalize_booking_id(booking_id)
        if not is_valid_booking_id(normalized):
            raise InvalidFormatError()
        return await self._repository.get(normalized)

    async def authenticate(self, booking_id: str) -> ClientRecord:
        record = await self.lookup(booking_id)
        if record is None:
            logger.info("Authentication failed: unknown booking ID")
            raise NotFoundError()

        if record.is_cancelled:
            logger.info(f"Authentication refused for cancelled booking {record.booking_id}")
            raise BookingCancelledError()

        if not record.is_verified:
            raise NotVerifiedError()

        return record

    async def login(self, booking_id: str) -> ClientRecord:
        """Authenticate and stamp the login time on the record."""
        record = await self.authenticate(booking_id)
        updated = await self._repository.update(record.booking_id, {"last_login_at": self._clock()})
        logger.info(f"Login successful for booking {record.booking_id}")
        return updated or record
