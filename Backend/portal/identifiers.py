"""
Booking ID allocation.

A booking ID is 8 characters from [A-Z0-9]. It is the record key and the
client's session credential at the same time, so the allocator never hands
out a value the uniqueness oracle reports as taken.

The allocator does not reserve anything. Callers that persist the ID should
go through persist_with_fresh_identifier(), which treats a ConflictError from
the store as a collision and allocates again.
"""

import logging
import random
import re
from typing import Awaitable, Callable, Optional, TypeVar

from .core.errors import ConflictError, IdentifierExhaustedError

logger = logging.getLogger(__name__)

BOOKING_ID_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
BOOKING_ID_LENGTH = 8
BOOKING_ID_PATTERN = re.compile(r"^[A-Z0-9]{8}$")
MAX_ALLOCATION_ATTEMPTS = 10

T = TypeVar("T")


def normalize_booking_id(value: str) -> str:
    """Uppercase and trim a booking ID before any comparison or lookup."""
    value = value.strip()
    # upper() can lengthen non-ASCII input ("ß" -> "SS"); leave it for the format check
    if not value.isascii():
        return value
    return value.upper()


def is_valid_booking_id(value: str) -> bool:
    return bool(BOOKING_ID_PATTERN.fullmatch(value))


class IdentifierAllocator:
    """
    Generates random booking IDs and checks them against an existence oracle.

    Args:
        exists: awaitable callback answering "is this ID already taken?"
        rng: random source, SystemRandom unless a test injects its own
        max_attempts: collision ceiling before IdentifierExhaustedError
    """

    def __init__(
        self,
        exists: Callable[[str], Awaitable[bool]],
        rng: Optional[random.Random] = None,
        max_attempts: int = MAX_ALLOCATION_ATTEMPTS,
    ):
        self._exists = exists
        self._rng = rng or random.SystemRandom()
        self.max_attempts = max_attempts

    def generate(self) -> str:
        return "".join(self._rng.choice(BOOKING_ID_ALPHABET) for _ in range(BOOKING_ID_LENGTH))

    async def allocate(self) -> str:
        for attempt in range(1, self.max_attempts + 1):
            candidate = self.generate()
            if not await self._exists(candidate):
                return candidate
            logger.info(f"Booking ID collision on attempt {attempt}/{self.max_attempts}")

        logger.error(f"Booking ID allocation exhausted after {self.max_attempts} attempts")
        raise IdentifierExhaustedError()


async def persist_with_fresh_identifier(
    allocator: IdentifierAllocator,
    build: Callable[[str], T],
    create: Callable[[T], Awaitable[T]],
    attempts: int = MAX_ALLOCATION_ATTEMPTS,
) -> T:
    """
    Allocate an ID, build the record for it and create it in the store.

    The store's unique constraint is the final word on uniqueness: a
    ConflictError on create means another writer won the race, so a new ID
    is allocated. After `attempts` conflicts this fails loudly.
    """
    for attempt in range(1, attempts + 1):
        booking_id = await allocator.allocate()
        try:
            return await create(build(booking_id))
        except ConflictError:
            logger.warning(f"Insert conflict for booking ID {booking_id} (attempt {attempt}/{attempts}), reallocating")

    raise IdentifierExhaustedError("Unable to persist a unique booking ID")
