"""
Booking ID allocation tests.

Run with:
    pytest Backend/tests/test_identifiers.py -v
"""
import pytest

from portal.core.errors import ConflictError, IdentifierExhaustedError
from portal.identifiers import (
    BOOKING_ID_PATTERN,
    IdentifierAllocator,
    is_valid_booking_id,
    normalize_booking_id,
    persist_with_fresh_identifier,
)


class ScriptedRandom:
    """Stands in for the rng: choice() replays the characters of the given IDs in order."""

    def __init__(self, *booking_ids: str):
        self._chars = iter("".join(booking_ids))

    def choice(self, seq):
        return next(self._chars)


def oracle(taken: set):
    async def exists(booking_id: str) -> bool:
        return booking_id in taken
    return exists


# ============================================================================
# FORMAT
# ============================================================================

def test_normalize_uppercases_and_strips():
    assert normalize_booking_id("  wme24001 ") == "WME24001"


@pytest.mark.parametrize("value", ["ßABCDEF", "wme2400ı", " ﬀABCDEF "])
def test_normalize_leaves_non_ascii_invalid(value):
    assert not is_valid_booking_id(normalize_booking_id(value))


@pytest.mark.parametrize("value", ["WME24001", "ABCDEFGH", "12345678"])
def test_valid_booking_ids(value):
    assert is_valid_booking_id(value)


@pytest.mark.parametrize("value", ["WME2400", "WME240011", "wme24001", "WME-2400", "", "WME 2400"])
def test_invalid_booking_ids(value):
    assert not is_valid_booking_id(value)


# ============================================================================
# ALLOCATION
# ============================================================================

@pytest.mark.asyncio
async def test_generated_ids_match_format():
    allocator = IdentifierAllocator(oracle(set()))
    for _ in range(200):
        assert BOOKING_ID_PATTERN.fullmatch(await allocator.allocate())


@pytest.mark.asyncio
async def test_allocate_skips_taken_ids():
    """
    Test: an ID the oracle reports as existing is never returned
    """
    allocator = IdentifierAllocator(oracle({"AAAAAAAA"}), rng=ScriptedRandom("AAAAAAAA", "BBBBBBBB"))

    assert await allocator.allocate() == "BBBBBBBB"


@pytest.mark.asyncio
async def test_allocate_fails_loudly_after_max_attempts():
    calls = []

    async def always_taken(booking_id: str) -> bool:
        calls.append(booking_id)
        return True

    allocator = IdentifierAllocator(always_taken, max_attempts=10)

    with pytest.raises(IdentifierExhaustedError) as exc_info:
        await allocator.allocate()

    assert len(calls) == 10
    assert exc_info.value.status_code == 500


# ============================================================================
# PERSIST WITH RETRY
# ============================================================================

@pytest.mark.asyncio
async def test_persist_reallocates_on_conflict():
    """
    Test: the oracle said free but the insert lost a race => new ID, no error
    """
    stored = {}
    allocator = IdentifierAllocator(oracle(set()), rng=ScriptedRandom("AAAAAAAA", "BBBBBBBB"))

    async def create(booking_id: str) -> str:
        if booking_id == "AAAAAAAA":
            raise ConflictError()
        stored[booking_id] = True
        return booking_id

    result = await persist_with_fresh_identifier(allocator, lambda booking_id: booking_id, create)

    assert result == "BBBBBBBB"
    assert list(stored) == ["BBBBBBBB"]


@pytest.mark.asyncio
async def test_persist_gives_up_after_repeated_conflicts():
    allocator = IdentifierAllocator(oracle(set()))

    async def create(booking_id: str) -> str:
        raise ConflictError()

    with pytest.raises(IdentifierExhaustedError):
        await persist_with_fresh_identifier(allocator, lambda booking_id: booking_id, create, attempts=3)
