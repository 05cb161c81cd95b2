"""
Client record store tests: the in-memory store, and the SQLAlchemy store
against a throwaway SQLite database.

Run with:
    pytest Backend/tests/test_repository.py -v
"""
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from portal.coordinators import assign_coordinator
from portal.core.db import Base
from portal.core.errors import ConflictError
from portal.models import ClientRow
from portal.repository import ClientRecord, ClientStatus, Priority, SqlClientRepository, _patch_to_columns


@pytest.mark.asyncio
async def test_create_duplicate_raises_conflict(make_client):
    await make_client("WME24001")

    with pytest.raises(ConflictError):
        await make_client("WME24001")


@pytest.mark.asyncio
async def test_update_validates_and_stamps(repository, make_client, clock):
    await make_client("WME24001")
    clock.advance(minutes=5)

    updated = await repository.update("WME24001", {"status": "cancelled"})

    assert updated.status == ClientStatus.CANCELLED
    assert updated.is_cancelled
    assert updated.updated_at == clock()


@pytest.mark.asyncio
async def test_update_unknown_record(repository):
    assert await repository.update("ZZZZZZZZ", {"status": ClientStatus.CANCELLED}) is None


@pytest.mark.asyncio
async def test_update_rejects_immutable_fields(repository, make_client):
    await make_client("WME24001")

    with pytest.raises(ValueError):
        await repository.update("WME24001", {"booking_id": "WME24002"})


@pytest.mark.asyncio
async def test_exists(repository, make_client):
    await make_client("WME24001")

    assert await repository.exists("WME24001")
    assert not await repository.exists("WME24002")


def test_patch_to_columns_flattens_enums_and_models():
    columns = _patch_to_columns({
        "status": ClientStatus.ACTIVE,
        "coordinator": assign_coordinator("actor"),
        "contract_amount": 10,
    })

    assert columns["status"] == "active"
    assert columns["coordinator"]["department"] == "Film & TV Division"
    assert columns["contract_amount"] == 10


# ============================================================================
# SQLALCHEMY STORE
# ============================================================================

@pytest.fixture
async def sql_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'clients.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, tables=[ClientRow.__table__])
    yield engine
    await engine.dispose()


@pytest.fixture
def sql_repository(sql_engine) -> SqlClientRepository:
    return SqlClientRepository(async_sessionmaker(sql_engine, class_=AsyncSession, expire_on_commit=False))


def sql_record(clock, booking_id: str = "WME24001", **overrides) -> ClientRecord:
    fields = {
        "booking_id": booking_id,
        "name": "Jane Doe",
        "email": "jane.doe@example.com",
        "phone": "+1-555-0100",
        "artist": "The Headliners",
        "artist_category": "musician",
        "event": "Annual Gala",
        "event_date": "2025-06-15",
        "status": ClientStatus.PENDING,
        "contract_amount": 75000,
        "budget_range": "50k-100k",
        "coordinator": assign_coordinator("musician"),
        "priority": Priority.HIGH,
        "submission_id": "sub_0123456789abcdef",
        "details": {"billingAddress": {"zipCode": "90001"}, "paymentStatus": "pending"},
        "created_at": clock(),
        "updated_at": clock(),
    }
    fields.update(overrides)
    return ClientRecord(**fields)


@pytest.mark.asyncio
async def test_sql_create_and_exists(sql_repository, clock):
    created = await sql_repository.create(sql_record(clock))

    assert created.booking_id == "WME24001"
    assert await sql_repository.exists("WME24001")
    assert not await sql_repository.exists("WME24002")


@pytest.mark.asyncio
async def test_sql_duplicate_create_raises_conflict(sql_repository, clock):
    """
    Test: a second insert of the same booking ID hits the primary key => ConflictError
    """
    await sql_repository.create(sql_record(clock))

    with pytest.raises(ConflictError):
        await sql_repository.create(sql_record(clock, name="Someone Else"))

    stored = await sql_repository.get("WME24001")
    assert stored.name == "Jane Doe"


@pytest.mark.asyncio
async def test_sql_get_round_trip(sql_repository, clock):
    await sql_repository.create(sql_record(clock))

    record = await sql_repository.get("WME24001")

    assert record.email == "jane.doe@example.com"
    assert record.status == ClientStatus.PENDING
    assert record.priority == Priority.HIGH
    assert record.coordinator == assign_coordinator("musician")
    assert record.contract_amount == 75000
    assert record.submission_id == "sub_0123456789abcdef"
    assert record.details["billingAddress"]["zipCode"] == "90001"
    assert record.is_verified is True
    assert record.last_login_at is None


@pytest.mark.asyncio
async def test_sql_get_unknown(sql_repository):
    assert await sql_repository.get("ZZZZZZZZ") is None


@pytest.mark.asyncio
async def test_sql_update_status_and_last_login(sql_repository, clock):
    await sql_repository.create(sql_record(clock))
    login_at = clock() + timedelta(hours=1)

    updated = await sql_repository.update(
        "WME24001", {"status": ClientStatus.CANCELLED, "last_login_at": login_at}
    )

    assert updated.is_cancelled
    assert updated.last_login_at.replace(tzinfo=None) == login_at.replace(tzinfo=None)

    stored = await sql_repository.get("WME24001")
    assert stored.status == ClientStatus.CANCELLED
    assert stored.last_login_at.replace(tzinfo=None) == login_at.replace(tzinfo=None)


@pytest.mark.asyncio
async def test_sql_update_unknown_record(sql_repository):
    assert await sql_repository.update("ZZZZZZZZ", {"status": ClientStatus.CANCELLED}) is None
