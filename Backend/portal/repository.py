"""
Client record persistence.

The authoritative client record lives behind the ClientRepository interface:
exists / get / create / update. create() raises ConflictError when the
booking ID is already taken; allocation treats that as a collision.

Two implementations:
    - InMemoryClientRepository: process-local dict, used for development
      and tests
    - SqlClientRepository: async SQLAlchemy over the `clients` table, whose
      primary key enforces uniqueness
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional, Protocol

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .core.clock import utc_now
from .core.errors import ConflictError

logger = logging.getLogger(__name__)


class ClientStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Coordinator(BaseModel):
    name: str
    email: str
    phone: Optional[str] = None
    department: str


class ClientRecord(BaseModel):
    booking_id: str
    name: str
    email: str
    phone: Optional[str] = None
    company: Optional[str] = None
    artist: str
    artist_category: Optional[str] = None
    event: str
    event_date: Optional[str] = None
    event_location: Optional[str] = None
    event_duration: Optional[str] = None
    status: ClientStatus = ClientStatus.PENDING
    contract_amount: int = 0
    currency: str = "USD"
    budget_range: Optional[str] = None
    coordinator: Coordinator
    priority: Priority = Priority.MEDIUM
    is_verified: bool = True
    submission_id: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    last_login_at: Optional[datetime] = None

    @property
    def is_cancelled(self) -> bool:
        return self.status == ClientStatus.CANCELLED

    def summary(self) -> dict:
        """Client-facing view; leaves out the raw submission details."""
        return {
            "bookingId": self.booking_id,
            "name": self.name,
            "email": self.email,
            "artist": self.artist,
            "event": self.event,
            "eventDate": self.event_date,
            "eventLocation": self.event_location,
            "status": self.status.value,
            "contractAmount": self.contract_amount,
            "currency": self.currency,
            "coordinator": self.coordinator.model_dump(),
            "priority": self.priority.value,
            "lastLogin": self.last_login_at.isoformat() if self.last_login_at else None,
        }


class ClientRepository(Protocol):
    async def exists(self, booking_id: str) -> bool: ...

    async def get(self, booking_id: str) -> Optional[ClientRecord]: ...

    async def create(self, record: ClientRecord) -> ClientRecord: ...

    async def update(self, booking_id: str, patch: Dict[str, Any]) -> Optional[ClientRecord]: ...


UPDATABLE_FIELDS = set(ClientRecord.model_fields) - {"booking_id", "created_at"}


def _check_patch(patch: Dict[str, Any]) -> None:
    unknown = set(patch) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update fields: {sorted(unknown)}")


# ────────────────────────────────────────────────────────────────
# In-Memory Repository
# ────────────────────────────────────────────────────────────────

class InMemoryClientRepository:
    """Dict-backed store. Every method is free of awaits, so each one is atomic on the event loop."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._records: Dict[str, ClientRecord] = {}

    async def exists(self, booking_id: str) -> bool:
        return booking_id in self._records

    async def get(self, booking_id: str) -> Optional[ClientRecord]:
        return self._records.get(booking_id)

    async def create(self, record: ClientRecord) -> ClientRecord:
        if record.booking_id in self._records:
            raise ConflictError()
        self._records[record.booking_id] = record
        return record

    async def update(self, booking_id: str, patch: Dict[str, Any]) -> Optional[ClientRecord]:
        _check_patch(patch)
        existing = self._records.get(booking_id)
        if existing is None:
            return None
        updated = ClientRecord.model_validate({**existing.model_dump(), **patch, "updated_at": self._clock()})
        self._records[booking_id] = updated
        return updated

    def __len__(self) -> int:
        return len(self._records)


# ────────────────────────────────────────────────────────────────
# SQLAlchemy Repository
# ────────────────────────────────────────────────────────────────

class SqlClientRepository:
    """
    Async SQLAlchemy store over the `clients` table.

    Each call opens its own session from the factory; a duplicate primary key
    on insert comes back as IntegrityError and is reported as ConflictError.
    """

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self._session_factory = session_factory

    async def exists(self, booking_id: str) -> bool:
        from .models import ClientRow

        async with self._session_factory() as session:
            result = await session.execute(
                select(ClientRow.booking_id).where(ClientRow.booking_id == booking_id)
            )
            return result.scalar_one_or_none() is not None

    async def get(self, booking_id: str) -> Optional[ClientRecord]:
        from .models import ClientRow

        async with self._session_factory() as session:
            row = await session.get(ClientRow, booking_id)
            return _row_to_record(row) if row else None

    async def create(self, record: ClientRecord) -> ClientRecord:
        from .models import ClientRow

        row = ClientRow(**_record_to_columns(record))
        async with self._session_factory() as session:
            session.add(row)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                logger.info(f"Insert conflict for booking ID {record.booking_id}: {exc.orig}")
                raise ConflictError() from exc
            await session.refresh(row)
            return _row_to_record(row)

    async def update(self, booking_id: str, patch: Dict[str, Any]) -> Optional[ClientRecord]:
        from .models import ClientRow

        _check_patch(patch)
        columns = _patch_to_columns(patch)
        async with self._session_factory() as session:
            row = await session.get(ClientRow, booking_id, with_for_update=True)
            if row is None:
                return None
            for key, value in columns.items():
                setattr(row, key, value)
            await session.commit()
            await session.refresh(row)
            return _row_to_record(row)


def _patch_to_columns(patch: Dict[str, Any]) -> Dict[str, Any]:
    columns = {}
    for key, value in patch.items():
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, BaseModel):
            value = value.model_dump()
        columns[key] = value
    return columns


def _record_to_columns(record: ClientRecord) -> Dict[str, Any]:
    return _patch_to_columns(record.model_dump(mode="python"))


def _row_to_record(row) -> ClientRecord:
    return ClientRecord(
        booking_id=row.booking_id,
        name=row.name,
        email=row.email,
        phone=row.phone,
        company=row.company,
        artist=row.artist,
        artist_category=row.artist_category,
        event=row.event,
        event_date=row.event_date,
        event_location=row.event_location,
        event_duration=row.event_duration,
        status=ClientStatus(row.status),
        contract_amount=row.contract_amount,
        currency=row.currency,
        budget_range=row.budget_range,
        coordinator=Coordinator(**row.coordinator),
        priority=Priority(row.priority),
        is_verified=row.is_verified,
        submission_id=row.submission_id,
        details=row.details or {},
        created_at=row.created_at,
        updated_at=row.updated_at,
        last_login_at=row.last_login_at,
    )
