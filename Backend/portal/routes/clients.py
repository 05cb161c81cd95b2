"""
Admin client management.

    POST  /api/clients                       -> create a client record directly
    PATCH /api/clients/{bookingId}/status    -> change status (e.g. cancel)
    GET   /api/booking-id/generate           -> a currently unused booking ID
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import EmailStr, field_validator

from ..admin_auth import AdminPrincipal
from ..booking_submission import BookingSubmissionWorkflow, normalize_email
from ..coordinators import assign_coordinator, estimate_contract_amount
from ..core.errors import InvalidFormatError, NotFoundError
from ..core.responses import success_response
from ..dependencies import get_client_repository, get_workflow, require_admin
from ..identifiers import is_valid_booking_id, normalize_booking_id, persist_with_fresh_identifier
from ..repository import ClientRecord, ClientRepository, ClientStatus, Coordinator, Priority
from .schemas import CamelRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["clients"])


class CreateClientRequest(CamelRequest):
    booking_id: Optional[str] = None
    name: str
    email: EmailStr
    phone: Optional[str] = None
    company: Optional[str] = None
    artist: str
    artist_category: Optional[str] = None
    event: str
    event_date: Optional[str] = None
    event_location: Optional[str] = None
    event_duration: Optional[str] = None
    status: ClientStatus = ClientStatus.ACTIVE
    contract_amount: Optional[int] = None
    currency: str = "USD"
    budget_range: Optional[str] = None
    coordinator: Optional[Coordinator] = None
    priority: Priority = Priority.MEDIUM

    @field_validator("email", mode="after")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return normalize_email(value)


class StatusUpdateRequest(CamelRequest):
    status: ClientStatus


def _checked_booking_id(booking_id: str) -> str:
    normalized = normalize_booking_id(booking_id)
    if not is_valid_booking_id(normalized):
        raise InvalidFormatError()
    return normalized


def _record_from_request(body: CreateClientRequest, booking_id: str) -> ClientRecord:
    contract_amount = body.contract_amount
    if contract_amount is None:
        contract_amount = estimate_contract_amount(body.budget_range or "")
    return ClientRecord(
        booking_id=booking_id,
        name=body.name,
        email=body.email,
        phone=body.phone,
        company=body.company,
        artist=body.artist,
        artist_category=body.artist_category,
        event=body.event,
        event_date=body.event_date,
        event_location=body.event_location,
        event_duration=body.event_duration,
        status=body.status,
        contract_amount=contract_amount,
        currency=body.currency,
        budget_range=body.budget_range,
        coordinator=body.coordinator or assign_coordinator(body.artist_category or ""),
        priority=body.priority,
        is_verified=True,
    )


@router.post("/clients", status_code=status.HTTP_201_CREATED)
async def create_client(
    body: CreateClientRequest,
    admin: AdminPrincipal = Depends(require_admin),
    repository: ClientRepository = Depends(get_client_repository),
    workflow: BookingSubmissionWorkflow = Depends(get_workflow),
):
    """
    Create a client record.

    An explicit bookingId is used as-is and a clash is a 409; without one a
    fresh ID is allocated and a clash at insert time is retried.
    """
    if body.booking_id:
        record = await repository.create(_record_from_request(body, _checked_booking_id(body.booking_id)))
    else:
        record = await persist_with_fresh_identifier(
            workflow.allocator,
            lambda booking_id: _record_from_request(body, booking_id),
            repository.create,
            attempts=workflow.allocator.max_attempts,
        )
    logger.info(f"Admin '{admin.username}' created client {record.booking_id}")
    return success_response({"client": record.summary(), "message": "Client created successfully"})


@router.patch("/clients/{booking_id}/status")
async def update_client_status(
    booking_id: str,
    body: StatusUpdateRequest,
    admin: AdminPrincipal = Depends(require_admin),
    repository: ClientRepository = Depends(get_client_repository),
):
    record = await repository.update(_checked_booking_id(booking_id), {"status": body.status})
    if record is None:
        raise NotFoundError("Client not found")
    logger.info(f"Admin '{admin.username}' set {record.booking_id} to {record.status.value}")
    return success_response({"client": record.summary(), "message": "Client status updated"})


@router.get("/booking-id/generate")
async def generate_booking_id(
    admin: AdminPrincipal = Depends(require_admin),
    workflow: BookingSubmissionWorkflow = Depends(get_workflow),
):
    booking_id = await workflow.allocator.allocate()
    return success_response({"bookingId": booking_id})
