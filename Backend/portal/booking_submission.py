"""
Booking submission workflow.

A prospective client submits event and contact details. The workflow
allocates a booking ID, emails a one-time code to the contact address and
waits. When the code comes back it materializes the authoritative client
record, after which the booking ID works as the client's login.

LIFECYCLE:
    submitted -> email_pending -> verified -> processed

CONCURRENCY:
    - A submission reserves its booking ID among pending submissions in the
      same step that checks it, so two concurrent submits never share one.
    - OTP consumption is the only gate into materialization: the caller that
      saw verify() return True is the only one that creates the record.
"""

import logging
import random
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from .coordinators import assign_coordinator, estimate_contract_amount
from .core.clock import utc_now
from .core.errors import (
    ConflictError,
    InvalidOrExpiredCodeError,
    NoActiveSessionError,
    NotFoundError,
    ValidationError,
)
from .identifiers import (
    MAX_ALLOCATION_ATTEMPTS,
    IdentifierAllocator,
    normalize_booking_id,
    persist_with_fresh_identifier,
)
from .notifications import EmailMessage, Notifier, confirmation_email, resend_code_email, verification_email
from .otp_store import OtpChallengeStore
from .repository import ClientRecord, ClientRepository, ClientStatus, Coordinator, Priority

logger = logging.getLogger(__name__)

SUBMISSION_RETENTION = timedelta(hours=24)


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ────────────────────────────────────────────────────────────────
# Form Schema
# ────────────────────────────────────────────────────────────────

class _FormModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


class BillingAddress(_FormModel):
    street: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    zip_code: str = Field(min_length=1)
    country: str = Field(min_length=1)


class BookingForm(_FormModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: EmailStr
    phone: str = Field(min_length=1)
    company: Optional[str] = None

    event_type: str = Field(min_length=1)
    event_title: str = Field(min_length=1)
    event_description: Optional[str] = None
    event_date: str = Field(min_length=1)
    event_location: str = Field(min_length=1)
    event_duration: str = Field(min_length=1)

    artist_name: str = Field(min_length=1)
    artist_category: str = Field(min_length=1)
    special_requests: Optional[str] = None

    budget_range: str = Field(min_length=1)
    payment_method: str = Field(min_length=1)
    billing_address: BillingAddress

    hear_about_us: Optional[str] = None
    additional_notes: Optional[str] = None
    terms_accepted: bool
    marketing_consent: Optional[bool] = None

    @field_validator("email", mode="after")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return normalize_email(value)

    @field_validator("terms_accepted")
    @classmethod
    def validate_terms(cls, value: bool) -> bool:
        if value is not True:
            raise ValueError("Terms must be accepted")
        return value


# ────────────────────────────────────────────────────────────────
# Submission State
# ────────────────────────────────────────────────────────────────

class SubmissionState(str, Enum):
    SUBMITTED = "submitted"
    EMAIL_PENDING = "email_pending"
    VERIFIED = "verified"
    PROCESSED = "processed"


@dataclass
class PendingSubmission:
    submission_id: str
    booking_id: str
    email: str
    form: BookingForm
    submitted_at: datetime
    state: SubmissionState = SubmissionState.SUBMITTED
    verified_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    materializing: bool = False

    @property
    def awaiting_verification(self) -> bool:
        return self.state in (SubmissionState.EMAIL_PENDING, SubmissionState.VERIFIED)

    def to_status_dict(self) -> dict:
        return {
            "bookingId": self.booking_id,
            "submissionId": self.submission_id,
            "status": self.state.value,
            "emailVerified": self.verified_at is not None,
            "submittedAt": self.submitted_at.isoformat(),
            "verifiedAt": self.verified_at.isoformat() if self.verified_at else None,
            "eventTitle": self.form.event_title,
            "artistName": self.form.artist_name,
        }


@dataclass(frozen=True)
class SubmissionReceipt:
    booking_id: str
    submission_id: str


@dataclass(frozen=True)
class VerificationResult:
    booking_id: str
    submission_id: str


# ────────────────────────────────────────────────────────────────
# Workflow
# ────────────────────────────────────────────────────────────────

class BookingSubmissionWorkflow:
    """
    Owns pending submissions until they are processed.

    One instance per process, sharing the OtpChallengeStore passed in.
    """

    def __init__(
        self,
        repository: ClientRepository,
        otp_store: OtpChallengeStore,
        notifier: Notifier,
        clock: Callable[[], datetime] = utc_now,
        rng: Optional[random.Random] = None,
        estimate_amount: Callable[[str], int] = estimate_contract_amount,
        coordinator_for: Callable[[str], Coordinator] = assign_coordinator,
        portal_url: str = "http://localhost:8080",
        max_allocation_attempts: int = MAX_ALLOCATION_ATTEMPTS,
        retention: timedelta = SUBMISSION_RETENTION,
    ):
        self._repository = repository
        self._otp = otp_store
        self._notifier = notifier
        self._clock = clock
        self._estimate_amount = estimate_amount
        self._coordinator_for = coordinator_for
        self._portal_url = portal_url
        self._max_attempts = max_allocation_attempts
        self._retention = retention
        self._allocator = IdentifierAllocator(self._identifier_taken, rng=rng, max_attempts=max_allocation_attempts)

        self._by_booking_id: Dict[str, PendingSubmission] = {}
        # email -> booking ID of the submission currently awaiting that email's code
        self._by_email: Dict[str, str] = {}

    @property
    def allocator(self) -> IdentifierAllocator:
        return self._allocator

    async def _identifier_taken(self, booking_id: str) -> bool:
        if booking_id in self._by_booking_id:
            return True
        return await self._repository.exists(booking_id)

    async def _reserve(self, submission: PendingSubmission) -> PendingSubmission:
        # No await between the check and the insert
        if submission.booking_id in self._by_booking_id:
            raise ConflictError()
        self._by_booking_id[submission.booking_id] = submission
        return submission

    def _awaiting(self, email: str) -> Optional[PendingSubmission]:
        booking_id = self._by_email.get(email)
        submission = self._by_booking_id.get(booking_id) if booking_id else None
        if submission is None or not submission.awaiting_verification:
            return None
        return submission

    def _supersede(self, email: str, keep: str) -> None:
        previous_id = self._by_email.get(email)
        if not previous_id or previous_id == keep:
            return
        previous = self._by_booking_id.get(previous_id)
        if previous is not None and previous.state != SubmissionState.PROCESSED and not previous.materializing:
            del self._by_booking_id[previous_id]
            logger.info(f"Submission {previous.submission_id} superseded by a new submission for {email}")

    async def _dispatch(self, address: str, message: EmailMessage) -> bool:
        try:
            delivered = await self._notifier.send(address, message.subject, message.body)
        except Exception as exc:
            logger.exception(f"Notification to {address} raised: {exc}")
            return False
        if not delivered:
            logger.error(f"Notification to {address} was not delivered: {message.subject}")
        return delivered

    @staticmethod
    def validate(payload: Any) -> BookingForm:
        if isinstance(payload, BookingForm):
            return payload
        try:
            return BookingForm.model_validate(payload)
        except PydanticValidationError as exc:
            errors = [
                {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
                for err in exc.errors()
            ]
            raise ValidationError("Validation failed", details={"errors": errors}) from exc

    async def submit(self, payload: Any) -> SubmissionReceipt:
        """
        Validate the form, reserve a booking ID and email the verification code.

        Raises:
            ValidationError: payload fails the form schema
            IdentifierExhaustedError: no free booking ID within the attempt ceiling
        """
        form = self.validate(payload)
        self.purge_stale()

        now = self._clock()
        submission_id = f"sub_{uuid.uuid4().hex[:16]}"

        def build(booking_id: str) -> PendingSubmission:
            return PendingSubmission(
                submission_id=submission_id,
                booking_id=booking_id,
                email=form.email,
                form=form,
                submitted_at=now,
            )

        submission = await persist_with_fresh_identifier(
            self._allocator, build, self._reserve, attempts=self._max_attempts
        )

        self._supersede(form.email, keep=submission.booking_id)
        self._by_email[form.email] = submission.booking_id
        code = self._otp.issue(form.email)
        submission.state = SubmissionState.EMAIL_PENDING
        logger.info(f"Booking submission {submission_id} received, booking ID {submission.booking_id}")

        await self._dispatch(
            form.email,
            verification_email(
                first_name=form.first_name,
                booking_id=submission.booking_id,
                code=code,
                ttl_minutes=int(self._otp.ttl.total_seconds() // 60),
                event_title=form.event_title,
                artist_name=form.artist_name,
                event_date=form.event_date,
                event_location=form.event_location,
            ),
        )
        return SubmissionReceipt(booking_id=submission.booking_id, submission_id=submission_id)

    async def resend_otp(self, email: str) -> None:
        email = normalize_email(email)
        submission = self._awaiting(email)
        if submission is None or submission.materializing:
            raise NoActiveSessionError()

        code = self._otp.issue(email)
        logger.info(f"Verification code re-issued for submission {submission.submission_id}")
        await self._dispatch(
            email,
            resend_code_email(submission.booking_id, code, int(self._otp.ttl.total_seconds() // 60)),
        )

    async def verify_email(self, email: str, code: str) -> VerificationResult:
        """
        Check the code and, on success, turn the submission into a client record.

        Raises:
            InvalidOrExpiredCodeError: wrong, expired, consumed or locked-out code
            NoActiveSessionError: code matched but no submission awaits this email
        """
        email = normalize_email(email)
        if not self._otp.verify(email, code):
            logger.info(f"Email verification failed for {email}")
            raise InvalidOrExpiredCodeError()

        submission = self._awaiting(email)
        if submission is None or submission.materializing:
            raise NoActiveSessionError()

        submission.state = SubmissionState.VERIFIED
        submission.verified_at = self._clock()
        submission.materializing = True
        try:
            record = await self._materialize(submission)
        except Exception:
            logger.exception(f"Failed to materialize client record for submission {submission.submission_id}")
            raise
        finally:
            submission.materializing = False

        submission.state = SubmissionState.PROCESSED
        submission.processed_at = self._clock()
        if self._by_email.get(email) == record.booking_id:
            del self._by_email[email]
        logger.info(f"✅ Submission {submission.submission_id} processed, client {record.booking_id} created")

        await self._dispatch(
            email,
            confirmation_email(
                first_name=submission.form.first_name,
                event_title=submission.form.event_title,
                booking_id=record.booking_id,
                portal_url=self._portal_url,
            ),
        )
        return VerificationResult(booking_id=record.booking_id, submission_id=submission.submission_id)

    async def _materialize(self, submission: PendingSubmission) -> ClientRecord:
        try:
            return await self._repository.create(self._build_record(submission, submission.booking_id))
        except ConflictError:
            logger.warning(f"Booking ID {submission.booking_id} taken at materialization, reallocating")

        previous_id = submission.booking_id
        record = await persist_with_fresh_identifier(
            self._allocator,
            lambda booking_id: self._build_record(submission, booking_id),
            self._repository.create,
            attempts=self._max_attempts,
        )
        submission.booking_id = record.booking_id
        self._by_booking_id.pop(previous_id, None)
        self._by_booking_id[record.booking_id] = submission
        if self._by_email.get(submission.email) == previous_id:
            self._by_email[submission.email] = record.booking_id
        return record

    def _build_record(self, submission: PendingSubmission, booking_id: str) -> ClientRecord:
        form = submission.form
        now = self._clock()
        return ClientRecord(
            booking_id=booking_id,
            name=f"{form.first_name} {form.last_name}",
            email=form.email,
            phone=form.phone,
            company=form.company,
            artist=form.artist_name,
            artist_category=form.artist_category,
            event=form.event_title,
            event_date=form.event_date,
            event_location=form.event_location,
            event_duration=form.event_duration,
            status=ClientStatus.PENDING,
            contract_amount=self._estimate_amount(form.budget_range),
            currency="USD",
            budget_range=form.budget_range,
            coordinator=self._coordinator_for(form.artist_category),
            priority=Priority.MEDIUM,
            is_verified=True,
            submission_id=submission.submission_id,
            details={
                "eventType": form.event_type,
                "eventDescription": form.event_description,
                "specialRequests": form.special_requests,
                "paymentMethod": form.payment_method,
                "billingAddress": form.billing_address.model_dump(by_alias=True),
                "hearAboutUs": form.hear_about_us,
                "additionalNotes": form.additional_notes,
                "marketingConsent": form.marketing_consent,
                "submittedAt": submission.submitted_at.isoformat(),
                "verifiedAt": submission.verified_at.isoformat() if submission.verified_at else None,
                "paymentStatus": "pending",
                "contractStatus": "draft",
            },
            created_at=now,
            updated_at=now,
        )

    def find_submission(self, booking_id: str) -> PendingSubmission:
        """The in-process submission for `booking_id`, while it is retained."""
        submission = self._by_booking_id.get(normalize_booking_id(booking_id))
        if submission is None:
            raise NotFoundError("Booking not found")
        return submission

    async def get_status(self, booking_id: str) -> dict:
        """
        Status of a submission by booking ID.

        Retained submissions answer from memory. Once a processed submission
        has been purged, the client record it produced answers instead.
        """
        normalized = normalize_booking_id(booking_id)
        submission = self._by_booking_id.get(normalized)
        if submission is not None:
            return submission.to_status_dict()

        record = await self._repository.get(normalized)
        if record is None or record.submission_id is None:
            raise NotFoundError("Booking not found")
        return {
            "bookingId": record.booking_id,
            "submissionId": record.submission_id,
            "status": SubmissionState.PROCESSED.value,
            "emailVerified": record.is_verified,
            "submittedAt": record.details.get("submittedAt"),
            "verifiedAt": record.details.get("verifiedAt"),
            "eventTitle": record.event,
            "artistName": record.artist,
        }

    def purge_stale(self) -> int:
        """
        Drop submissions older than the retention window.

        Unverified submissions age from when they were submitted, processed
        ones from when their client record was created.
        """
        cutoff = self._clock() - self._retention
        stale = [
            submission
            for submission in self._by_booking_id.values()
            if not submission.materializing
            and (submission.processed_at or submission.submitted_at) < cutoff
        ]
        for submission in stale:
            del self._by_booking_id[submission.booking_id]
            if self._by_email.get(submission.email) == submission.booking_id:
                del self._by_email[submission.email]
                self._otp.discard(submission.email)
        self._otp.purge_expired()
        if stale:
            logger.info(f"Purged {len(stale)} stale booking submissions")
        return len(stale)
