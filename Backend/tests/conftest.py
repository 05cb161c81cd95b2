"""
Pytest configuration and fixtures.

Tests never touch a database or send email: the app runs with the in-memory
client store, every service is rebuilt per test around a fake clock, and
outbound email lands in a capturing notifier.
"""
import os
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

# Must be set before anything imports portal.core.config
os.environ["CLIENT_STORE"] = "memory"
os.environ["ENVIRONMENT"] = "development"
os.environ["JWT_SECRET"] = "test-jwt-secret-0123456789abcdef0123456789"
os.environ["ADMIN_USERNAME"] = "admin"
os.environ["ADMIN_PASSWORD"] = "test_admin_password"
os.environ["RESEND_API_KEY"] = ""
os.environ["OTP_RATE_LIMIT"] = "10"
os.environ["LOGIN_RATE_LIMIT"] = "20"

import pytest
from httpx import AsyncClient, ASGITransport

from portal.admin_auth import AdminAuthenticator, AdminPrincipal
from portal.booking_submission import BookingSubmissionWorkflow
from portal.coordinators import assign_coordinator
from portal.impersonation import ImpersonationTokenIssuer
from portal.otp_store import OtpChallengeStore
from portal.rate_limiter import get_rate_limiter
from portal.repository import ClientRecord, ClientStatus, InMemoryClientRepository
from portal.session_auth import SessionAuthenticator

JWT_SECRET = os.environ["JWT_SECRET"]
ADMIN_USERNAME = os.environ["ADMIN_USERNAME"]
ADMIN_PASSWORD = os.environ["ADMIN_PASSWORD"]

CODE_PATTERN = re.compile(r"Verification Code: (\d{6})")


class FakeClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, start: datetime = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@dataclass
class SentEmail:
    address: str
    subject: str
    body: str


class CapturingNotifier:
    def __init__(self):
        self.sent: list[SentEmail] = []
        self.deliver = True

    async def send(self, address: str, subject: str, body: str) -> bool:
        self.sent.append(SentEmail(address, subject, body))
        return self.deliver

    def last_code(self, address: str) -> str:
        """Most recent verification code emailed to `address`."""
        for email in reversed(self.sent):
            if email.address == address:
                match = CODE_PATTERN.search(email.body)
                if match:
                    return match.group(1)
        raise AssertionError(f"No verification code sent to {address}")


# ============================================================================
# SERVICE FIXTURES
# ============================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> CapturingNotifier:
    return CapturingNotifier()


@pytest.fixture
def repository(clock) -> InMemoryClientRepository:
    return InMemoryClientRepository(clock=clock)


@pytest.fixture
def otp_store(clock) -> OtpChallengeStore:
    return OtpChallengeStore(clock=clock)


@pytest.fixture
def workflow(repository, otp_store, notifier, clock) -> BookingSubmissionWorkflow:
    return BookingSubmissionWorkflow(
        repository,
        otp_store,
        notifier,
        clock=clock,
        portal_url="http://portal.test",
    )


@pytest.fixture
def authenticator(repository, clock) -> SessionAuthenticator:
    return SessionAuthenticator(repository, clock=clock)


@pytest.fixture
def admin_auth(clock) -> AdminAuthenticator:
    return AdminAuthenticator(ADMIN_USERNAME, ADMIN_PASSWORD, JWT_SECRET, clock=clock)


@pytest.fixture
def issuer(authenticator, clock) -> ImpersonationTokenIssuer:
    return ImpersonationTokenIssuer(authenticator, JWT_SECRET, clock=clock)


@pytest.fixture
def admin() -> AdminPrincipal:
    return AdminPrincipal(ADMIN_USERNAME)


# ============================================================================
# DATA FIXTURES
# ============================================================================

@pytest.fixture
def booking_form() -> dict:
    """A complete, valid submission payload as the frontend sends it."""
    return {
        "firstName": "Jane",
        "lastName": "Doe",
        "email": "Jane.Doe@Example.com",
        "phone": "+1-555-0100",
        "company": "Acme Events",
        "eventType": "corporate",
        "eventTitle": "Annual Gala",
        "eventDescription": "Evening gala with live music",
        "eventDate": "2025-06-15",
        "eventLocation": "Los Angeles, CA",
        "eventDuration": "3 hours",
        "artistName": "The Headliners",
        "artistCategory": "musician",
        "specialRequests": None,
        "budgetRange": "50k-100k",
        "paymentMethod": "wire",
        "billingAddress": {
            "street": "1 Main St",
            "city": "Los Angeles",
            "state": "CA",
            "zipCode": "90001",
            "country": "US",
        },
        "hearAboutUs": "referral",
        "additionalNotes": None,
        "termsAccepted": True,
        "marketingConsent": False,
    }


@pytest.fixture
def make_client(repository, clock):
    """Factory that stores a client record directly, bypassing the workflow."""

    async def _make(booking_id: str = "WME24001", status: ClientStatus = ClientStatus.ACTIVE, **overrides):
        fields = {
            "booking_id": booking_id,
            "name": "John Doe",
            "email": "john.doe@example.com",
            "artist": "Taylor Swift",
            "event": "Grammy Awards Performance",
            "event_date": "2025-02-04",
            "event_location": "Crypto.com Arena, Los Angeles",
            "status": status,
            "contract_amount": 2500000,
            "coordinator": assign_coordinator("musician"),
            "created_at": clock(),
            "updated_at": clock(),
        }
        fields.update(overrides)
        return await repository.create(ClientRecord(**fields))

    return _make


# ============================================================================
# HTTP CLIENT
# ============================================================================

@pytest.fixture(autouse=True)
def clear_rate_limits():
    get_rate_limiter().clear()
    yield
    get_rate_limiter().clear()


@pytest.fixture
async def client(repository, otp_store, notifier, workflow, authenticator, admin_auth, issuer):
    """
    AsyncClient against the app with every service provider overridden.

    The fixtures above are the same objects the routes see, so tests can
    arrange state directly and then go through HTTP.
    """
    # Import here so the environment above is in place first
    from portal.main import app
    from portal import dependencies

    app.dependency_overrides[dependencies.get_client_repository] = lambda: repository
    app.dependency_overrides[dependencies.get_otp_store] = lambda: otp_store
    app.dependency_overrides[dependencies.get_notifier] = lambda: notifier
    app.dependency_overrides[dependencies.get_workflow] = lambda: workflow
    app.dependency_overrides[dependencies.get_authenticator] = lambda: authenticator
    app.dependency_overrides[dependencies.get_admin_authenticator] = lambda: admin_auth
    app.dependency_overrides[dependencies.get_token_issuer] = lambda: issuer

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(admin_auth) -> dict:
    session = admin_auth.login(ADMIN_USERNAME, ADMIN_PASSWORD)
    return {"Authorization": f"Bearer {session.token}"}
