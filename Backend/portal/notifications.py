"""
Outbound notifications.

The core only needs `send(address, subject, body) -> bool`. Delivery is
best-effort: a failed send is logged and reported as False, never retried
and never raised into the request.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

from .core.config import get_settings

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


class Notifier(Protocol):
    async def send(self, address: str, subject: str, body: str) -> bool: ...


class ResendEmailNotifier:
    """Sends plain-text email through the Resend HTTP API."""

    def __init__(
        self,
        api_key: str,
        sender: str,
        timeout: float = 10,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key
        self._sender = sender
        self._timeout = timeout
        self._transport = transport

    async def send(self, address: str, subject: str, body: str) -> bool:
        payload = {
            "from": self._sender,
            "to": address,
            "subject": subject,
            "text": body,
        }
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(RESEND_API_URL, json=payload, headers=headers)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"Email to {address} rejected: HTTP {e.response.status_code} {e.response.text}")
            return False
        except httpx.HTTPError as e:
            logger.error(f"Email to {address} failed: {e}")
            return False

        logger.info(f"Email sent to {address}: {subject}")
        return True


class ConsoleNotifier:
    """Development notifier: writes the message to the log instead of sending it."""

    async def send(self, address: str, subject: str, body: str) -> bool:
        logger.info(
            "\n📧 Email Simulation:\n"
            f"To: {address}\n"
            f"Subject: {subject}\n"
            f"{body}\n"
            "─────────────────────────────────────"
        )
        return True


def build_notifier() -> Notifier:
    settings = get_settings()
    if settings.email_configured:
        return ResendEmailNotifier(settings.resend_api_key, settings.resend_from)
    logger.warning("Resend is not configured; emails will be written to the log.")
    return ConsoleNotifier()


# ────────────────────────────────────────────────────────────────
# Message Templates
# ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class EmailMessage:
    subject: str
    body: str


def verification_email(
    first_name: str,
    booking_id: str,
    code: str,
    ttl_minutes: int,
    event_title: str,
    artist_name: str,
    event_date: str,
    event_location: str,
) -> EmailMessage:
    body = f"""Hello {first_name},

Thank you for your booking request with WME!

Your booking ID is: {booking_id}

To complete your booking request, please verify your email address using the following verification code:

Verification Code: {code}

This code will expire in {ttl_minutes} minutes.

Event Details:
- Event: {event_title}
- Artist: {artist_name}
- Date: {event_date}
- Location: {event_location}

What happens next:
1. Verify your email with the code above
2. Our team will review your request within 24 hours
3. You'll receive a follow-up email with next steps
4. Access your booking portal at any time with your Booking ID

Best regards,
WME Booking Team
"""
    return EmailMessage(
        subject=f"WME Booking Request - Verification Required ({booking_id})",
        body=body,
    )


def resend_code_email(booking_id: str, code: str, ttl_minutes: int) -> EmailMessage:
    body = f"""Hello,

Here is your new verification code for your WME booking request:

Verification Code: {code}
Booking ID: {booking_id}

This code will expire in {ttl_minutes} minutes.

If you did not request this code, please ignore this email.

Best regards,
WME Booking Team
"""
    return EmailMessage(
        subject=f"WME Booking - New Verification Code ({booking_id})",
        body=body,
    )


def confirmation_email(first_name: str, event_title: str, booking_id: str, portal_url: str) -> EmailMessage:
    body = f"""Hello {first_name},

Your email has been successfully verified!

Your booking request for "{event_title}" has been submitted and is now under review.

Booking ID: {booking_id}

You can now access your client portal using your Booking ID at: {portal_url}

Our team will review your request and contact you within 24 hours with:
- Talent availability confirmation
- Detailed quote and contract terms
- Next steps for your booking

Thank you for choosing WME!

Best regards,
WME Booking Team
"""
    return EmailMessage(
        subject=f"Email Verified - Booking Request Under Review ({booking_id})",
        body=body,
    )
