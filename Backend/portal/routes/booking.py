"""
Booking submission endpoints.

    POST /api/booking/submit              -> validate form, email a verification code
    POST /api/booking/verify-email        -> check the code, create the client record
    POST /api/booking/resend-otp          -> replace the outstanding code
    GET  /api/booking/status/{bookingId}  -> submission lifecycle state
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from ..booking_submission import BookingSubmissionWorkflow
from ..core.config import get_settings
from ..core.responses import success_response
from ..dependencies import get_workflow
from ..rate_limiter import rate_limit_dependency
from .schemas import CamelRequest

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/api/booking", tags=["booking"])

otp_rate_limit = rate_limit_dependency("otp", settings.otp_rate_limit)


class VerifyEmailRequest(CamelRequest):
    email: str
    code: str


class ResendOtpRequest(CamelRequest):
    email: str


@router.post("/submit")
async def submit_booking(
    payload: Dict[str, Any] = Body(...),
    workflow: BookingSubmissionWorkflow = Depends(get_workflow),
):
    receipt = await workflow.submit(payload)
    return success_response({
        "bookingId": receipt.booking_id,
        "submissionId": receipt.submission_id,
        "message": "Booking request submitted successfully. Please check your email for verification instructions.",
        "nextStep": "email_verification",
    })


@router.post("/verify-email", dependencies=[Depends(otp_rate_limit)])
async def verify_email(
    body: VerifyEmailRequest,
    workflow: BookingSubmissionWorkflow = Depends(get_workflow),
):
    result = await workflow.verify_email(body.email, body.code)
    return success_response({
        "bookingId": result.booking_id,
        "message": "Email verified successfully. Your booking request is now under review.",
        "nextStep": "access_portal",
    })


@router.post("/resend-otp", dependencies=[Depends(otp_rate_limit)])
async def resend_otp(
    body: ResendOtpRequest,
    workflow: BookingSubmissionWorkflow = Depends(get_workflow),
):
    await workflow.resend_otp(body.email)
    return success_response({"message": "New verification code sent to your email"})


@router.get("/status/{booking_id}")
async def submission_status(
    booking_id: str,
    workflow: BookingSubmissionWorkflow = Depends(get_workflow),
):
    return success_response(await workflow.get_status(booking_id))
