"""
API endpoints for student sign-up.

Endpoints:
- POST /student-registration/send-otp - Validate the form and email a code
- POST /student-registration/resend - Rotate and resend the code
- POST /student-registration/verify - Confirm the code and create the account
"""
from fastapi import APIRouter, Depends, Request
import logging

from app.api.dependencies import get_registration_service
from app.core.config import settings
from app.core.rate_limit import limiter
from app.schemas import (
    ApiResponse,
    OtpVerifyRequest,
    ResendRequest,
    SendOtpResponse,
    StudentRegistrationRequest,
)
from app.services.registration import RegistrationForm, RegistrationService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/send-otp", response_model=SendOtpResponse, response_model_exclude_none=True)
@limiter.limit(settings.otp_rate_limit)
async def send_registration_otp(
    request: Request,
    payload: StudentRegistrationRequest,
    service: RegistrationService = Depends(get_registration_service),
):
    form = RegistrationForm(
        first_name=payload.first_name,
        last_name=payload.last_name,
        username=payload.username,
        email=payload.email,
        password=payload.password,
    )
    issued = service.send_registration_otp(form)
    message = "OTP sent to your email" if issued.delivered else "OTP sent successfully (check server logs in dev mode)"
    return SendOtpResponse(status="success", message=message, email=issued.identifier)


@router.post("/resend", response_model=ApiResponse, response_model_exclude_none=True)
@limiter.limit(settings.otp_rate_limit)
async def resend_registration_otp(
    request: Request,
    payload: ResendRequest,
    service: RegistrationService = Depends(get_registration_service),
):
    service.resend_registration_otp(payload.email)
    return ApiResponse(status="success", message="A new verification code has been sent to your email")


@router.post("/verify", response_model=ApiResponse, response_model_exclude_none=True)
@limiter.limit(settings.otp_rate_limit)
async def verify_registration(
    request: Request,
    payload: OtpVerifyRequest,
    service: RegistrationService = Depends(get_registration_service),
):
    """
    Create the student account once the emailed code is confirmed.
    """
    user = service.verify_registration(payload.email, payload.otp)
    logger.info(f"Student registration completed for {user.email}")
    return ApiResponse(status="success", message="Registration successful! You can now login.")
