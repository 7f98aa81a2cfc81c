"""
API endpoints for OTP login and session exchange.

Endpoints:
- POST /auth/password/send-otp - Check password, email a login code
- POST /auth/password/verify - Confirm the login code
- POST /auth/password/resend - Rotate and resend the login code
- POST /auth/email/send-otp - Email a passwordless login code
- POST /auth/email/verify - Confirm the code, creating the user on first login
- POST /auth/session/exchange - Trade a session-bridge token for a JWT
- GET /auth/ping - Bearer token probe
"""
from fastapi import APIRouter, Depends, Request
import logging

from app.api.dependencies import get_authentication_service
from app.core.config import settings
from app.core.nextauth import get_current_user
from app.core.rate_limit import limiter
from app.models import User
from app.schemas import (
    ApiResponse,
    EmailLoginVerifyResponse,
    EmailOtpRequest,
    LoginVerifyResponse,
    OtpVerifyRequest,
    PasswordLoginRequest,
    ResendRequest,
    SendOtpResponse,
    SessionExchangeRequest,
    SessionExchangeResponse,
)
from app.services.authentication import AuthenticationService
from app.services.verification import IssuedCode

logger = logging.getLogger(__name__)

router = APIRouter()


def _sent_message(issued: IssuedCode) -> str:
    if issued.delivered:
        return "Verification code sent to your email"
    return "OTP generated (email delivery disabled, check server logs)"


@router.post("/password/send-otp", response_model=SendOtpResponse, response_model_exclude_none=True)
@limiter.limit(settings.otp_rate_limit)
async def send_password_otp(
    request: Request,
    payload: PasswordLoginRequest,
    service: AuthenticationService = Depends(get_authentication_service),
):
    """
    Step one of password login: the password must match before a code is sent.
    """
    issued = service.send_password_otp(payload.identifier, payload.password)
    return SendOtpResponse(status="success", message=_sent_message(issued), email=issued.identifier)


@router.post("/password/verify", response_model=LoginVerifyResponse, response_model_exclude_none=True)
@limiter.limit(settings.otp_rate_limit)
async def verify_password_otp(
    request: Request,
    payload: OtpVerifyRequest,
    service: AuthenticationService = Depends(get_authentication_service),
):
    verified = service.verify_password_otp(payload.email, payload.otp)
    return LoginVerifyResponse(
        status="success",
        message="OTP verified successfully",
        session_token=verified.session_token,
    )


@router.post("/password/resend", response_model=ApiResponse, response_model_exclude_none=True)
@limiter.limit(settings.otp_rate_limit)
async def resend_password_otp(
    request: Request,
    payload: ResendRequest,
    service: AuthenticationService = Depends(get_authentication_service),
):
    service.resend_password_otp(payload.email)
    return ApiResponse(status="success", message="A new verification code has been sent to your email")


@router.post("/email/send-otp", response_model=SendOtpResponse, response_model_exclude_none=True)
@limiter.limit(settings.otp_rate_limit)
async def send_email_otp(
    request: Request,
    payload: EmailOtpRequest,
    service: AuthenticationService = Depends(get_authentication_service),
):
    issued = service.send_email_otp(payload.email)
    return SendOtpResponse(status="success", message=_sent_message(issued), email=issued.identifier)


@router.post("/email/verify", response_model=EmailLoginVerifyResponse, response_model_exclude_none=True)
@limiter.limit(settings.otp_rate_limit)
async def verify_email_otp(
    request: Request,
    payload: OtpVerifyRequest,
    service: AuthenticationService = Depends(get_authentication_service),
):
    """
    Passwordless login. A first successful verification creates the account.
    """
    verified = service.verify_email_otp(payload.email, payload.otp)
    return EmailLoginVerifyResponse(
        status="success",
        message="OTP verified successfully",
        email=verified.email,
        session_token=verified.session_token,
    )


@router.post("/session/exchange", response_model=SessionExchangeResponse, response_model_exclude_none=True)
@limiter.limit(settings.otp_rate_limit)
async def exchange_session_token(
    request: Request,
    payload: SessionExchangeRequest,
    service: AuthenticationService = Depends(get_authentication_service),
):
    """
    Redeem a single-use session-bridge token for a signed session JWT.
    """
    access_token = service.exchange_session_token(payload.email, payload.session_token)
    return SessionExchangeResponse(
        status="success",
        message="Session established",
        access_token=access_token,
    )


@router.get("/ping")
async def auth_ping(current_user: User = Depends(get_current_user)):
    """
    Auth-protected ping to verify JWT validity and user resolution.
    """
    return {
        "status": "ok",
        "user_id": str(current_user.id),
        "email": current_user.email,
    }
