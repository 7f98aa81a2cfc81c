"""
Pydantic schemas for API request/response validation.
"""
from app.schemas.common import (
    ApiResponse,
    FieldError,
    ValidationErrorResponse,
)
from app.schemas.auth import (
    PasswordLoginRequest,
    OtpVerifyRequest,
    ResendRequest,
    EmailOtpRequest,
    SendOtpResponse,
    LoginVerifyResponse,
    EmailLoginVerifyResponse,
    SessionExchangeRequest,
    SessionExchangeResponse,
    StudentRegistrationRequest,
)
from app.schemas.subscription import (
    PlanDetail,
    SubscriptionDetail,
    SubscriptionHistoryEntry,
    SubscriptionOverviewResponse,
    UpgradeRequest,
    UpgradeResponse,
)

__all__ = [
    "ApiResponse",
    "FieldError",
    "ValidationErrorResponse",
    "PasswordLoginRequest",
    "OtpVerifyRequest",
    "ResendRequest",
    "EmailOtpRequest",
    "SendOtpResponse",
    "LoginVerifyResponse",
    "EmailLoginVerifyResponse",
    "SessionExchangeRequest",
    "SessionExchangeResponse",
    "StudentRegistrationRequest",
    "PlanDetail",
    "SubscriptionDetail",
    "SubscriptionHistoryEntry",
    "SubscriptionOverviewResponse",
    "UpgradeRequest",
    "UpgradeResponse",
]
