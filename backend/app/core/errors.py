"""
Typed service errors.

Services raise these instead of building HTTP responses. Each error carries a
stable machine-readable ``code`` and the HTTP status the API layer maps it to;
``app.main`` renders them into the ``{status, code, message}`` envelope.
"""
from typing import Optional

from fastapi import status


class ServiceError(Exception):
    """Base class for expected, user-facing failures."""

    code = "error"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request could not be completed."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# Verification ledger


class VerificationNotFound(ServiceError):
    code = "otp_not_found"
    default_message = "Invalid or expired verification code. Please request a new one."


class VerificationExpired(ServiceError):
    code = "otp_expired"
    default_message = "Verification code has expired. Please request a new one."


class VerificationCorrupt(ServiceError):
    code = "otp_corrupt"
    default_message = "Invalid verification data. Please start again."


class OtpMismatch(ServiceError):
    code = "otp_mismatch"
    default_message = "Invalid verification code. Please check and try again."


class EmailMismatch(ServiceError):
    code = "email_mismatch"
    default_message = "Email mismatch. Please use the same email you started with."


class TooManyAttempts(ServiceError):
    code = "otp_attempts_exceeded"
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many incorrect attempts. Please request a new code."


class AlreadyExists(ServiceError):
    code = "already_exists"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Account already exists. Please login instead."


class ConflictError(ServiceError):
    """Unique constraint violated by a concurrent writer."""

    code = "conflict"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Username or email already exists. Please choose different credentials."


# Authentication


class InvalidCredentials(ServiceError):
    code = "invalid_credentials"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid username/email or password."


class UserNotFound(ServiceError):
    code = "user_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "User not found. Please try again."


class UnsupportedVerification(ServiceError):
    code = "unsupported_verification"
    default_message = "This verification request does not support this action."


class EmailDeliveryError(ServiceError):
    code = "email_delivery_failed"
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Failed to send verification email. Please try again."


# Subscriptions


class SelfServiceForbidden(ServiceError):
    code = "self_service_forbidden"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Subscriptions for this account are managed by the platform."


class NoActiveSubscription(ServiceError):
    code = "no_active_subscription"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "No active subscription found"


class PlanNotFound(ServiceError):
    code = "plan_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Subscription plan not found"


class AlreadySubscribed(ServiceError):
    code = "already_subscribed"
    default_message = "You are already subscribed to this plan"


class PriceNotConfigured(ServiceError):
    code = "price_not_configured"
    default_message = "Stripe price not configured for this plan"


class GatewayUnavailable(ServiceError):
    code = "gateway_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Payments are not configured"


class PaymentGatewayError(ServiceError):
    code = "payment_gateway_error"
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Payment provider request failed. Please try again."
