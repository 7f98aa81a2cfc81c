"""
Role-based authorization dependencies.

Admin-tier accounts (instructors and superadmins) use a separate entitlement
path and cannot manage subscriptions themselves.
"""
from fastapi import Depends, Request

from app.core.errors import SelfServiceForbidden
from app.core.nextauth import get_current_user
from app.models import User


def get_self_service_user(
    request: Request,
    current_user: User = Depends(get_current_user),
) -> User:
    """
    Subscription self-service dependency.

    Also records the user id on ``request.state`` so the rate limiter can key
    on the user rather than the client address.

    Raises:
        SelfServiceForbidden: if the user holds an admin-tier role
    """
    if current_user.is_admin:
        raise SelfServiceForbidden()

    request.state.rate_limit_key = f"user:{current_user.id}"
    return current_user
