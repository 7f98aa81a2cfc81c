"""
Database models package.

All SQLAlchemy models are exported from this module for easy imports.
"""
from app.models.user import User, Account
from app.models.verification import Verification
from app.models.subscription import (
    SubscriptionPlan,
    UserSubscription,
    SubscriptionHistory,
    SubscriptionStatus,
    BillingCycle,
)
from app.models.billing_intent import BillingIntent

__all__ = [
    "User",
    "Account",
    "Verification",
    "SubscriptionPlan",
    "UserSubscription",
    "SubscriptionHistory",
    "SubscriptionStatus",
    "BillingCycle",
    "BillingIntent",
]
