"""
Subscription plan catalog, per-user subscriptions and their audit history.
"""
import uuid
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, DateTime, Integer, Boolean, ForeignKey, Text, JSON
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.base import Base


class SubscriptionStatus(str, Enum):
    TRIAL = "Trial"
    ACTIVE = "Active"
    PAST_DUE = "PastDue"
    CANCELLED = "Cancelled"
    EXPIRED = "Expired"


class BillingCycle(str, Enum):
    MONTHLY = "Monthly"
    YEARLY = "Yearly"


# Statuses that make a subscription "the current one"
CURRENT_STATUSES = (SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIAL.value)

# Allowed status transitions; Cancelled and Expired are terminal for the record
STATUS_TRANSITIONS = {
    SubscriptionStatus.TRIAL.value: {
        SubscriptionStatus.ACTIVE.value,
        SubscriptionStatus.CANCELLED.value,
        SubscriptionStatus.PAST_DUE.value,
        SubscriptionStatus.EXPIRED.value,
    },
    SubscriptionStatus.ACTIVE.value: {
        SubscriptionStatus.CANCELLED.value,
        SubscriptionStatus.PAST_DUE.value,
        SubscriptionStatus.EXPIRED.value,
    },
    SubscriptionStatus.PAST_DUE.value: {
        SubscriptionStatus.ACTIVE.value,
        SubscriptionStatus.CANCELLED.value,
    },
    SubscriptionStatus.CANCELLED.value: set(),
    SubscriptionStatus.EXPIRED.value: set(),
}


class SubscriptionPlan(Base):
    """Catalog entry. Prices are stored in cents."""

    __tablename__ = "subscription_plans"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    slug = Column(String(50), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    plan_type = Column(String(50), nullable=False)

    price_monthly = Column(Integer, nullable=True)  # None = custom pricing
    price_yearly = Column(Integer, nullable=True)
    stripe_price_id_monthly = Column(String(255), nullable=True)
    stripe_price_id_yearly = Column(String(255), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    is_popular = Column(Boolean, default=False, nullable=False)
    trial_days = Column(Integer, default=0, nullable=False)
    max_course_access = Column(Integer, nullable=True)  # None = unlimited
    team_seats = Column(Integer, default=1, nullable=False)
    features = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def price_id_for(self, billing_cycle: str):
        """Stripe price for the given cadence, or None when not configured."""
        if billing_cycle == BillingCycle.YEARLY.value:
            return self.stripe_price_id_yearly
        return self.stripe_price_id_monthly

    def __repr__(self):
        return f"<SubscriptionPlan(id={self.id}, slug={self.slug}, active={self.is_active})>"


class UserSubscription(Base):
    """A user's billing relationship with one plan."""

    __tablename__ = "user_subscriptions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    plan_id = Column(UUID(as_uuid=True), ForeignKey("subscription_plans.id"), nullable=False, index=True)

    status = Column(String(20), default=SubscriptionStatus.ACTIVE.value, nullable=False, index=True)
    billing_cycle = Column(String(20), default=BillingCycle.MONTHLY.value, nullable=False)
    stripe_subscription_id = Column(String(255), unique=True, nullable=True, index=True)
    auto_renew = Column(Boolean, default=True, nullable=False)

    # Billing period
    current_period_end = Column(DateTime, nullable=True)
    next_billing_date = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="subscriptions")
    plan = relationship("SubscriptionPlan")

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in STATUS_TRANSITIONS.get(self.status, set())

    def transition_to(self, new_status: str) -> None:
        """
        Move to ``new_status``.

        Raises:
            ValueError: the transition is not allowed from the current status
        """
        if not self.can_transition_to(new_status):
            raise ValueError(f"Cannot move subscription from {self.status} to {new_status}")
        self.status = new_status

    def __repr__(self):
        return f"<UserSubscription(id={self.id}, user_id={self.user_id}, status={self.status})>"


class SubscriptionHistory(Base):
    """Append-only audit trail of subscription actions."""

    __tablename__ = "subscription_history"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    subscription_id = Column(
        UUID(as_uuid=True), ForeignKey("user_subscriptions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    action = Column(String(30), nullable=False)
    old_plan_id = Column(UUID(as_uuid=True), ForeignKey("subscription_plans.id"), nullable=True)
    new_plan_id = Column(UUID(as_uuid=True), ForeignKey("subscription_plans.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    subscription = relationship("UserSubscription")
    old_plan = relationship("SubscriptionPlan", foreign_keys=[old_plan_id])
    new_plan = relationship("SubscriptionPlan", foreign_keys=[new_plan_id])

    def __repr__(self):
        return (
            f"<SubscriptionHistory(id={self.id}, action={self.action}, "
            f"subscription_id={self.subscription_id})>"
        )
