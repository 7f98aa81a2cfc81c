"""
Outbox of payment-gateway calls that accompany local subscription changes.
"""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, Text
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base

INTENT_CANCEL_AT_PERIOD_END = "cancel_at_period_end"

INTENT_PENDING = "pending"
INTENT_SUCCEEDED = "succeeded"
INTENT_FAILED = "failed"
INTENT_SKIPPED = "skipped"


class BillingIntent(Base):
    """
    Written in the same transaction as the local change, then dispatched.

    Rows left ``pending`` or ``failed`` are picked up again by
    ``SubscriptionService.replay_pending_intents``.
    """

    __tablename__ = "billing_intents"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    subscription_id = Column(
        UUID(as_uuid=True), ForeignKey("user_subscriptions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    kind = Column(String(50), nullable=False)
    stripe_subscription_id = Column(String(255), nullable=True)
    status = Column(String(20), default=INTENT_PENDING, nullable=False, index=True)
    attempts = Column(Integer, default=0, nullable=False)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<BillingIntent(id={self.id}, kind={self.kind}, status={self.status})>"
