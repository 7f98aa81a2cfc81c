"""
Pydantic schemas for subscription operations.
"""
import uuid
from datetime import datetime
from typing import List, Optional, Literal
from pydantic import BaseModel, ConfigDict, Field

from app.schemas.common import ApiResponse


SubscriptionStatusName = Literal["Trial", "Active", "PastDue", "Cancelled", "Expired"]
BillingCycleName = Literal["Monthly", "Yearly"]


class PlanDetail(BaseModel):
    """Plan catalog entry for display."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    slug: str
    description: Optional[str] = None
    plan_type: str
    price_monthly: Optional[int] = None  # in cents
    price_yearly: Optional[int] = None  # in cents
    is_popular: bool
    trial_days: int
    max_course_access: Optional[int] = None
    team_seats: int
    features: Optional[List[str]] = None


class SubscriptionDetail(BaseModel):
    """A user's subscription record."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    plan_id: uuid.UUID
    plan: Optional[PlanDetail] = None
    status: SubscriptionStatusName
    billing_cycle: BillingCycleName
    auto_renew: bool
    cancelled_at: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    next_billing_date: Optional[datetime] = None
    created_at: datetime


class SubscriptionHistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    subscription_id: uuid.UUID
    action: str
    old_plan_id: Optional[uuid.UUID] = None
    new_plan_id: Optional[uuid.UUID] = None
    created_at: datetime


class SubscriptionOverviewResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    subscription: Optional[SubscriptionDetail] = None
    history: List[SubscriptionHistoryEntry] = []
    has_access: bool = Field(False, alias="hasAccess")


class UpgradeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plan_id: str = Field(..., alias="planId", min_length=1, description="Target plan ID")


class UpgradeResponse(ApiResponse):
    checkout_url: Optional[str] = Field(default=None, alias="checkoutUrl")
