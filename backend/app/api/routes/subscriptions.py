"""
API endpoints for subscription self-service.

Endpoints:
- GET /subscription/plans - Active plan catalog
- GET /subscription/current - Current subscription, history and access flag
- POST /subscription/cancel - Cancel at period end
- POST /subscription/upgrade - Start a Stripe checkout for another plan
"""
from typing import Callable, ContextManager, List
import uuid
from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session
import logging

from app.core.admin_auth import get_self_service_user
from app.core.config import settings
from app.core.nextauth import get_current_user
from app.core.rate_limit import limiter, user_fingerprint
from app.db.base import get_db, get_session_scope
from app.models import User
from app.schemas import (
    ApiResponse,
    PlanDetail,
    SubscriptionDetail,
    SubscriptionHistoryEntry,
    SubscriptionOverviewResponse,
    UpgradeRequest,
    UpgradeResponse,
)
from app.services.subscription import subscription_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/plans", response_model=List[PlanDetail])
async def list_plans(db: Session = Depends(get_db)):
    """
    Active plans, cheapest first. Custom-priced plans come last.
    """
    return subscription_service.list_plans(db)


@router.get("/current", response_model=SubscriptionOverviewResponse)
async def get_current_subscription(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Most recent subscription with its history.

    A cancelled subscription still grants access until its period ends.
    """
    overview = subscription_service.get_overview(current_user.id, db)
    return SubscriptionOverviewResponse(
        subscription=SubscriptionDetail.model_validate(overview.subscription) if overview.subscription else None,
        history=[SubscriptionHistoryEntry.model_validate(entry) for entry in overview.history],
        has_access=overview.has_access,
    )


@router.post("/cancel", response_model=ApiResponse, response_model_exclude_none=True)
@limiter.limit(settings.subscription_rate_limit, key_func=user_fingerprint)
async def cancel_subscription(
    request: Request,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_self_service_user),
    db: Session = Depends(get_db),
    session_scope: Callable[[], ContextManager[Session]] = Depends(get_session_scope),
):
    """
    Cancel the current subscription.

    The local state change commits first; the Stripe update runs after the
    response from the recorded billing intent.
    """
    result = subscription_service.cancel(current_user, db)
    if result.intent_id is not None:
        background_tasks.add_task(_dispatch_cancel, result.intent_id, session_scope)

    return ApiResponse(
        status="success",
        message="Subscription cancelled successfully. You'll retain access until the end of your billing period.",
    )


@router.post("/upgrade", response_model=UpgradeResponse, response_model_exclude_none=True)
@limiter.limit(settings.subscription_rate_limit, key_func=user_fingerprint)
async def upgrade_subscription(
    request: Request,
    payload: UpgradeRequest,
    current_user: User = Depends(get_self_service_user),
    db: Session = Depends(get_db),
):
    """
    Create a checkout session for the new plan on the current billing cycle.

    Nothing changes locally until Stripe confirms the payment.
    """
    checkout = subscription_service.upgrade(current_user, payload.plan_id, db)

    return UpgradeResponse(
        status="success",
        message="Redirecting to checkout",
        checkout_url=checkout.checkout_url,
    )


def _dispatch_cancel(intent_id: uuid.UUID, session_scope: Callable[[], ContextManager[Session]]) -> None:
    with session_scope() as db:
        subscription_service.dispatch_intent(intent_id, db)
