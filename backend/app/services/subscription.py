"""
Subscription service for the plan catalog and the subscription lifecycle.

Handles:
- Plan catalog listing and seeding
- Current subscription lookup and access checks
- Cancellation (local state first, Stripe call through the billing outbox)
- Upgrades via a new Stripe checkout session
- Replay of billing intents left pending or failed
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional
import logging

import stripe
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import (
    AlreadySubscribed,
    GatewayUnavailable,
    NoActiveSubscription,
    PaymentGatewayError,
    PlanNotFound,
    PriceNotConfigured,
    SelfServiceForbidden,
)
from app.core.pricing import PLAN_CATALOG, get_stripe_price_id
from app.db.base import commit
from app.models import (
    BillingIntent,
    SubscriptionHistory,
    SubscriptionPlan,
    SubscriptionStatus,
    User,
    UserSubscription,
)
from app.models.billing_intent import (
    INTENT_CANCEL_AT_PERIOD_END,
    INTENT_FAILED,
    INTENT_PENDING,
    INTENT_SKIPPED,
    INTENT_SUCCEEDED,
)
from app.models.subscription import CURRENT_STATUSES

logger = logging.getLogger(__name__)

# Initialize Stripe with API key from settings
stripe.api_key = settings.stripe_api_key

HISTORY_CANCELLED = "Cancelled"

# Statuses that still grant product access
ACCESS_STATUSES = (
    SubscriptionStatus.ACTIVE.value,
    SubscriptionStatus.TRIAL.value,
    SubscriptionStatus.PAST_DUE.value,
)


@dataclass
class CancelResult:
    """Result of a cancel request."""

    subscription_id: uuid.UUID
    cancelled_at: datetime
    intent_id: Optional[uuid.UUID] = None


@dataclass
class IntentOutcome:
    """Typed outcome of one gateway dispatch."""

    intent_id: uuid.UUID
    status: str
    error: Optional[str] = None


@dataclass
class UpgradeCheckout:
    checkout_url: str
    session_id: str
    price_id: str


@dataclass
class SubscriptionOverview:
    subscription: Optional[UserSubscription]
    history: List[SubscriptionHistory] = field(default_factory=list)
    has_access: bool = False


class SubscriptionService:
    """Service for the plan catalog and user subscriptions."""

    def __init__(self, clock: Callable[[], datetime] = datetime.utcnow):
        self.clock = clock

    # Catalog

    def list_plans(self, db: Session) -> List[SubscriptionPlan]:
        """Active plans, cheapest first; custom-priced plans last."""
        plans = db.query(SubscriptionPlan).filter(SubscriptionPlan.is_active.is_(True)).all()
        return sorted(plans, key=lambda p: (p.price_monthly is None, p.price_monthly or 0))

    def seed_plans(self, db: Session) -> List[SubscriptionPlan]:
        """
        Upsert the catalog plans by slug and deactivate plans outside it.

        Plans are deactivated rather than deleted because subscriptions and
        history rows reference them.
        """
        seeded = []
        for slug, config in PLAN_CATALOG.items():
            plan = db.query(SubscriptionPlan).filter(SubscriptionPlan.slug == slug).first()
            if plan is None:
                plan = SubscriptionPlan(slug=slug)
                db.add(plan)
            for key, value in config.items():
                setattr(plan, key, value)
            plan.stripe_price_id_monthly = get_stripe_price_id(slug, "Monthly")
            plan.stripe_price_id_yearly = get_stripe_price_id(slug, "Yearly")
            plan.is_active = True
            seeded.append(plan)

        stale = db.query(SubscriptionPlan).filter(SubscriptionPlan.slug.notin_(list(PLAN_CATALOG))).all()
        for plan in stale:
            logger.info(f"Deactivating plan outside catalog: {plan.slug}")
            plan.is_active = False

        commit(db)
        logger.info(f"Seeded {len(seeded)} subscription plans")
        return seeded

    # Current state

    def get_current_subscription(self, user_id: uuid.UUID, db: Session) -> Optional[UserSubscription]:
        """
        The user's current subscription: most recent with status Active or Trial.
        """
        return (
            db.query(UserSubscription)
            .filter(
                UserSubscription.user_id == user_id,
                UserSubscription.status.in_(CURRENT_STATUSES),
            )
            .order_by(UserSubscription.created_at.desc())
            .first()
        )

    def get_overview(self, user_id: uuid.UUID, db: Session) -> SubscriptionOverview:
        """
        Most recent subscription of any status plus the full history, newest first.
        """
        subscription = (
            db.query(UserSubscription)
            .filter(UserSubscription.user_id == user_id)
            .order_by(UserSubscription.created_at.desc())
            .first()
        )
        history = (
            db.query(SubscriptionHistory)
            .filter(SubscriptionHistory.user_id == user_id)
            .order_by(SubscriptionHistory.created_at.desc())
            .all()
        )
        return SubscriptionOverview(
            subscription=subscription,
            history=history,
            has_access=self.has_access(subscription),
        )

    def has_access(self, subscription: Optional[UserSubscription], now: Optional[datetime] = None) -> bool:
        """
        Whether the subscription still grants access.

        A cancelled subscription keeps access until the end of the paid period.
        """
        if subscription is None:
            return False
        if subscription.status in ACCESS_STATUSES:
            return True
        if subscription.status == SubscriptionStatus.CANCELLED.value:
            period_end = subscription.current_period_end or subscription.next_billing_date
            if period_end is not None:
                return (now or self.clock()) < period_end
        return False

    @staticmethod
    def ensure_self_service(user: User) -> None:
        if user.is_admin:
            raise SelfServiceForbidden()

    # Cancellation

    def cancel(self, user: User, db: Session) -> CancelResult:
        """
        Cancel the current subscription at period end.

        The local update, the history row and the billing intent are committed
        together; the Stripe call happens afterwards in ``dispatch_intent``.

        Raises:
            SelfServiceForbidden: admin-tier account
            NoActiveSubscription: nothing to cancel
        """
        self.ensure_self_service(user)

        subscription = self.get_current_subscription(user.id, db)
        if subscription is None:
            raise NoActiveSubscription()

        now = self.clock()
        subscription.transition_to(SubscriptionStatus.CANCELLED.value)
        subscription.auto_renew = False
        subscription.cancelled_at = now
        subscription.updated_at = now

        db.add(
            SubscriptionHistory(
                user_id=user.id,
                subscription_id=subscription.id,
                action=HISTORY_CANCELLED,
                old_plan_id=subscription.plan_id,
                created_at=now,
            )
        )

        intent = None
        if subscription.stripe_subscription_id:
            intent = BillingIntent(
                id=uuid.uuid4(),
                user_id=user.id,
                subscription_id=subscription.id,
                kind=INTENT_CANCEL_AT_PERIOD_END,
                stripe_subscription_id=subscription.stripe_subscription_id,
                status=INTENT_PENDING,
                created_at=now,
                updated_at=now,
            )
            db.add(intent)

        subscription_id = subscription.id
        commit(db)

        logger.info(f"Cancelled subscription {subscription_id} for user {user.id}")

        return CancelResult(
            subscription_id=subscription_id,
            cancelled_at=now,
            intent_id=intent.id if intent else None,
        )

    def dispatch_intent(self, intent_id: uuid.UUID, db: Session) -> Optional[IntentOutcome]:
        """
        Perform the Stripe call for one billing intent and record its outcome.

        Failures are recorded on the intent and logged, never raised: local
        state is authoritative and Stripe's own webhooks reconcile later.
        """
        intent = db.get(BillingIntent, intent_id)
        if intent is None:
            logger.warning(f"Billing intent not found: {intent_id}")
            return None
        if intent.status == INTENT_SUCCEEDED:
            return IntentOutcome(intent_id=intent.id, status=intent.status)

        now = self.clock()
        intent.updated_at = now

        if not stripe.api_key:
            intent.status = INTENT_SKIPPED
            intent.last_error = "Stripe API key not configured"
            commit(db)
            logger.warning(f"Billing intent {intent.id} skipped: Stripe API key not configured")
            return IntentOutcome(intent_id=intent.id, status=intent.status, error=intent.last_error)

        intent.attempts += 1
        try:
            if intent.kind == INTENT_CANCEL_AT_PERIOD_END:
                stripe.Subscription.modify(intent.stripe_subscription_id, cancel_at_period_end=True)
            else:
                raise ValueError(f"Unknown billing intent kind: {intent.kind}")
        except Exception as e:
            intent.status = INTENT_FAILED
            intent.last_error = str(e)
            logger.error(
                f"Billing intent {intent.id} ({intent.kind}) failed on attempt {intent.attempts}: {str(e)}",
                exc_info=True,
            )
        else:
            intent.status = INTENT_SUCCEEDED
            intent.last_error = None
            logger.info(f"Billing intent {intent.id} ({intent.kind}) succeeded")

        commit(db)
        return IntentOutcome(intent_id=intent.id, status=intent.status, error=intent.last_error)

    def replay_pending_intents(self, db: Session, max_attempts: int = 5) -> List[IntentOutcome]:
        """
        Re-dispatch intents that never completed (crash after commit, Stripe outage).
        """
        intent_ids = [
            row.id
            for row in db.query(BillingIntent)
            .filter(
                BillingIntent.status.in_([INTENT_PENDING, INTENT_FAILED]),
                BillingIntent.attempts < max_attempts,
            )
            .order_by(BillingIntent.created_at.asc())
            .all()
        ]

        outcomes = []
        for intent_id in intent_ids:
            outcome = self.dispatch_intent(intent_id, db)
            if outcome is not None:
                outcomes.append(outcome)

        logger.info(f"Replayed {len(outcomes)} billing intents")
        return outcomes

    # Upgrade

    def get_or_create_customer(self, user: User, db: Session) -> str:
        """
        Return the user's Stripe customer ID, creating and persisting it once.
        """
        if user.stripe_customer_id:
            return user.stripe_customer_id

        customer_name = user.full_name or user.email.split("@")[0]
        try:
            customer = stripe.Customer.create(
                email=user.email,
                name=customer_name,
                metadata={"userId": str(user.id)},
            )
        except stripe.StripeError as e:
            logger.error(f"Failed to create Stripe customer for user {user.id}: {str(e)}")
            raise PaymentGatewayError() from e

        user.stripe_customer_id = customer.id
        commit(db)
        logger.info(f"Created Stripe customer for user {user.id}: {customer.id}")
        return customer.id

    def upgrade(self, user: User, new_plan_id: str, db: Session) -> UpgradeCheckout:
        """
        Start an upgrade by creating a Stripe checkout session for the new plan.

        The current billing cycle is kept. No local subscription state changes
        here; the checkout metadata lets the webhook retire the old subscription.

        Raises:
            SelfServiceForbidden, PlanNotFound, NoActiveSubscription,
            AlreadySubscribed, PriceNotConfigured, GatewayUnavailable,
            PaymentGatewayError
        """
        self.ensure_self_service(user)

        plan = self._get_active_plan(new_plan_id, db)
        if plan is None:
            raise PlanNotFound()

        current = self.get_current_subscription(user.id, db)
        if current is None:
            raise NoActiveSubscription("No active subscription found. Please subscribe first.")

        if current.plan_id == plan.id:
            raise AlreadySubscribed()

        price_id = plan.price_id_for(current.billing_cycle)
        if not price_id:
            raise PriceNotConfigured()

        if not stripe.api_key:
            raise GatewayUnavailable()

        customer_id = self.get_or_create_customer(user, db)

        metadata = {
            "userId": str(user.id),
            "planId": str(plan.id),
            "billingCycle": current.billing_cycle,
        }
        try:
            session = stripe.checkout.Session.create(
                customer=customer_id,
                line_items=[
                    {
                        "price": price_id,
                        "quantity": 1,
                    }
                ],
                mode="subscription",
                success_url=f"{settings.base_url}/payment/success?type=subscription",
                cancel_url=f"{settings.base_url}/pricing",
                metadata={
                    **metadata,
                    "isUpgrade": "true",
                    "oldSubscriptionId": str(current.id),
                    "oldPlanId": str(current.plan_id),
                },
                subscription_data={"metadata": metadata},
            )
        except stripe.StripeError as e:
            logger.error(f"Failed to create upgrade checkout for user {user.id}: {str(e)}")
            raise PaymentGatewayError() from e

        logger.info(f"Created upgrade checkout session for user {user.id}: {session.id}")

        return UpgradeCheckout(checkout_url=session.url, session_id=session.id, price_id=price_id)

    @staticmethod
    def _get_active_plan(plan_id: str, db: Session) -> Optional[SubscriptionPlan]:
        try:
            plan_uuid = plan_id if isinstance(plan_id, uuid.UUID) else uuid.UUID(str(plan_id))
        except ValueError:
            return None
        return (
            db.query(SubscriptionPlan)
            .filter(SubscriptionPlan.id == plan_uuid, SubscriptionPlan.is_active.is_(True))
            .first()
        )


# Global service instance
subscription_service = SubscriptionService()
