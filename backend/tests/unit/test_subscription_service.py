"""
Unit tests for subscription service.

Tests cancellation with the billing outbox, upgrades through Stripe checkout,
access checks and catalog seeding.
"""
import pytest
from unittest.mock import patch, MagicMock
from datetime import datetime, timedelta

import stripe

from app.core.errors import (
    AlreadySubscribed,
    GatewayUnavailable,
    NoActiveSubscription,
    PaymentGatewayError,
    PlanNotFound,
    PriceNotConfigured,
    SelfServiceForbidden,
)
from app.models import BillingIntent, SubscriptionHistory, SubscriptionPlan, UserSubscription
from app.services.subscription import SubscriptionService, subscription_service


class TestCancel:
    """Test cancellation and its billing intent."""

    def test_cancel_updates_state_and_records_history(self, db, student, plans, make_subscription):
        subscription = make_subscription(student, plans["personal"])

        result = subscription_service.cancel(student, db)

        db.refresh(subscription)
        assert subscription.status == "Cancelled"
        assert subscription.auto_renew is False
        assert subscription.cancelled_at == result.cancelled_at

        history = db.query(SubscriptionHistory).all()
        assert len(history) == 1
        assert history[0].action == "Cancelled"
        assert history[0].old_plan_id == plans["personal"].id

        intent = db.get(BillingIntent, result.intent_id)
        assert intent.status == "pending"
        assert intent.kind == "cancel_at_period_end"
        assert intent.stripe_subscription_id == "sub_123"

    def test_cancel_without_gateway_subscription_writes_no_intent(self, db, student, plans, make_subscription):
        make_subscription(student, plans["personal"], stripe_subscription_id=None)

        result = subscription_service.cancel(student, db)

        assert result.intent_id is None
        assert db.query(BillingIntent).count() == 0

    def test_second_cancel_fails_without_duplicate_history(self, db, student, plans, make_subscription):
        make_subscription(student, plans["personal"])
        subscription_service.cancel(student, db)

        with pytest.raises(NoActiveSubscription):
            subscription_service.cancel(student, db)

        assert db.query(SubscriptionHistory).count() == 1
        assert db.query(BillingIntent).count() == 1

    def test_cancel_without_subscription(self, db, student, plans):
        with pytest.raises(NoActiveSubscription):
            subscription_service.cancel(student, db)

    def test_cancel_trial(self, db, student, plans, make_subscription):
        make_subscription(student, plans["team"], status="Trial")

        subscription_service.cancel(student, db)

        assert db.query(UserSubscription).one().status == "Cancelled"

    def test_instructor_cannot_cancel(self, db, instructor, plans, make_subscription):
        make_subscription(instructor, plans["personal"])

        with pytest.raises(SelfServiceForbidden):
            subscription_service.cancel(instructor, db)

        assert db.query(UserSubscription).one().status == "Active"


class TestBillingIntentDispatch:
    """Test the Stripe side of cancellation."""

    @patch("stripe.Subscription.modify")
    def test_dispatch_succeeds(self, mock_modify, db, student, plans, make_subscription):
        make_subscription(student, plans["personal"])
        result = subscription_service.cancel(student, db)

        with patch("app.services.subscription.stripe.api_key", "sk_test_123"):
            outcome = subscription_service.dispatch_intent(result.intent_id, db)

        mock_modify.assert_called_once_with("sub_123", cancel_at_period_end=True)
        assert outcome.status == "succeeded"
        intent = db.get(BillingIntent, result.intent_id)
        assert intent.attempts == 1
        assert intent.last_error is None

    @patch("stripe.Subscription.modify")
    def test_dispatch_failure_is_recorded_not_raised(self, mock_modify, db, student, plans, make_subscription):
        mock_modify.side_effect = stripe.APIConnectionError("network down")
        make_subscription(student, plans["personal"])
        result = subscription_service.cancel(student, db)

        with patch("app.services.subscription.stripe.api_key", "sk_test_123"):
            outcome = subscription_service.dispatch_intent(result.intent_id, db)

        assert outcome.status == "failed"
        assert "network down" in outcome.error
        # Local cancellation stands
        assert db.query(UserSubscription).one().status == "Cancelled"

    @patch("stripe.Subscription.modify")
    def test_dispatch_skipped_without_stripe_key(self, mock_modify, db, student, plans, make_subscription):
        make_subscription(student, plans["personal"])
        result = subscription_service.cancel(student, db)

        with patch("app.services.subscription.stripe.api_key", None):
            outcome = subscription_service.dispatch_intent(result.intent_id, db)

        mock_modify.assert_not_called()
        assert outcome.status == "skipped"

    @patch("stripe.Subscription.modify")
    def test_replay_retries_failed_and_pending(self, mock_modify, db, student, plans, make_subscription):
        make_subscription(student, plans["personal"])
        result = subscription_service.cancel(student, db)
        mock_modify.side_effect = [stripe.APIConnectionError("network down"), MagicMock()]

        with patch("app.services.subscription.stripe.api_key", "sk_test_123"):
            subscription_service.dispatch_intent(result.intent_id, db)
            outcomes = subscription_service.replay_pending_intents(db)

        assert [o.status for o in outcomes] == ["succeeded"]
        assert db.get(BillingIntent, result.intent_id).attempts == 2

    @patch("stripe.Subscription.modify")
    def test_replay_respects_attempt_ceiling(self, mock_modify, db, student, plans, make_subscription):
        make_subscription(student, plans["personal"])
        result = subscription_service.cancel(student, db)
        intent = db.get(BillingIntent, result.intent_id)
        intent.status = "failed"
        intent.attempts = 5
        db.commit()

        with patch("app.services.subscription.stripe.api_key", "sk_test_123"):
            outcomes = subscription_service.replay_pending_intents(db, max_attempts=5)

        assert outcomes == []
        mock_modify.assert_not_called()


class TestUpgrade:
    """Test upgrade checkout creation."""

    @patch("stripe.checkout.Session.create")
    @patch("stripe.Customer.create")
    def test_upgrade_keeps_monthly_cycle(self, mock_customer, mock_stripe, db, student, plans, make_subscription):
        current = make_subscription(student, plans["personal"])
        mock_customer.return_value = MagicMock(id="cus_123")
        mock_stripe.return_value = MagicMock(id="cs_123", url="https://checkout.stripe.com/test")

        with patch("app.services.subscription.stripe.api_key", "sk_test_123"):
            checkout = subscription_service.upgrade(student, str(plans["team"].id), db)

        assert checkout.checkout_url == "https://checkout.stripe.com/test"
        call_args = mock_stripe.call_args
        assert call_args.kwargs["line_items"][0]["price"] == "price_team_monthly"
        assert call_args.kwargs["mode"] == "subscription"
        metadata = call_args.kwargs["metadata"]
        assert metadata["isUpgrade"] == "true"
        assert metadata["oldSubscriptionId"] == str(current.id)
        assert metadata["oldPlanId"] == str(plans["personal"].id)
        assert metadata["billingCycle"] == "Monthly"
        # No local state change until payment is confirmed
        db.refresh(current)
        assert current.status == "Active"
        assert current.plan_id == plans["personal"].id

    @patch("stripe.checkout.Session.create")
    @patch("stripe.Customer.create")
    def test_upgrade_keeps_yearly_cycle(self, mock_customer, mock_stripe, db, student, plans, make_subscription):
        make_subscription(student, plans["personal"], billing_cycle="Yearly")
        mock_customer.return_value = MagicMock(id="cus_123")
        mock_stripe.return_value = MagicMock(id="cs_123", url="https://checkout.stripe.com/test")

        with patch("app.services.subscription.stripe.api_key", "sk_test_123"):
            checkout = subscription_service.upgrade(student, str(plans["team"].id), db)

        assert checkout.price_id == "price_team_yearly"

    @patch("stripe.checkout.Session.create")
    @patch("stripe.Customer.create")
    def test_same_plan_makes_no_gateway_call(self, mock_customer, mock_stripe, db, student, plans, make_subscription):
        make_subscription(student, plans["personal"])

        with patch("app.services.subscription.stripe.api_key", "sk_test_123"):
            with pytest.raises(AlreadySubscribed):
                subscription_service.upgrade(student, str(plans["personal"].id), db)

        mock_customer.assert_not_called()
        mock_stripe.assert_not_called()

    @patch("stripe.checkout.Session.create")
    @patch("stripe.Customer.create")
    def test_existing_customer_is_reused(self, mock_customer, mock_stripe, db, student, plans, make_subscription):
        student.stripe_customer_id = "cus_existing"
        db.commit()
        make_subscription(student, plans["personal"])
        mock_stripe.return_value = MagicMock(id="cs_123", url="https://checkout.stripe.com/test")

        with patch("app.services.subscription.stripe.api_key", "sk_test_123"):
            subscription_service.upgrade(student, str(plans["team"].id), db)

        mock_customer.assert_not_called()
        assert mock_stripe.call_args.kwargs["customer"] == "cus_existing"

    @patch("stripe.checkout.Session.create")
    @patch("stripe.Customer.create")
    def test_new_customer_is_persisted(self, mock_customer, mock_stripe, db, student, plans, make_subscription):
        make_subscription(student, plans["personal"])
        mock_customer.return_value = MagicMock(id="cus_new")
        mock_stripe.return_value = MagicMock(id="cs_123", url="https://checkout.stripe.com/test")

        with patch("app.services.subscription.stripe.api_key", "sk_test_123"):
            subscription_service.upgrade(student, str(plans["team"].id), db)

        db.refresh(student)
        assert student.stripe_customer_id == "cus_new"

    def test_price_not_configured(self, db, student, plans, make_subscription):
        make_subscription(student, plans["personal"])

        with patch("app.services.subscription.stripe.api_key", "sk_test_123"):
            with pytest.raises(PriceNotConfigured):
                subscription_service.upgrade(student, str(plans["enterprise"].id), db)

    def test_unknown_plan(self, db, student, plans, make_subscription):
        make_subscription(student, plans["personal"])

        with pytest.raises(PlanNotFound):
            subscription_service.upgrade(student, "not-a-uuid", db)

    def test_inactive_plan(self, db, student, plans, make_subscription):
        make_subscription(student, plans["personal"])
        plans["team"].is_active = False
        db.commit()

        with pytest.raises(PlanNotFound):
            subscription_service.upgrade(student, str(plans["team"].id), db)

    def test_no_current_subscription(self, db, student, plans):
        with pytest.raises(NoActiveSubscription):
            subscription_service.upgrade(student, str(plans["team"].id), db)

    def test_gateway_not_configured(self, db, student, plans, make_subscription):
        make_subscription(student, plans["personal"])

        with patch("app.services.subscription.stripe.api_key", None):
            with pytest.raises(GatewayUnavailable):
                subscription_service.upgrade(student, str(plans["team"].id), db)

    @patch("stripe.checkout.Session.create")
    @patch("stripe.Customer.create")
    def test_stripe_error_is_fatal(self, mock_customer, mock_stripe, db, student, plans, make_subscription):
        make_subscription(student, plans["personal"])
        mock_customer.return_value = MagicMock(id="cus_123")
        mock_stripe.side_effect = stripe.InvalidRequestError("No such price", param="price")

        with patch("app.services.subscription.stripe.api_key", "sk_test_123"):
            with pytest.raises(PaymentGatewayError):
                subscription_service.upgrade(student, str(plans["team"].id), db)

    def test_instructor_cannot_upgrade(self, db, instructor, plans):
        with pytest.raises(SelfServiceForbidden):
            subscription_service.upgrade(instructor, str(plans["team"].id), db)


class TestAccess:
    """Test access checks and the overview."""

    def test_cancelled_keeps_access_until_period_end(self, db, student, plans, make_subscription):
        period_end = datetime(2026, 2, 1)
        subscription = make_subscription(student, plans["personal"], current_period_end=period_end)
        subscription_service.cancel(student, db)
        db.refresh(subscription)

        assert subscription_service.has_access(subscription, now=period_end - timedelta(days=1)) is True
        assert subscription_service.has_access(subscription, now=period_end) is False

    def test_statuses(self, db, student, plans, make_subscription):
        subscription = make_subscription(student, plans["personal"], status="PastDue")
        assert subscription_service.has_access(subscription) is True

        subscription.status = "Expired"
        assert subscription_service.has_access(subscription) is False
        assert subscription_service.has_access(None) is False

    def test_overview_includes_cancelled_subscription(self, db, student, plans, make_subscription):
        make_subscription(student, plans["personal"])
        subscription_service.cancel(student, db)

        overview = subscription_service.get_overview(student.id, db)

        assert overview.subscription.status == "Cancelled"
        assert [h.action for h in overview.history] == ["Cancelled"]
        assert overview.has_access is True

    def test_cancelled_without_period_end_uses_next_billing_date(self, db, student, plans, make_subscription):
        next_billing = datetime(2026, 2, 1)
        subscription = make_subscription(
            student, plans["personal"], status="Cancelled", current_period_end=None, next_billing_date=next_billing
        )

        assert subscription_service.has_access(subscription, now=next_billing - timedelta(hours=1)) is True
        assert subscription_service.has_access(subscription, now=next_billing) is False

    def test_cancelled_without_any_period_has_no_access(self, db, student, plans, make_subscription):
        subscription = make_subscription(student, plans["personal"], status="Cancelled", current_period_end=None)

        assert subscription_service.has_access(subscription) is False

    def test_transitions(self, db, student, plans, make_subscription):
        subscription = make_subscription(student, plans["personal"], status="PastDue")

        assert subscription.can_transition_to("Active") is True
        subscription.transition_to("Cancelled")
        assert subscription.status == "Cancelled"
        assert subscription.can_transition_to("Active") is False

        with pytest.raises(ValueError, match="Cannot move subscription"):
            subscription.transition_to("Active")
        assert subscription.status == "Cancelled"


class TestCatalog:
    """Test plan listing and seeding."""

    def test_list_plans_orders_custom_pricing_last(self, db, plans):
        names = [p.name for p in subscription_service.list_plans(db)]

        assert names == ["Personal", "Team", "Enterprise"]

    def test_seed_plans_upserts_and_deactivates(self, db):
        db.add(SubscriptionPlan(name="Legacy", slug="legacy", plan_type="Legacy", price_monthly=100))
        db.commit()

        SubscriptionService().seed_plans(db)
        SubscriptionService().seed_plans(db)

        slugs = {p.slug: p for p in db.query(SubscriptionPlan).all()}
        assert set(slugs) == {"personal", "team", "enterprise", "legacy"}
        assert slugs["legacy"].is_active is False
        assert slugs["team"].is_popular is True
        assert slugs["enterprise"].price_monthly is None
        assert [p.slug for p in subscription_service.list_plans(db)] == ["personal", "team", "enterprise"]

    def test_seed_plans_reads_price_ids_from_settings(self, db, monkeypatch):
        from app.core.config import settings

        monkeypatch.setattr(settings, "stripe_price_team_monthly", "price_team_m")
        monkeypatch.setattr(settings, "stripe_price_team_yearly", None)

        SubscriptionService().seed_plans(db)

        team = db.query(SubscriptionPlan).filter(SubscriptionPlan.slug == "team").one()
        assert team.stripe_price_id_monthly == "price_team_m"
        assert team.stripe_price_id_yearly is None
