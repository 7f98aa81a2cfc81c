"""
Subscription plan catalog for KnowledgeShare.

Defines the plans seeded into ``subscription_plans``. Prices are in cents and
None means custom pricing.
Stripe price IDs are deployment settings (`STRIPE_PRICE_<SLUG>_<CYCLE>`) so
each deployment can point at its own Stripe account; an unset value means the
cadence is not purchasable.
"""
from typing import Dict, Any, List, Optional

from app.core.config import settings


PLAN_CATALOG: Dict[str, Dict[str, Any]] = {
    "personal": {
        "name": "Personal",
        "description": "Perfect for individual learners",
        "plan_type": "Personal",
        "price_monthly": 799,  # $7.99
        "price_yearly": 7990,  # $79.90
        "is_popular": False,
        "trial_days": 0,
        "max_course_access": 20,
        "team_seats": 1,
        "features": [
            "Access to 20 courses",
            "Downloadable resources",
            "Downloadable certificates",
            "Basic progress tracking",
            "Community support",
            "Mobile app access",
        ],
    },
    "team": {
        "name": "Team",
        "description": "Perfect for small teams and growing businesses",
        "plan_type": "Team",
        "price_monthly": 1999,  # $19.99
        "price_yearly": 19990,  # $199.90
        "is_popular": True,
        "trial_days": 7,
        "max_course_access": 200,
        "team_seats": 10,
        "features": [
            "Access to 200 courses",
            "Downloadable resources",
            "Downloadable certificates",
            "Team access (up to 10 members)",
            "Team management",
            "Live classes",
            "Priority support",
        ],
    },
    "enterprise": {
        "name": "Enterprise",
        "description": "For large organizations with advanced needs. Request a demo for custom pricing.",
        "plan_type": "Enterprise",
        "price_monthly": None,  # custom pricing
        "price_yearly": None,
        "is_popular": False,
        "trial_days": 14,
        "max_course_access": None,  # unlimited
        "team_seats": 9999,
        "features": [
            "Unlimited course access",
            "Downloadable resources",
            "Downloadable certificates",
            "Unlimited team members",
            "Team management",
            "SSO (Single Sign-On)",
            "API access",
            "Priority support",
            "Live Q&A sessions",
        ],
    },
}


def get_plan_config(slug: str) -> Dict[str, Any]:
    """
    Get configuration for a catalog plan.

    Raises:
        ValueError: If slug is not in the catalog
    """
    if slug not in PLAN_CATALOG:
        raise ValueError(f"Invalid plan: {slug}. Must be one of {list(PLAN_CATALOG.keys())}")
    return PLAN_CATALOG[slug]


def get_catalog_slugs() -> List[str]:
    return list(PLAN_CATALOG.keys())


def get_stripe_price_id(slug: str, billing_cycle: str) -> Optional[str]:
    """
    Get the Stripe price ID configured for a plan and billing cycle.

    Reads settings.stripe_price_{slug}_{cycle} at call time, so values from
    the environment or ``.env`` are picked up.

    Returns:
        The price ID, or None when the cadence is not purchasable
    """
    return getattr(settings, f"stripe_price_{slug}_{billing_cycle.lower()}", None) or None
