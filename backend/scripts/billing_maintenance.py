#!/usr/bin/env python3
"""
Billing maintenance commands.

- seed-plans: upsert the subscription plan catalog
- replay-intents: re-dispatch billing intents left pending or failed

Usage:
    python backend/scripts/billing_maintenance.py seed-plans
    python backend/scripts/billing_maintenance.py replay-intents [--max-attempts 5]
"""
import os
import sys
import argparse
import logging

# Add backend to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from app.core.config import settings  # noqa: E402
from app.db.base import Database  # noqa: E402
from app.services.subscription import subscription_service  # noqa: E402

logger = logging.getLogger("billing_maintenance")


def seed_plans(database: Database) -> int:
    with database.session() as db:
        plans = subscription_service.seed_plans(db)
        for plan in plans:
            price = f"{plan.price_monthly / 100:.2f}/mo" if plan.price_monthly is not None else "custom"
            print(f"  {plan.slug:<12} {plan.name:<12} {price}")
    return 0


def replay_intents(database: Database, max_attempts: int) -> int:
    with database.session() as db:
        outcomes = subscription_service.replay_pending_intents(db, max_attempts=max_attempts)
    failed = [o for o in outcomes if o.status == "failed"]
    for outcome in outcomes:
        suffix = f" ({outcome.error})" if outcome.error else ""
        print(f"  {outcome.intent_id} {outcome.status}{suffix}")
    print(f"Replayed {len(outcomes)} intents, {len(failed)} failed")
    return 1 if failed else 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Billing maintenance commands")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("seed-plans", help="Upsert the subscription plan catalog")
    replay = subparsers.add_parser("replay-intents", help="Re-dispatch pending or failed billing intents")
    replay.add_argument("--max-attempts", type=int, default=5)
    args = parser.parse_args(argv)

    logging.basicConfig(level=settings.log_level, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    database = Database(settings.database_url, echo=settings.db_echo_sql)
    try:
        if args.command == "seed-plans":
            return seed_plans(database)
        return replay_intents(database, args.max_attempts)
    finally:
        database.dispose()


if __name__ == "__main__":
    sys.exit(main())
