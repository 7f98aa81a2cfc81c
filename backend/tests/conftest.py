"""
Pytest configuration and shared fixtures for the KnowledgeShare API.
"""
import sys
from pathlib import Path

# Ensure backend package is importable
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

# Patch PostgreSQL UUID type BEFORE any imports
from sqlalchemy.dialects import postgresql
from sqlalchemy import TypeDecorator, CHAR
import uuid as uuid_module

class GUID(TypeDecorator):
    """Platform-independent GUID type. Uses PostgreSQL's UUID type, otherwise uses CHAR(36)."""
    impl = CHAR
    cache_ok = True

    def __init__(self, as_uuid=True):
        """Accept as_uuid parameter for compatibility with PostgreSQL UUID."""
        self.as_uuid = as_uuid
        super().__init__()

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(_original_uuid(as_uuid=self.as_uuid))
        else:
            return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        elif isinstance(value, uuid_module.UUID):
            return value
        else:
            return uuid_module.UUID(value)

# Monkey patch BEFORE models are imported
_original_uuid = postgresql.UUID
postgresql.UUID = GUID

from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import List, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool


@pytest.fixture(scope="function")
def db():
    """
    Create a fresh database for each test.

    Uses an in-memory SQLite database for fast, isolated testing.
    UUID type has been patched at module level to work with SQLite.
    """
    from app.db.base import Base

    # Create in-memory SQLite database
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    Base.metadata.create_all(bind=engine)

    # Create session
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def rate_limits_off():
    """Rate limiting is switched off except in tests that opt back in."""
    from app.core.rate_limit import limiter

    limiter.reset()
    limiter.enabled = False
    yield limiter
    limiter.enabled = True
    limiter.reset()


# Collaborators


class FakeClock:
    """Controllable replacement for ``datetime.utcnow``."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeMailer:
    """Records OTP emails instead of sending them."""

    configured = True

    def __init__(self):
        self.sent: List[Tuple[str, str, str]] = []

    def send_otp(self, to_email: str, otp: str, subject: str):
        from app.services.mailer import DeliveryResult

        self.sent.append((to_email, otp, subject))
        return DeliveryResult(delivered=True, message_id=f"msg-{len(self.sent)}")

    def last_otp(self, email: str) -> str:
        for to_email, otp, _ in reversed(self.sent):
            if to_email == email:
                return otp
        raise AssertionError(f"No OTP sent to {email}")


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 1, 15, 12, 0, 0))


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def ledger(db, mailer, clock):
    from app.services.verification import VerificationLedger

    return VerificationLedger(db, mailer, clock=clock)


# Users

STUDENT_PASSWORD = "secret123"


@pytest.fixture
def student(db):
    """Student with a password (credential) account."""
    from app.core.security import hash_password
    from app.models import Account, User

    user = User(
        email="student@example.com",
        username="student1",
        first_name="Sam",
        last_name="Student",
        role="user",
        email_verified=True,
    )
    db.add(user)
    db.flush()
    db.add(
        Account(
            account_id=user.username,
            provider_id="credential",
            user_id=user.id,
            password=hash_password(STUDENT_PASSWORD),
        )
    )
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def instructor(db):
    from app.models import User

    user = User(
        email="instructor@example.com",
        username="instructor1",
        first_name="Ida",
        last_name="Instructor",
        role="admin",
        email_verified=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


# Subscriptions


@pytest.fixture
def plans(db):
    """Personal and Team with Stripe prices, Enterprise with custom pricing."""
    from app.models import SubscriptionPlan

    personal = SubscriptionPlan(
        name="Personal",
        slug="personal",
        plan_type="Personal",
        price_monthly=799,
        price_yearly=7990,
        stripe_price_id_monthly="price_personal_monthly",
        stripe_price_id_yearly="price_personal_yearly",
        max_course_access=20,
        team_seats=1,
        features=["Access to 20 courses"],
    )
    team = SubscriptionPlan(
        name="Team",
        slug="team",
        plan_type="Team",
        price_monthly=1999,
        price_yearly=19990,
        stripe_price_id_monthly="price_team_monthly",
        stripe_price_id_yearly="price_team_yearly",
        is_popular=True,
        trial_days=7,
        max_course_access=200,
        team_seats=10,
        features=["Access to 200 courses"],
    )
    enterprise = SubscriptionPlan(
        name="Enterprise",
        slug="enterprise",
        plan_type="Enterprise",
        price_monthly=None,
        price_yearly=None,
        trial_days=14,
        team_seats=9999,
    )
    db.add_all([personal, team, enterprise])
    db.commit()
    return {"personal": personal, "team": team, "enterprise": enterprise}


@pytest.fixture
def make_subscription(db):
    """Factory for a student's subscription."""
    from app.models import UserSubscription

    def _make(user, plan, billing_cycle="Monthly", status="Active", stripe_subscription_id="sub_123", **kwargs):
        subscription = UserSubscription(
            user_id=user.id,
            plan_id=plan.id,
            status=status,
            billing_cycle=billing_cycle,
            stripe_subscription_id=stripe_subscription_id,
            current_period_end=kwargs.pop("current_period_end", datetime.utcnow() + timedelta(days=20)),
            **kwargs,
        )
        db.add(subscription)
        db.commit()
        db.refresh(subscription)
        return subscription

    return _make


# HTTP


class SessionScope:
    """Opens fresh sessions on the test engine, as background tasks do in production."""

    def __init__(self, bind):
        self.bind = bind
        self.opened = []

    @contextmanager
    def __call__(self):
        session = Session(bind=self.bind)
        self.opened.append(session)
        try:
            yield session
        finally:
            session.close()


@pytest.fixture
def session_scope(db):
    return SessionScope(db.get_bind())


@pytest.fixture
def api_client(db, mailer, session_scope):
    """TestClient bound to the test database and fake mailer; no authenticated user."""
    from app.db.base import get_db, get_session_scope
    from app.main import app
    from app.services.mailer import get_mailer

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_scope] = lambda: session_scope
    app.dependency_overrides[get_mailer] = lambda: mailer

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def client_as(api_client):
    """Authenticate ``api_client`` as the given user."""
    from app.core.nextauth import get_current_user
    from app.main import app

    def _as(user):
        app.dependency_overrides[get_current_user] = lambda: user
        return api_client

    return _as


@pytest.fixture
def nextauth_secret(monkeypatch):
    from app.core.config import settings

    monkeypatch.setattr(settings, "nextauth_secret", "test-nextauth-secret")
    return "test-nextauth-secret"
