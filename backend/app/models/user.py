"""
User and credential account models.
"""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean, Integer, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.db.base import Base

# Roles stored on User.role
ROLE_STUDENT = "user"
ROLE_INSTRUCTOR = "admin"
ROLE_SUPERADMIN = "superadmin"
ADMIN_ROLES = {ROLE_INSTRUCTOR, ROLE_SUPERADMIN}

CREDENTIAL_PROVIDER = "credential"


class User(Base):
    """User model - students, instructors and platform administrators."""

    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)
    username = Column(String(50), unique=True, nullable=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=True)
    image = Column(String(512), nullable=True)
    role = Column(String(20), default=ROLE_STUDENT, nullable=True)
    email_verified = Column(Boolean, default=False, nullable=False)
    banned = Column(Boolean, default=False, nullable=False)
    points = Column(Integer, default=0, nullable=False)

    # Billing
    stripe_customer_id = Column(String(255), nullable=True, unique=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    accounts = relationship("Account", back_populates="user", cascade="all, delete-orphan")
    subscriptions = relationship("UserSubscription", back_populates="user", cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part).strip()

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    def credential_account(self):
        for account in self.accounts:
            if account.provider_id == CREDENTIAL_PROVIDER and account.password:
                return account
        return None

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"


class Account(Base):
    """Login method attached to a user; password logins use the credential provider."""

    __tablename__ = "accounts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    account_id = Column(String(255), nullable=False)
    provider_id = Column(String(50), nullable=False)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    password = Column(String(255), nullable=True)  # Hashed; null for OAuth accounts

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="accounts")

    def __repr__(self):
        return f"<Account(id={self.id}, provider_id={self.provider_id}, user_id={self.user_id})>"
