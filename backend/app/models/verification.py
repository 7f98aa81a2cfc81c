"""
Verification ledger record: one-time codes and session-bridge tokens.
"""
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, Text, UniqueConstraint

from app.db.base import Base

PURPOSE_REGISTRATION = "registration"
PURPOSE_PASSWORD_LOGIN = "password-login"
PURPOSE_EMAIL_LOGIN = "email-login"
PURPOSE_SESSION_TOKEN = "session-token"


class Verification(Base):
    """
    A single slot per (identifier, purpose).

    ``id`` is a UUID string for OTP records and the random bridge token for
    session-token records. ``value`` holds the JSON payload.
    """

    __tablename__ = "verification"
    __table_args__ = (
        UniqueConstraint("identifier", "purpose", name="uq_verification_identifier_purpose"),
    )

    id = Column(String(64), primary_key=True)
    identifier = Column(String(255), nullable=False, index=True)
    purpose = Column(String(32), nullable=False)
    value = Column(Text, nullable=False)
    attempts = Column(Integer, default=0, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def __repr__(self):
        return f"<Verification(id={self.id}, identifier={self.identifier}, purpose={self.purpose})>"
