"""
Verification ledger: one-time codes and session-bridge tokens.

Handles:
- Issuing a 6-digit code into the (identifier, purpose) slot and emailing it
- Verifying a submitted code against the slot
- Resending (rotating the code in place)
- Minting and redeeming short-lived session-bridge records

Each (identifier, purpose) pair holds at most one record. Issuing replaces
the slot, resending mutates it, and expiry is checked lazily on read.
"""
import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional
import logging

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.core.config import Settings, settings as default_settings
from app.core.errors import (
    EmailMismatch,
    OtpMismatch,
    TooManyAttempts,
    VerificationCorrupt,
    VerificationExpired,
    VerificationNotFound,
)
from app.core.security import generate_otp, generate_session_token, otp_matches
from app.db.base import commit
from app.models import User, Verification
from app.models.verification import PURPOSE_SESSION_TOKEN
from app.services.mailer import Mailer

logger = logging.getLogger(__name__)

SESSION_TOKEN_TYPE = "session-token"


def normalize_identifier(identifier: str) -> str:
    return identifier.strip().lower()


@dataclass
class IssuedCode:
    """Result of issue/resend."""

    identifier: str
    expires_at: datetime
    delivered: bool


@dataclass
class VerifiedCode:
    """A record whose code matched; not yet consumed."""

    record: Verification
    payload: Dict[str, Any]


class VerificationLedger:
    """Ledger operations bound to one database session."""

    def __init__(
        self,
        db: Session,
        mailer: Mailer,
        clock: Callable[[], datetime] = datetime.utcnow,
        config: Optional[Settings] = None,
    ):
        self.db = db
        self.mailer = mailer
        self.clock = clock
        self.config = config or default_settings

    def find(self, identifier: str, purpose: str) -> Optional[Verification]:
        """Current record in the slot, expired or not."""
        return (
            self.db.query(Verification)
            .filter(
                Verification.identifier == normalize_identifier(identifier),
                Verification.purpose == purpose,
            )
            .first()
        )

    def issue(
        self,
        identifier: str,
        purpose: str,
        payload: Dict[str, Any],
        subject: str,
        ttl_minutes: Optional[int] = None,
    ) -> IssuedCode:
        """
        Replace the slot with a fresh code and email it.

        Raises:
            ConflictError: a concurrent issue claimed the slot first
            EmailDeliveryError: the email provider rejected the message
        """
        identifier = normalize_identifier(identifier)
        ttl = ttl_minutes if ttl_minutes is not None else self.config.otp_ttl_minutes
        now = self.clock()
        otp = generate_otp()

        self.db.query(Verification).filter(
            Verification.identifier == identifier,
            Verification.purpose == purpose,
        ).delete(synchronize_session=False)

        record = Verification(
            id=str(uuid.uuid4()),
            identifier=identifier,
            purpose=purpose,
            value=json.dumps({**payload, "otp": otp}),
            attempts=0,
            expires_at=now + timedelta(minutes=ttl),
            created_at=now,
            updated_at=now,
        )
        self.db.add(record)
        commit(self.db)

        logger.info(f"Issued {purpose} code for {identifier} (expires {record.expires_at.isoformat()})")

        result = self.mailer.send_otp(identifier, otp, subject)
        return IssuedCode(identifier=identifier, expires_at=record.expires_at, delivered=result.delivered)

    def verify(self, identifier: str, purpose: str, otp: str) -> VerifiedCode:
        """
        Check a submitted code against the slot.

        Raises:
            VerificationNotFound: no record in the slot
            VerificationExpired: the record's expiry has passed
            VerificationCorrupt: stored payload is not a JSON object
            TooManyAttempts: attempt ceiling reached (slot is cleared)
            OtpMismatch: wrong code
            EmailMismatch: payload email disagrees with the identifier
        """
        identifier = normalize_identifier(identifier)
        record = self.find(identifier, purpose)
        if record is None:
            raise VerificationNotFound()

        if record.is_expired(self.clock()):
            raise VerificationExpired()

        payload = self._parse(record)

        max_attempts = self.config.otp_max_attempts
        if record.attempts >= max_attempts:
            self.discard(record)
            raise TooManyAttempts()

        if not otp_matches(otp, payload.get("otp", "")):
            attempts = self._count_attempt(record.id)
            if attempts is None or attempts >= max_attempts:
                logger.warning(f"Attempt ceiling reached for {purpose} code of {identifier}; clearing slot")
                self.db.query(Verification).filter(Verification.id == record.id).delete(synchronize_session=False)
                commit(self.db)
                raise TooManyAttempts()
            commit(self.db)
            raise OtpMismatch()

        if payload.get("email") != identifier:
            raise EmailMismatch()

        return VerifiedCode(record=record, payload=payload)

    def consume(self, record: Verification, flush_only: bool = False) -> None:
        """Delete a verified record. With ``flush_only`` the caller owns the commit."""
        self.db.delete(record)
        if flush_only:
            self.db.flush()
        else:
            commit(self.db)

    def discard(self, record: Verification) -> None:
        self.db.delete(record)
        commit(self.db)

    def resend(
        self,
        identifier: str,
        purpose: str,
        subject: str,
        check: Optional[Callable[[Verification, Dict[str, Any]], None]] = None,
    ) -> IssuedCode:
        """
        Rotate the code in the slot, regardless of expiry, and email it again.

        ``check`` may raise to reject the record before it is rotated.

        Raises:
            VerificationNotFound: nothing to resend
            VerificationCorrupt / EmailMismatch: slot is unusable
            EmailDeliveryError: the email provider rejected the message
        """
        identifier = normalize_identifier(identifier)
        record = self.find(identifier, purpose)
        if record is None:
            raise VerificationNotFound("No active verification request found. Please start again.")

        payload = self._parse(record)
        if payload.get("email") != identifier:
            raise EmailMismatch("Email mismatch detected. Please start again.")

        if check is not None:
            check(record, payload)

        now = self.clock()
        otp = generate_otp()
        payload["otp"] = otp
        record.value = json.dumps(payload)
        record.attempts = 0
        record.expires_at = now + timedelta(minutes=self.config.otp_ttl_minutes)
        record.updated_at = now
        commit(self.db)

        logger.info(f"Resent {purpose} code for {identifier}")

        result = self.mailer.send_otp(identifier, otp, subject)
        return IssuedCode(identifier=identifier, expires_at=record.expires_at, delivered=result.delivered)

    def mint_session_bridge(self, user: User) -> str:
        """
        Store a short-lived, single-use token the auth layer exchanges for a session.
        """
        email = normalize_identifier(user.email)
        now = self.clock()
        token = generate_session_token()

        self.db.query(Verification).filter(
            Verification.identifier == email,
            Verification.purpose == PURPOSE_SESSION_TOKEN,
        ).delete(synchronize_session=False)

        self.db.add(
            Verification(
                id=token,
                identifier=email,
                purpose=PURPOSE_SESSION_TOKEN,
                value=json.dumps(
                    {
                        "userId": str(user.id),
                        "email": email,
                        "type": SESSION_TOKEN_TYPE,
                        "verified": True,
                    }
                ),
                attempts=0,
                expires_at=now + timedelta(minutes=self.config.session_bridge_ttl_minutes),
                created_at=now,
                updated_at=now,
            )
        )
        commit(self.db)
        return token

    def redeem_session_bridge(self, email: str, token: str) -> Dict[str, Any]:
        """
        Exchange a bridge token once. Returns its payload.

        Raises:
            VerificationNotFound: unknown token
            VerificationExpired: token past its expiry (it is removed)
            VerificationCorrupt: payload unusable or not a verified bridge
            EmailMismatch: token belongs to another email
        """
        email = normalize_identifier(email)
        record = self.db.get(Verification, token)
        if record is None or record.purpose != PURPOSE_SESSION_TOKEN:
            raise VerificationNotFound("Invalid or expired session token.")

        if record.is_expired(self.clock()):
            self.discard(record)
            raise VerificationExpired("Session token has expired. Please verify again.")

        payload = self._parse(record)
        if payload.get("type") != SESSION_TOKEN_TYPE or not payload.get("verified"):
            raise VerificationCorrupt()
        if payload.get("email") != email:
            raise EmailMismatch()

        self.discard(record)
        return payload

    def _count_attempt(self, record_id: str) -> Optional[int]:
        """
        Increment the attempt counter in the database and return the new value.

        The increment is a single UPDATE so concurrent wrong guesses each
        count. Returns None when the record is already gone.
        """
        self.db.execute(
            update(Verification)
            .where(Verification.id == record_id)
            .values(attempts=Verification.attempts + 1)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(
            select(Verification.attempts).where(Verification.id == record_id)
        ).scalar_one_or_none()

    @staticmethod
    def _parse(record: Verification) -> Dict[str, Any]:
        try:
            payload = json.loads(record.value)
        except (TypeError, ValueError) as exc:
            logger.error(f"Unparsable verification payload for record {record.id}")
            raise VerificationCorrupt() from exc
        if not isinstance(payload, dict):
            raise VerificationCorrupt()
        return payload
