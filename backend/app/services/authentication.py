"""
OTP-based login flows.

Password login is a step-up: the password is checked first, then a code is
emailed and must be confirmed. Email login is passwordless and creates the
user on first successful verification. Both end by minting a session-bridge
token that ``exchange_session_token`` turns into a signed session JWT.
"""
import secrets
import string
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional
import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.errors import InvalidCredentials, UnsupportedVerification, UserNotFound
from app.core.nextauth import issue_nextauth_token
from app.core.security import verify_password
from app.db.base import commit
from app.models import User, Verification
from app.models.user import ROLE_STUDENT
from app.models.verification import PURPOSE_EMAIL_LOGIN, PURPOSE_PASSWORD_LOGIN
from app.services.verification import IssuedCode, VerificationLedger, normalize_identifier

logger = logging.getLogger(__name__)

LOGIN_EMAIL_SUBJECT = "Your KnowledgeShare login code"

# users.username is VARCHAR(50); leaves room for the random suffix
USERNAME_PREFIX_LENGTH = 43


@dataclass
class LoginVerified:
    email: str
    session_token: str


class AuthenticationService:
    """Login flows on top of the verification ledger."""

    def __init__(self, db: Session, ledger: VerificationLedger):
        self.db = db
        self.ledger = ledger

    # Password login

    def send_password_otp(self, identifier: str, password: str) -> IssuedCode:
        """
        Check the password, then email a login code.

        Raises:
            InvalidCredentials: unknown user, no password account, or wrong password
        """
        normalized = normalize_identifier(identifier)
        user = (
            self.db.query(User)
            .filter(or_(User.email == normalized, User.username == normalized))
            .first()
        )
        if not user:
            raise InvalidCredentials()

        account = user.credential_account()
        if account is None:
            raise InvalidCredentials(
                "Password login not available for this account. Please use email OTP login."
            )

        if not verify_password(password, account.password):
            raise InvalidCredentials()

        return self.ledger.issue(
            user.email,
            PURPOSE_PASSWORD_LOGIN,
            {"userId": str(user.id), "email": user.email, "type": PURPOSE_PASSWORD_LOGIN},
            subject=LOGIN_EMAIL_SUBJECT,
        )

    def verify_password_otp(self, email: str, otp: str) -> LoginVerified:
        """
        Raises:
            ledger errors, or UserNotFound when the account vanished meanwhile
        """
        verified = self.ledger.verify(email, PURPOSE_PASSWORD_LOGIN, otp)
        user = self._user_from_payload(verified.payload)
        if user is None:
            self.ledger.discard(verified.record)
            raise UserNotFound()

        self.ledger.consume(verified.record, flush_only=True)
        token = self.ledger.mint_session_bridge(user)
        logger.info(f"Password login verified for user {user.id}")
        return LoginVerified(email=user.email, session_token=token)

    def resend_password_otp(self, email: str) -> IssuedCode:
        def check(record: Verification, payload: Dict[str, Any]) -> None:
            if payload.get("type") and payload["type"] != PURPOSE_PASSWORD_LOGIN:
                raise UnsupportedVerification(
                    "This verification request does not support password OTP resend."
                )
            if self._user_from_payload(payload) is None:
                self.ledger.discard(record)
                raise UserNotFound("User no longer exists. Please restart the login process.")

        return self.ledger.resend(email, PURPOSE_PASSWORD_LOGIN, LOGIN_EMAIL_SUBJECT, check=check)

    # Email login

    def send_email_otp(self, email: str) -> IssuedCode:
        normalized = normalize_identifier(email)
        return self.ledger.issue(
            normalized,
            PURPOSE_EMAIL_LOGIN,
            {"email": normalized, "type": PURPOSE_EMAIL_LOGIN},
            subject=LOGIN_EMAIL_SUBJECT,
        )

    def verify_email_otp(self, email: str, otp: str) -> LoginVerified:
        """
        Verify an email login code, creating the user on first login.
        """
        verified = self.ledger.verify(email, PURPOSE_EMAIL_LOGIN, otp)
        normalized = verified.payload["email"]

        user = self.db.query(User).filter(User.email == normalized).first()
        if user is None:
            local_part = normalized.split("@")[0]
            user = User(
                email=normalized,
                first_name=local_part,
                username=f"{local_part[:USERNAME_PREFIX_LENGTH]}{_random_suffix()}",
                role=ROLE_STUDENT,
                email_verified=True,
            )
            self.db.add(user)
            self.ledger.consume(verified.record, flush_only=True)
            commit(self.db)
            logger.info(f"Created user {user.id} from email OTP login")
        else:
            self.ledger.consume(verified.record, flush_only=True)

        token = self.ledger.mint_session_bridge(user)
        return LoginVerified(email=user.email, session_token=token)

    # Session exchange

    def exchange_session_token(self, email: str, token: str) -> str:
        """
        Redeem a session-bridge token for a signed session JWT.

        Raises:
            ledger errors, or UserNotFound when the user no longer exists
        """
        payload = self.ledger.redeem_session_bridge(email, token)
        user = self._user_from_payload(payload)
        if user is None:
            raise UserNotFound()
        return issue_nextauth_token(user)

    def _user_from_payload(self, payload: Dict[str, Any]) -> Optional[User]:
        try:
            user_id = uuid.UUID(str(payload.get("userId")))
        except ValueError:
            return None
        return self.db.get(User, user_id)


def _random_suffix(length: int = 6) -> str:
    alphabet = string.ascii_lowercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))
