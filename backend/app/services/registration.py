"""
Student registration with email verification.

The submitted form (with the password already hashed) waits in the
verification ledger until the emailed code is confirmed. Confirmation creates
the User and its credential Account and removes the ledger record in a
single transaction.
"""
import uuid
from dataclasses import dataclass
import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.errors import AlreadyExists, VerificationCorrupt
from app.core.security import hash_password
from app.db.base import commit
from app.models import Account, User
from app.models.user import CREDENTIAL_PROVIDER, ROLE_STUDENT
from app.models.verification import PURPOSE_REGISTRATION
from app.services.verification import IssuedCode, VerificationLedger, normalize_identifier

logger = logging.getLogger(__name__)

REGISTRATION_EMAIL_SUBJECT = "Verify your KnowledgeShare account"


@dataclass
class RegistrationForm:
    first_name: str
    last_name: str
    username: str
    email: str
    password: str


class RegistrationService:
    """Two-step student sign-up."""

    def __init__(self, db: Session, ledger: VerificationLedger):
        self.db = db
        self.ledger = ledger

    def send_registration_otp(self, form: RegistrationForm) -> IssuedCode:
        """
        Hold the registration in the ledger and email a code.

        Raises:
            AlreadyExists: email or username is taken
        """
        email = normalize_identifier(form.email)
        username = normalize_identifier(form.username)

        taken = (
            self.db.query(User)
            .filter(or_(User.email == email, User.username == username))
            .first()
        )
        if taken is not None:
            if taken.email == email:
                raise AlreadyExists("An account with this email already exists. Please login instead.")
            raise AlreadyExists("Username is already taken. Please choose another one.")

        return self.ledger.issue(
            email,
            PURPOSE_REGISTRATION,
            {
                "firstName": form.first_name.strip(),
                "lastName": form.last_name.strip(),
                "username": username,
                "email": email,
                "password": hash_password(form.password),
            },
            subject=REGISTRATION_EMAIL_SUBJECT,
        )

    def resend_registration_otp(self, email: str) -> IssuedCode:
        return self.ledger.resend(email, PURPOSE_REGISTRATION, REGISTRATION_EMAIL_SUBJECT)

    def verify_registration(self, email: str, otp: str) -> User:
        """
        Confirm the code and create the account atomically.

        Raises:
            ledger errors
            AlreadyExists: the email was registered since the code was issued
            ConflictError: a concurrent registration won the unique constraints
        """
        verified = self.ledger.verify(email, PURPOSE_REGISTRATION, otp)
        data = verified.payload
        normalized = data["email"]
        if not data.get("username") or not data.get("password"):
            raise VerificationCorrupt("Invalid verification data. Please try registering again.")

        existing = self.db.query(User).filter(User.email == normalized).first()
        if existing is not None:
            self.ledger.discard(verified.record)
            raise AlreadyExists()

        last_name = (data.get("lastName") or "").strip()
        user = User(
            id=uuid.uuid4(),
            first_name=(data.get("firstName") or "").strip(),
            last_name=last_name or None,
            email=normalized,
            username=data["username"],
            email_verified=True,
            role=ROLE_STUDENT,
        )
        account = Account(
            account_id=data["username"],
            provider_id=CREDENTIAL_PROVIDER,
            user_id=user.id,
            password=data["password"],
        )

        # User, Account and ledger deletion commit together or not at all
        self.db.add(user)
        self.db.add(account)
        self.db.delete(verified.record)
        commit(self.db)

        logger.info(f"Registered student {user.id} ({normalized})")
        return user
