"""
Request-scoped service wiring for the auth and registration routers.
"""
from fastapi import Depends
from sqlalchemy.orm import Session

from app.db.base import get_db
from app.services.authentication import AuthenticationService
from app.services.mailer import Mailer, get_mailer
from app.services.registration import RegistrationService
from app.services.verification import VerificationLedger


def get_ledger(
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
) -> VerificationLedger:
    return VerificationLedger(db, mailer)


def get_authentication_service(
    db: Session = Depends(get_db),
    ledger: VerificationLedger = Depends(get_ledger),
) -> AuthenticationService:
    return AuthenticationService(db, ledger)


def get_registration_service(
    db: Session = Depends(get_db),
    ledger: VerificationLedger = Depends(get_ledger),
) -> RegistrationService:
    return RegistrationService(db, ledger)
