"""
NextAuth.js-compatible JWT handling for FastAPI.

Verifies (and, for the OTP session exchange, issues) HS256 JWTs signed with
NEXTAUTH_SECRET.
"""
from typing import Any, Dict
from datetime import datetime, timedelta, timezone
import uuid

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.base import get_db
from app.models import User

bearer_scheme = HTTPBearer(auto_error=False)

ALGORITHM = "HS256"


def _require_secret() -> str:
    if not settings.nextauth_secret:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="NextAuth secret not configured",
        )
    return settings.nextauth_secret


def issue_nextauth_token(user: User) -> str:
    """
    Sign a session JWT for a user in the NextAuth claim shape.

    {
      "sub": "<user id>",
      "id": "<user id>",
      "email": "user@example.com",
      "name": "First Last",
      "role": "user",
      "iat": 1234567890,
      "exp": 1234567890
    }
    """
    secret = _require_secret()
    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(user.id),
        "id": str(user.id),
        "email": user.email,
        "name": user.full_name or user.email,
        "username": user.username,
        "role": user.role,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(days=settings.session_token_ttl_days)).timestamp()),
    }
    return jwt.encode(claims, secret, algorithm=ALGORITHM)


def verify_nextauth_token(token: str) -> Dict[str, Any]:
    """
    Verify and decode a NextAuth.js JWT.
    """
    secret = _require_secret()

    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=[ALGORITHM],
            options={"verify_aud": False},  # NextAuth doesn't use aud by default
        )
        return claims
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired authorization token",
        ) from exc


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """
    Resolve the current authenticated user from a NextAuth.js JWT.

    - Expects Authorization: Bearer <jwt> header
    - Verifies and decodes the token
    - Maps the token subject to the local User
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    if credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication scheme",
        )

    claims = verify_nextauth_token(credentials.credentials)

    subject = claims.get("id") or claims.get("sub")
    email = claims.get("email")

    if not subject or not email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: missing required claims",
        )

    user = None
    try:
        user = db.query(User).filter(User.id == uuid.UUID(str(subject))).first()
    except ValueError:
        pass

    # Fall back to email for tokens minted by other providers
    if not user:
        user = db.query(User).filter(User.email == email.lower().strip()).first()

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    if user.banned:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is banned",
        )

    return user
