"""
Password hashing, one-time codes and random tokens.
"""
import hmac
import secrets

from passlib.hash import argon2

OTP_MIN = 100000
OTP_MAX = 999999


def hash_password(plain: str) -> str:
    return argon2.using(time_cost=2, memory_cost=102400, parallelism=8).hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return argon2.verify(plain, hashed)
    except ValueError:
        # Stored value is not an argon2 hash
        return False


def generate_otp() -> str:
    """Uniformly random 6-digit code in [100000, 999999]."""
    return str(OTP_MIN + secrets.randbelow(OTP_MAX - OTP_MIN + 1))


def otp_matches(submitted: str, stored: str) -> bool:
    return hmac.compare_digest(str(submitted).encode("utf-8"), str(stored).encode("utf-8"))


def generate_session_token() -> str:
    return secrets.token_urlsafe(32)
