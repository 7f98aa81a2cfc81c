"""
Unit tests for password hashing, code generation and token helpers.
"""
from unittest.mock import patch

from app.core.security import (
    generate_otp,
    generate_session_token,
    hash_password,
    otp_matches,
    verify_password,
)


def test_password_hash_round_trip():
    hashed = hash_password("correct horse")

    assert hashed.startswith("$argon2")
    assert verify_password("correct horse", hashed) is True
    assert verify_password("wrong horse", hashed) is False


def test_verify_password_with_non_argon2_value():
    assert verify_password("anything", "plain-text-password") is False


def test_otp_is_six_digits():
    for _ in range(200):
        otp = generate_otp()
        assert len(otp) == 6
        assert otp.isdigit()
        assert 100000 <= int(otp) <= 999999


def test_otp_bounds():
    with patch("app.core.security.secrets.randbelow", return_value=0):
        assert generate_otp() == "100000"
    with patch("app.core.security.secrets.randbelow", return_value=899999):
        assert generate_otp() == "999999"


def test_otp_matches_is_exact():
    assert otp_matches("123456", "123456") is True
    assert otp_matches("123456", "123457") is False
    assert otp_matches(" 123456", "123456") is False


def test_session_tokens_are_unique():
    tokens = {generate_session_token() for _ in range(50)}
    assert len(tokens) == 50
