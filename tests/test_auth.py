# tests/test_auth.py
from datetime import timedelta

import pytest
from fastapi import HTTPException

from tierquota.auth import create_jwt, decode_jwt, hash_password, is_admin, verify_password
from tierquota.models import User


def test_hash_password_not_plaintext():
    """Hashed password should not equal original."""
    password = "mysecretpassword"
    assert hash_password(password) != password


def test_verify_password_correct():
    hashed = hash_password("mysecretpassword")
    assert verify_password("mysecretpassword", hashed) is True


def test_verify_password_incorrect():
    hashed = hash_password("mysecretpassword")
    assert verify_password("wrongpassword", hashed) is False


def test_decode_jwt_roundtrip():
    """Decoded JWT carries the user id in the sub claim."""
    payload = decode_jwt(create_jwt(user_id="usr_123"))
    assert payload["sub"] == "usr_123"
    assert payload["exp"] > payload["iat"]


def test_decode_jwt_expired():
    token = create_jwt(user_id="usr_123", expires_delta=timedelta(seconds=-1))
    with pytest.raises(HTTPException) as exc_info:
        decode_jwt(token)
    assert exc_info.value.status_code == 401
    assert exc_info.value.detail == "Token expired"


def test_decode_jwt_invalid():
    with pytest.raises(HTTPException) as exc_info:
        decode_jwt("invalid.token.here")
    assert exc_info.value.status_code == 401


def test_is_admin_flag():
    assert is_admin(User(email="someone@example.com", is_admin=True)) is True
    assert is_admin(User(email="someone@example.com", is_admin=False)) is False


def test_is_admin_by_configured_email():
    """ADMIN_EMAILS matches case-insensitively."""
    assert is_admin(User(email="Owner@Example.com", is_admin=False)) is True
