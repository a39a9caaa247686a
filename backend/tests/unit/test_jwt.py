"""Tests for JWT utilities."""
from datetime import timedelta

import pytest
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from easyserve.lib.jwt import create_access_token, get_user_from_token, verify_token


@pytest.mark.unit
def test_create_and_verify_token():
    """Test creating and verifying a valid token."""
    user_id = "123e4567-e89b-12d3-a456-426614174000"

    token = create_access_token(user_id, "provider")

    assert isinstance(token, str)
    payload = verify_token(token)
    assert payload["sub"] == user_id
    assert payload["role"] == "provider"
    assert "iat" in payload
    assert "exp" in payload


@pytest.mark.unit
def test_get_user_from_token():
    token = create_access_token("123e4567-e89b-12d3-a456-426614174000", "user")

    assert get_user_from_token(token) == ("123e4567-e89b-12d3-a456-426614174000", "user")


@pytest.mark.unit
def test_expired_token():
    """Test that expired tokens are rejected."""
    token = create_access_token(
        "123e4567-e89b-12d3-a456-426614174000",
        "admin",
        expires_delta=timedelta(seconds=-1),
    )

    with pytest.raises(ExpiredSignatureError):
        verify_token(token)


@pytest.mark.unit
def test_tampered_token():
    token = create_access_token("123e4567-e89b-12d3-a456-426614174000", "user")
    header, payload, signature = token.split(".")
    tampered = ".".join([header, payload, signature[::-1]])

    with pytest.raises(InvalidTokenError):
        verify_token(tampered)


@pytest.mark.unit
def test_garbage_token():
    with pytest.raises(InvalidTokenError):
        verify_token("not-a-token")
