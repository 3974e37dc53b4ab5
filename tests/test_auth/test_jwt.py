"""Unit tests for JWT token creation, decoding, and validation."""

import uuid
from datetime import timedelta

import pytest
from jose import JWTError

from app.auth.jwt import (
    ACCESS,
    REFRESH,
    create_access_token,
    create_refresh_token,
    create_token_pair,
    decode_token,
    token_user_id,
)


class TestCreateAccessToken:
    """Test access token creation."""

    def test_contains_type_access(self):
        payload = decode_token(create_access_token("user-123"))
        assert payload["type"] == "access"

    def test_contains_sub_claim(self):
        payload = decode_token(create_access_token("user-abc"))
        assert payload["sub"] == "user-abc"

    def test_contains_iat_and_exp(self):
        payload = decode_token(create_access_token("user-123"))
        assert "iat" in payload
        assert "exp" in payload
        assert payload["exp"] > payload["iat"]

    def test_custom_expiry_delta(self):
        token = create_access_token("user-123", expires_delta=timedelta(hours=1))
        assert decode_token(token)["sub"] == "user-123"


class TestCreateRefreshToken:
    """Test refresh token creation."""

    def test_contains_type_refresh(self):
        payload = decode_token(create_refresh_token("user-123"))
        assert payload["type"] == "refresh"
        assert payload["sub"] == "user-123"


class TestDecodeToken:
    """Test token decoding and validation."""

    def test_expected_type_matches(self):
        payload = decode_token(create_refresh_token("user-123"), expected_type=REFRESH)
        assert payload["sub"] == "user-123"

    def test_expected_type_mismatch_raises(self):
        with pytest.raises(JWTError):
            decode_token(create_access_token("user-123"), expected_type=REFRESH)
        with pytest.raises(JWTError):
            decode_token(create_refresh_token("user-123"), expected_type=ACCESS)

    def test_decode_expired_token_raises(self):
        token = create_access_token("user-123", expires_delta=timedelta(seconds=-1))
        with pytest.raises(JWTError):
            decode_token(token)

    def test_decode_invalid_token_raises(self):
        with pytest.raises(JWTError):
            decode_token("not.a.valid.token")

    def test_decode_empty_string_raises(self):
        with pytest.raises(JWTError):
            decode_token("")


class TestTokenUserId:
    def test_returns_uuid(self):
        user_id = uuid.uuid4()
        payload = decode_token(create_access_token(str(user_id)))
        assert token_user_id(payload) == user_id

    def test_non_uuid_subject_raises(self):
        with pytest.raises(JWTError):
            token_user_id({"sub": "user-123"})

    def test_missing_subject_raises(self):
        with pytest.raises(JWTError):
            token_user_id({"type": "access"})


class TestCreateTokenPair:
    """Test token pair creation."""

    def test_returns_both_tokens(self):
        pair = create_token_pair("user-123")
        assert set(pair) == {"access_token", "refresh_token", "token_type"}
        assert pair["token_type"] == "bearer"

    def test_token_types(self):
        pair = create_token_pair("user-123")
        assert decode_token(pair["access_token"])["type"] == "access"
        assert decode_token(pair["refresh_token"])["type"] == "refresh"
