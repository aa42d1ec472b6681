# tests/test_security.py
"""Tests for password hashing, credential minting and settings guards."""

from __future__ import annotations

from datetime import timedelta

import pytest
from jose import JWTError, jwt
from pydantic import ValidationError

from essay_grader.core.security import (
    create_access_token,
    create_refresh_token,
    create_token,
    decode_token,
    hash_password,
    verify_password,
)
from essay_grader.core.settings import Settings, settings


def test_password_round_trip() -> None:
    hashed = hash_password("s3cret!")

    assert hashed != "s3cret!"
    assert verify_password("s3cret!", hashed)
    assert not verify_password("wrong", hashed)


def test_verify_password_rejects_malformed_hash() -> None:
    assert not verify_password("s3cret!", "not-a-bcrypt-hash")


def test_access_token_claims() -> None:
    token = create_access_token("u-1", role="corrector", email="c@example.com")

    claims = decode_token(token, "access")

    assert claims.subject == "u-1"
    assert claims.role == "corrector"
    assert claims.email == "c@example.com"
    payload = jwt.get_unverified_claims(token)
    assert payload["iss"] == settings.jwt_issuer
    assert payload["aud"] == settings.jwt_audience


def test_token_types_are_not_interchangeable() -> None:
    access = create_access_token("u-1", role="submitter", email="s@example.com")
    refresh = create_refresh_token("u-1")

    with pytest.raises(JWTError):
        decode_token(access, "refresh")
    with pytest.raises(JWTError):
        decode_token(refresh, "access")


def test_expired_token_is_rejected() -> None:
    token = create_token("u-1", "refresh", expires_delta=timedelta(seconds=-1))

    with pytest.raises(JWTError):
        decode_token(token, "refresh")


def test_token_with_wrong_type_claim_is_rejected() -> None:
    forged = create_token("u-1", "access", extra_claims={"token_type": "refresh"})

    with pytest.raises(JWTError):
        decode_token(forged, "access")


def test_default_secrets_are_refused_outside_development() -> None:
    with pytest.raises(ValidationError):
        Settings(ENVIRONMENT="production")


def test_explicit_secrets_are_accepted_in_production() -> None:
    configured = Settings(
        ENVIRONMENT="production",
        SECRET_KEY="a" * 32,
        REFRESH_SECRET_KEY="b" * 32,
    )

    assert configured.access_token_max_age == 15 * 60
    assert configured.refresh_token_max_age == 7 * 24 * 60 * 60
