"""Password hashing and credential minting built on bcrypt and JWT."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Literal

import bcrypt
from jose import JWTError, jwt

from essay_grader.core.settings import settings

TokenType = Literal["access", "refresh"]


def hash_password(plain: str) -> str:
    """Return a bcrypt hash for ``plain``."""
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if ``plain`` matches the stored bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


@dataclass(frozen=True)
class TokenClaims:
    """Verified claims extracted from a credential."""

    subject: str
    token_type: TokenType
    role: str | None = None
    email: str | None = None


def _secret_for(token_type: TokenType) -> str:
    return settings.secret_key if token_type == "access" else settings.refresh_secret_key


def create_token(
    subject: str,
    token_type: TokenType,
    *,
    extra_claims: dict[str, Any] | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Mint a signed credential of the given type for ``subject``."""
    if expires_delta is None:
        if token_type == "access":
            expires_delta = timedelta(minutes=settings.access_token_expire_minutes)
        else:
            expires_delta = timedelta(days=settings.refresh_token_expire_days)

    now = datetime.now(UTC)
    to_encode: dict[str, Any] = {
        "sub": subject,
        "token_type": token_type,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": now,
        "exp": now + expires_delta,
    }
    if extra_claims:
        to_encode.update(extra_claims)
    encoded: str = jwt.encode(to_encode, _secret_for(token_type), algorithm=settings.jwt_algorithm)
    return encoded


def create_access_token(subject: str, *, role: str, email: str) -> str:
    return create_token(subject, "access", extra_claims={"role": role, "email": email})


def create_refresh_token(subject: str) -> str:
    return create_token(subject, "refresh")


def decode_token(token: str, token_type: TokenType) -> TokenClaims:
    """Verify ``token`` and return its claims.

    Raises:
        JWTError: If the signature, issuer, audience, expiry or type is invalid.
    """
    payload = jwt.decode(
        token,
        _secret_for(token_type),
        algorithms=[settings.jwt_algorithm],
        audience=settings.jwt_audience,
        issuer=settings.jwt_issuer,
    )
    if payload.get("token_type") != token_type:
        raise JWTError("Unexpected token type")
    subject = payload.get("sub")
    if not subject:
        raise JWTError("Token has no subject")
    return TokenClaims(
        subject=str(subject),
        token_type=token_type,
        role=payload.get("role"),
        email=payload.get("email"),
    )
