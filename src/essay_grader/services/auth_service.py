"""Account registration and credential issuance helpers."""
from __future__ import annotations

from dataclasses import dataclass

from jose import JWTError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from essay_grader.core import security
from essay_grader.core.errors import (
    ConflictError,
    CredentialExpiredError,
    UnauthenticatedError,
    ValidationFailedError,
)
from essay_grader.models import Role, SchoolClass, User
from essay_grader.schemas.user import RegisterRequest

__all__ = [
    "IssuedCredentials",
    "register_user",
    "authenticate",
    "resolve_refresh_token",
    "resolve_access_token",
    "issue_credentials",
]

_INVALID_LOGIN = "Invalid email or password"


@dataclass(frozen=True)
class IssuedCredentials:
    """Freshly minted access and refresh tokens for one user."""

    access_token: str
    refresh_token: str


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.execute(select(User).where(User.email == email)).scalar_one_or_none()


def register_user(db: Session, request: RegisterRequest) -> User:
    """Persist a new account with a bcrypt password hash.

    Raises:
        ConflictError: If the email is already registered.
        ValidationFailedError: If a submitter names a class that does not exist.
    """
    if get_user_by_email(db, request.email) is not None:
        raise ConflictError("Email already registered")

    class_id = request.class_id if request.role == Role.SUBMITTER.value else None
    if class_id is not None and db.get(SchoolClass, class_id) is None:
        raise ValidationFailedError("Class not found")

    user = User(
        email=request.email,
        password_hash=security.hash_password(request.password),
        full_name=request.full_name,
        role=request.role,
        class_id=class_id,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("Email already registered") from exc
    db.refresh(user)
    return user


def authenticate(db: Session, email: str, password: str) -> User:
    """Return the user for a correct email/password pair.

    Unknown email and wrong password produce the same error so the endpoint
    cannot be used to enumerate accounts.
    """
    user = get_user_by_email(db, email)
    if user is None or not security.verify_password(password, user.password_hash):
        raise UnauthenticatedError(_INVALID_LOGIN)
    return user


def _resolve(db: Session, token: str | None, token_type: security.TokenType) -> User:
    if not token:
        raise UnauthenticatedError()
    try:
        claims = security.decode_token(token, token_type)
    except JWTError as exc:
        raise CredentialExpiredError() from exc
    user = db.get(User, claims.subject)
    if user is None:
        raise CredentialExpiredError("User no longer exists")
    return user


def resolve_access_token(db: Session, token: str | None) -> User:
    """Map an access credential onto its user.

    Raises:
        UnauthenticatedError: No credential was presented.
        CredentialExpiredError: The credential is expired, forged or orphaned.
    """
    return _resolve(db, token, "access")


def resolve_refresh_token(db: Session, token: str | None) -> User:
    return _resolve(db, token, "refresh")


def issue_credentials(user: User, *, include_refresh: bool = True) -> IssuedCredentials:
    access = security.create_access_token(user.id, role=user.role, email=user.email)
    refresh = security.create_refresh_token(user.id) if include_refresh else ""
    return IssuedCredentials(access, refresh)
