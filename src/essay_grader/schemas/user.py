# src/essay_grader/schemas/user.py
"""Identity-related Pydantic schemas."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

RoleName = Literal["corrector", "submitter"]


def _normalize_email(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower()
    return value


class RegisterRequest(BaseModel):
    """Schema for account registration."""

    email: EmailStr = Field(..., description="Login email, stored lowercased")
    password: str = Field(..., min_length=6, max_length=128, description="Plain-text password")
    full_name: str = Field(..., min_length=3, max_length=255, description="Display name")
    role: RoleName = Field(..., description="Either 'corrector' or 'submitter'")
    class_id: str | None = Field(None, description="Class to join (submitters only)")

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: Any) -> Any:
        return _normalize_email(v)

    @field_validator("full_name")
    @classmethod
    def strip_full_name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 3:
            raise ValueError("Full name must be at least 3 characters")
        return v


class LoginRequest(BaseModel):
    """Schema for login submissions."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: Any) -> Any:
        return _normalize_email(v)


class Principal(BaseModel):
    """The authenticated identity as seen by clients.

    Never carries credential material; the credential itself travels only in
    httpOnly cookies.
    """

    id: str
    role: RoleName
    display_name: str
    email: str
    group_id: str | None = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_user(cls, user: Any) -> "Principal":
        """Build the public view of a ``User`` row."""
        return cls(
            id=user.id,
            role=user.role,
            display_name=user.full_name,
            email=user.email,
            group_id=user.class_id,
        )


class AuthResponse(BaseModel):
    """Response for register, login, refresh and me."""

    user: Principal
