"""Error kinds shared by the API handlers and the session client.

Every error carries a machine-readable ``kind`` that crosses the HTTP boundary
verbatim in the ``error`` field of the response body, so the client can map a
response back onto the same class with :func:`error_for_kind`.
"""

from __future__ import annotations

from typing import Any, ClassVar


class AppError(Exception):
    """Base class for operational errors surfaced to API callers."""

    kind: ClassVar[str] = "internal_error"
    status_code: ClassVar[int] = 500
    default_message: ClassVar[str] = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.kind, "detail": self.message}


class UnauthenticatedError(AppError):
    """No usable credential was presented at all."""

    kind = "unauthenticated"
    status_code = 401
    default_message = "Authentication required"


class CredentialExpiredError(AppError):
    """A credential was presented but is expired or otherwise rejected."""

    kind = "credential_expired"
    status_code = 401
    default_message = "Credential expired or invalid"


class RenewalFailedError(AppError):
    """The renewal exchange failed; the session is over."""

    kind = "renewal_failed"
    status_code = 401
    default_message = "Session renewal failed"


class ThrottledError(AppError):
    """Too many attempts for an identity key within the current window."""

    kind = "throttled"
    status_code = 429
    default_message = "Too many attempts. Try again later."

    def __init__(self, message: str | None = None, *, retry_after_ms: int = 0) -> None:
        super().__init__(message)
        self.retry_after_ms = retry_after_ms

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body.update({"allowed": False, "retry_after_ms": self.retry_after_ms})
        return body


class ValidationFailedError(AppError):
    """Input or transition rejected; no state was changed."""

    kind = "validation_failed"
    status_code = 400
    default_message = "Invalid data"


class UnauthorizedError(AppError):
    """The principal lacks the relationship required for the action."""

    kind = "unauthorized"
    status_code = 403
    default_message = "You are not allowed to perform this action"


class NotFoundError(AppError):
    kind = "not_found"
    status_code = 404
    default_message = "Resource not found"


class ConflictError(AppError):
    kind = "conflict"
    status_code = 409
    default_message = "Conflicting data"


_KINDS: dict[str, type[AppError]] = {
    cls.kind: cls
    for cls in (
        UnauthenticatedError,
        CredentialExpiredError,
        RenewalFailedError,
        ThrottledError,
        ValidationFailedError,
        UnauthorizedError,
        NotFoundError,
        ConflictError,
    )
}


def error_for_kind(kind: str | None, message: str | None = None, **extra: Any) -> AppError:
    """Rebuild an error instance from its wire ``kind``.

    Unknown kinds fall back to :class:`AppError` so callers always receive an
    ``AppError`` subclass.
    """
    cls = _KINDS.get(kind or "", AppError)
    if cls is ThrottledError:
        return ThrottledError(message, retry_after_ms=int(extra.get("retry_after_ms") or 0))
    return cls(message)
