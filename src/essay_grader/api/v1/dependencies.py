"""Shared API dependencies for authentication and common functionality."""

from typing import Annotated

from fastapi import Depends
from fastapi.security import APIKeyCookie
from sqlalchemy.orm import Session

from essay_grader.core.errors import UnauthorizedError
from essay_grader.core.settings import settings
from essay_grader.db.session import get_db
from essay_grader.models import Role
from essay_grader.schemas.user import Principal
from essay_grader.services import auth_service
from essay_grader.services.essay_lifecycle import EssayLifecycle
from essay_grader.services.rate_limiter import RateLimiter, get_rate_limiter

# The access credential travels only in an httpOnly cookie.
access_cookie_scheme = APIKeyCookie(name=settings.access_cookie_name, auto_error=False)

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def get_current_principal(
    token: Annotated[str | None, Depends(access_cookie_scheme)],
    db: SessionDep,
) -> Principal:
    """Resolve the acting principal from the access cookie.

    Raises:
        UnauthenticatedError: If no access cookie was sent.
        CredentialExpiredError: If the cookie is expired or invalid; the
            client reacts to this by renewing.
    """
    user = auth_service.resolve_access_token(db, token)
    return Principal.from_user(user)


CurrentPrincipalDep = Annotated[Principal, Depends(get_current_principal)]


def require_corrector(principal: CurrentPrincipalDep) -> Principal:
    if principal.role != Role.CORRECTOR.value:
        raise UnauthorizedError("Corrector role required")
    return principal


def require_submitter(principal: CurrentPrincipalDep) -> Principal:
    if principal.role != Role.SUBMITTER.value:
        raise UnauthorizedError("Submitter role required")
    return principal


CorrectorDep = Annotated[Principal, Depends(require_corrector)]
SubmitterDep = Annotated[Principal, Depends(require_submitter)]


def get_rate_limiter_dep() -> RateLimiter:
    return get_rate_limiter()


def get_essay_lifecycle_dep(db: SessionDep) -> EssayLifecycle:
    return EssayLifecycle(db)


RateLimiterDep = Annotated[RateLimiter, Depends(get_rate_limiter_dep)]
EssayLifecycleDep = Annotated[EssayLifecycle, Depends(get_essay_lifecycle_dep)]
