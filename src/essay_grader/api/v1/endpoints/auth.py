# src/essay_grader/api/v1/endpoints/auth.py
"""Credential endpoints.

Login, registration and renewal are the only unauthenticated endpoints that
hand out credentials, so each one is throttled per source address (login also
per submitted email). Credentials are set as httpOnly cookies; bodies only ever
carry the non-secret principal.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request, Response, status
from fastapi.responses import JSONResponse

from essay_grader.api.v1.dependencies import (
    CurrentPrincipalDep,
    RateLimiterDep,
    SessionDep,
)
from essay_grader.core.errors import AppError
from essay_grader.core.settings import settings
from essay_grader.schemas.user import AuthResponse, LoginRequest, Principal, RegisterRequest
from essay_grader.services import auth_service
from essay_grader.services.rate_limiter import (
    client_address,
    login_key,
    login_policy,
    refresh_policy,
    register_policy,
    throttled_response,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


def _set_cookie(response: Response, name: str, value: str, max_age: int) -> None:
    response.set_cookie(
        key=name,
        value=value,
        max_age=max_age,
        httponly=True,
        secure=settings.cookie_secure,
        samesite=settings.cookie_samesite,
        path="/",
    )


def _set_access_cookie(response: Response, token: str) -> None:
    _set_cookie(response, settings.access_cookie_name, token, settings.access_token_max_age)


def _set_refresh_cookie(response: Response, token: str) -> None:
    _set_cookie(response, settings.refresh_cookie_name, token, settings.refresh_token_max_age)


def _clear_cookies(response: Response) -> None:
    for name in (settings.access_cookie_name, settings.refresh_cookie_name):
        response.delete_cookie(
            key=name,
            path="/",
            httponly=True,
            secure=settings.cookie_secure,
            samesite=settings.cookie_samesite,
        )


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register(
    request: Request,
    payload: RegisterRequest,
    db: SessionDep,
    limiter: RateLimiterDep,
    response: Response,
) -> AuthResponse | JSONResponse:
    """Create an account and sign it in."""
    policy = register_policy()
    decision = limiter.check(client_address(request), policy)
    if not decision.allowed:
        return throttled_response(policy, decision)

    user = auth_service.register_user(db, payload)
    credentials = auth_service.issue_credentials(user)
    _set_access_cookie(response, credentials.access_token)
    _set_refresh_cookie(response, credentials.refresh_token)
    logger.info("registered %s account %s", user.role, user.id)
    return AuthResponse(user=Principal.from_user(user))


@router.post("/login", response_model=AuthResponse)
async def login(
    request: Request,
    payload: LoginRequest,
    db: SessionDep,
    limiter: RateLimiterDep,
    response: Response,
) -> AuthResponse | JSONResponse:
    """Exchange email and password for credential cookies.

    Only failed attempts stay counted against the login window.
    """
    policy = login_policy()
    key = login_key(request, payload.email)
    decision = limiter.check(key, policy)
    if not decision.allowed:
        return throttled_response(policy, decision)

    try:
        user = auth_service.authenticate(db, payload.email, payload.password)
    except AppError:
        logger.info("failed login for key %s", key)
        raise

    limiter.refund(key, policy)
    credentials = auth_service.issue_credentials(user)
    _set_access_cookie(response, credentials.access_token)
    _set_refresh_cookie(response, credentials.refresh_token)
    return AuthResponse(user=Principal.from_user(user))


@router.post("/refresh", response_model=AuthResponse)
async def refresh(
    request: Request,
    db: SessionDep,
    limiter: RateLimiterDep,
    response: Response,
) -> AuthResponse | JSONResponse:
    """Trade the refresh cookie for a new access cookie."""
    policy = refresh_policy()
    decision = limiter.check(client_address(request), policy)
    if not decision.allowed:
        return throttled_response(policy, decision)

    token = request.cookies.get(settings.refresh_cookie_name)
    user = auth_service.resolve_refresh_token(db, token)
    credentials = auth_service.issue_credentials(user, include_refresh=False)
    _set_access_cookie(response, credentials.access_token)
    return AuthResponse(user=Principal.from_user(user))


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout() -> Response:
    """Clear both credential cookies; safe to call without a session."""
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    _clear_cookies(response)
    return response


@router.get("/me", response_model=AuthResponse)
async def me(principal: CurrentPrincipalDep) -> AuthResponse:
    return AuthResponse(user=principal)
