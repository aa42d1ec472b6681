# tests/v1/test_auth.py
"""Tests for the credential endpoints."""

from __future__ import annotations

from datetime import timedelta

from fastapi import status

from essay_grader.core.security import create_access_token, create_token, decode_token
from essay_grader.core.settings import settings


def _register_payload(**overrides):
    payload = {
        "email": "new.user@example.com",
        "password": "s3cret!",
        "full_name": "New User",
        "role": "submitter",
    }
    payload.update(overrides)
    return payload


def _set_cookie_headers(response) -> list[str]:
    return response.headers.get_list("set-cookie")


def test_register_sets_httponly_cookies_and_returns_only_principal(client, school_class) -> None:
    response = client.post(
        "/api/v1/auth/register", json=_register_payload(class_id=school_class.id)
    )

    assert response.status_code == status.HTTP_201_CREATED
    body = response.json()
    assert set(body) == {"user"}
    assert body["user"]["email"] == "new.user@example.com"
    assert body["user"]["role"] == "submitter"
    assert body["user"]["display_name"] == "New User"
    assert body["user"]["group_id"] == school_class.id

    cookies = _set_cookie_headers(response)
    for name in (settings.access_cookie_name, settings.refresh_cookie_name):
        header = next(c for c in cookies if c.startswith(f"{name}="))
        assert "httponly" in header.lower()
        token = header.split(";", 1)[0].split("=", 1)[1]
        assert token not in response.text


def test_register_normalizes_email(client) -> None:
    response = client.post("/api/v1/auth/register", json=_register_payload(email=" Mixed@Example.COM "))

    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["user"]["email"] == "mixed@example.com"


def test_register_malformed_email_is_validation_failure(client) -> None:
    for email in ("not-an-email", "two@@example.com", "user@", "spaced out@example.com"):
        response = client.post("/api/v1/auth/register", json=_register_payload(email=email))

        assert response.status_code == status.HTTP_400_BAD_REQUEST, email
        assert response.json()["error"] == "validation_failed"


def test_login_malformed_email_is_validation_failure(client) -> None:
    response = client.post(
        "/api/v1/auth/login", json={"email": "not-an-email", "password": "whatever"}
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"] == "validation_failed"


def test_register_duplicate_email_conflicts(client, submitter) -> None:
    response = client.post("/api/v1/auth/register", json=_register_payload(email=submitter.email))

    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["error"] == "conflict"


def test_register_short_password_is_validation_failure(client) -> None:
    response = client.post("/api/v1/auth/register", json=_register_payload(password="12345"))

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"] == "validation_failed"


def test_register_unknown_class_is_validation_failure(client) -> None:
    response = client.post("/api/v1/auth/register", json=_register_payload(class_id="missing"))

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"] == "validation_failed"


def test_register_corrector_ignores_class(client, school_class) -> None:
    response = client.post(
        "/api/v1/auth/register",
        json=_register_payload(role="corrector", class_id=school_class.id),
    )

    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["user"]["group_id"] is None


def test_login_success_returns_principal(client, submitter, password) -> None:
    response = client.post(
        "/api/v1/auth/login", json={"email": submitter.email, "password": password}
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {
        "user": {
            "id": submitter.id,
            "role": "submitter",
            "display_name": "Sam Submitter",
            "email": submitter.email,
            "group_id": submitter.class_id,
        }
    }
    assert client.cookies.get(settings.access_cookie_name)
    assert client.cookies.get(settings.refresh_cookie_name)


def test_login_wrong_password_and_unknown_email_look_the_same(client, submitter) -> None:
    wrong_password = client.post(
        "/api/v1/auth/login", json={"email": submitter.email, "password": "nope-nope"}
    )
    unknown_email = client.post(
        "/api/v1/auth/login", json={"email": "ghost@example.com", "password": "nope-nope"}
    )

    assert wrong_password.status_code == status.HTTP_401_UNAUTHORIZED
    assert unknown_email.status_code == status.HTTP_401_UNAUTHORIZED
    assert wrong_password.json() == unknown_email.json()
    assert wrong_password.json()["error"] == "unauthenticated"


def test_me_without_cookie_is_unauthenticated(client) -> None:
    response = client.get("/api/v1/auth/me")

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["error"] == "unauthenticated"


def test_me_with_garbage_cookie_is_credential_expired(client) -> None:
    client.cookies.set(settings.access_cookie_name, "not-a-jwt")

    response = client.get("/api/v1/auth/me")

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["error"] == "credential_expired"


def test_me_with_expired_cookie_is_credential_expired(client, submitter) -> None:
    expired = create_token(
        submitter.id,
        "access",
        extra_claims={"role": submitter.role, "email": submitter.email},
        expires_delta=timedelta(seconds=-5),
    )
    client.cookies.set(settings.access_cookie_name, expired)

    response = client.get("/api/v1/auth/me")

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["error"] == "credential_expired"


def test_me_with_valid_cookie_returns_principal(login_as, submitter) -> None:
    response = login_as(submitter).get("/api/v1/auth/me")

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["user"]["id"] == submitter.id


def test_refresh_reissues_only_access_cookie(login_as, submitter) -> None:
    client = login_as(submitter)
    client.cookies.delete(settings.access_cookie_name)

    response = client.post("/api/v1/auth/refresh")

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["user"]["id"] == submitter.id
    names = [c.split("=", 1)[0] for c in _set_cookie_headers(response)]
    assert names == [settings.access_cookie_name]
    claims = decode_token(client.cookies.get(settings.access_cookie_name), "access")
    assert claims.subject == submitter.id


def test_refresh_without_cookie_is_unauthenticated(client) -> None:
    response = client.post("/api/v1/auth/refresh")

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["error"] == "unauthenticated"


def test_access_token_is_not_accepted_as_refresh_token(client, submitter) -> None:
    client.cookies.set(
        settings.refresh_cookie_name,
        create_access_token(submitter.id, role=submitter.role, email=submitter.email),
    )

    response = client.post("/api/v1/auth/refresh")

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["error"] == "credential_expired"


def test_logout_clears_cookies_without_authentication(client) -> None:
    response = client.post("/api/v1/auth/logout")

    assert response.status_code == status.HTTP_204_NO_CONTENT
    cookies = _set_cookie_headers(response)
    for name in (settings.access_cookie_name, settings.refresh_cookie_name):
        header = next(c for c in cookies if c.startswith(f"{name}="))
        assert "max-age=0" in header.lower()


def test_logout_is_idempotent(client, submitter, password) -> None:
    client.post("/api/v1/auth/login", json={"email": submitter.email, "password": password})
    assert client.get("/api/v1/auth/me").status_code == status.HTTP_200_OK

    assert client.post("/api/v1/auth/logout").status_code == status.HTTP_204_NO_CONTENT
    assert client.post("/api/v1/auth/logout").status_code == status.HTTP_204_NO_CONTENT
    assert client.get("/api/v1/auth/me").status_code == status.HTTP_401_UNAUTHORIZED
