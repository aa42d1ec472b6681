# tests/v1/test_rate_limits.py
"""Tests for throttling of the credential endpoints."""

from __future__ import annotations

import logging

from fastapi import status

from essay_grader.core.settings import settings


def _login(client, email: str, password: str):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password})


def test_sixth_failed_login_is_throttled(client, submitter) -> None:
    for _ in range(5):
        assert _login(client, submitter.email, "wrong-pass").status_code == 401

    response = _login(client, submitter.email, "wrong-pass")

    assert response.status_code == status.HTTP_429_TOO_MANY_REQUESTS
    body = response.json()
    assert body["error"] == "throttled"
    assert body["allowed"] is False
    assert 0 < body["retry_after_ms"] <= settings.login_rate_limit_window_seconds * 1000
    assert int(response.headers["retry-after"]) >= 1


def test_throttled_login_blocks_even_correct_password(client, submitter, password) -> None:
    for _ in range(5):
        _login(client, submitter.email, "wrong-pass")

    assert _login(client, submitter.email, password).status_code == 429


def test_login_throttle_is_per_email(client, submitter, other_submitter, password) -> None:
    for _ in range(6):
        _login(client, submitter.email, "wrong-pass")

    assert _login(client, other_submitter.email, password).status_code == status.HTTP_200_OK


def test_successful_login_does_not_count(client, submitter, password) -> None:
    for _ in range(4):
        assert _login(client, submitter.email, "wrong-pass").status_code == 401
    assert _login(client, submitter.email, password).status_code == 200

    # The success was handed back, so one more failure still fits in the window.
    assert _login(client, submitter.email, "wrong-pass").status_code == 401
    assert _login(client, submitter.email, "wrong-pass").status_code == 429


def test_repeated_successful_logins_are_never_throttled(client, submitter, password) -> None:
    for _ in range(10):
        assert _login(client, submitter.email, password).status_code == 200


def test_throttle_log_names_key_but_never_password(client, submitter, caplog) -> None:
    with caplog.at_level(logging.INFO):
        for _ in range(6):
            _login(client, submitter.email, "hunter2-secret")

    messages = [record.getMessage() for record in caplog.records]
    assert any("rate limit hit" in m and submitter.email in m for m in messages)
    assert not any("hunter2-secret" in m for m in messages)


def test_registration_is_throttled_per_address(client, monkeypatch) -> None:
    monkeypatch.setattr(settings, "register_rate_limit_attempts", 2)

    statuses = [
        client.post(
            "/api/v1/auth/register",
            json={
                "email": f"user{i}@example.com",
                "password": "s3cret!",
                "full_name": "Someone New",
                "role": "corrector",
            },
        ).status_code
        for i in range(3)
    ]

    assert statuses == [201, 201, 429]


def test_refresh_is_throttled_after_ten_attempts(client) -> None:
    statuses = [client.post("/api/v1/auth/refresh").status_code for _ in range(11)]

    assert statuses == [401] * 10 + [429]


def test_forwarded_address_is_only_used_when_trusted(client, submitter, monkeypatch) -> None:
    monkeypatch.setattr(settings, "trust_forwarded_for", True)
    for _ in range(5):
        _login(client, submitter.email, "wrong-pass")

    other_hop = client.post(
        "/api/v1/auth/login",
        json={"email": submitter.email, "password": "wrong-pass"},
        headers={"X-Forwarded-For": "198.51.100.7"},
    )

    assert other_hop.status_code == status.HTTP_401_UNAUTHORIZED
