"""Typed calls against the essay grading API built on :class:`SessionClient`."""

from __future__ import annotations

from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from essay_grader.client.session_client import SessionClient, raise_for_error
from essay_grader.schemas.essay import EssayResponse
from essay_grader.schemas.user import Principal


class ProtocolError(RuntimeError):
    """The server answered with a payload this client does not understand."""


def _parse(model: type[BaseModel], payload: Any) -> Any:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise ProtocolError(f"Unexpected {model.__name__} payload: {exc}") from exc


def _principal(response: httpx.Response) -> Principal:
    body = raise_for_error(response).json()
    if not isinstance(body, dict):
        raise ProtocolError("Expected an object with a 'user' field")
    principal: Principal = _parse(Principal, body.get("user"))
    return principal


def _essay(response: httpx.Response) -> EssayResponse:
    essay: EssayResponse = _parse(EssayResponse, raise_for_error(response).json())
    return essay


async def login(client: SessionClient, email: str, password: str) -> Principal:
    response = await client.post("/auth/login", json={"email": email, "password": password})
    principal = _principal(response)
    client.store.set(principal)
    return principal


async def register(
    client: SessionClient,
    *,
    email: str,
    password: str,
    full_name: str,
    role: str,
    class_id: str | None = None,
) -> Principal:
    response = await client.post(
        "/auth/register",
        json={
            "email": email,
            "password": password,
            "full_name": full_name,
            "role": role,
            "class_id": class_id,
        },
    )
    principal = _principal(response)
    client.store.set(principal)
    return principal


async def logout(client: SessionClient) -> None:
    """End the session on the server; the local principal is dropped regardless."""
    try:
        raise_for_error(await client.post("/auth/logout"))
    finally:
        client.store.clear()


async def me(client: SessionClient) -> Principal:
    principal = _principal(await client.get("/auth/me"))
    client.store.set(principal)
    return principal


async def submit_essay(
    client: SessionClient, *, task_id: str, file_ref: str, file_kind: str
) -> EssayResponse:
    response = await client.post(
        "/essays/",
        json={"task_id": task_id, "file_ref": file_ref, "file_kind": file_kind},
    )
    return _essay(response)


async def get_essay(client: SessionClient, essay_id: str) -> EssayResponse:
    return _essay(await client.get(f"/essays/{essay_id}"))


async def open_essay(client: SessionClient, essay_id: str) -> EssayResponse:
    return _essay(await client.post(f"/essays/{essay_id}/open"))


async def finalize_essay(
    client: SessionClient,
    essay_id: str,
    *,
    grade: float,
    written_feedback: str | None = None,
) -> EssayResponse:
    payload: dict[str, Any] = {"grade": grade}
    if written_feedback is not None:
        payload["written_feedback"] = written_feedback
    return _essay(await client.post(f"/essays/{essay_id}/finalize", json=payload))


async def delete_essay(client: SessionClient, essay_id: str) -> None:
    raise_for_error(await client.delete(f"/essays/{essay_id}"))
