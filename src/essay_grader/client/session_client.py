"""HTTP session client with transparent credential renewal.

Credentials live in the underlying :class:`httpx.AsyncClient` cookie jar and
are never read by this module. When a call comes back ``401`` the client runs
one renewal exchange against ``/auth/refresh`` and replays the call once.
Concurrent rejections share a single in-flight renewal, so N expired requests
cost exactly one refresh call.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from typing import Any

import httpx
from pydantic import ValidationError

from essay_grader.client.credential_store import CredentialStore
from essay_grader.core.errors import AppError, RenewalFailedError, error_for_kind
from essay_grader.core.settings import settings
from essay_grader.schemas.user import Principal

logger = logging.getLogger(__name__)

HTTP_UNAUTHORIZED = 401

REFRESH_PATH = "/auth/refresh"
CREDENTIAL_PATHS = frozenset({"/auth/login", "/auth/register", REFRESH_PATH, "/auth/logout"})

_STATUS_FALLBACK_KINDS = {
    400: "validation_failed",
    401: "unauthenticated",
    403: "unauthorized",
    404: "not_found",
    409: "conflict",
    429: "throttled",
}


class SessionClosedError(RuntimeError):
    """Raised when a request is attempted after :meth:`SessionClient.aclose`."""


@dataclass(frozen=True)
class RequestEnvelope:
    """One outbound call plus its retry bookkeeping.

    ``epoch`` is the number of renewals settled when the call was sent. A call
    sent while a renewal is in flight still carries the old credential, so its
    rejection attaches to that renewal, even after it settles, instead of
    starting another.
    """

    method: str
    path: str
    json_data: Any | None = None
    params: Mapping[str, Any] | None = None
    headers: Mapping[str, str] | None = None
    retried: bool = False
    epoch: int = 0

    @property
    def is_credential_call(self) -> bool:
        path = httpx.URL(self.path).path.rstrip("/")
        return any(path.endswith(candidate) for candidate in CREDENTIAL_PATHS)


class SessionClient:
    """Backend client for one signed-in session."""

    def __init__(
        self,
        store: CredentialStore,
        *,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        renewal_timeout_seconds: float | None = None,
        on_session_end: Callable[[], None] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.store = store
        self.base_url = base_url or settings.api_base_url
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.client_timeout_seconds
        )
        self.renewal_timeout_seconds = (
            renewal_timeout_seconds
            if renewal_timeout_seconds is not None
            else settings.renewal_timeout_seconds
        )
        self.on_session_end = on_session_end
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()
        self._renewal: asyncio.Task[Principal] | None = None
        self._epoch = 0
        self._closed = False

    async def __aenter__(self) -> SessionClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @property
    def renewing(self) -> bool:
        return self._renewal is not None and not self._renewal.done()

    def _settled_epoch(self) -> int:
        return self._epoch - 1 if self.renewing else self._epoch

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._closed:
            raise SessionClosedError("Session client is closed")
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=self.base_url,
                    timeout=httpx.Timeout(self.timeout_seconds),
                    transport=self._transport,
                )
        return self._client

    async def _send(self, envelope: RequestEnvelope) -> httpx.Response:
        client = await self._ensure_client()
        return await client.request(
            envelope.method,
            envelope.path,
            json=envelope.json_data,
            params=envelope.params,
            headers=envelope.headers,
        )

    # --- public request API -------------------------------------------------------

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any | None = None,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        """Send a request, renewing the credential once if it is rejected.

        Any response other than a credential rejection is returned untouched.

        Raises:
            RenewalFailedError: The call was rejected and renewal failed.
            SessionClosedError: The client was closed.
        """
        envelope = RequestEnvelope(
            method=method.upper(),
            path=path,
            json_data=json,
            params=params,
            headers=headers,
            epoch=self._settled_epoch(),
        )
        return await self._dispatch(envelope)

    async def get(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", path, **kwargs)

    async def patch(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PATCH", path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", path, **kwargs)

    async def _dispatch(self, envelope: RequestEnvelope) -> httpx.Response:
        response = await self._send(envelope)
        if response.status_code != HTTP_UNAUTHORIZED:
            return response
        # Credential endpoints answer 401 for bad passwords or a dead refresh
        # credential; renewing there would loop.
        if envelope.is_credential_call or envelope.retried:
            return response

        await self._await_renewal(envelope)
        replay = replace(envelope, retried=True, epoch=self._epoch)
        logger.debug("replaying %s %s after renewal", replay.method, replay.path)
        return await self._send(replay)

    # --- renewal --------------------------------------------------------------------

    async def _await_renewal(self, envelope: RequestEnvelope) -> Principal:
        task = self._renewal
        if task is None or (task.done() and envelope.epoch >= self._epoch):
            self._epoch += 1
            task = asyncio.create_task(self._run_renewal())
            self._renewal = task

        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if task.cancelled() and (current is None or not current.cancelling()):
                raise RenewalFailedError("Session client closed during renewal") from None
            raise
        except RenewalFailedError as exc:
            raise RenewalFailedError(exc.message) from exc

    async def _run_renewal(self) -> Principal:
        logger.info("renewing session credential")
        try:
            response = await asyncio.wait_for(
                self._send(RequestEnvelope(method="POST", path=REFRESH_PATH, retried=True)),
                timeout=self.renewal_timeout_seconds,
            )
            if response.status_code != httpx.codes.OK:
                raise RenewalFailedError(f"Renewal rejected with status {response.status_code}")
            principal = Principal.model_validate(response.json()["user"])
        except RenewalFailedError as exc:
            self._end_session(exc.message)
            raise
        except asyncio.TimeoutError as exc:
            self._end_session("renewal timed out")
            raise RenewalFailedError("Session renewal timed out") from exc
        except (httpx.HTTPError, ValidationError, ValueError, KeyError, TypeError) as exc:
            self._end_session(f"renewal failed: {exc}")
            raise RenewalFailedError() from exc

        self.store.set(principal)
        logger.info("session credential renewed for principal %s", principal.id)
        return principal

    def _end_session(self, reason: str) -> None:
        """Log out locally and notify the application; runs once per failed renewal."""
        logger.warning("session ended: %s", reason)
        self.store.clear()
        if self.on_session_end is not None:
            try:
                self.on_session_end()
            except Exception:
                logger.exception("session-end callback raised")

    async def aclose(self) -> None:
        """Cancel any renewal in flight and release the HTTP client.

        Requests waiting on a cancelled renewal fail with
        :class:`RenewalFailedError` rather than hanging.
        """
        self._closed = True
        task = self._renewal
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait([task])
        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None


def raise_for_error(response: httpx.Response) -> httpx.Response:
    """Return ``response`` if it succeeded, otherwise raise the matching :class:`AppError`."""
    if response.is_success:
        return response
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    kind = body.get("error") or _STATUS_FALLBACK_KINDS.get(response.status_code)
    detail = body.get("detail")
    message = detail if isinstance(detail, str) else None
    retry_after_ms = body.get("retry_after_ms")
    if retry_after_ms is None and response.headers.get("retry-after", "").isdigit():
        retry_after_ms = int(response.headers["retry-after"]) * 1000
    error: AppError = error_for_kind(kind, message, retry_after_ms=retry_after_ms)
    raise error
