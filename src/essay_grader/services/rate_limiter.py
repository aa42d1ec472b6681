"""Throttling for the credential-issuing endpoints.

Each guarded endpoint has its own :class:`RateLimitPolicy`. A window starts on
the first attempt for a key and lasts ``window_seconds``; within it at most
``max_attempts`` attempts are allowed. Check-and-increment is atomic: the
in-process store does it under one lock and the Redis store in one Lua script,
so racing requests for the same key can never both slip past the limit.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock
from typing import Any, Protocol

import redis
from fastapi import Request
from fastapi.responses import JSONResponse

from essay_grader.core.errors import ThrottledError
from essay_grader.core.settings import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitPolicy:
    """Attempts allowed per key within one window for a named endpoint."""

    name: str
    max_attempts: int
    window_seconds: float

    @property
    def window_ms(self) -> int:
        return int(self.window_seconds * 1000)


@dataclass(frozen=True)
class RateDecision:
    """Outcome of a single check."""

    allowed: bool
    retry_after_ms: int = 0
    remaining: int = 0


@dataclass
class RateWindow:
    started_at: float
    count: int
    window_seconds: float

    def expired(self, now: float) -> bool:
        return now - self.started_at >= self.window_seconds

    def retry_after_ms(self, now: float) -> int:
        return max(0, math.ceil((self.started_at + self.window_seconds - now) * 1000))


def login_policy() -> RateLimitPolicy:
    return RateLimitPolicy(
        "login",
        settings.login_rate_limit_attempts,
        settings.login_rate_limit_window_seconds,
    )


def register_policy() -> RateLimitPolicy:
    return RateLimitPolicy(
        "register",
        settings.register_rate_limit_attempts,
        settings.register_rate_limit_window_seconds,
    )


def refresh_policy() -> RateLimitPolicy:
    return RateLimitPolicy(
        "refresh",
        settings.refresh_rate_limit_attempts,
        settings.refresh_rate_limit_window_seconds,
    )


class WindowStore(Protocol):
    def hit(self, key: str, policy: RateLimitPolicy) -> RateDecision: ...

    def refund(self, key: str, policy: RateLimitPolicy) -> None: ...

    def reset(self) -> None: ...


class MemoryWindowStore:
    """Per-process window store.

    Not shared between worker processes; configure ``RATE_LIMIT_REDIS_URL`` for
    multi-instance deployments.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        cleanup_interval: float = 60.0,
    ) -> None:
        self._clock = clock
        self._windows: dict[str, RateWindow] = {}
        self._lock = Lock()
        self._cleanup_interval = cleanup_interval
        self._last_cleanup = clock()

    def hit(self, key: str, policy: RateLimitPolicy) -> RateDecision:
        now = self._clock()
        with self._lock:
            self._maybe_cleanup(now)
            window = self._windows.get(key)
            if window is None or window.expired(now):
                window = RateWindow(started_at=now, count=0, window_seconds=policy.window_seconds)
                self._windows[key] = window

            if window.count >= policy.max_attempts:
                return RateDecision(allowed=False, retry_after_ms=window.retry_after_ms(now))

            window.count += 1
            return RateDecision(allowed=True, remaining=policy.max_attempts - window.count)

    def refund(self, key: str, policy: RateLimitPolicy) -> None:
        now = self._clock()
        with self._lock:
            window = self._windows.get(key)
            if window is None or window.expired(now) or window.count == 0:
                return
            window.count -= 1

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def _maybe_cleanup(self, now: float) -> None:
        """Drop elapsed windows so memory stays bounded by active keys."""
        if now - self._last_cleanup < self._cleanup_interval:
            return
        stale = [key for key, window in self._windows.items() if window.expired(now)]
        for key in stale:
            self._windows.pop(key, None)
        self._last_cleanup = now


# KEYS[1] = window key; ARGV[1] = max attempts; ARGV[2] = window length in ms.
# Returns {allowed (0/1), ttl_ms, count}.
_HIT_SCRIPT = """
local count = tonumber(redis.call('GET', KEYS[1]) or '0')
local limit = tonumber(ARGV[1])
if count >= limit then
  local ttl = redis.call('PTTL', KEYS[1])
  if ttl < 0 then
    redis.call('PEXPIRE', KEYS[1], ARGV[2])
    ttl = tonumber(ARGV[2])
  end
  return {0, ttl, count}
end
count = redis.call('INCR', KEYS[1])
if count == 1 then
  redis.call('PEXPIRE', KEYS[1], ARGV[2])
end
return {1, redis.call('PTTL', KEYS[1]), count}
"""

_REFUND_SCRIPT = """
local count = tonumber(redis.call('GET', KEYS[1]) or '0')
if count > 0 then
  return redis.call('DECR', KEYS[1])
end
return 0
"""


class RedisWindowStore:
    """Window store shared by every process pointed at the same Redis.

    A Redis failure degrades to the in-process store rather than failing the
    request; throttling never turns into a server error. Redis is tried again
    once ``retry_interval`` seconds have passed since the last failure.
    """

    def __init__(
        self,
        client: Any,
        *,
        prefix: str = "ratelimit",
        retry_interval: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._redis: Any = client
        self._prefix = prefix
        self._hit = client.register_script(_HIT_SCRIPT)
        self._refund = client.register_script(_REFUND_SCRIPT)
        self._fallback = MemoryWindowStore(clock=clock)
        self._retry_interval = retry_interval
        self._clock = clock
        self._down_until: float | None = None

    @classmethod
    def from_url(cls, url: str) -> RedisWindowStore:
        return cls(redis.from_url(url))

    @property
    def degraded(self) -> bool:
        return self._down_until is not None

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    def _available(self) -> bool:
        return self._down_until is None or self._clock() >= self._down_until

    def _mark_down(self) -> None:
        if self._down_until is None:
            logger.exception("Redis rate-limit store unavailable, using in-process windows")
        self._down_until = self._clock() + self._retry_interval

    def _mark_up(self) -> None:
        if self._down_until is not None:
            logger.info("Redis rate-limit store reachable again")
            self._down_until = None

    def hit(self, key: str, policy: RateLimitPolicy) -> RateDecision:
        if self._available():
            try:
                allowed, ttl_ms, count = self._hit(
                    keys=[self._key(key)], args=[policy.max_attempts, policy.window_ms]
                )
            except redis.RedisError:
                self._mark_down()
            else:
                self._mark_up()
                if int(allowed):
                    return RateDecision(
                        allowed=True, remaining=max(0, policy.max_attempts - int(count))
                    )
                return RateDecision(allowed=False, retry_after_ms=max(0, int(ttl_ms)))
        return self._fallback.hit(key, policy)

    def refund(self, key: str, policy: RateLimitPolicy) -> None:
        if self._available():
            try:
                self._refund(keys=[self._key(key)])
            except redis.RedisError:
                self._mark_down()
            else:
                self._mark_up()
                return
        self._fallback.refund(key, policy)

    def reset(self) -> None:
        """Forget every window, in Redis under this prefix and in the fallback."""
        self._fallback.reset()
        try:
            keys = list(self._redis.scan_iter(match=f"{self._prefix}:*"))
            if keys:
                self._redis.delete(*keys)
        except redis.RedisError:
            self._mark_down()


class RateLimiter:
    """Bound credential-endpoint attempts per identity key.

    ``check`` never raises: a rejected attempt is an ordinary
    :class:`RateDecision` that the endpoint turns into a response with
    :func:`throttled_response`.
    """

    def __init__(self, store: WindowStore | None = None) -> None:
        self._store: WindowStore = store if store is not None else MemoryWindowStore()

    def check(self, key: str, policy: RateLimitPolicy) -> RateDecision:
        """Count an attempt for ``key`` if the window still has room.

        A disallowed attempt is not counted and reports how long until the
        window resets.
        """
        decision = self._store.hit(f"{policy.name}:{key}", policy)
        if not decision.allowed:
            logger.warning(
                "rate limit hit endpoint=%s key=%s retry_after_ms=%d",
                policy.name,
                key,
                decision.retry_after_ms,
            )
        return decision

    def refund(self, key: str, policy: RateLimitPolicy) -> None:
        """Give back the slot taken by an attempt that turned out to succeed."""
        self._store.refund(f"{policy.name}:{key}", policy)

    def reset(self) -> None:
        self._store.reset()


def throttled_response(policy: RateLimitPolicy, decision: RateDecision) -> JSONResponse:
    """Render a rejected decision as the machine-readable 429 payload."""
    error = ThrottledError(
        f"Too many {policy.name} attempts. Try again later.",
        retry_after_ms=decision.retry_after_ms,
    )
    retry_after_seconds = max(1, math.ceil(decision.retry_after_ms / 1000))
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_dict(),
        headers={"Retry-After": str(retry_after_seconds)},
    )


def client_address(request: Request) -> str:
    """Return the source address used to key throttling windows."""
    if settings.trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def login_key(request: Request, email: str) -> str:
    return f"{client_address(request)}:{email.strip().lower()}"


def build_window_store() -> WindowStore:
    if settings.rate_limit_redis_url:
        return RedisWindowStore.from_url(settings.rate_limit_redis_url)
    return MemoryWindowStore()


_LIMITER: RateLimiter | None = None
_LIMITER_LOCK = Lock()


def get_rate_limiter() -> RateLimiter:
    """Return the process-wide rate limiter."""
    global _LIMITER
    with _LIMITER_LOCK:
        if _LIMITER is None:
            _LIMITER = RateLimiter(build_window_store())
        return _LIMITER
