"""Rate limiting: fixed-window request counting per service and principal.

Manifesto:
Third-party services (PACER, Stripe, LexisNexis) publish request quotas.
Going over them earns 429s, temporary bans or surcharges. The gateway
counts calls per ``(service, principal)`` *before* dispatching, so one
noisy client cannot burn the quota for the whole firm.

ARCHITECTURE
────────────
::

    FixedWindowLimiter        : one limit, many keys (RateLimitRecord per key)
    RateLimiterRegistry       : service name → limiter, built from ServiceConfig

    Limiters are thread-safe (internal Lock); no awaits inside.

Window semantics:
    - The first request for a key opens a window of ``window_seconds``.
    - Exactly ``max_requests`` requests are allowed inside the window.
    - The next one is rejected with ``remaining=0`` and ``retry_after`` set
      to the seconds left until the window boundary.
    - The first request after the boundary starts a fresh window.

Example::

    limiter = FixedWindowLimiter(max_requests=100, window_seconds=900)
    result = limiter.check("user-42")
    if not result.allowed:
        raise RateLimitError(retry_after=result.retry_after)

Tags:
    lexgate, execution, rate-limit, fixed-window
"""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from lexgate.core.config.services import RateLimitConfig, ServiceConfig


@dataclass
class RateLimitRecord:
    """Request count inside the current window for one key."""

    count: int = 0
    window_start: float = 0.0


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a rate-limit check.

    Attributes:
        allowed: Whether the request may proceed
        limit: Maximum requests per window
        remaining: Requests left in the current window
        reset_at: Epoch seconds at which the window ends
        retry_after: Seconds to wait when rejected (None when allowed)
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: float | None = None

    @property
    def reset_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.reset_at, tz=timezone.utc)

    def headers(self) -> dict[str, str]:
        """Standard rate-limit response headers."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_at)),
        }
        if self.retry_after is not None:
            headers["Retry-After"] = str(max(1, math.ceil(self.retry_after)))
        return headers

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "limit": self.limit,
            "remaining": self.remaining,
            "reset_at": self.reset_datetime.isoformat(),
            "retry_after": self.retry_after,
        }


@dataclass
class FixedWindowLimiter:
    """Fixed-window counter keyed by an arbitrary identifier.

    Attributes:
        max_requests: Requests allowed per window
        window_seconds: Window length
        clock: Time source in epoch seconds (injectable for tests)
        prune_threshold: Tracked keys past which expired windows are
            dropped before a new key is added
    """

    max_requests: int
    window_seconds: float
    clock: Callable[[], float] = field(default=time.time, repr=False)
    prune_threshold: int = field(default=10_000, repr=False)

    _records: dict[str, RateLimitRecord] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_requests < 1:
            raise ValueError(f"max_requests must be >= 1, got {self.max_requests}")
        if self.window_seconds <= 0:
            raise ValueError(f"window_seconds must be positive, got {self.window_seconds}")

    def _current(self, key: str, now: float) -> RateLimitRecord:
        record = self._records.get(key)
        if record is None or now - record.window_start >= self.window_seconds:
            record = RateLimitRecord(count=0, window_start=now)
            self._records[key] = record
        return record

    def _result(self, record: RateLimitRecord, now: float, allowed: bool) -> RateLimitResult:
        reset_at = record.window_start + self.window_seconds
        return RateLimitResult(
            allowed=allowed,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - record.count),
            reset_at=reset_at,
            retry_after=None if allowed else max(0.0, reset_at - now),
        )

    def check(self, key: str) -> RateLimitResult:
        """Consume one request for ``key``."""
        with self._lock:
            now = self.clock()
            if key not in self._records and len(self._records) >= self.prune_threshold:
                self._drop_expired(now)
            record = self._current(key, now)
            if record.count >= self.max_requests:
                return self._result(record, now, allowed=False)
            record.count += 1
            return self._result(record, now, allowed=True)

    def peek(self, key: str) -> RateLimitResult:
        """Report the state for ``key`` without consuming a request."""
        with self._lock:
            now = self.clock()
            record = self._records.get(key)
            if record is None or now - record.window_start >= self.window_seconds:
                record = RateLimitRecord(count=0, window_start=now)
            return self._result(record, now, allowed=record.count < self.max_requests)

    def reset(self, key: str) -> None:
        """Forget the window for ``key``."""
        with self._lock:
            self._records.pop(key, None)

    def reset_all(self) -> None:
        """Forget every window."""
        with self._lock:
            self._records.clear()

    def prune(self) -> int:
        """Drop expired records. Returns the number removed."""
        with self._lock:
            return self._drop_expired(self.clock())

    def _drop_expired(self, now: float) -> int:
        expired = [
            key for key, record in self._records.items()
            if now - record.window_start >= self.window_seconds
        ]
        for key in expired:
            del self._records[key]
        return len(expired)

    def active_keys(self) -> list[str]:
        with self._lock:
            return list(self._records.keys())


class RateLimiterRegistry:
    """Per-service limiters built from :class:`ServiceConfig`.

    Services whose rate limit is disabled have no limiter; ``check`` on them
    always allows.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._limiters: dict[str, FixedWindowLimiter] = {}
        self._lock = threading.RLock()

    @classmethod
    def from_services(
        cls,
        services: dict[str, ServiceConfig],
        clock: Callable[[], float] = time.time,
    ) -> RateLimiterRegistry:
        registry = cls(clock=clock)
        for name, service in services.items():
            registry.configure(name, service.rate_limit)
        return registry

    def configure(self, service: str, config: RateLimitConfig) -> FixedWindowLimiter | None:
        """(Re)build the limiter for ``service``; disabled configs remove it."""
        with self._lock:
            if not config.enabled:
                self._limiters.pop(service, None)
                return None
            limiter = FixedWindowLimiter(
                max_requests=config.max_requests,
                window_seconds=config.window_seconds,
                clock=self._clock,
            )
            self._limiters[service] = limiter
            return limiter

    def get(self, service: str) -> FixedWindowLimiter | None:
        with self._lock:
            return self._limiters.get(service)

    def check(self, service: str, identifier: str) -> RateLimitResult | None:
        """Consume one request; None when the service is not limited."""
        limiter = self.get(service)
        if limiter is None:
            return None
        return limiter.check(identifier)

    def peek(self, service: str, identifier: str) -> RateLimitResult | None:
        limiter = self.get(service)
        if limiter is None:
            return None
        return limiter.peek(identifier)

    def reset(self, service: str, identifier: str | None = None) -> bool:
        """Reset one key, or every key of the service. False if not limited."""
        limiter = self.get(service)
        if limiter is None:
            return False
        if identifier is None:
            limiter.reset_all()
        else:
            limiter.reset(identifier)
        return True

    def reset_all(self) -> None:
        with self._lock:
            limiters = list(self._limiters.values())
        for limiter in limiters:
            limiter.reset_all()

    def prune(self) -> int:
        with self._lock:
            limiters = list(self._limiters.values())
        return sum(limiter.prune() for limiter in limiters)

    def list_all(self) -> list[str]:
        with self._lock:
            return list(self._limiters.keys())

    def summary(self) -> dict[str, dict[str, float | int]]:
        """Configured limits and active key counts per service."""
        with self._lock:
            items = list(self._limiters.items())
        return {
            name: {
                "max_requests": limiter.max_requests,
                "window_seconds": limiter.window_seconds,
                "active_keys": len(limiter.active_keys()),
            }
            for name, limiter in items
        }


__all__ = [
    "FixedWindowLimiter",
    "RateLimitRecord",
    "RateLimitResult",
    "RateLimiterRegistry",
]
