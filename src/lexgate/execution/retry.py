"""Retry with exponential backoff for integration calls.

Provides the retry policy the gateway applies per service and the
orchestrator applies per workflow step.

Delay before retrying after attempt ``n`` (1-based) failed::

    delay = min(base_delay * backoff_multiplier ** (n - 1), max_delay)

Only retryable errors are repeated (see :func:`lexgate.core.errors.is_retryable`);
validation, auth and open-circuit errors surface on the first attempt.

Example:
    >>> from lexgate.execution.retry import RetryExecutor, RetryPolicy
    >>>
    >>> executor = RetryExecutor(RetryPolicy(max_attempts=3, base_delay=1.0))
    >>> for attempt in range(1, 4):
    ...     print(f"Attempt {attempt}: wait {executor.policy.delay_for(attempt):.2f}s")
    >>> result = await executor.run(lambda: gateway.invoke(request, principal))
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, TypeVar

from lexgate.core.config.services import RetryConfig
from lexgate.core.errors import is_retryable
from lexgate.core.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff policy.

    Attributes:
        max_attempts: Total attempts including the first one
        base_delay: Delay after the first failure, in seconds
        max_delay: Cap on any single delay
        backoff_multiplier: Growth factor between consecutive delays
        jitter: Randomize each delay by +/- ``jitter_range`` of its value
        jitter_range: Fraction of the delay used for jitter (0.0-1.0)
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0
    jitter: bool = False
    jitter_range: float = 0.25

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    @classmethod
    def from_config(cls, config: RetryConfig) -> RetryPolicy:
        return cls(
            max_attempts=config.max_attempts,
            base_delay=config.base_delay,
            max_delay=config.max_delay,
            backoff_multiplier=config.backoff_multiplier,
        )

    @classmethod
    def no_retry(cls) -> RetryPolicy:
        """Single attempt, fail immediately."""
        return cls(max_attempts=1)

    def delay_for(self, attempt: int) -> float:
        """Delay after the 1-based ``attempt`` failed."""
        delay = min(
            self.base_delay * (self.backoff_multiplier ** (attempt - 1)),
            self.max_delay,
        )
        if self.jitter:
            jitter_amount = delay * self.jitter_range
            delay = max(0.0, delay + random.uniform(-jitter_amount, jitter_amount))
        return delay

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_attempts": self.max_attempts,
            "base_delay": self.base_delay,
            "max_delay": self.max_delay,
            "backoff_multiplier": self.backoff_multiplier,
        }


@dataclass
class RetryState:
    """Attempts and errors recorded while running one operation."""

    attempts: int = 0
    errors: list[tuple[int, Exception, datetime]] = field(default_factory=list)
    delays: list[float] = field(default_factory=list)
    started_at: datetime = field(default_factory=utcnow)

    @property
    def last_error(self) -> Exception | None:
        return self.errors[-1][1] if self.errors else None

    @property
    def retries(self) -> int:
        """Number of repeats after the first attempt."""
        return max(0, self.attempts - 1)

    @property
    def elapsed_seconds(self) -> float:
        return (utcnow() - self.started_at).total_seconds()


class RetryExecutor:
    """Run an async operation under a :class:`RetryPolicy`.

    Args:
        policy: Backoff policy (default: 3 attempts, 1s base, 10s cap, x2)
        sleep: Awaitable sleep function (injectable for tests)
        on_retry: Called before each retry with (attempt, error, delay)
        name: Label used in log events
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        on_retry: Callable[[int, Exception, float], None] | None = None,
        name: str = "operation",
    ) -> None:
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._on_retry = on_retry
        self.name = name

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        state: RetryState | None = None,
    ) -> T:
        """Await ``operation()`` until it succeeds or attempts run out.

        Args:
            operation: Zero-argument callable returning an awaitable
            state: Optional RetryState to record attempts into

        Raises:
            The last error once attempts are exhausted, or the first
            non-retryable error.
        """
        state = state if state is not None else RetryState()

        while True:
            state.attempts += 1
            try:
                return await operation()
            except Exception as e:
                state.errors.append((state.attempts, e, utcnow()))

                if not is_retryable(e):
                    logger.debug(
                        "retry.not_retryable",
                        operation=self.name,
                        attempt=state.attempts,
                        error=str(e),
                    )
                    raise

                if state.attempts >= self.policy.max_attempts:
                    logger.warning(
                        "retry.exhausted",
                        operation=self.name,
                        attempts=state.attempts,
                        error=str(e),
                    )
                    raise

                delay = self.policy.delay_for(state.attempts)
                state.delays.append(delay)
                logger.info(
                    "retry.scheduled",
                    operation=self.name,
                    attempt=state.attempts,
                    max_attempts=self.policy.max_attempts,
                    delay=delay,
                    error=str(e),
                )
                if self._on_retry:
                    self._on_retry(state.attempts, e, delay)

                await self._sleep(delay)


__all__ = [
    "RetryExecutor",
    "RetryPolicy",
    "RetryState",
]
