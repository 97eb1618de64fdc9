"""Circuit breaker pattern for outbound integration calls.

Prevents cascading failures by failing fast when a court-filing system or
payment processor is experiencing issues.

States:
    CLOSED: Normal operation, requests pass through
    OPEN: Failing fast, requests rejected immediately
    HALF_OPEN: Testing if service recovered

Transitions:
    CLOSED --(consecutive failures >= failure_threshold)--> OPEN
    OPEN --(reset_timeout elapsed)--> HALF_OPEN
    HALF_OPEN --(trial call succeeds)--> CLOSED (failure count reset to zero)
    HALF_OPEN --(trial call fails)--> OPEN (fresh reset_timeout window)

A failure is the wrapped operation raising, or exceeding ``call_timeout``.

Example:
    >>> from lexgate.execution.circuit_breaker import CircuitBreaker
    >>>
    >>> breaker = CircuitBreaker(name="pacer", failure_threshold=5, reset_timeout=30.0)
    >>> result = await breaker.call_async(lambda: transport.send(request), timeout=10.0)
"""

from __future__ import annotations

import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, TypeVar

from lexgate.core.errors import ErrorCategory, LexgateError
from lexgate.core.logging import get_logger
from lexgate.execution.timeout import run_with_timeout_async

T = TypeVar("T")

logger = get_logger(__name__)


def _to_datetime(ts: float | None) -> datetime | None:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc)


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"      # Normal operation
    OPEN = "open"          # Rejecting requests
    HALF_OPEN = "half_open"  # Testing recovery


class CircuitOpenError(LexgateError):
    """Raised when circuit is open and rejecting requests."""

    default_category = ErrorCategory.CIRCUIT
    default_retryable = False

    def __init__(self, message: str = "Circuit breaker is open", *, retry_after: float | None = None):
        super().__init__(message, retry_after=retry_after)


@dataclass
class CircuitStats:
    """Statistics for circuit breaker monitoring."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    rejected_requests: int = 0
    state_changes: int = 0
    last_failure_time: datetime | None = None
    last_success_time: datetime | None = None
    last_state_change: datetime | None = None

    @property
    def failure_rate(self) -> float:
        """Calculate failure rate as percentage."""
        total = self.successful_requests + self.failed_requests
        if total == 0:
            return 0.0
        return (self.failed_requests / total) * 100


@dataclass(frozen=True)
class CircuitSnapshot:
    """Point-in-time view of a breaker's state."""

    name: str
    state: CircuitState
    failure_count: int
    last_failure_time: datetime | None
    next_attempt_time: datetime | None

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "is_open": self.is_open,
            "failure_count": self.failure_count,
            "last_failure_time": self.last_failure_time.isoformat() if self.last_failure_time else None,
            "next_attempt_time": self.next_attempt_time.isoformat() if self.next_attempt_time else None,
        }


@dataclass
class CircuitBreaker:
    """Circuit breaker for fault tolerance.

    Attributes:
        name: Identifier for this circuit (the service name)
        failure_threshold: Consecutive failures before opening
        reset_timeout: Seconds to wait before testing recovery
        success_threshold: Successes needed in half-open to close
        half_open_max_calls: Max concurrent trial calls in half-open state
        call_timeout: Default deadline for ``call_async`` (None = no deadline)
        excluded_exceptions: Exception types that propagate without counting
        clock: Time source in epoch seconds (injectable for tests)
    """

    name: str = "default"
    failure_threshold: int = 5
    reset_timeout: float = 30.0
    success_threshold: int = 1
    half_open_max_calls: int = 1
    call_timeout: float | None = None
    excluded_exceptions: tuple[type[BaseException], ...] = ()
    clock: Callable[[], float] = field(default=time.time, repr=False)

    # Internal state
    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _success_count: int = field(default=0, init=False)
    _opened_at: float | None = field(default=None, init=False)
    _last_failure_at: float | None = field(default=None, init=False)
    _half_open_calls: int = field(default=0, init=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)
    _stats: CircuitStats = field(default_factory=CircuitStats, init=False)

    @property
    def state(self) -> CircuitState:
        """Get current circuit state."""
        with self._lock:
            self._check_state_transition()
            return self._state

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    @property
    def stats(self) -> CircuitStats:
        """Get circuit statistics."""
        return self._stats

    @property
    def next_attempt_at(self) -> float | None:
        """Epoch seconds at which an open circuit admits a trial call."""
        with self._lock:
            if self._state != CircuitState.OPEN or self._opened_at is None:
                return None
            return self._opened_at + self.reset_timeout

    def _check_state_transition(self) -> None:
        """Check if state should transition based on timeout."""
        if self._state == CircuitState.OPEN and self._opened_at is not None:
            if self.clock() - self._opened_at >= self.reset_timeout:
                self._transition_to(CircuitState.HALF_OPEN)

    def _transition_to(self, new_state: CircuitState) -> None:
        """Transition to a new state."""
        old_state = self._state
        if old_state == new_state and new_state != CircuitState.OPEN:
            return
        self._state = new_state
        self._stats.state_changes += 1
        self._stats.last_state_change = _to_datetime(self.clock())

        if new_state == CircuitState.CLOSED:
            self._failure_count = 0
            self._success_count = 0
            self._opened_at = None
        elif new_state == CircuitState.HALF_OPEN:
            self._success_count = 0
            self._half_open_calls = 0
        elif new_state == CircuitState.OPEN:
            self._opened_at = self.clock()

        logger.info(
            "circuit.state_changed",
            circuit=self.name,
            from_state=old_state.value,
            to_state=new_state.value,
            failure_count=self._failure_count,
        )

    def allow_request(self) -> bool:
        """Check if a request should be allowed.

        Returns:
            True if request can proceed, False if circuit is open
        """
        with self._lock:
            self._check_state_transition()
            self._stats.total_requests += 1

            if self._state == CircuitState.CLOSED:
                return True

            if self._state == CircuitState.OPEN:
                self._stats.rejected_requests += 1
                return False

            # Half-open: allow limited trial calls
            if self._half_open_calls < self.half_open_max_calls:
                self._half_open_calls += 1
                return True

            self._stats.rejected_requests += 1
            return False

    def record_success(self) -> None:
        """Record a successful request."""
        with self._lock:
            self._stats.successful_requests += 1
            self._stats.last_success_time = _to_datetime(self.clock())

            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                self._failure_count = 0
                if self._success_count >= self.success_threshold:
                    self._transition_to(CircuitState.CLOSED)
                else:
                    self._half_open_calls = max(0, self._half_open_calls - 1)
            elif self._state == CircuitState.CLOSED:
                self._failure_count = 0

    def record_failure(self, error: BaseException | None = None) -> None:
        """Record a failed request."""
        with self._lock:
            now = self.clock()
            self._failure_count += 1
            self._stats.failed_requests += 1
            self._stats.last_failure_time = _to_datetime(now)
            self._last_failure_at = now

            if self._state == CircuitState.CLOSED:
                if self._failure_count >= self.failure_threshold:
                    self._transition_to(CircuitState.OPEN)

            elif self._state == CircuitState.HALF_OPEN:
                # Any failure in half-open reopens the circuit
                self._transition_to(CircuitState.OPEN)

        if error is not None:
            logger.debug("circuit.failure_recorded", circuit=self.name, error=str(error))

    def reset(self) -> None:
        """Reset circuit to closed state."""
        with self._lock:
            self._transition_to(CircuitState.CLOSED)
            self._failure_count = 0
            self._last_failure_at = None

    def force_open(self) -> None:
        """Force circuit to open state (for maintenance windows)."""
        with self._lock:
            self._transition_to(CircuitState.OPEN)

    def snapshot(self) -> CircuitSnapshot:
        """Return the current state as an immutable snapshot."""
        with self._lock:
            self._check_state_transition()
            next_attempt = None
            if self._state == CircuitState.OPEN and self._opened_at is not None:
                next_attempt = self._opened_at + self.reset_timeout
            return CircuitSnapshot(
                name=self.name,
                state=self._state,
                failure_count=self._failure_count,
                last_failure_time=_to_datetime(self._last_failure_at),
                next_attempt_time=_to_datetime(next_attempt),
            )

    def _open_error(self) -> CircuitOpenError:
        next_at = self.next_attempt_at
        retry_after = max(0.0, next_at - self.clock()) if next_at is not None else None
        return CircuitOpenError(
            f"Circuit '{self.name}' is open, rejecting request",
            retry_after=retry_after,
        )

    def call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Execute a function through the circuit breaker.

        Raises:
            CircuitOpenError: If circuit is open
        """
        if not self.allow_request():
            raise self._open_error()

        try:
            result = func(*args, **kwargs)
        except self.excluded_exceptions:
            self._release_trial()
            raise
        except Exception as e:
            self.record_failure(e)
            raise
        self.record_success()
        return result

    async def call_async(
        self,
        func: Callable[[], Awaitable[T]],
        timeout: float | None = None,
    ) -> T:
        """Await ``func()`` through the circuit breaker.

        Args:
            func: Zero-argument callable returning an awaitable
            timeout: Deadline in seconds; falls back to ``call_timeout``

        Raises:
            CircuitOpenError: If circuit is open
            TimeoutExpired: If the call exceeds its deadline (counted as failure)
        """
        if not self.allow_request():
            raise self._open_error()

        deadline = timeout if timeout is not None else self.call_timeout
        try:
            result = await run_with_timeout_async(func, deadline, operation=self.name)
        except self.excluded_exceptions:
            self._release_trial()
            raise
        except Exception as e:
            self.record_failure(e)
            raise
        self.record_success()
        return result

    def _release_trial(self) -> None:
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._half_open_calls = max(0, self._half_open_calls - 1)


class CircuitBreakerRegistry:
    """Registry of named circuit breakers (one per service)."""

    def __init__(self) -> None:
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.RLock()

    def get(self, name: str) -> CircuitBreaker | None:
        """Get a circuit breaker by name, returns None if not found."""
        with self._lock:
            return self._breakers.get(name)

    def get_or_create(
        self,
        name: str,
        failure_threshold: int = 5,
        reset_timeout: float = 30.0,
        **kwargs: Any,
    ) -> CircuitBreaker:
        """Get or create a circuit breaker by name."""
        with self._lock:
            if name not in self._breakers:
                self._breakers[name] = CircuitBreaker(
                    name=name,
                    failure_threshold=failure_threshold,
                    reset_timeout=reset_timeout,
                    **kwargs,
                )
            return self._breakers[name]

    def list_all(self) -> list[str]:
        """List all registered circuit breaker names."""
        with self._lock:
            return list(self._breakers.keys())

    def snapshots(self) -> dict[str, CircuitSnapshot]:
        """Snapshot every registered breaker."""
        with self._lock:
            breakers = list(self._breakers.values())
        return {b.name: b.snapshot() for b in breakers}

    def remove(self, name: str) -> None:
        """Remove a circuit breaker by name."""
        with self._lock:
            self._breakers.pop(name, None)

    def clear(self) -> None:
        """Remove all circuit breakers."""
        with self._lock:
            self._breakers.clear()

    def reset_all(self) -> None:
        """Reset all circuit breakers."""
        with self._lock:
            for breaker in self._breakers.values():
                breaker.reset()
