"""Resilience primitives wrapped around every outbound integration call.

Modules:
    circuit_breaker  fail fast on a service that keeps failing
    rate_limit       fixed-window quotas per (service, principal)
    retry            exponential backoff for transient failures
    timeout          deadlines for awaited calls
"""

from lexgate.execution.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitOpenError,
    CircuitSnapshot,
    CircuitState,
    CircuitStats,
)
from lexgate.execution.rate_limit import (
    FixedWindowLimiter,
    RateLimiterRegistry,
    RateLimitRecord,
    RateLimitResult,
)
from lexgate.execution.retry import RetryExecutor, RetryPolicy, RetryState
from lexgate.execution.timeout import TimeoutExpired, run_with_timeout_async

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitOpenError",
    "CircuitSnapshot",
    "CircuitState",
    "CircuitStats",
    "FixedWindowLimiter",
    "RateLimitRecord",
    "RateLimitResult",
    "RateLimiterRegistry",
    "RetryExecutor",
    "RetryPolicy",
    "RetryState",
    "TimeoutExpired",
    "run_with_timeout_async",
]
