"""Deadline enforcement for outbound integration calls.

A call that hangs is treated like a call that fails: the circuit breaker
counts it, the retry executor may repeat it. ``run_with_timeout_async``
wraps ``asyncio.wait_for`` and converts the timeout into
:class:`TimeoutExpired`, which is both a built-in ``TimeoutError`` and a
retryable :class:`~lexgate.core.errors.TransientError`.

Example:
    >>> result = await run_with_timeout_async(
    ...     lambda: client.post(url, json=params),
    ...     10.0,
    ...     operation="pacer.fileCase",
    ... )
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from lexgate.core.errors import ErrorCategory, TransientError

T = TypeVar("T")


class TimeoutExpired(TransientError, TimeoutError):
    """Raised when an operation exceeds its deadline.

    Attributes:
        timeout: The timeout value that was exceeded
        elapsed: How long the operation ran before being interrupted
        operation: Name/description of the operation
    """

    default_category = ErrorCategory.TIMEOUT

    def __init__(
        self,
        timeout: float,
        elapsed: float | None = None,
        operation: str | None = None,
    ):
        self.timeout = timeout
        self.elapsed = elapsed
        self.operation = operation or "operation"

        msg = f"Operation '{self.operation}' timed out after {timeout}s"
        if elapsed is not None:
            msg += f" (ran for {elapsed:.2f}s)"

        super().__init__(msg)


async def run_with_timeout_async(
    func: Callable[[], Awaitable[T]],
    timeout_seconds: float | None,
    operation: str | None = None,
) -> T:
    """Await ``func()`` with a deadline.

    Args:
        func: Zero-argument callable returning an awaitable
        timeout_seconds: Maximum execution time; ``None`` disables the deadline
        operation: Name for error messages

    Raises:
        TimeoutExpired: If execution exceeds the deadline
        ValueError: If ``timeout_seconds`` is not positive
    """
    if timeout_seconds is None:
        return await func()
    if timeout_seconds <= 0:
        raise ValueError(f"Timeout must be positive, got {timeout_seconds}")

    start = time.monotonic()
    try:
        return await asyncio.wait_for(func(), timeout=timeout_seconds)
    except TimeoutExpired:
        raise
    except asyncio.TimeoutError:
        raise TimeoutExpired(
            timeout=timeout_seconds,
            elapsed=time.monotonic() - start,
            operation=operation,
        ) from None

