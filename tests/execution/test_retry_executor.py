"""Tests for retry policy and executor."""

import pytest

from lexgate.core.config.services import RetryConfig
from lexgate.core.errors import NetworkError, ValidationError
from lexgate.execution.retry import RetryExecutor, RetryPolicy, RetryState


class Flaky:
    """Async callable failing ``failures`` times before succeeding."""

    def __init__(self, failures, error_factory=lambda: NetworkError("connection reset")):
        self.failures = failures
        self.error_factory = error_factory
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error_factory()
        return "filed"


class TestRetryPolicy:
    def test_delays_grow_and_cap(self):
        policy = RetryPolicy(max_attempts=5, base_delay=1.0, max_delay=5.0, backoff_multiplier=2.0)
        assert [policy.delay_for(n) for n in range(1, 5)] == [1.0, 2.0, 4.0, 5.0]

    def test_jitter_stays_in_range(self):
        policy = RetryPolicy(base_delay=4.0, jitter=True, jitter_range=0.25)
        for _ in range(20):
            assert 3.0 <= policy.delay_for(1) <= 5.0

    def test_from_config(self):
        policy = RetryPolicy.from_config(RetryConfig(max_attempts=4, base_delay=0.5))
        assert policy.max_attempts == 4
        assert policy.base_delay == 0.5
        assert RetryPolicy.no_retry().max_attempts == 1

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)


class TestRetryExecutor:
    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self, sleeps):
        operation = Flaky(failures=2)
        state = RetryState()
        executor = RetryExecutor(RetryPolicy(max_attempts=3, base_delay=1.0), sleep=sleeps)

        assert await executor.run(operation, state) == "filed"
        assert operation.calls == 3
        assert sleeps.delays == [1.0, 2.0]
        assert state.retries == 2
        assert len(state.errors) == 2

    @pytest.mark.asyncio
    async def test_exhaustion_raises_last_error(self, sleeps):
        errors = iter([NetworkError("first"), NetworkError("second")])
        operation = Flaky(failures=5, error_factory=lambda: next(errors))
        executor = RetryExecutor(RetryPolicy(max_attempts=2), sleep=sleeps)

        with pytest.raises(NetworkError, match="second"):
            await executor.run(operation)
        assert operation.calls == 2
        assert sleeps.delays == [1.0]

    @pytest.mark.asyncio
    async def test_non_retryable_fails_immediately(self, sleeps):
        operation = Flaky(failures=5, error_factory=lambda: ValidationError("court is required"))
        executor = RetryExecutor(RetryPolicy(max_attempts=3), sleep=sleeps)

        with pytest.raises(ValidationError):
            await executor.run(operation)
        assert operation.calls == 1
        assert sleeps.delays == []

    @pytest.mark.asyncio
    async def test_on_retry_callback(self, sleeps):
        seen = []
        executor = RetryExecutor(
            RetryPolicy(max_attempts=2, base_delay=0.5),
            sleep=sleeps,
            on_retry=lambda attempt, error, delay: seen.append((attempt, type(error).__name__, delay)),
        )
        await executor.run(Flaky(failures=1))
        assert seen == [(1, "NetworkError", 0.5)]
