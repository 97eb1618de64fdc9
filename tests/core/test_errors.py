"""Tests for the lexgate error hierarchy."""

import pytest

from lexgate.core.errors import (
    AuthenticationError,
    AuthorizationError,
    ErrorCategory,
    LexgateError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    SignatureError,
    TransientError,
    UpstreamError,
    ValidationError,
    is_retryable,
)
from lexgate.execution.timeout import TimeoutExpired


class TestCategories:
    """Default categories and retryability per error type."""

    @pytest.mark.parametrize(
        "error_type, category, retryable",
        [
            (NetworkError, ErrorCategory.NETWORK, True),
            (UpstreamError, ErrorCategory.UPSTREAM, True),
            (RateLimitError, ErrorCategory.RATE_LIMIT, True),
            (ValidationError, ErrorCategory.VALIDATION, False),
            (AuthenticationError, ErrorCategory.AUTH, False),
            (AuthorizationError, ErrorCategory.AUTH, False),
            (NotFoundError, ErrorCategory.NOT_FOUND, False),
            (SignatureError, ErrorCategory.SIGNATURE, False),
        ],
    )
    def test_defaults(self, error_type, category, retryable):
        error = error_type("boom")
        assert error.category == category
        assert error.retryable is retryable
        assert is_retryable(error) is retryable

    def test_overrides(self):
        error = NetworkError("slow", category=ErrorCategory.TIMEOUT, retryable=False)
        assert error.category == ErrorCategory.TIMEOUT
        assert not is_retryable(error)

    def test_timeout_expired_is_transient_and_builtin_timeout(self):
        error = TimeoutExpired(2.0, operation="pacer.fileCase")
        assert isinstance(error, TransientError)
        assert isinstance(error, TimeoutError)
        assert error.category == ErrorCategory.TIMEOUT
        assert "pacer.fileCase" in error.message


class TestHelpers:
    def test_stdlib_errors(self):
        assert is_retryable(ConnectionError())
        assert is_retryable(TimeoutError())
        assert not is_retryable(ValueError())

    def test_retry_after_is_carried(self):
        assert RateLimitError(retry_after=12.5).retry_after == 12.5


class TestSerialization:
    def test_with_context_and_to_dict(self):
        cause = OSError("reset by peer")
        error = NetworkError("Could not reach pacer", cause=cause).with_context(
            service="pacer",
            http_status=502,
            attempt=3,
        )
        data = error.to_dict()
        assert data["error_type"] == "NetworkError"
        assert data["category"] == "NETWORK"
        assert data["retryable"] is True
        assert data["context"] == {"service": "pacer", "http_status": 502, "attempt": 3}
        assert data["cause"] == "reset by peer"
        assert error.__cause__ is cause

    def test_minimal_to_dict_omits_empty_parts(self):
        data = LexgateError("plain").to_dict()
        assert "context" not in data
        assert "cause" not in data
        assert "retry_after" not in data
