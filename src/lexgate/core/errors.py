"""
Structured error types for the integration layer.

Every error raised by lexgate carries the metadata the gateway, the retry
executor and the HTTP surface need to decide what to do with it:

- **Category:** what kind of failure (network, timeout, auth, ...)
- **Retryable:** whether the same call may succeed if repeated
- **Retry-after:** seconds the caller should wait before repeating
- **Context:** service, operation, request id and free-form metadata
- **Cause:** the chained underlying exception

Architecture:
    ::

        LexgateError  (category, retryable, retry_after, context, cause)
          ├── TransientError          retryable=True
          │     ├── NetworkError
          │     ├── UpstreamError     (5xx from a third-party service)
          │     └── RateLimitError    (retry_after)
          ├── ValidationError         VALIDATION
          ├── ConfigError             CONFIG
          ├── AuthError               AUTH
          │     ├── AuthenticationError
          │     └── AuthorizationError
          ├── NotFoundError           NOT_FOUND
          ├── SignatureError          SIGNATURE
          └── OrchestrationError      ORCHESTRATION
                ├── WorkflowError
                └── ExecutionStateError

    ``CircuitOpenError`` and ``TimeoutExpired`` live next to the mechanisms
    that raise them (``lexgate.execution``) but share this base class.

Examples:
    >>> error = TransientError("PACER returned 503", retry_after=30)
    >>> error.retryable
    True
    >>> error.with_context(service="pacer", operation="fileCase").context.service
    'pacer'

Tags:
    error-handling, exception-hierarchy, retry-logic, lexgate
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories used for retry decisions, HTTP mapping and alerting."""

    # Infrastructure (usually transient)
    NETWORK = "NETWORK"
    TIMEOUT = "TIMEOUT"
    RATE_LIMIT = "RATE_LIMIT"
    CIRCUIT = "CIRCUIT"
    UPSTREAM = "UPSTREAM"

    # Caller errors (never retryable)
    VALIDATION = "VALIDATION"
    AUTH = "AUTH"
    NOT_FOUND = "NOT_FOUND"
    SIGNATURE = "SIGNATURE"
    CONFIG = "CONFIG"

    # Application
    ORCHESTRATION = "ORCHESTRATION"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Attributes:
        service: Integration service name (``pacer``, ``stripe``, ...)
        operation: Operation invoked on the service
        request_id: Gateway request identifier
        workflow_id: Orchestrated workflow, if any
        execution_id: Workflow execution identifier
        url: Outbound URL
        http_status: Upstream HTTP status code
        metadata: Additional key-value pairs
    """

    service: str | None = None
    operation: str | None = None
    request_id: str | None = None
    workflow_id: str | None = None
    execution_id: str | None = None
    url: str | None = None
    http_status: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["service", "operation", "request_id", "workflow_id",
                    "execution_id", "url", "http_status"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class LexgateError(Exception):
    """Base exception for all lexgate errors.

    Subclasses set ``default_category`` and ``default_retryable``; both can be
    overridden per instance.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: float | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> LexgateError:
        """Add context to this error (fluent API)."""
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# TRANSIENT ERRORS
# =============================================================================


class TransientError(LexgateError):
    """Temporary failure that may succeed on retry."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class NetworkError(TransientError):
    """Connection, DNS or socket failure talking to a service."""

    default_category = ErrorCategory.NETWORK


class UpstreamError(TransientError):
    """A third-party service answered with a server error."""

    default_category = ErrorCategory.UPSTREAM


class RateLimitError(TransientError):
    """A rate limit rejected the call."""

    default_category = ErrorCategory.RATE_LIMIT

    def __init__(self, message: str = "Rate limit exceeded", *, retry_after: float | None = None, **kwargs: Any):
        super().__init__(message, retry_after=retry_after, **kwargs)


# =============================================================================
# CALLER ERRORS (never retryable)
# =============================================================================


class ValidationError(LexgateError):
    """The request is malformed."""

    default_category = ErrorCategory.VALIDATION


class ConfigError(LexgateError):
    """Missing or invalid configuration."""

    default_category = ErrorCategory.CONFIG


class AuthError(LexgateError):
    """Authentication or authorization failure."""

    default_category = ErrorCategory.AUTH


class AuthenticationError(AuthError):
    """Missing, unknown, inactive or expired credentials."""


class AuthorizationError(AuthError):
    """The authenticated principal may not use the requested service."""


class NotFoundError(LexgateError):
    """Unknown service, workflow or execution."""

    default_category = ErrorCategory.NOT_FOUND


class SignatureError(LexgateError):
    """A webhook payload failed signature verification."""

    default_category = ErrorCategory.SIGNATURE


# =============================================================================
# ORCHESTRATION
# =============================================================================


class OrchestrationError(LexgateError):
    """Workflow or transaction coordination failure."""

    default_category = ErrorCategory.ORCHESTRATION


class WorkflowError(OrchestrationError):
    """A workflow step failed or the workflow definition is invalid."""


class ExecutionStateError(OrchestrationError):
    """A terminal workflow execution was modified."""


# =============================================================================
# HELPERS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable.

    Lexgate errors carry an explicit flag. Plain connection and timeout
    errors from the standard library are treated as transient; anything
    else is not retried.
    """
    if isinstance(error, LexgateError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "LexgateError",
    "TransientError",
    "NetworkError",
    "UpstreamError",
    "RateLimitError",
    "ValidationError",
    "ConfigError",
    "AuthError",
    "AuthenticationError",
    "AuthorizationError",
    "NotFoundError",
    "SignatureError",
    "OrchestrationError",
    "WorkflowError",
    "ExecutionStateError",
    "is_retryable",
]
