"""Core primitives shared by every lexgate layer: errors, logging, configuration."""

from lexgate.core.errors import (
    AuthenticationError,
    AuthorizationError,
    ConfigError,
    ErrorCategory,
    ErrorContext,
    LexgateError,
    NotFoundError,
    RateLimitError,
    SignatureError,
    TransientError,
    ValidationError,
    is_retryable,
)
from lexgate.core.logging import LogContext, configure_logging, get_logger

__all__ = [
    "AuthenticationError",
    "AuthorizationError",
    "ConfigError",
    "ErrorCategory",
    "ErrorContext",
    "LexgateError",
    "LogContext",
    "NotFoundError",
    "RateLimitError",
    "SignatureError",
    "TransientError",
    "ValidationError",
    "configure_logging",
    "get_logger",
    "is_retryable",
]
