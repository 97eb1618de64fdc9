"""
Structured logging for the integration layer.

Every gateway call, retry, breaker transition and compensation is logged as
a structlog event. Outbound calls carry credentials, so the processor chain
masks sensitive keys before anything is rendered.

Architecture:
    ::

        configure_logging(level="INFO", json_format=None, service="lexgate")
            │
            ▼
        structlog processor chain:
          1. TimeStamper (iso)
          2. merge_contextvars        (request_id, workflow_id, ...)
          3. add_log_level / logger name
          4. add_service_metadata
          5. mask_sensitive_fields    (password, token, secret, key, ...)
          6. elasticsearch_compatible (JSON only)
          7. JSONRenderer | ConsoleRenderer

Examples:
    >>> from lexgate.core.logging import configure_logging, get_logger
    >>> configure_logging(level="INFO", json_format=True)
    >>> logger = get_logger(__name__)
    >>> logger.info("gateway.request_started", service="pacer", api_key="abc")
    {"service": "pacer", "api_key": "***MASKED***", ...}

Tags:
    logging, structlog, masking, observability, lexgate
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterable
from typing import Any, TextIO

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

MASK = "***MASKED***"

DEFAULT_SENSITIVE_FIELDS: tuple[str, ...] = (
    "password",
    "token",
    "secret",
    "key",
    "authorization",
    "apikey",
)

_SERVICE_NAME = "lexgate"
_SENSITIVE_FIELDS: tuple[str, ...] = DEFAULT_SENSITIVE_FIELDS


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add service-level metadata to all logs."""
    event_dict.setdefault("service.name", _SERVICE_NAME)
    return event_dict


def _elasticsearch_compatible(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Make field names Elasticsearch/ECS compatible."""
    if "timestamp" in event_dict:
        event_dict["@timestamp"] = event_dict.pop("timestamp")
    if "level" in event_dict:
        event_dict["log.level"] = event_dict.pop("level")
    return event_dict


def _is_sensitive(key: str, fields: Iterable[str]) -> bool:
    lowered = key.lower().replace("-", "").replace("_", "")
    return any(f in lowered for f in fields)


def mask_value(value: Any, fields: Iterable[str] = DEFAULT_SENSITIVE_FIELDS) -> Any:
    """Return a copy of ``value`` with sensitive mapping keys masked.

    Nested dicts, lists and tuples are walked; the input is never mutated.
    """
    fields = tuple(fields)
    if isinstance(value, dict):
        return {
            k: MASK if isinstance(k, str) and _is_sensitive(k, fields) else mask_value(v, fields)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(mask_value(v, fields) for v in value)
    return value


def mask_sensitive_fields(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """structlog processor that masks credentials in event fields."""
    for key in list(event_dict):
        if key == "event":
            continue
        if _is_sensitive(key, _SENSITIVE_FIELDS):
            event_dict[key] = MASK
        else:
            event_dict[key] = mask_value(event_dict[key], _SENSITIVE_FIELDS)
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "lexgate",
    sensitive_fields: Iterable[str] | None = None,
    add_timestamp: bool = True,
    stream: TextIO | None = None,
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        service: Service name to include in logs
        sensitive_fields: Key fragments to mask (defaults to DEFAULT_SENSITIVE_FIELDS)
        add_timestamp: Include ISO timestamp in logs
        stream: Where rendered events are written (defaults to stdout)
    """
    global _SERVICE_NAME, _SENSITIVE_FIELDS
    _SERVICE_NAME = service
    if sensitive_fields is not None:
        _SENSITIVE_FIELDS = tuple(f.lower() for f in sensitive_fields)

    if json_format is None:
        json_format = not sys.stdout.isatty()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_service_metadata,
        mask_sensitive_fields,
    ]

    if add_timestamp:
        shared_processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))

    if json_format:
        shared_processors.append(_elasticsearch_compatible)
        shared_processors.append(structlog.processors.format_exc_info)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=stream or sys.stdout,
        level=getattr(logging, level.upper()),
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (usually ``get_logger(__name__)``)."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound context."""
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Context manager for scoped logging context.

    Example:
        async with LogContext(workflow_id="case-filing", execution_id="abc"):
            logger.info("workflow.step_started")
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    def __exit__(self, *args: Any) -> None:
        unbind_context(*self._context.keys())

    async def __aenter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    async def __aexit__(self, *args: Any) -> None:
        unbind_context(*self._context.keys())


__all__ = [
    "MASK",
    "DEFAULT_SENSITIVE_FIELDS",
    "configure_logging",
    "get_logger",
    "mask_value",
    "mask_sensitive_fields",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
]
