"""
Error-handling middleware: maps lexgate errors to RFC 7807 responses.
"""

from __future__ import annotations

import math
from http import HTTPStatus
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from lexgate.api.schemas.common import ProblemDetail
from lexgate.core.errors import LexgateError
from lexgate.core.logging import get_logger
from lexgate.gateway.gateway import http_status_for

logger = get_logger(__name__)


def _title(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return "Error"


def problem_response(
    *,
    status: int,
    title: str | None = None,
    detail: str = "",
    instance: str = "",
    category: str | None = None,
    retryable: bool = False,
    context: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Build a RFC 7807 JSON error response."""
    body = ProblemDetail(
        title=title or _title(status),
        status=status,
        detail=detail,
        instance=instance,
        category=category,
        retryable=retryable,
        context=context or {},
    )
    return JSONResponse(
        status_code=status,
        content=body.model_dump(),
        headers=headers,
        media_type="application/problem+json",
    )


async def lexgate_error_handler(request: Request, exc: LexgateError) -> JSONResponse:
    """Translate a :class:`LexgateError` raised by a route or dependency."""
    status = http_status_for(exc)
    headers = {"Retry-After": str(max(1, math.ceil(exc.retry_after)))} if exc.retry_after else None
    if status >= 500:
        logger.error("api.request_failed", path=request.url.path, status=status, **exc.to_dict())
    else:
        logger.info("api.request_rejected", path=request.url.path, status=status, error=exc.message)
    return problem_response(
        status=status,
        detail=exc.message,
        instance=str(request.url),
        category=exc.category.value,
        retryable=exc.retryable,
        context=exc.context.to_dict(),
        headers=headers,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions; returns 500 with ProblemDetail."""
    logger.exception("api.unhandled_error", path=request.url.path, error_type=type(exc).__name__)
    return problem_response(
        status=500,
        title="Internal Server Error",
        detail=str(exc) if request.app.state.settings.debug else "An unexpected error occurred.",
        instance=str(request.url),
        category="INTERNAL",
    )
