"""
Common API schemas: RFC 7807 errors.

Every non-2xx response that is not an :class:`IntegrationResponse` is a
:class:`ProblemDetail`. Gateway calls are the exception: a routed request
always answers with its own envelope, success or not, so clients can read
``retryable`` and ``error_category`` uniformly.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ProblemDetail(BaseModel):
    """RFC 7807 «Problem Details for HTTP APIs».

    Example:
        {
            "type": "about:blank",
            "title": "Not Found",
            "status": 404,
            "detail": "Workflow 'intake' not found",
            "instance": "/api/integration/workflows/intake/execute",
            "category": "NOT_FOUND",
            "retryable": false
        }
    """

    type: str = Field(default="about:blank", description="Error type URI (usually 'about:blank')")
    title: str = Field(description="Short human-readable error summary")
    status: int = Field(description="HTTP status code")
    detail: str = Field(default="", description="Human-readable explanation of the error")
    instance: str = Field(default="", description="URI of the failing request")
    category: str | None = Field(default=None, description="Error category (NETWORK, AUTH, ...)")
    retryable: bool = Field(default=False, description="Whether retrying may succeed")
    context: dict[str, Any] = Field(default_factory=dict, description="Structured error context")
