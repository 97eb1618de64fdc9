"""Request-ID middleware: every request carries an ``X-Request-ID``.

The ID is bound into the structlog context for the duration of the
request, so gateway, orchestrator and webhook logs can be correlated
with the HTTP call that caused them.
"""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from lexgate.core.logging import bind_context, unbind_context
from lexgate.gateway.models import new_request_id


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach a request ID to every request/response cycle."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID") or new_request_id()
        request.state.request_id = request_id
        bind_context(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            unbind_context("request_id")
        response.headers["X-Request-ID"] = request_id
        return response
