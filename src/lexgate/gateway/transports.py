"""Service transports: how the gateway actually reaches a service.

``HttpTransport`` posts to the service's REST endpoint with httpx;
``LocalTransport`` dispatches to in-process async handlers (the ``internal``
service, tests); ``RoutingTransport`` picks one per service name.

Transport contract:
    - Return a :class:`TransportResponse` for any answer from the service,
      including 4xx (the caller's fault, not the service's).
    - Raise :class:`~lexgate.core.errors.TransientError` subclasses for
      failures of the service itself (5xx, connection, timeout); the
      circuit breaker counts those.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from lexgate.core.config.services import ServiceConfig
from lexgate.core.errors import ConfigError, ErrorCategory, NetworkError, UpstreamError
from lexgate.core.logging import get_logger
from lexgate.gateway.models import IntegrationRequest

logger = get_logger(__name__)

Handler = Callable[[dict[str, Any]], Awaitable[Any]]


@dataclass
class TransportResponse:
    """Raw answer from a service.

    Upstream headers are not kept: the gateway answers with its own
    envelope, so the service's entity headers do not describe it.
    """

    status_code: int = 200
    data: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class ServiceTransport(Protocol):
    """Sends one integration request to its service."""

    async def send(
        self,
        request: IntegrationRequest,
        service: ServiceConfig,
        timeout: float | None,
    ) -> TransportResponse: ...


class HttpTransport:
    """``POST {base_url}/{operation}`` with JSON parameters.

    The service API key, when configured, is sent as a Bearer token.
    Pass ``client`` to share a connection pool or to inject
    ``httpx.MockTransport`` in tests.
    """

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    @staticmethod
    def build_url(service: ServiceConfig, operation: str) -> str:
        if not service.base_url:
            raise ConfigError(f"Service '{service.name}' has no base_url configured")
        return f"{service.base_url.rstrip('/')}/{operation.lstrip('/')}"

    async def send(
        self,
        request: IntegrationRequest,
        service: ServiceConfig,
        timeout: float | None,
    ) -> TransportResponse:
        url = self.build_url(service, request.operation)
        headers = {"Content-Type": "application/json", "X-Request-ID": request.id}
        if service.api_key is not None:
            headers["Authorization"] = f"Bearer {service.api_key.get_secret_value()}"

        try:
            resp = await self.client.post(
                url,
                json=request.parameters,
                headers=headers,
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            raise NetworkError(
                f"Timed out calling {service.name}",
                category=ErrorCategory.TIMEOUT,
                cause=e,
            ).with_context(service=service.name, operation=request.operation, url=url) from e
        except httpx.TransportError as e:
            raise NetworkError(
                f"Could not reach {service.name}: {e}",
                cause=e,
            ).with_context(service=service.name, operation=request.operation, url=url) from e

        data = self._decode(resp)
        if resp.status_code >= 500:
            raise UpstreamError(
                f"{service.name} returned HTTP {resp.status_code}",
            ).with_context(
                service=service.name,
                operation=request.operation,
                url=url,
                http_status=resp.status_code,
            )

        logger.debug(
            "transport.http_response",
            service=service.name,
            operation=request.operation,
            status_code=resp.status_code,
        )
        return TransportResponse(
            status_code=resp.status_code,
            data=data,
            error=None if resp.is_success else f"{service.name} returned HTTP {resp.status_code}",
        )

    @staticmethod
    def _decode(resp: httpx.Response) -> Any:
        if not resp.content:
            return None
        if "json" in resp.headers.get("content-type", ""):
            try:
                return resp.json()
            except ValueError:
                return resp.text
        return resp.text

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


class LocalTransport:
    """In-process handlers keyed by ``(service, operation)``.

    Example:
        >>> local = LocalTransport()
        >>> @local.handler("internal", "validateCase")
        ... async def validate_case(params):
        ...     return {"valid": True}
    """

    def __init__(self) -> None:
        self._handlers: dict[tuple[str, str], Handler] = {}

    def register(self, service: str, operation: str, handler: Handler) -> None:
        self._handlers[(service, operation)] = handler

    def handler(self, service: str, operation: str) -> Callable[[Handler], Handler]:
        """Decorator form of :meth:`register`."""

        def decorator(func: Handler) -> Handler:
            self.register(service, operation, func)
            return func

        return decorator

    def handles(self, service: str, operation: str | None = None) -> bool:
        if operation is None:
            return any(s == service for s, _ in self._handlers)
        return (service, operation) in self._handlers

    async def send(
        self,
        request: IntegrationRequest,
        service: ServiceConfig,
        timeout: float | None,
    ) -> TransportResponse:
        handler = self._handlers.get((service.name, request.operation))
        if handler is None:
            return TransportResponse(
                status_code=404,
                error=f"Operation '{request.operation}' is not supported by service '{service.name}'",
            )
        data = await handler(dict(request.parameters))
        return TransportResponse(status_code=200, data=data)


class RoutingTransport:
    """Per-service transport selection with a default."""

    def __init__(
        self,
        default: ServiceTransport,
        routes: Mapping[str, ServiceTransport] | None = None,
    ) -> None:
        self.default = default
        self.routes: dict[str, ServiceTransport] = dict(routes or {})

    def route(self, service: str, transport: ServiceTransport) -> None:
        self.routes[service] = transport

    async def send(
        self,
        request: IntegrationRequest,
        service: ServiceConfig,
        timeout: float | None,
    ) -> TransportResponse:
        transport = self.routes.get(service.name, self.default)
        return await transport.send(request, service, timeout)


__all__ = [
    "Handler",
    "HttpTransport",
    "LocalTransport",
    "RoutingTransport",
    "ServiceTransport",
    "TransportResponse",
]
