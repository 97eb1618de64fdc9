"""
Integration gateway: the single path for outbound third-party calls.

Manifesto:
    Court filing systems, payment processors and research providers fail,
    throttle and time out independently. Every call from the practice
    system goes through one gateway so that authentication, quotas, circuit
    breaking and logging are applied the same way everywhere, and so a
    misbehaving PACER cannot take the billing system down with it.

Pipeline (``route_request``)::

    validate ─► authenticate ─► authorize ─► rate limit ─► retry( breaker( timeout( transport ) ) )
       400/503/404   401           403          429            503 / 502 / 504

    Each stage either passes the request on or produces a failed
    IntegrationResponse. ``route_request`` never raises.

``invoke(request, principal)`` is the trusted entry point used by the
orchestrator: it skips API-key authentication but keeps authorization,
rate limiting and circuit breaking.

Tags:
    lexgate, gateway, integration, resilience
"""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Awaitable, Callable
from typing import Any

from lexgate.core.config.services import ServiceConfig, check_service
from lexgate.core.config.settings import GatewaySettings
from lexgate.core.errors import (
    AuthError,
    AuthorizationError,
    ConfigError,
    ErrorCategory,
    ExecutionStateError,
    LexgateError,
    NotFoundError,
    RateLimitError,
    SignatureError,
    ValidationError,
    WorkflowError,
)
from lexgate.core.logging import get_logger
from lexgate.execution.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitOpenError,
    CircuitSnapshot,
)
from lexgate.execution.rate_limit import RateLimiterRegistry, RateLimitResult
from lexgate.execution.retry import RetryExecutor, RetryPolicy
from lexgate.execution.timeout import run_with_timeout_async
from lexgate.gateway.auth import Authenticator, InMemoryApiKeyStore
from lexgate.gateway.models import IntegrationRequest, IntegrationResponse, Principal
from lexgate.gateway.monitor import IntegrationMonitor
from lexgate.gateway.transports import HttpTransport, ServiceTransport, TransportResponse

logger = get_logger(__name__)

# Caller mistakes and local misconfiguration; they must not trip a breaker.
_CALLER_ERRORS: tuple[type[BaseException], ...] = (
    ConfigError,
    ValidationError,
    AuthError,
    NotFoundError,
    SignatureError,
)


class GatewayDisabledError(LexgateError):
    """The gateway has been switched off by configuration."""

    default_category = ErrorCategory.CONFIG


# ── Error → HTTP status ──────────────────────────────────────────────────

_CATEGORY_STATUS: dict[ErrorCategory, int] = {
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.AUTH: 401,
    ErrorCategory.SIGNATURE: 401,
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.ORCHESTRATION: 409,
    ErrorCategory.RATE_LIMIT: 429,
    ErrorCategory.NETWORK: 502,
    ErrorCategory.UPSTREAM: 502,
    ErrorCategory.CIRCUIT: 503,
    ErrorCategory.TIMEOUT: 504,
    ErrorCategory.CONFIG: 500,
    ErrorCategory.INTERNAL: 500,
    ErrorCategory.UNKNOWN: 500,
}


def http_status_for(error: BaseException) -> int:
    """Resolve an error to an HTTP status, defaulting to 500."""
    if isinstance(error, AuthorizationError):
        return 403
    if isinstance(error, GatewayDisabledError):
        return 503
    if isinstance(error, WorkflowError):
        return 422
    if isinstance(error, ExecutionStateError):
        return 409
    if isinstance(error, LexgateError):
        return _CATEGORY_STATUS.get(error.category, 500)
    return 500


def _category_for_status(status_code: int) -> ErrorCategory:
    if status_code in (401, 403):
        return ErrorCategory.AUTH
    if status_code == 404:
        return ErrorCategory.NOT_FOUND
    if status_code == 429:
        return ErrorCategory.RATE_LIMIT
    if 400 <= status_code < 500:
        return ErrorCategory.VALIDATION
    return ErrorCategory.UPSTREAM


class IntegrationGateway:
    """Routes integration requests through auth, quotas and circuit breakers.

    Args:
        services: Service table keyed by name
        authenticator: API-key authenticator
        transport: How requests reach services (default: HttpTransport)
        enabled: Master switch; when False every request gets 503
        api_key_header: Request header carrying the caller's API key
        default_timeout: Call timeout when neither request nor service sets one
        breakers: Breaker registry (one breaker per service is created)
        rate_limiters: Limiter registry (built from ``services`` by default)
        monitor: Metrics sink (created over ``breakers`` by default)
        clock: Epoch-seconds clock shared by breakers and limiters
        sleep: Async sleep used between retries
    """

    def __init__(
        self,
        services: dict[str, ServiceConfig],
        authenticator: Authenticator,
        transport: ServiceTransport | None = None,
        *,
        enabled: bool = True,
        api_key_header: str = "X-API-Key",
        default_timeout: float = 30.0,
        breakers: CircuitBreakerRegistry | None = None,
        rate_limiters: RateLimiterRegistry | None = None,
        monitor: IntegrationMonitor | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.services = dict(services)
        self.authenticator = authenticator
        self.transport: ServiceTransport = transport or HttpTransport()
        self.enabled = enabled
        self.api_key_header = api_key_header
        self.default_timeout = default_timeout
        self._clock = clock
        self._sleep = sleep

        self.breakers = breakers or CircuitBreakerRegistry()
        self.rate_limiters = rate_limiters or RateLimiterRegistry.from_services(self.services, clock=clock)
        self.monitor = monitor or IntegrationMonitor(self.breakers)

        for service in self.services.values():
            self._breaker_for(service)
            problems = check_service(service)
            if problems:
                logger.warning("gateway.service_misconfigured", service=service.name, problems=problems)

    @classmethod
    def from_settings(
        cls,
        settings: GatewaySettings,
        *,
        transport: ServiceTransport | None = None,
        authenticator: Authenticator | None = None,
        **kwargs: Any,
    ) -> IntegrationGateway:
        """Build a gateway from :class:`GatewaySettings`."""
        breakers = kwargs.pop("breakers", None) or CircuitBreakerRegistry()
        monitor = kwargs.pop("monitor", None) or IntegrationMonitor(
            breakers,
            error_rate_threshold=settings.error_rate_threshold,
            slow_request_threshold_ms=settings.slow_request_threshold_ms,
        )
        return cls(
            settings.service_configs(),
            authenticator or Authenticator(InMemoryApiKeyStore.from_config(settings.api_keys)),
            transport,
            enabled=settings.gateway_enabled,
            api_key_header=settings.api_key_header,
            default_timeout=settings.default_timeout,
            breakers=breakers,
            monitor=monitor,
            **kwargs,
        )

    # ── Entry points ─────────────────────────────────────────────────

    async def route_request(self, request: IntegrationRequest) -> IntegrationResponse:
        """Authenticate with the request's API key and route it."""
        return await self._route(request, principal=None)

    async def invoke(self, request: IntegrationRequest, principal: Principal) -> IntegrationResponse:
        """Route on behalf of an already-trusted principal."""
        return await self._route(request, principal=principal)

    async def _route(self, request: IntegrationRequest, principal: Principal | None) -> IntegrationResponse:
        start = time.perf_counter()
        log = logger.bind(request_id=request.id, service=request.service, operation=request.operation)
        log.info("gateway.request_started", parameters=request.parameters)

        try:
            service = self._validate(request)
            if principal is None:
                principal = self.authenticator.authenticate(request.header(self.api_key_header))
            response = await self._process(request, service, principal)
        except LexgateError as e:
            response = IntegrationResponse.from_error(request, e, http_status_for(e))
        except Exception:
            log.exception("gateway.unexpected_error")
            response = IntegrationResponse.fail(
                request,
                "Internal gateway error",
                500,
                category=ErrorCategory.INTERNAL,
            )

        response.duration_ms = (time.perf_counter() - start) * 1000
        self.monitor.record(response)

        if response.success:
            log.info(
                "gateway.request_completed",
                status_code=response.status_code,
                duration_ms=round(response.duration_ms, 3),
                principal_id=principal.id if principal else None,
            )
        else:
            log.warning(
                "gateway.request_failed",
                status_code=response.status_code,
                error=response.error,
                error_category=response.error_category.value if response.error_category else None,
                retryable=response.retryable,
                duration_ms=round(response.duration_ms, 3),
            )
        return response

    # ── Stages ───────────────────────────────────────────────────────

    def _validate(self, request: IntegrationRequest) -> ServiceConfig:
        if not request.service or not request.operation:
            raise ValidationError("Service and operation are required")
        if not self.enabled:
            raise GatewayDisabledError("Integration gateway is disabled")
        service = self.services.get(request.service)
        if service is None:
            raise NotFoundError(f"Service '{request.service}' is not configured")
        if not service.enabled:
            raise NotFoundError(f"Service '{request.service}' is disabled")
        return service

    async def _process(
        self,
        request: IntegrationRequest,
        service: ServiceConfig,
        principal: Principal,
    ) -> IntegrationResponse:
        self.authenticator.authorize(principal, service.name)

        limit = self.rate_limiters.check(service.name, principal.id)
        limit_headers = limit.headers() if limit is not None else {}
        if limit is not None and not limit.allowed:
            error = RateLimitError(
                f"Rate limit exceeded for service '{service.name}'",
                retry_after=limit.retry_after,
            )
            return IntegrationResponse.from_error(request, error, 429, headers=limit_headers)

        try:
            response = await self._call_service(request, service)
        except CircuitOpenError as e:
            response = IntegrationResponse.from_error(request, e, 503)
            response.retryable = True
            if e.retry_after is not None:
                response.headers["Retry-After"] = str(max(1, math.ceil(e.retry_after)))
        except LexgateError as e:
            response = IntegrationResponse.from_error(request, e, http_status_for(e))

        response.headers.update(limit_headers)
        return response

    async def _call_service(self, request: IntegrationRequest, service: ServiceConfig) -> IntegrationResponse:
        timeout = request.timeout or service.timeout or self.default_timeout
        breaker = self._breaker_for(service)
        operation_name = f"{service.name}.{request.operation}"

        async def send() -> TransportResponse:
            return await self.transport.send(request, service, timeout)

        async def attempt() -> TransportResponse:
            if breaker is None:
                return await run_with_timeout_async(send, timeout, operation=operation_name)
            return await breaker.call_async(send, timeout=timeout)

        executor = RetryExecutor(
            RetryPolicy.from_config(service.retry),
            sleep=self._sleep,
            name=operation_name,
        )
        result = await executor.run(attempt)

        if result.ok:
            return IntegrationResponse.ok(request, result.data, result.status_code)
        # Unfollowed redirects and other non-4xx answers are the service's fault
        status_code = result.status_code if 400 <= result.status_code < 500 else 502
        return IntegrationResponse.fail(
            request,
            result.error or f"{service.name} rejected the request",
            status_code,
            category=_category_for_status(result.status_code),
            retryable=False,
            data=result.data,
        )

    def _breaker_for(self, service: ServiceConfig) -> CircuitBreaker | None:
        config = service.circuit_breaker
        if not config.enabled:
            return None
        return self.breakers.get_or_create(
            service.name,
            failure_threshold=config.failure_threshold,
            reset_timeout=config.reset_timeout,
            success_threshold=config.success_threshold,
            excluded_exceptions=_CALLER_ERRORS,
            clock=self._clock,
        )

    # ── Introspection & admin ────────────────────────────────────────

    def get_service(self, name: str) -> ServiceConfig:
        service = self.services.get(name)
        if service is None:
            raise NotFoundError(f"Service '{name}' is not configured")
        return service

    def list_services(self) -> dict[str, dict[str, Any]]:
        """Public service configuration with circuit state."""
        result: dict[str, dict[str, Any]] = {}
        for name, service in sorted(self.services.items()):
            view = service.public_view()
            breaker = self.breakers.get(name)
            view["circuit"] = breaker.snapshot().to_dict() if breaker else None
            view["health"] = self.monitor.service_health(name).value
            result[name] = view
        return result

    def active_services(self) -> list[str]:
        return sorted(name for name, s in self.services.items() if s.enabled)

    def circuit_snapshots(self) -> dict[str, CircuitSnapshot]:
        return self.breakers.snapshots()

    def _require_breaker(self, service: str) -> CircuitBreaker:
        breaker = self.breakers.get(service)
        if breaker is None:
            raise NotFoundError(f"No circuit breaker for service '{service}'")
        return breaker

    def reset_circuit(self, service: str) -> CircuitSnapshot:
        breaker = self._require_breaker(service)
        breaker.reset()
        logger.info("gateway.circuit_reset", service=service)
        return breaker.snapshot()

    def open_circuit(self, service: str) -> CircuitSnapshot:
        breaker = self._require_breaker(service)
        breaker.force_open()
        logger.warning("gateway.circuit_forced_open", service=service)
        return breaker.snapshot()

    def close_circuit(self, service: str) -> CircuitSnapshot:
        return self.reset_circuit(service)

    def rate_limit_status(self, service: str, identifier: str) -> RateLimitResult | None:
        """Current window for ``identifier`` without consuming a request."""
        self.get_service(service)
        return self.rate_limiters.peek(service, identifier)

    def reset_rate_limit(self, service: str, identifier: str | None = None) -> bool:
        self.get_service(service)
        reset = self.rate_limiters.reset(service, identifier)
        logger.info("gateway.rate_limit_reset", service=service, identifier=identifier)
        return reset

    async def aclose(self) -> None:
        close = getattr(self.transport, "aclose", None)
        if close is not None:
            await close()


__all__ = [
    "GatewayDisabledError",
    "IntegrationGateway",
    "http_status_for",
]
