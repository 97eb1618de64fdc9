"""Per-service request metrics, health and alerts for the gateway.

Every routed request is recorded here. Counters are split so that caller
mistakes (401, 403, 404, 4xx from the service) do not make a healthy
service look broken:

    requests      every routed request
    successes     success=True
    failures      service-side failures (5xx, network, timeout)
    client_errors rejected for caller reasons (auth, validation, 4xx)
    rejections    rate limited or short-circuited (429, open circuit)

Health:
    UNHEALTHY  circuit open
    DEGRADED   error rate > error_rate_threshold or mean latency > slow threshold
    HEALTHY    otherwise

Alerts (deduplicated per service and type while unresolved):
    ERROR_RATE    > 10% HIGH, > 20% CRITICAL
    PERFORMANCE   mean latency > 5s MEDIUM, > 10s HIGH
    AVAILABILITY  circuit open, CRITICAL
"""

from __future__ import annotations

import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from lexgate.core.errors import ErrorCategory
from lexgate.core.logging import get_logger
from lexgate.execution.circuit_breaker import CircuitBreakerRegistry
from lexgate.gateway.models import IntegrationResponse, utcnow

logger = get_logger(__name__)

_SERVICE_FAILURE_CATEGORIES = frozenset({
    ErrorCategory.NETWORK,
    ErrorCategory.TIMEOUT,
    ErrorCategory.UPSTREAM,
    ErrorCategory.INTERNAL,
    ErrorCategory.CONFIG,
})
_REJECTION_CATEGORIES = frozenset({ErrorCategory.RATE_LIMIT, ErrorCategory.CIRCUIT})

ERROR_RATE_HIGH = 0.10
ERROR_RATE_CRITICAL = 0.20
LATENCY_MEDIUM_MS = 5000.0
LATENCY_HIGH_MS = 10000.0


class HealthStatus(str, Enum):
    HEALTHY = "HEALTHY"
    DEGRADED = "DEGRADED"
    UNHEALTHY = "UNHEALTHY"


class AlertType(str, Enum):
    ERROR_RATE = "ERROR_RATE"
    PERFORMANCE = "PERFORMANCE"
    AVAILABILITY = "AVAILABILITY"


class AlertSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


@dataclass
class ServiceMetrics:
    """Running counters for one service."""

    service: str
    requests: int = 0
    successes: int = 0
    failures: int = 0
    client_errors: int = 0
    rejections: int = 0
    total_duration_ms: float = 0.0
    last_request_at: datetime | None = None
    last_error: str | None = None

    @property
    def error_rate(self) -> float:
        if self.requests == 0:
            return 0.0
        return self.failures / self.requests

    @property
    def mean_latency_ms(self) -> float:
        if self.requests == 0:
            return 0.0
        return self.total_duration_ms / self.requests

    def to_dict(self) -> dict[str, Any]:
        return {
            "service": self.service,
            "requests": self.requests,
            "successes": self.successes,
            "failures": self.failures,
            "client_errors": self.client_errors,
            "rejections": self.rejections,
            "error_rate": round(self.error_rate, 4),
            "mean_latency_ms": round(self.mean_latency_ms, 3),
            "last_request_at": self.last_request_at.isoformat() if self.last_request_at else None,
            "last_error": self.last_error,
        }


@dataclass
class Alert:
    """A raised monitoring condition."""

    type: AlertType
    severity: AlertSeverity
    service: str
    message: str
    data: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: f"alert_{uuid.uuid4().hex[:12]}")
    created_at: datetime = field(default_factory=utcnow)
    resolved: bool = False
    resolved_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "severity": self.severity.value,
            "service": self.service,
            "message": self.message,
            "data": self.data,
            "created_at": self.created_at.isoformat(),
            "resolved": self.resolved,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
        }


class IntegrationMonitor:
    """Aggregates gateway responses into metrics, health and alerts."""

    def __init__(
        self,
        breakers: CircuitBreakerRegistry | None = None,
        *,
        error_rate_threshold: float = 0.05,
        slow_request_threshold_ms: float = 5000.0,
        max_resolved_alerts: int = 500,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.breakers = breakers
        self.error_rate_threshold = error_rate_threshold
        self.slow_request_threshold_ms = slow_request_threshold_ms
        self.max_resolved_alerts = max_resolved_alerts
        self._clock = clock
        self._started = clock()
        self._metrics: dict[str, ServiceMetrics] = {}
        self._alerts: list[Alert] = []
        self._lock = threading.Lock()

    # ── Recording ────────────────────────────────────────────────────

    def record(self, response: IntegrationResponse) -> None:
        """Record one routed request."""
        with self._lock:
            metrics = self._metrics.get(response.service)
            if metrics is None:
                metrics = ServiceMetrics(service=response.service)
                self._metrics[response.service] = metrics

            metrics.requests += 1
            metrics.total_duration_ms += response.duration_ms
            metrics.last_request_at = response.timestamp

            if response.success:
                metrics.successes += 1
                return

            metrics.last_error = response.error
            if response.error_category in _REJECTION_CATEGORIES:
                metrics.rejections += 1
            elif response.status_code >= 500 or response.error_category in _SERVICE_FAILURE_CATEGORIES:
                metrics.failures += 1
            else:
                metrics.client_errors += 1

    def reset(self) -> None:
        with self._lock:
            self._metrics.clear()
            self._alerts.clear()

    # ── Queries ──────────────────────────────────────────────────────

    def metrics(self, service: str) -> ServiceMetrics:
        with self._lock:
            existing = self._metrics.get(service)
            if existing is None:
                return ServiceMetrics(service=service)
            return replace(existing)

    def all_metrics(self) -> dict[str, ServiceMetrics]:
        with self._lock:
            names = list(self._metrics)
        return {name: self.metrics(name) for name in names}

    def _circuit_open(self, service: str) -> bool:
        if self.breakers is None:
            return False
        breaker = self.breakers.get(service)
        return breaker is not None and breaker.snapshot().is_open

    def service_health(self, service: str) -> HealthStatus:
        if self._circuit_open(service):
            return HealthStatus.UNHEALTHY
        metrics = self.metrics(service)
        if (
            metrics.error_rate > self.error_rate_threshold
            or metrics.mean_latency_ms > self.slow_request_threshold_ms
        ):
            return HealthStatus.DEGRADED
        return HealthStatus.HEALTHY

    def system_health(self, services: list[str] | None = None) -> dict[str, Any]:
        """Overall status plus per-service breakdown.

        The system is UNHEALTHY when any service is, DEGRADED when any
        service is degraded.
        """
        names = set(self.all_metrics())
        if self.breakers is not None:
            names.update(self.breakers.list_all())
        if services is not None:
            names.update(services)

        per_service = {name: self.service_health(name) for name in sorted(names)}
        statuses = set(per_service.values())
        if HealthStatus.UNHEALTHY in statuses:
            overall = HealthStatus.UNHEALTHY
        elif HealthStatus.DEGRADED in statuses:
            overall = HealthStatus.DEGRADED
        else:
            overall = HealthStatus.HEALTHY

        metrics = self.all_metrics().values()
        total = sum(m.requests for m in metrics)
        failed = sum(m.failures for m in metrics)
        return {
            "status": overall.value,
            "uptime_seconds": round(self._clock() - self._started, 3),
            "total_requests": total,
            "error_rate": round(failed / total, 4) if total else 0.0,
            "services": {name: status.value for name, status in per_service.items()},
        }

    # ── Alerts ───────────────────────────────────────────────────────

    def _evaluate(self, service: str) -> list[Alert]:
        found: list[Alert] = []
        metrics = self.metrics(service)

        if metrics.requests and metrics.error_rate > ERROR_RATE_HIGH:
            rate = metrics.error_rate
            found.append(Alert(
                type=AlertType.ERROR_RATE,
                severity=AlertSeverity.CRITICAL if rate > ERROR_RATE_CRITICAL else AlertSeverity.HIGH,
                service=service,
                message=f"High error rate for {service}: {rate * 100:.1f}%",
                data={"error_rate": rate, "requests": metrics.requests},
            ))

        if metrics.mean_latency_ms > LATENCY_MEDIUM_MS:
            latency = metrics.mean_latency_ms
            found.append(Alert(
                type=AlertType.PERFORMANCE,
                severity=AlertSeverity.HIGH if latency > LATENCY_HIGH_MS else AlertSeverity.MEDIUM,
                service=service,
                message=f"Slow responses from {service}: {latency:.0f}ms average",
                data={"mean_latency_ms": latency},
            ))

        if self._circuit_open(service):
            found.append(Alert(
                type=AlertType.AVAILABILITY,
                severity=AlertSeverity.CRITICAL,
                service=service,
                message=f"Circuit open for {service}",
            ))
        return found

    def check_alerts(self) -> list[Alert]:
        """Evaluate every known service and store new alerts. Returns the new ones."""
        names = set(self.all_metrics())
        if self.breakers is not None:
            names.update(self.breakers.list_all())

        new_alerts: list[Alert] = []
        for service in sorted(names):
            for alert in self._evaluate(service):
                with self._lock:
                    duplicate = any(
                        not a.resolved and a.service == alert.service and a.type == alert.type
                        for a in self._alerts
                    )
                    if duplicate:
                        continue
                    self._alerts.append(alert)
                new_alerts.append(alert)
                logger.warning(
                    "monitor.alert_raised",
                    alert_type=alert.type.value,
                    severity=alert.severity.value,
                    service=alert.service,
                    message=alert.message,
                )
        return new_alerts

    def alerts(self, include_resolved: bool = False) -> list[Alert]:
        with self._lock:
            return [a for a in self._alerts if include_resolved or not a.resolved]

    def resolve_alert(self, alert_id: str) -> bool:
        with self._lock:
            for alert in self._alerts:
                if alert.id == alert_id and not alert.resolved:
                    alert.resolved = True
                    alert.resolved_at = utcnow()
                    self._trim_resolved()
                    return True
        return False

    def _trim_resolved(self) -> None:
        # Open alerts are bounded by service and type; resolved history is capped.
        resolved = [a for a in self._alerts if a.resolved]
        excess = len(resolved) - self.max_resolved_alerts
        if excess > 0:
            dropped = {id(a) for a in resolved[:excess]}
            self._alerts = [a for a in self._alerts if id(a) not in dropped]


__all__ = [
    "Alert",
    "AlertSeverity",
    "AlertType",
    "HealthStatus",
    "IntegrationMonitor",
    "ServiceMetrics",
]
