"""Tests for gateway metrics, health and alerts."""

from lexgate.core.errors import ErrorCategory
from lexgate.execution.circuit_breaker import CircuitBreakerRegistry
from lexgate.gateway.models import IntegrationRequest, IntegrationResponse
from lexgate.gateway.monitor import (
    AlertSeverity,
    AlertType,
    HealthStatus,
    IntegrationMonitor,
)


def _ok(service="pacer", duration_ms=100.0):
    response = IntegrationResponse.ok(IntegrationRequest(service=service, operation="fileCase"), {})
    response.duration_ms = duration_ms
    return response


def _fail(status, category, service="pacer"):
    request = IntegrationRequest(service=service, operation="fileCase")
    return IntegrationResponse.fail(request, "boom", status, category=category)


class TestRecording:
    def test_counters_are_split_by_cause(self):
        monitor = IntegrationMonitor()
        monitor.record(_ok())
        monitor.record(_fail(502, ErrorCategory.UPSTREAM))
        monitor.record(_fail(504, ErrorCategory.TIMEOUT))
        monitor.record(_fail(401, ErrorCategory.AUTH))
        monitor.record(_fail(404, ErrorCategory.NOT_FOUND))
        monitor.record(_fail(429, ErrorCategory.RATE_LIMIT))
        monitor.record(_fail(503, ErrorCategory.CIRCUIT))

        metrics = monitor.metrics("pacer")
        assert metrics.requests == 7
        assert metrics.successes == 1
        assert metrics.failures == 2
        assert metrics.client_errors == 2
        assert metrics.rejections == 2
        assert metrics.last_error == "boom"

    def test_metrics_are_copies(self):
        monitor = IntegrationMonitor()
        monitor.record(_ok())
        snapshot = monitor.metrics("pacer")
        monitor.record(_ok())
        assert snapshot.requests == 1

    def test_unknown_service_has_empty_metrics(self):
        assert IntegrationMonitor().metrics("westlaw").requests == 0


class TestHealth:
    def test_degraded_by_error_rate(self):
        monitor = IntegrationMonitor(error_rate_threshold=0.05)
        for _ in range(9):
            monitor.record(_ok())
        monitor.record(_fail(502, ErrorCategory.UPSTREAM))
        assert monitor.service_health("pacer") == HealthStatus.DEGRADED

    def test_client_errors_do_not_degrade(self):
        monitor = IntegrationMonitor(error_rate_threshold=0.05)
        for _ in range(5):
            monitor.record(_fail(403, ErrorCategory.AUTH))
        assert monitor.service_health("pacer") == HealthStatus.HEALTHY

    def test_degraded_by_latency(self):
        monitor = IntegrationMonitor(slow_request_threshold_ms=1000)
        monitor.record(_ok(duration_ms=1500))
        assert monitor.service_health("pacer") == HealthStatus.DEGRADED

    def test_open_circuit_is_unhealthy(self):
        breakers = CircuitBreakerRegistry()
        breakers.get_or_create("pacer").force_open()
        monitor = IntegrationMonitor(breakers)
        assert monitor.service_health("pacer") == HealthStatus.UNHEALTHY

        health = monitor.system_health(["stripe"])
        assert health["status"] == "UNHEALTHY"
        assert health["services"] == {"pacer": "UNHEALTHY", "stripe": "HEALTHY"}

    def test_system_health_totals(self):
        monitor = IntegrationMonitor()
        monitor.record(_ok())
        monitor.record(_fail(502, ErrorCategory.NETWORK, service="westlaw"))
        health = monitor.system_health()
        assert health["total_requests"] == 2
        assert health["error_rate"] == 0.5
        assert health["status"] == "DEGRADED"


class TestAlerts:
    def test_error_rate_severity(self):
        monitor = IntegrationMonitor()
        for _ in range(9):
            monitor.record(_ok())
        monitor.record(_fail(502, ErrorCategory.UPSTREAM))
        assert monitor.check_alerts() == []

        monitor.record(_fail(502, ErrorCategory.UPSTREAM))
        [alert] = monitor.check_alerts()
        assert alert.type == AlertType.ERROR_RATE
        assert alert.severity == AlertSeverity.HIGH

    def test_critical_error_rate(self):
        monitor = IntegrationMonitor()
        monitor.record(_ok())
        monitor.record(_fail(502, ErrorCategory.UPSTREAM))
        [alert] = monitor.check_alerts()
        assert alert.severity == AlertSeverity.CRITICAL

    def test_latency_alerts(self):
        monitor = IntegrationMonitor()
        monitor.record(_ok(service="westlaw", duration_ms=6000))
        monitor.record(_ok(service="lexis_nexis", duration_ms=12000))
        alerts = {a.service: a for a in monitor.check_alerts()}
        assert alerts["westlaw"].severity == AlertSeverity.MEDIUM
        assert alerts["lexis_nexis"].severity == AlertSeverity.HIGH
        assert alerts["westlaw"].type == AlertType.PERFORMANCE

    def test_availability_alert(self):
        breakers = CircuitBreakerRegistry()
        breakers.get_or_create("stripe").force_open()
        [alert] = IntegrationMonitor(breakers).check_alerts()
        assert alert.type == AlertType.AVAILABILITY
        assert alert.severity == AlertSeverity.CRITICAL

    def test_alerts_are_deduplicated_until_resolved(self):
        monitor = IntegrationMonitor()
        monitor.record(_fail(502, ErrorCategory.UPSTREAM))
        [alert] = monitor.check_alerts()
        assert monitor.check_alerts() == []

        assert monitor.resolve_alert(alert.id)
        assert not monitor.resolve_alert(alert.id)
        assert monitor.alerts() == []
        assert monitor.alerts(include_resolved=True)[0].resolved_at is not None

        assert len(monitor.check_alerts()) == 1

    def test_resolved_history_is_capped(self):
        monitor = IntegrationMonitor(max_resolved_alerts=2)
        monitor.record(_fail(502, ErrorCategory.UPSTREAM))
        raised = []
        for _ in range(4):
            [alert] = monitor.check_alerts()
            raised.append(alert.id)
            monitor.resolve_alert(alert.id)
        [still_open] = monitor.check_alerts()

        history = monitor.alerts(include_resolved=True)
        assert [a.id for a in history] == raised[2:] + [still_open.id]
        assert [a.id for a in monitor.alerts()] == [still_open.id]

    def test_alert_to_dict(self):
        monitor = IntegrationMonitor()
        monitor.record(_fail(502, ErrorCategory.UPSTREAM))
        data = monitor.check_alerts()[0].to_dict()
        assert data["type"] == "ERROR_RATE"
        assert data["resolved"] is False
