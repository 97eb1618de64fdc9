"""Integration gateway: authenticated, rate-limited, circuit-broken service calls."""

from lexgate.gateway.auth import (
    ApiKeyRecord,
    ApiKeyStore,
    Authenticator,
    InMemoryApiKeyStore,
    generate_api_key,
    hash_api_key,
)
from lexgate.gateway.gateway import GatewayDisabledError, IntegrationGateway, http_status_for
from lexgate.gateway.models import (
    SYSTEM_PRINCIPAL,
    IntegrationRequest,
    IntegrationResponse,
    Principal,
)
from lexgate.gateway.monitor import (
    Alert,
    AlertSeverity,
    AlertType,
    HealthStatus,
    IntegrationMonitor,
    ServiceMetrics,
)
from lexgate.gateway.transports import (
    HttpTransport,
    LocalTransport,
    RoutingTransport,
    ServiceTransport,
    TransportResponse,
)

__all__ = [
    "Alert",
    "AlertSeverity",
    "AlertType",
    "ApiKeyRecord",
    "ApiKeyStore",
    "Authenticator",
    "GatewayDisabledError",
    "HealthStatus",
    "HttpTransport",
    "InMemoryApiKeyStore",
    "IntegrationGateway",
    "IntegrationMonitor",
    "IntegrationRequest",
    "IntegrationResponse",
    "LocalTransport",
    "Principal",
    "RoutingTransport",
    "SYSTEM_PRINCIPAL",
    "ServiceMetrics",
    "ServiceTransport",
    "TransportResponse",
    "generate_api_key",
    "hash_api_key",
]
