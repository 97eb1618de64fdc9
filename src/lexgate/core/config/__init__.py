"""Gateway settings and per-service configuration.

Quick start::

    from lexgate.core.config import get_settings

    settings = get_settings()
    services = settings.service_configs()
    print(services["pacer"].rate_limit.max_requests)   # 1000

Architecture::

    settings.py   GatewaySettings (pydantic-settings) + get_settings() cache
    services.py   ServiceConfig models, category defaults, YAML overrides
"""

from .services import (
    CircuitBreakerConfig,
    RateLimitConfig,
    RetryConfig,
    ServiceCategory,
    ServiceConfig,
    build_service,
    check_service,
    default_services,
    load_services_file,
    resolve_services,
)
from .settings import (
    ApiKeyConfig,
    GatewaySettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "ApiKeyConfig",
    "CircuitBreakerConfig",
    "GatewaySettings",
    "RateLimitConfig",
    "RetryConfig",
    "ServiceCategory",
    "ServiceConfig",
    "build_service",
    "check_service",
    "clear_settings_cache",
    "default_services",
    "get_settings",
    "load_services_file",
    "resolve_services",
]
