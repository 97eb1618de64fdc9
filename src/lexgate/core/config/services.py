"""
Per-service integration configuration.

Each third-party service the firm talks to (court filing systems, payment
processors, legal research providers, ...) gets a :class:`ServiceConfig`
carrying its endpoint, credentials and resilience knobs: rate-limit window,
circuit-breaker thresholds, call timeout and retry policy.

Defaults are grouped by :class:`ServiceCategory`; a YAML services file can
override any field per service::

    services:
      pacer:
        enabled: true
        api_key: ${from the environment, not the file}
        rate_limit:
          max_requests: 30
          window_seconds: 60
      stripe:
        enabled: true
        circuit_breaker:
          failure_threshold: 3

Tags:
    lexgate, configuration, services, yaml, pydantic
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    HttpUrl,
    SecretStr,
    TypeAdapter,
    field_validator,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError

from lexgate.core.errors import ConfigError


class ServiceCategory(str, Enum):
    """Integration service families."""

    COURT = "court"
    PAYMENT = "payment"
    LEGAL_RESEARCH = "legal_research"
    DOCUMENT = "document"
    COMMUNICATION = "communication"
    INTERNAL = "internal"


class RateLimitConfig(BaseModel):
    """Fixed-window limit applied per (service, principal)."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    max_requests: int = Field(default=1000, ge=1)
    window_seconds: float = Field(default=900.0, gt=0)


class CircuitBreakerConfig(BaseModel):
    """Breaker thresholds for one service."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    failure_threshold: int = Field(default=5, ge=1)
    reset_timeout: float = Field(default=30.0, gt=0)
    success_threshold: int = Field(default=1, ge=1)


class RetryConfig(BaseModel):
    """Retry policy values (see :class:`lexgate.execution.retry.RetryPolicy`)."""

    model_config = ConfigDict(extra="forbid")

    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=10.0, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1)


_HTTP_URL = TypeAdapter(HttpUrl)


class ServiceConfig(BaseModel):
    """Configuration of a single integration service."""

    model_config = ConfigDict(extra="forbid")

    name: str
    category: ServiceCategory = ServiceCategory.INTERNAL
    enabled: bool = False
    base_url: str | None = None
    api_key: SecretStr | None = None
    timeout: float | None = Field(default=30.0, gt=0, description="Call timeout in seconds")
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)
    retry: RetryConfig = Field(default_factory=lambda: RetryConfig(max_attempts=1))

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str | None) -> str | None:
        if v is None:
            return v
        try:
            _HTTP_URL.validate_python(v)
        except PydanticValidationError:
            raise ValueError(f"Invalid URL format: {v!r}") from None
        return v

    @model_validator(mode="after")
    def require_endpoint(self) -> ServiceConfig:
        """Enabled third-party services are reached over HTTP and need a base URL."""
        if self.enabled and self.category != ServiceCategory.INTERNAL and not self.base_url:
            raise ValueError(f"Enabled {self.category.value} service '{self.name}' requires base_url")
        return self

    def public_view(self) -> dict[str, Any]:
        """Serializable view without credentials."""
        data = self.model_dump(mode="json", exclude={"api_key"})
        data["has_credentials"] = self.api_key is not None
        return data


# Per-category defaults: rate limit per 15-minute window, breaker reset and call timeout.
_CATEGORY_DEFAULTS: dict[ServiceCategory, dict[str, Any]] = {
    ServiceCategory.COURT: {
        "timeout": 30.0,
        "rate_limit": {"max_requests": 1000, "window_seconds": 900.0},
        "circuit_breaker": {"reset_timeout": 30.0},
    },
    ServiceCategory.PAYMENT: {
        "timeout": 10.0,
        "rate_limit": {"max_requests": 2000, "window_seconds": 900.0},
        "circuit_breaker": {"reset_timeout": 60.0},
    },
    ServiceCategory.LEGAL_RESEARCH: {
        "timeout": 45.0,
        "rate_limit": {"max_requests": 500, "window_seconds": 900.0},
        "circuit_breaker": {"reset_timeout": 45.0},
    },
    ServiceCategory.DOCUMENT: {
        "timeout": 30.0,
        "rate_limit": {"max_requests": 1000, "window_seconds": 900.0},
        "circuit_breaker": {"reset_timeout": 30.0},
    },
    ServiceCategory.COMMUNICATION: {
        "timeout": 15.0,
        "rate_limit": {"max_requests": 1000, "window_seconds": 900.0},
        "circuit_breaker": {"reset_timeout": 30.0},
    },
    ServiceCategory.INTERNAL: {
        "enabled": True,
        "timeout": 30.0,
        "rate_limit": {"enabled": False},
        "circuit_breaker": {"enabled": False},
    },
}

_KNOWN_SERVICES: dict[str, tuple[ServiceCategory, str | None]] = {
    "pacer": (ServiceCategory.COURT, "https://pacer.uscourts.gov"),
    "state_courts": (ServiceCategory.COURT, "https://api.statecourts.gov"),
    "stripe": (ServiceCategory.PAYMENT, "https://api.stripe.com"),
    "paypal": (ServiceCategory.PAYMENT, "https://api-m.sandbox.paypal.com"),
    "alipay": (ServiceCategory.PAYMENT, "https://openapi.alipay.com"),
    "wechat_pay": (ServiceCategory.PAYMENT, "https://api.mch.weixin.qq.com"),
    "lexis_nexis": (ServiceCategory.LEGAL_RESEARCH, "https://api.lexisnexis.com"),
    "westlaw": (ServiceCategory.LEGAL_RESEARCH, "https://api.westlaw.com"),
    "google_drive": (ServiceCategory.DOCUMENT, "https://www.googleapis.com/drive/v3"),
    "dropbox": (ServiceCategory.DOCUMENT, "https://api.dropboxapi.com/2"),
    "twilio": (ServiceCategory.COMMUNICATION, "https://api.twilio.com"),
    "sendgrid": (ServiceCategory.COMMUNICATION, "https://api.sendgrid.com/v3"),
    "internal": (ServiceCategory.INTERNAL, None),
}


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def category_defaults(category: ServiceCategory) -> dict[str, Any]:
    """Raw default fields for a service category."""
    return deep_merge({}, _CATEGORY_DEFAULTS[category])


def build_service(name: str, overrides: dict[str, Any] | None = None) -> ServiceConfig:
    """Build a ServiceConfig from category defaults plus ``overrides``.

    Raises:
        ConfigError: If the resulting configuration is invalid.
    """
    overrides = dict(overrides or {})
    known_category, known_url = _KNOWN_SERVICES.get(name, (ServiceCategory.INTERNAL, None))
    category = ServiceCategory(overrides.get("category", known_category))

    data = category_defaults(category)
    data["name"] = name
    data["category"] = category
    if known_url and category == known_category:
        data["base_url"] = known_url
    data = deep_merge(data, overrides)
    data["name"] = name

    try:
        return ServiceConfig.model_validate(data)
    except PydanticValidationError as e:
        raise ConfigError(f"Invalid configuration for service '{name}': {e}", cause=e) from e


def default_services() -> dict[str, ServiceConfig]:
    """The built-in service table (third-party services start disabled)."""
    return {name: build_service(name) for name in _KNOWN_SERVICES}


def load_services_file(path: str | Path) -> dict[str, dict[str, Any]]:
    """Read per-service overrides from a YAML file.

    The file must contain a top-level ``services`` mapping.

    Raises:
        ConfigError: If the file is missing or malformed.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Services file not found: {path}")

    with path.open(encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}", cause=e) from e

    services = data.get("services", {}) if isinstance(data, dict) else None
    if not isinstance(services, dict):
        raise ConfigError(f"{path}: 'services' must be a mapping")
    for name, overrides in services.items():
        if not isinstance(overrides, dict):
            raise ConfigError(f"{path}: service '{name}' must be a mapping")
    return services


def resolve_services(*override_layers: dict[str, dict[str, Any]]) -> dict[str, ServiceConfig]:
    """Apply override layers (lowest precedence first) over the built-in table."""
    raw: dict[str, dict[str, Any]] = {name: {} for name in _KNOWN_SERVICES}
    for layer in override_layers:
        for name, overrides in layer.items():
            raw[name] = deep_merge(raw.get(name, {}), overrides)
    return {name: build_service(name, overrides) for name, overrides in raw.items()}


# Services whose APIs reject anonymous calls.
CREDENTIALED_SERVICES = frozenset(
    {"pacer", "stripe", "paypal", "lexis_nexis", "westlaw", "google_drive", "dropbox", "twilio", "sendgrid"}
)


def check_service(service: ServiceConfig, overrides: dict[str, Any] | None = None) -> list[str]:
    """Problems that would stop ``service`` (with ``overrides`` applied) from working.

    Schema errors (malformed URL, non-positive timeout, missing endpoint) and
    missing credentials are reported as messages rather than raised, so an
    operator can check a candidate configuration before deploying it.
    Credentials are only required once a service is enabled.
    """
    if overrides:
        data = deep_merge(service.model_dump(), overrides)
        data["name"] = service.name
        try:
            service = ServiceConfig.model_validate(data)
        except PydanticValidationError as e:
            return [_describe(err) for err in e.errors()]

    if not service.enabled:
        return []
    problems = []
    if service.name in CREDENTIALED_SERVICES and service.api_key is None:
        problems.append("Missing required field: api_key")
    return problems


def _describe(error: Any) -> str:
    location = ".".join(str(part) for part in error["loc"])
    message = error["msg"].removeprefix("Value error, ")
    return f"{location}: {message}" if location else message


__all__ = [
    "ServiceCategory",
    "RateLimitConfig",
    "CREDENTIALED_SERVICES",
    "CircuitBreakerConfig",
    "RetryConfig",
    "ServiceConfig",
    "build_service",
    "check_service",
    "category_defaults",
    "deep_merge",
    "default_services",
    "load_services_file",
    "resolve_services",
]
