"""
Centralized settings for lexgate.

:class:`GatewaySettings` is the single validated source of truth for the
gateway, its API keys, webhook secrets, logging and monitoring thresholds.
All fields can be set via ``LEXGATE_*`` environment variables or a ``.env``
file; nested values use ``__`` (``LEXGATE_SERVICES__PACER__ENABLED=true``).

Tags:
    lexgate, configuration, settings, pydantic, caching
"""

from __future__ import annotations

from datetime import datetime
from functools import lru_cache
from typing import Any

from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from .services import ServiceConfig, load_services_file, resolve_services


class ApiKeyConfig(BaseModel):
    """An API key provisioned through configuration."""

    key: SecretStr
    principal_id: str
    services: list[str] = Field(default_factory=lambda: ["*"])
    admin: bool = False
    active: bool = True
    expires_at: datetime | None = None


class GatewaySettings(BaseSettings):
    """Integration gateway configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEXGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # ── Gateway ──────────────────────────────────────────────────
    gateway_enabled: bool = Field(default=True)
    api_key_header: str = Field(default="X-API-Key")
    default_timeout: float = Field(default=30.0, gt=0)

    # ── Services ─────────────────────────────────────────────────
    services_file: str | None = Field(default=None, description="YAML file with per-service overrides")
    services: dict[str, dict[str, Any]] = Field(default_factory=dict)
    workflows_dir: str | None = Field(default=None, description="Directory of YAML workflow definitions")

    # ── Auth ─────────────────────────────────────────────────────
    api_keys: list[ApiKeyConfig] = Field(default_factory=list)

    # ── Webhooks ─────────────────────────────────────────────────
    webhooks_enabled: bool = Field(default=True)
    webhook_secret: SecretStr | None = Field(default=None)
    wechat_api_key: SecretStr | None = Field(default=None)
    alipay_public_key: SecretStr | None = Field(default=None, description="PEM-encoded Alipay public key")
    webhook_allowed_events: list[str] = Field(
        default=["payment.success", "payment.failure", "court.filing.update"]
    )

    # ── API ──────────────────────────────────────────────────────
    api_title: str = Field(default="lexgate integration gateway")
    api_version: str = Field(default="0.1.0")
    api_prefix: str = Field(default="/api/integration")
    debug: bool = Field(default=False)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="auto", description="json, console or auto")
    log_mask_fields: list[str] = Field(
        default=["password", "token", "secret", "key", "authorization", "apikey"]
    )

    # ── Monitoring ───────────────────────────────────────────────
    error_rate_threshold: float = Field(default=0.05, ge=0, le=1)
    slow_request_threshold_ms: float = Field(default=5000.0, gt=0)

    def service_configs(self) -> dict[str, ServiceConfig]:
        """Resolve the service table: built-ins, then the YAML file, then env overrides."""
        layers: list[dict[str, dict[str, Any]]] = []
        if self.services_file:
            layers.append(load_services_file(self.services_file))
        if self.services:
            layers.append(self.services)
        return resolve_services(*layers)

    @property
    def json_logs(self) -> bool | None:
        if self.log_format == "json":
            return True
        if self.log_format == "console":
            return False
        return None


@lru_cache(maxsize=1)
def get_settings() -> GatewaySettings:
    """Cached settings, loaded once per process."""
    return GatewaySettings()


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    get_settings.cache_clear()
