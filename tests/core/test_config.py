"""Tests for gateway settings and the service table."""

import json

import pytest

from lexgate.core.config import (
    GatewaySettings,
    ServiceCategory,
    build_service,
    check_service,
    default_services,
    get_settings,
    load_services_file,
    resolve_services,
)
from lexgate.core.errors import ConfigError


class TestServiceDefaults:
    """Built-in service table."""

    def test_third_party_services_start_disabled(self):
        services = default_services()
        assert not services["pacer"].enabled
        assert not services["stripe"].enabled
        assert services["internal"].enabled

    def test_category_defaults(self):
        pacer = build_service("pacer")
        assert pacer.category == ServiceCategory.COURT
        assert pacer.base_url == "https://pacer.uscourts.gov"
        assert pacer.rate_limit.max_requests == 1000
        assert pacer.rate_limit.window_seconds == 900

        stripe = build_service("stripe")
        assert stripe.timeout == 10.0
        assert stripe.circuit_breaker.reset_timeout == 60.0

    def test_internal_is_unlimited_and_unbroken(self):
        internal = build_service("internal")
        assert not internal.rate_limit.enabled
        assert not internal.circuit_breaker.enabled

    def test_retry_defaults_to_single_attempt(self):
        assert build_service("westlaw").retry.max_attempts == 1

    def test_public_view_hides_credentials(self):
        service = build_service("stripe", {"api_key": "sk_live_123"})
        view = service.public_view()
        assert "api_key" not in view
        assert view["has_credentials"] is True

    def test_invalid_override_raises_config_error(self):
        with pytest.raises(ConfigError, match="pacer"):
            build_service("pacer", {"rate_limit": {"max_requests": 0}})

    def test_malformed_url_raises_config_error(self):
        with pytest.raises(ConfigError, match="Invalid URL format"):
            build_service("westlaw", {"base_url": "westlaw dot com"})

    def test_enabled_court_service_needs_base_url(self):
        with pytest.raises(ConfigError, match="requires base_url"):
            build_service("pacer", {"enabled": True, "base_url": None})

    def test_disabled_service_may_omit_base_url(self):
        assert build_service("pacer", {"base_url": None}).base_url is None


class TestCheckService:
    """Reporting problems in a service config without raising."""

    def test_enabled_service_without_credentials(self):
        pacer = build_service("pacer", {"enabled": True})
        assert check_service(pacer) == ["Missing required field: api_key"]

    def test_disabled_or_credentialed_service_is_clean(self):
        assert check_service(build_service("stripe")) == []
        assert check_service(build_service("stripe", {"enabled": True, "api_key": "sk_test"})) == []
        assert check_service(build_service("internal")) == []

    def test_overrides_are_checked_not_applied(self):
        westlaw = build_service("westlaw")
        problems = check_service(westlaw, {"timeout": 0, "base_url": "ftp://westlaw"})
        assert any(p.startswith("timeout:") for p in problems)
        assert any(p.startswith("base_url: Invalid URL format") for p in problems)
        assert westlaw.timeout == 45.0

    def test_nested_errors_name_the_field(self):
        problems = check_service(build_service("pacer"), {"rate_limit": {"max_requests": 0}})
        assert problems[0].startswith("rate_limit.max_requests:")


class TestOverrides:
    def test_layers_merge_deeply(self):
        services = resolve_services(
            {"pacer": {"enabled": True, "rate_limit": {"max_requests": 10}}},
            {"pacer": {"rate_limit": {"window_seconds": 60}}},
        )
        pacer = services["pacer"]
        assert pacer.enabled
        assert pacer.rate_limit.max_requests == 10
        assert pacer.rate_limit.window_seconds == 60

    def test_unknown_service_gets_internal_defaults(self):
        services = resolve_services({"docket_bot": {"enabled": True, "base_url": "http://docket"}})
        assert services["docket_bot"].category == ServiceCategory.INTERNAL

    def test_services_file(self, tmp_path):
        path = tmp_path / "services.yaml"
        path.write_text("services:\n  westlaw:\n    enabled: true\n    timeout: 12\n")
        assert load_services_file(path) == {"westlaw": {"enabled": True, "timeout": 12}}

    def test_services_file_errors(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_services_file(tmp_path / "missing.yaml")

        bad = tmp_path / "bad.yaml"
        bad.write_text("services: [1, 2]\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_services_file(bad)


class TestGatewaySettings:
    def test_defaults(self):
        settings = GatewaySettings()
        assert settings.gateway_enabled
        assert settings.api_key_header == "X-API-Key"
        assert settings.api_prefix == "/api/integration"
        assert settings.error_rate_threshold == 0.05

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("LEXGATE_GATEWAY_ENABLED", "false")
        monkeypatch.setenv("LEXGATE_SERVICES", json.dumps({"pacer": {"enabled": True}}))
        monkeypatch.setenv(
            "LEXGATE_API_KEYS",
            json.dumps([{"key": "lgk_test", "principal_id": "alice", "services": ["pacer"]}]),
        )
        settings = GatewaySettings()
        assert not settings.gateway_enabled
        assert settings.service_configs()["pacer"].enabled
        assert settings.api_keys[0].principal_id == "alice"
        assert settings.api_keys[0].key.get_secret_value() == "lgk_test"

    def test_services_file_then_env(self, tmp_path):
        path = tmp_path / "services.yaml"
        path.write_text("services:\n  pacer:\n    enabled: true\n    timeout: 5\n")
        settings = GatewaySettings(services_file=str(path), services={"pacer": {"timeout": 7}})
        pacer = settings.service_configs()["pacer"]
        assert pacer.enabled
        assert pacer.timeout == 7

    def test_json_logs(self):
        assert GatewaySettings(log_format="json").json_logs is True
        assert GatewaySettings(log_format="console").json_logs is False
        assert GatewaySettings().json_logs is None

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
