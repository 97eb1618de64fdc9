"""
Shared pytest fixtures for lexgate tests.

This module provides:
- Environment isolation (no LEXGATE_* variables or .env files leak in)
- A controllable clock and a recording async sleep
- A gateway wired to in-process handlers, with API keys for two principals
- The FastAPI app over that gateway, and a TestClient running its lifespan
"""

from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient

from lexgate.api.app import create_app
from lexgate.core.config.services import resolve_services
from lexgate.core.config.settings import GatewaySettings, clear_settings_cache
from lexgate.gateway.auth import Authenticator, InMemoryApiKeyStore
from lexgate.gateway.gateway import IntegrationGateway
from lexgate.gateway.transports import LocalTransport
from lexgate.orchestration.builtin import register_internal_handlers
from lexgate.orchestration.orchestrator import IntegrationOrchestrator
from lexgate.webhooks.processor import WebhookProcessor


class FakeClock:
    """Epoch-seconds clock advanced by hand."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    """Async sleep replacement that records delays and returns immediately."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> Any:
    import os

    for key in list(os.environ):
        if key.startswith("LEXGATE_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


# ── Gateway wiring ───────────────────────────────────────────────────────

PACER_OVERRIDES: dict[str, Any] = {
    "enabled": True,
    "rate_limit": {"max_requests": 3, "window_seconds": 60},
    "circuit_breaker": {"failure_threshold": 2, "reset_timeout": 30},
}


@pytest.fixture
def local() -> LocalTransport:
    """In-process transport with the ``internal`` handlers and a PACER stub."""
    transport = register_internal_handlers(LocalTransport())

    @transport.handler("pacer", "fileCase")
    async def file_case(params: dict[str, Any]) -> dict[str, Any]:
        return {"filing_id": f"F-{params.get('case_number', '0')}", "court": params.get("court")}

    @transport.handler("pacer", "searchCases")
    async def search_cases(params: dict[str, Any]) -> dict[str, Any]:
        return {"cases": [], "query": params.get("query")}

    return transport


@pytest.fixture
def authenticator() -> Authenticator:
    return Authenticator(InMemoryApiKeyStore())


@pytest.fixture
def gateway(local: LocalTransport, authenticator: Authenticator, clock: FakeClock, sleeps: SleepRecorder) -> IntegrationGateway:
    services = resolve_services({"pacer": PACER_OVERRIDES})
    return IntegrationGateway(services, authenticator, local, clock=clock, sleep=sleeps)


@pytest.fixture
def alice_key(authenticator: Authenticator) -> str:
    """Key for a principal granted PACER and internal services."""
    return authenticator.issue("alice", ["pacer", "internal"])


@pytest.fixture
def admin_key(authenticator: Authenticator) -> str:
    return authenticator.issue("ops", ["*"], admin=True)


# ── HTTP surface ─────────────────────────────────────────────────────────


@pytest.fixture
def webhook_secret() -> str:
    return "whsec-test"


@pytest.fixture
def app(gateway: IntegrationGateway, sleeps: SleepRecorder, webhook_secret: str):
    return create_app(
        GatewaySettings(),
        gateway=gateway,
        orchestrator=IntegrationOrchestrator.for_gateway(gateway, sleep=sleeps),
        webhooks=WebhookProcessor(secret=webhook_secret, allowed_events=["payment.success"]),
        configure_logs=False,
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
