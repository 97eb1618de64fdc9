"""Tests for gateway routes backed by a real HTTP transport."""

import httpx
import pytest
from fastapi.testclient import TestClient

from lexgate.api.app import create_app
from lexgate.core.config.services import resolve_services
from lexgate.core.config.settings import GatewaySettings
from lexgate.gateway.gateway import IntegrationGateway
from lexgate.gateway.transports import HttpTransport

PREFIX = "/api/integration"


def _upstream(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/moved":
        return httpx.Response(301, headers={"Location": "https://pacer.example/new"})
    return httpx.Response(
        200,
        json={"ok": 1},
        headers={"X-Upstream-Trace": "trace-9", "Set-Cookie": "session=abc"},
    )


@pytest.fixture
def http_client(authenticator, sleeps):
    transport = HttpTransport(httpx.AsyncClient(transport=httpx.MockTransport(_upstream)))
    services = resolve_services({"pacer": {"enabled": True, "base_url": "https://pacer.example"}})
    gateway = IntegrationGateway(services, authenticator, transport, sleep=sleeps)
    app = create_app(GatewaySettings(), gateway=gateway, configure_logs=False)
    with TestClient(app) as test_client:
        yield test_client


class TestUpstreamHeaders:
    def test_envelope_has_its_own_entity_headers(self, http_client, alice_key):
        response = http_client.post(
            f"{PREFIX}/services/pacer/fileCase",
            json={"case_number": "1"},
            headers={"X-API-Key": alice_key},
        )

        assert response.status_code == 200
        assert int(response.headers["content-length"]) == len(response.content)
        assert response.headers["content-type"] == "application/json"
        assert "x-upstream-trace" not in response.headers
        assert "set-cookie" not in response.headers
        assert response.json()["data"] == {"ok": 1}
        assert response.headers["X-RateLimit-Limit"] == "1000"

    def test_redirect_from_service_is_bad_gateway(self, http_client, alice_key):
        response = http_client.post(f"{PREFIX}/services/pacer/moved", headers={"X-API-Key": alice_key})

        assert response.status_code == 502
        body = response.json()
        assert body["success"] is False
        assert body["error_category"] == "UPSTREAM"
        assert "301" in body["error"]
