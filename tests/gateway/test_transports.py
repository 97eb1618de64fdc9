"""Tests for service transports."""

import json

import httpx
import pytest

from lexgate.core.config.services import build_service
from lexgate.core.errors import ConfigError, ErrorCategory, NetworkError, UpstreamError
from lexgate.gateway.models import IntegrationRequest
from lexgate.gateway.transports import HttpTransport, LocalTransport, RoutingTransport


def _transport(handler):
    return HttpTransport(httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def _request(operation="fileCase", **params):
    return IntegrationRequest(service="pacer", operation=operation, parameters=params)


PACER = build_service("pacer", {"enabled": True, "api_key": "pacer-secret"})


class TestHttpTransport:
    @pytest.mark.asyncio
    async def test_posts_json_with_bearer_token(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["request_id"] = request.headers["X-Request-ID"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"filing_id": "F-1"})

        request = _request(case_number="1:24-cv-7")
        response = await _transport(handler).send(request, PACER, 5.0)

        assert response.ok
        assert response.status_code == 201
        assert response.data == {"filing_id": "F-1"}
        assert seen["url"] == "https://pacer.uscourts.gov/fileCase"
        assert seen["auth"] == "Bearer pacer-secret"
        assert seen["request_id"] == request.id
        assert seen["body"] == {"case_number": "1:24-cv-7"}

    @pytest.mark.asyncio
    async def test_no_authorization_without_api_key(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert "Authorization" not in request.headers
            return httpx.Response(200, text="accepted")

        service = build_service("westlaw", {"enabled": True})
        response = await _transport(handler).send(_request("search"), service, None)
        assert response.data == "accepted"

    @pytest.mark.asyncio
    async def test_client_error_is_returned(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(422, json={"error": "missing court"})

        response = await _transport(handler).send(_request(), PACER, 5.0)
        assert not response.ok
        assert response.status_code == 422
        assert response.data == {"error": "missing court"}
        assert "422" in response.error

    @pytest.mark.asyncio
    async def test_redirect_is_not_success(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(302, headers={"Location": "https://pacer.uscourts.gov/login"})

        response = await _transport(handler).send(_request(), PACER, 5.0)
        assert not response.ok
        assert response.status_code == 302
        assert "302" in response.error

    @pytest.mark.asyncio
    async def test_server_error_raises_upstream(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="maintenance")

        with pytest.raises(UpstreamError) as exc_info:
            await _transport(handler).send(_request(), PACER, 5.0)
        assert exc_info.value.context.http_status == 503
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_timeout_raises_network_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(NetworkError) as exc_info:
            await _transport(handler).send(_request(), PACER, 5.0)
        assert exc_info.value.category == ErrorCategory.TIMEOUT

    @pytest.mark.asyncio
    async def test_connect_error_raises_network(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(NetworkError) as exc_info:
            await _transport(handler).send(_request(), PACER, 5.0)
        assert exc_info.value.category == ErrorCategory.NETWORK

    @pytest.mark.asyncio
    async def test_missing_base_url(self):
        service = build_service("docket_bot", {"enabled": True})
        with pytest.raises(ConfigError, match="base_url"):
            await _transport(lambda r: httpx.Response(200)).send(_request(), service, 5.0)


class TestLocalTransport:
    @pytest.mark.asyncio
    async def test_dispatches_copy_of_parameters(self):
        local = LocalTransport()
        received = []

        @local.handler("pacer", "fileCase")
        async def file_case(params):
            params["mutated"] = True
            received.append(params)
            return {"ok": True}

        request = _request(case_number="7")
        response = await local.send(request, PACER, None)
        assert response.data == {"ok": True}
        assert "mutated" not in request.parameters
        assert local.handles("pacer")
        assert local.handles("pacer", "fileCase")
        assert not local.handles("pacer", "sealCase")

    @pytest.mark.asyncio
    async def test_unknown_operation_is_404(self):
        response = await LocalTransport().send(_request("sealCase"), PACER, None)
        assert response.status_code == 404
        assert "sealCase" in response.error


class TestRoutingTransport:
    @pytest.mark.asyncio
    async def test_routes_by_service_name(self):
        local = LocalTransport()
        local.register("pacer", "fileCase", _echo)
        fallback = LocalTransport()
        routing = RoutingTransport(fallback, {"pacer": local})

        assert (await routing.send(_request(), PACER, None)).data == {"via": "local"}

        westlaw = build_service("westlaw", {"enabled": True})
        assert (await routing.send(_request(), westlaw, None)).status_code == 404


async def _echo(params):
    return {"via": "local"}
