"""Gateway endpoints: health, service table, metrics and routed calls.

Endpoints
---------
``GET  /health``                          gateway and per-service health
``GET  /services``                        configured services (no credentials)
``GET  /metrics``                         per-service counters
``GET  /rate-limit/{service}``            caller's current window
``POST /services/{service}/{operation}``  route one call through the gateway
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Query, Request
from fastapi.responses import JSONResponse

from lexgate.api.deps import CurrentPrincipal, Gateway
from lexgate.gateway.models import IntegrationRequest

router = APIRouter()


@router.get("/health")
async def gateway_health(gateway: Gateway) -> dict[str, Any]:
    """Overall gateway health, rolled up from per-service health."""
    health = gateway.monitor.system_health(gateway.active_services())
    health["gateway_enabled"] = gateway.enabled
    health["active_services"] = gateway.active_services()
    return health


@router.get("/services")
async def list_services(gateway: Gateway) -> dict[str, Any]:
    return {"services": gateway.list_services()}


@router.get("/metrics")
async def metrics(gateway: Gateway) -> dict[str, Any]:
    return {
        "services": {name: m.to_dict() for name, m in sorted(gateway.monitor.all_metrics().items())},
        "system": gateway.monitor.system_health(gateway.active_services()),
    }


@router.get("/rate-limit/{service}")
async def rate_limit_status(service: str, gateway: Gateway, principal: CurrentPrincipal) -> dict[str, Any]:
    """The caller's rate-limit window for ``service`` (does not consume a request)."""
    result = gateway.rate_limit_status(service, principal.id)
    return {
        "service": service,
        "identifier": principal.id,
        "limited": result is not None,
        "status": result.to_dict() if result else None,
    }


@router.post("/services/{service}/{operation}")
async def call_service(
    service: str,
    operation: str,
    request: Request,
    gateway: Gateway,
    parameters: dict[str, Any] | None = Body(default=None),
    timeout: float | None = Query(default=None, gt=0),
) -> JSONResponse:
    """Route a call through the gateway.

    The JSON body is passed to the service as the operation's parameters.
    The caller's API key travels in the configured header. The response is
    always an :class:`IntegrationResponse` envelope, with the gateway's
    status code and rate-limit headers.
    """
    integration_request = IntegrationRequest(
        service=service,
        operation=operation,
        parameters=parameters or {},
        headers=dict(request.headers),
        timeout=timeout,
    )
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        integration_request.id = request_id

    response = await gateway.route_request(integration_request)
    return JSONResponse(
        status_code=response.status_code,
        content=response.to_dict(),
        headers=response.headers,
    )
