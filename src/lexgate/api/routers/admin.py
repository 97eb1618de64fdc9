"""Admin endpoints: circuit breakers, rate limits, alerts, service config and API keys.

Every route requires an API key whose principal has ``admin`` rights.
"""

from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Body, Query

from lexgate.api.deps import AdminPrincipal, Gateway
from lexgate.api.schemas import ApiKeyBody, RotateApiKeyRequest
from lexgate.core.config.services import build_service, check_service
from lexgate.core.errors import NotFoundError
from lexgate.core.logging import get_logger
from lexgate.gateway.auth import hash_api_key

logger = get_logger(__name__)

router = APIRouter(prefix="/admin")


@router.get("/circuit-breakers")
async def list_circuit_breakers(gateway: Gateway, principal: AdminPrincipal) -> dict[str, Any]:
    return {
        "circuit_breakers": {
            name: snapshot.to_dict() for name, snapshot in sorted(gateway.circuit_snapshots().items())
        }
    }


@router.post("/circuit-breakers/{service}/{action}")
async def change_circuit(
    service: str,
    action: Literal["reset", "open", "close"],
    gateway: Gateway,
    principal: AdminPrincipal,
) -> dict[str, Any]:
    """Reset, force open, or close the breaker for ``service``."""
    if action == "open":
        snapshot = gateway.open_circuit(service)
    elif action == "close":
        snapshot = gateway.close_circuit(service)
    else:
        snapshot = gateway.reset_circuit(service)
    logger.info("admin.circuit_changed", service=service, action=action, principal_id=principal.id)
    return {"service": service, "action": action, "circuit": snapshot.to_dict()}


@router.get("/rate-limits")
async def list_rate_limits(gateway: Gateway, principal: AdminPrincipal) -> dict[str, Any]:
    """Drop expired windows, then report limits and live key counts."""
    pruned = gateway.rate_limiters.prune()
    if pruned:
        logger.debug("admin.rate_limits_pruned", pruned=pruned)
    return {"rate_limits": gateway.rate_limiters.summary()}


@router.post("/rate-limits/{service}/reset")
async def reset_rate_limit(
    service: str,
    gateway: Gateway,
    principal: AdminPrincipal,
    identifier: str | None = Query(default=None, description="Reset one principal only"),
) -> dict[str, Any]:
    reset = gateway.reset_rate_limit(service, identifier)
    logger.info("admin.rate_limit_reset", service=service, identifier=identifier, principal_id=principal.id)
    return {"service": service, "identifier": identifier, "reset": reset}


@router.get("/alerts")
async def list_alerts(
    gateway: Gateway,
    principal: AdminPrincipal,
    include_resolved: bool = Query(default=False),
) -> dict[str, Any]:
    """Evaluate alert conditions, then list alerts."""
    gateway.monitor.check_alerts()
    return {"alerts": [a.to_dict() for a in gateway.monitor.alerts(include_resolved=include_resolved)]}


@router.post("/alerts/{alert_id}/resolve")
async def resolve_alert(alert_id: str, gateway: Gateway, principal: AdminPrincipal) -> dict[str, Any]:
    if not gateway.monitor.resolve_alert(alert_id):
        raise NotFoundError(f"Alert '{alert_id}' not found or already resolved")
    return {"id": alert_id, "resolved": True}


@router.get("/config/services")
async def list_service_configs(gateway: Gateway, principal: AdminPrincipal) -> dict[str, Any]:
    services = {}
    for name, service in sorted(gateway.services.items()):
        problems = check_service(service)
        services[name] = {**service.public_view(), "valid": not problems, "errors": problems}
    return {"services": services}


@router.post("/config/services/{service}/validate")
async def validate_service_config(
    service: str,
    gateway: Gateway,
    principal: AdminPrincipal,
    overrides: dict[str, Any] | None = Body(default=None),
) -> dict[str, Any]:
    """Check the current config of ``service`` with ``overrides`` applied; nothing is changed."""
    config = gateway.services.get(service) or build_service(service)
    problems = check_service(config, overrides)
    return {"service": service, "valid": not problems, "errors": problems}


@router.post("/api-keys/rotate")
async def rotate_api_key(body: RotateApiKeyRequest, gateway: Gateway, principal: AdminPrincipal) -> dict[str, Any]:
    old_key = body.api_key.get_secret_value()
    new_key = gateway.authenticator.rotate(old_key, expires_at=body.expires_at)
    record = gateway.authenticator.store.get(hash_api_key(new_key))
    logger.info("admin.api_key_rotated", principal_id=principal.id)
    return {"principal_id": record.principal_id, "api_key": new_key}


@router.post("/api-keys/revoke")
async def revoke_api_key(body: ApiKeyBody, gateway: Gateway, principal: AdminPrincipal) -> dict[str, Any]:
    record = gateway.authenticator.revoke(body.api_key.get_secret_value())
    logger.info("admin.api_key_revoked", principal_id=principal.id, owner=record.principal_id)
    return {"principal_id": record.principal_id, "revoked": True}
