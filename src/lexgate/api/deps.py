"""
FastAPI dependency injection: shared singletons and per-request principals.

Usage in routers::

    from lexgate.api.deps import Gateway, AdminPrincipal

    @router.post("/admin/circuit-breakers/{service}/reset")
    def reset(service: str, gateway: Gateway, _: AdminPrincipal):
        ...

Manifesto:
    Routers stay thin. The gateway, orchestrator and webhook processor
    are built once by ``create_app`` and stored on ``app.state``; routers
    receive them through these dependencies, which makes them trivial to
    replace in tests.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from lexgate.core.config.settings import GatewaySettings
from lexgate.core.errors import AuthorizationError
from lexgate.gateway.gateway import IntegrationGateway
from lexgate.gateway.models import Principal
from lexgate.orchestration.orchestrator import IntegrationOrchestrator
from lexgate.webhooks.processor import WebhookProcessor


def get_app_settings(request: Request) -> GatewaySettings:
    return request.app.state.settings


def get_gateway(request: Request) -> IntegrationGateway:
    return request.app.state.gateway


def get_orchestrator(request: Request) -> IntegrationOrchestrator:
    return request.app.state.orchestrator


def get_webhook_processor(request: Request) -> WebhookProcessor:
    return request.app.state.webhooks


def get_principal(
    request: Request,
    gateway: Annotated[IntegrationGateway, Depends(get_gateway)],
) -> Principal:
    """Authenticate the caller's API key (401 when missing or invalid)."""
    return gateway.authenticator.authenticate(request.headers.get(gateway.api_key_header))


def require_admin(principal: Annotated[Principal, Depends(get_principal)]) -> Principal:
    """Authenticated principal that also holds admin rights (else 403)."""
    if not principal.admin:
        raise AuthorizationError("Admin access required").with_context(principal_id=principal.id)
    return principal


# ── Convenience type aliases ─────────────────────────────────────────────

Settings = Annotated[GatewaySettings, Depends(get_app_settings)]
Gateway = Annotated[IntegrationGateway, Depends(get_gateway)]
Orchestrator = Annotated[IntegrationOrchestrator, Depends(get_orchestrator)]
Webhooks = Annotated[WebhookProcessor, Depends(get_webhook_processor)]
CurrentPrincipal = Annotated[Principal, Depends(get_principal)]
AdminPrincipal = Annotated[Principal, Depends(require_admin)]
