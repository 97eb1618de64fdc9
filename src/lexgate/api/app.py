"""
FastAPI application factory.

``create_app()`` builds the gateway, orchestrator and webhook processor
from :class:`GatewaySettings`, wires middleware, routers and error
handlers, and returns a single ``FastAPI`` instance.

Manifesto:
    The app factory is the single composition root. Everything below it
    (gateway, orchestrator, webhooks) is plain Python that never touches
    FastAPI, and everything can be swapped by passing it in, which is how
    the tests drive the HTTP surface with in-process transports.

Tags:
    lexgate, api, app-factory, composition-root, FastAPI
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI

from lexgate.api.middleware.errors import lexgate_error_handler, unhandled_exception_handler
from lexgate.api.middleware.request_id import RequestIDMiddleware
from lexgate.core.config.settings import GatewaySettings, get_settings
from lexgate.core.errors import LexgateError
from lexgate.core.logging import configure_logging, get_logger
from lexgate.gateway.gateway import IntegrationGateway
from lexgate.gateway.transports import HttpTransport, LocalTransport, RoutingTransport, ServiceTransport
from lexgate.orchestration.builtin import register_internal_handlers
from lexgate.orchestration.loader import load_workflows_dir
from lexgate.orchestration.orchestrator import IntegrationOrchestrator
from lexgate.webhooks.processor import WebhookProcessor

logger = get_logger("lexgate.api")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup / shutdown hooks."""
    gateway: IntegrationGateway = app.state.gateway
    logger.info(
        "lexgate API starting",
        version=app.version,
        active_services=gateway.active_services(),
        workflows=len(app.state.orchestrator.list_workflows()),
    )
    yield
    await gateway.aclose()
    logger.info("lexgate API shutting down")


def default_transport() -> ServiceTransport:
    """HTTP for third-party services, in-process handlers for ``internal``."""
    local = register_internal_handlers(LocalTransport())
    return RoutingTransport(HttpTransport(), {"internal": local})


def build_orchestrator(gateway: IntegrationGateway, settings: GatewaySettings) -> IntegrationOrchestrator:
    orchestrator = IntegrationOrchestrator.for_gateway(gateway)
    if settings.workflows_dir:
        for workflow in load_workflows_dir(settings.workflows_dir):
            orchestrator.register_workflow(workflow)
        logger.info("workflows_loaded", directory=settings.workflows_dir)
    return orchestrator


def create_app(
    settings: GatewaySettings | None = None,
    *,
    gateway: IntegrationGateway | None = None,
    orchestrator: IntegrationOrchestrator | None = None,
    webhooks: WebhookProcessor | None = None,
    transport: ServiceTransport | None = None,
    configure_logs: bool = True,
) -> FastAPI:
    """Build and return a fully-configured FastAPI application.

    Parameters
    ----------
    settings : GatewaySettings | None
        Override settings (useful for testing). When ``None`` the cached
        singleton from :func:`get_settings` is used.
    gateway, orchestrator, webhooks
        Pre-built components; built from ``settings`` when omitted.
    transport : ServiceTransport | None
        Transport for a gateway built here (default: :func:`default_transport`).
    """
    settings = settings or get_settings()
    if configure_logs:
        configure_logging(
            level=settings.log_level,
            json_format=settings.json_logs,
            sensitive_fields=settings.log_mask_fields,
        )

    if gateway is None:
        gateway = IntegrationGateway.from_settings(settings, transport=transport or default_transport())
    if orchestrator is None:
        orchestrator = build_orchestrator(gateway, settings)
    if webhooks is None:
        webhooks = WebhookProcessor.from_settings(settings)

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
        docs_url=f"{settings.api_prefix}/docs",
        openapi_url=f"{settings.api_prefix}/openapi.json",
    )

    app.state.settings = settings
    app.state.gateway = gateway
    app.state.orchestrator = orchestrator
    app.state.webhooks = webhooks

    # ── Middleware ───────────────────────────────────────────────────
    app.add_middleware(RequestIDMiddleware)

    # ── Exception handlers ───────────────────────────────────────────
    app.add_exception_handler(LexgateError, lexgate_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # ── Routers ──────────────────────────────────────────────────────
    from lexgate.api.routers import admin, gateway as gateway_router, webhooks as webhooks_router, workflows

    prefix = settings.api_prefix

    @app.get("/health", tags=["health"])
    async def liveness() -> dict[str, Any]:
        """Liveness check for container healthchecks."""
        return {"status": "ok", "version": settings.api_version}

    app.include_router(gateway_router.router, prefix=prefix, tags=["gateway"])
    app.include_router(admin.router, prefix=prefix, tags=["admin"])
    app.include_router(workflows.router, prefix=prefix, tags=["workflows"])
    app.include_router(webhooks_router.router, prefix=prefix, tags=["webhooks"])

    return app
