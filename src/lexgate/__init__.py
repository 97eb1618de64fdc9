"""
lexgate: integration gateway and orchestration layer for legal practice systems.

Third-party services (court e-filing, payments, legal research, document
storage, messaging) are reached through one :class:`IntegrationGateway`
that authenticates callers, enforces per-service quotas, and isolates
failing services behind circuit breakers. The
:class:`IntegrationOrchestrator` composes gateway calls into workflows,
parallel fan-outs and compensating transactions, and
:class:`WebhookProcessor` verifies inbound payment notifications.
"""

__version__ = "0.1.0"

from lexgate.gateway import IntegrationGateway, IntegrationRequest, IntegrationResponse
from lexgate.orchestration import IntegrationOrchestrator
from lexgate.webhooks import WebhookProcessor

__all__ = [
    "IntegrationGateway",
    "IntegrationOrchestrator",
    "IntegrationRequest",
    "IntegrationResponse",
    "WebhookProcessor",
    "__version__",
]
