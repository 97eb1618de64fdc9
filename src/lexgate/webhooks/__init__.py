"""Payment provider webhooks (Alipay, WeChat Pay, generic HMAC)."""

from lexgate.webhooks.processor import (
    PaymentNotification,
    PaymentProvider,
    PaymentStatus,
    WebhookProcessor,
    WebhookResult,
)

__all__ = [
    "PaymentNotification",
    "PaymentProvider",
    "PaymentStatus",
    "WebhookProcessor",
    "WebhookResult",
]
