"""
Inbound payment notifications: verify, normalize, dispatch.

``WebhookProcessor.process(provider, body, headers)`` is the whole
lifecycle of a webhook call:

1. Parse the provider's wire format (XML, form, JSON).
2. Verify the signature; any mismatch raises SignatureError.
3. Normalize into a :class:`PaymentNotification` (Decimal amount, status
   mapped to :class:`PaymentStatus`).
4. Await every handler registered for that provider (and the catch-all).
5. Return the acknowledgement body the provider expects.

Handler failures propagate so the HTTP layer answers 500 and the
provider redelivers.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any
from urllib.parse import parse_qsl

from cryptography.hazmat.primitives.asymmetric import rsa

from lexgate.core.config.settings import GatewaySettings
from lexgate.core.errors import NotFoundError, SignatureError, ValidationError
from lexgate.core.logging import get_logger
from lexgate.gateway.models import utcnow
from lexgate.webhooks import signatures

logger = get_logger(__name__)

# Provider timestamps are Beijing time.
_CHINA_TZ = timezone(timedelta(hours=8))


class PaymentProvider(str, Enum):
    ALIPAY = "alipay"
    WECHAT_PAY = "wechat_pay"
    GENERIC = "generic"

    @classmethod
    def parse(cls, value: str) -> PaymentProvider:
        normalized = value.strip().lower().replace("-", "_")
        if normalized == "wechat":
            normalized = cls.WECHAT_PAY.value
        try:
            return cls(normalized)
        except ValueError:
            raise NotFoundError(f"Unknown webhook provider '{value}'") from None


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"
    UNKNOWN = "UNKNOWN"


_ALIPAY_STATUS = {
    "WAIT_BUYER_PAY": PaymentStatus.PENDING,
    "TRADE_PENDING": PaymentStatus.PENDING,
    "TRADE_CLOSED": PaymentStatus.CANCELLED,
    "TRADE_SUCCESS": PaymentStatus.COMPLETED,
    "TRADE_FINISHED": PaymentStatus.COMPLETED,
}

_WECHAT_TRADE_STATE = {
    "SUCCESS": PaymentStatus.COMPLETED,
    "REFUND": PaymentStatus.REFUNDED,
    "NOTPAY": PaymentStatus.PENDING,
    "USERPAYING": PaymentStatus.PENDING,
    "CLOSED": PaymentStatus.CANCELLED,
    "REVOKED": PaymentStatus.CANCELLED,
    "PAYERROR": PaymentStatus.FAILED,
}


def alipay_status(trade_status: str | None) -> PaymentStatus:
    return _ALIPAY_STATUS.get(trade_status or "", PaymentStatus.UNKNOWN)


def wechat_status(result_code: str | None, trade_state: str | None = None) -> PaymentStatus:
    """FAILED unless result_code is SUCCESS; then trade_state decides (absent means paid)."""
    if result_code != "SUCCESS":
        return PaymentStatus.FAILED
    if not trade_state:
        return PaymentStatus.COMPLETED
    return _WECHAT_TRADE_STATE.get(trade_state, PaymentStatus.UNKNOWN)


@dataclass(frozen=True)
class PaymentNotification:
    """A verified payment event, provider-independent."""

    provider: PaymentProvider
    transaction_id: str
    order_id: str
    amount: Decimal
    status: PaymentStatus
    timestamp: datetime
    raw: dict[str, Any] = field(default_factory=dict)
    event: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider.value,
            "transaction_id": self.transaction_id,
            "order_id": self.order_id,
            "amount": str(self.amount),
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "event": self.event,
        }


@dataclass(frozen=True)
class WebhookResult:
    """Verified notification plus the acknowledgement to send back."""

    notification: PaymentNotification
    ack_body: str
    media_type: str


NotificationHandler = Callable[[PaymentNotification], Awaitable[Any]]


def _decimal(value: Any, field_name: str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid amount in '{field_name}': {value!r}") from None
    if not amount.is_finite():
        raise ValidationError(f"Invalid amount in '{field_name}': {value!r}")
    return amount


def _parse_time(value: str | None, fmt: str) -> datetime:
    if not value:
        return utcnow()
    try:
        return datetime.strptime(value, fmt).replace(tzinfo=_CHINA_TZ)
    except ValueError:
        return utcnow()


class WebhookProcessor:
    """Verifies and dispatches payment notifications.

    Args:
        wechat_api_key: Merchant API key used for WeChat Pay signatures
        alipay_public_key: Alipay RSA public key (PEM string or loaded key)
        secret: Shared secret for generic HMAC webhooks
        allowed_events: Accepted ``event`` values for generic webhooks
        enabled: When False every call is rejected as not found
    """

    def __init__(
        self,
        *,
        wechat_api_key: str | None = None,
        alipay_public_key: str | rsa.RSAPublicKey | None = None,
        secret: str | None = None,
        allowed_events: Iterable[str] | None = None,
        enabled: bool = True,
    ) -> None:
        self.wechat_api_key = wechat_api_key
        if isinstance(alipay_public_key, str):
            alipay_public_key = signatures.load_public_key(alipay_public_key)
        self.alipay_public_key = alipay_public_key
        self.secret = secret
        self.allowed_events = set(allowed_events) if allowed_events is not None else None
        self.enabled = enabled
        self._handlers: dict[PaymentProvider | None, list[NotificationHandler]] = {}

    @classmethod
    def from_settings(cls, settings: GatewaySettings) -> WebhookProcessor:
        def secret(value: Any) -> str | None:
            return value.get_secret_value() if value is not None else None

        return cls(
            wechat_api_key=secret(settings.wechat_api_key),
            alipay_public_key=secret(settings.alipay_public_key),
            secret=secret(settings.webhook_secret),
            allowed_events=settings.webhook_allowed_events,
            enabled=settings.webhooks_enabled,
        )

    def subscribe(self, handler: NotificationHandler, provider: PaymentProvider | str | None = None) -> None:
        """Register ``handler`` for one provider, or for all when ``provider`` is None."""
        key = PaymentProvider.parse(provider) if isinstance(provider, str) else provider
        self._handlers.setdefault(key, []).append(handler)

    async def process(
        self,
        provider: str | PaymentProvider,
        body: bytes,
        headers: Mapping[str, str] | None = None,
    ) -> WebhookResult:
        """Verify, normalize and dispatch one webhook call.

        Raises:
            NotFoundError: unknown provider or webhooks disabled
            SignatureError: signature missing, wrong, or not configurable
            ValidationError: unparseable body or disallowed event
        """
        if not self.enabled:
            raise NotFoundError("Webhooks are disabled")
        provider = provider if isinstance(provider, PaymentProvider) else PaymentProvider.parse(provider)
        headers = {k.lower(): v for k, v in (headers or {}).items()}

        if provider == PaymentProvider.WECHAT_PAY:
            notification = self._wechat(body)
            result = WebhookResult(notification, signatures.wechat_ack(), "application/xml")
        elif provider == PaymentProvider.ALIPAY:
            notification = self._alipay(body)
            result = WebhookResult(notification, "success", "text/plain")
        else:
            notification = self._generic(body, headers.get("x-signature"))
            result = WebhookResult(notification, json.dumps({"success": True}), "application/json")

        logger.info(
            "webhook.verified",
            provider=provider.value,
            transaction_id=notification.transaction_id,
            order_id=notification.order_id,
            status=notification.status.value,
        )
        await self._dispatch(notification)
        return result

    async def _dispatch(self, notification: PaymentNotification) -> None:
        handlers = [*self._handlers.get(notification.provider, []), *self._handlers.get(None, [])]
        for handler in handlers:
            try:
                await handler(notification)
            except Exception:
                logger.exception(
                    "webhook.handler_failed",
                    provider=notification.provider.value,
                    transaction_id=notification.transaction_id,
                )
                raise

    # ── Providers ────────────────────────────────────────────────────

    def _wechat(self, body: bytes) -> PaymentNotification:
        if not self.wechat_api_key:
            raise SignatureError("WeChat Pay API key is not configured")
        params = signatures.parse_wechat_xml(body)
        if params.get("return_code") not in (None, "", "SUCCESS"):
            raise ValidationError(f"WeChat Pay communication failure: {params.get('return_msg', '')}")
        if not signatures.verify_wechat(params, self.wechat_api_key):
            logger.warning("webhook.signature_invalid", provider="wechat_pay")
            raise SignatureError("Invalid WeChat Pay signature")

        fen = _decimal(params.get("total_fee", "0"), "total_fee")
        return PaymentNotification(
            provider=PaymentProvider.WECHAT_PAY,
            transaction_id=params.get("transaction_id", ""),
            order_id=params.get("out_trade_no", ""),
            amount=(fen / 100).quantize(Decimal("0.01")),
            status=wechat_status(params.get("result_code"), params.get("trade_state")),
            timestamp=_parse_time(params.get("time_end"), "%Y%m%d%H%M%S"),
            raw=dict(params),
        )

    def _alipay(self, body: bytes) -> PaymentNotification:
        if self.alipay_public_key is None:
            raise SignatureError("Alipay public key is not configured")
        try:
            text = body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ValidationError(f"Alipay notification is not valid UTF-8: {e}", cause=e) from e
        params = dict(parse_qsl(text, keep_blank_values=True))
        if not signatures.verify_alipay(params, self.alipay_public_key):
            logger.warning("webhook.signature_invalid", provider="alipay")
            raise SignatureError("Invalid Alipay signature")

        return PaymentNotification(
            provider=PaymentProvider.ALIPAY,
            transaction_id=params.get("trade_no", ""),
            order_id=params.get("out_trade_no", ""),
            amount=_decimal(params.get("total_amount", "0"), "total_amount"),
            status=alipay_status(params.get("trade_status")),
            timestamp=_parse_time(params.get("gmt_payment"), "%Y-%m-%d %H:%M:%S"),
            raw=params,
        )

    def _generic(self, body: bytes, header_signature: str | None) -> PaymentNotification:
        if not self.secret:
            raise SignatureError("Webhook secret is not configured")
        try:
            payload = json.loads(body or b"{}")
        except ValueError as e:
            raise ValidationError(f"Webhook body is not valid JSON: {e}", cause=e) from e
        if not isinstance(payload, dict):
            raise ValidationError("Webhook body must be a JSON object")

        signature = header_signature or payload.get("signature")
        if not signatures.verify_generic(payload, signature, self.secret):
            logger.warning("webhook.signature_invalid", provider="generic")
            raise SignatureError("Invalid webhook signature")

        event = payload.get("event")
        if event is not None and not isinstance(event, str):
            raise ValidationError("Webhook event must be a string")
        if event is not None and self.allowed_events is not None and event not in self.allowed_events:
            raise ValidationError(f"Webhook event '{event}' is not allowed")

        status_value = str(payload.get("status", "UNKNOWN")).upper()
        status = PaymentStatus(status_value) if status_value in PaymentStatus.__members__ else PaymentStatus.UNKNOWN
        timestamp = utcnow()
        if payload.get("timestamp"):
            try:
                timestamp = datetime.fromisoformat(str(payload["timestamp"]))
            except ValueError:
                raise ValidationError(f"Invalid timestamp: {payload['timestamp']!r}") from None

        return PaymentNotification(
            provider=PaymentProvider.GENERIC,
            transaction_id=str(payload.get("transaction_id", "")),
            order_id=str(payload.get("order_id", "")),
            amount=_decimal(payload.get("amount", "0"), "amount"),
            status=status,
            timestamp=timestamp,
            raw=payload,
            event=event,
        )


__all__ = [
    "NotificationHandler",
    "PaymentNotification",
    "PaymentProvider",
    "PaymentStatus",
    "WebhookProcessor",
    "WebhookResult",
    "alipay_status",
    "wechat_status",
]
