"""Payment provider webhook endpoint.

``POST /webhooks/{provider}`` with ``provider`` one of ``alipay``,
``wechat_pay`` (or ``wechat``) and ``generic``. The raw body is verified
and parsed by :class:`WebhookProcessor`; the response body is whatever
the provider expects as an acknowledgement.

Signature failures answer 401 with a problem body, so the provider
treats the delivery as failed and retries it.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import Response

from lexgate.api.deps import Webhooks
from lexgate.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks")


@router.post("/{provider}")
async def receive_webhook(provider: str, request: Request, processor: Webhooks) -> Response:
    body = await request.body()
    result = await processor.process(provider, body, dict(request.headers))
    logger.info(
        "webhook.acknowledged",
        provider=result.notification.provider.value,
        transaction_id=result.notification.transaction_id,
    )
    return Response(content=result.ack_body, media_type=result.media_type)
