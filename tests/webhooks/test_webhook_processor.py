"""Tests for payment webhook processing."""

import json
from decimal import Decimal
from urllib.parse import urlencode

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from lexgate.core.config.settings import GatewaySettings
from lexgate.core.errors import NotFoundError, SignatureError, ValidationError
from lexgate.webhooks import PaymentProvider, PaymentStatus, WebhookProcessor
from lexgate.webhooks.processor import alipay_status, wechat_status
from lexgate.webhooks.signatures import alipay_sign, generic_sign, wechat_sign

WECHAT_KEY = "merchant-api-key"
SECRET = "generic-secret"


@pytest.fixture(scope="module")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def processor(rsa_key):
    return WebhookProcessor(
        wechat_api_key=WECHAT_KEY,
        alipay_public_key=rsa_key.public_key(),
        secret=SECRET,
        allowed_events=["payment.success", "payment.failure"],
    )


def wechat_body(**overrides):
    params = {
        "return_code": "SUCCESS",
        "result_code": "SUCCESS",
        "transaction_id": "4200001",
        "out_trade_no": "INV-2024-7",
        "total_fee": "12550",
        "time_end": "20240501093000",
        **overrides,
    }
    params["sign"] = wechat_sign(params, WECHAT_KEY)
    fields = "".join(f"<{k}><![CDATA[{v}]]></{k}>" for k, v in params.items())
    return f"<xml>{fields}</xml>".encode()


def alipay_body(key, **overrides):
    params = {
        "trade_no": "2024050122001",
        "out_trade_no": "INV-2024-8",
        "total_amount": "300.00",
        "trade_status": "TRADE_SUCCESS",
        "gmt_payment": "2024-05-01 09:30:00",
        "sign_type": "RSA2",
        **overrides,
    }
    params["sign"] = alipay_sign(params, key)
    return urlencode(params).encode()


def generic_payload(**overrides):
    payload = {
        "event": "payment.success",
        "transaction_id": "txn-9",
        "order_id": "INV-2024-9",
        "amount": "42.50",
        "status": "completed",
        "timestamp": "2024-05-01T09:30:00+00:00",
        **overrides,
    }
    return payload


class TestStatusMapping:
    @pytest.mark.parametrize(
        "trade_status, expected",
        [
            ("WAIT_BUYER_PAY", PaymentStatus.PENDING),
            ("TRADE_CLOSED", PaymentStatus.CANCELLED),
            ("TRADE_SUCCESS", PaymentStatus.COMPLETED),
            ("TRADE_FINISHED", PaymentStatus.COMPLETED),
            ("SOMETHING_NEW", PaymentStatus.UNKNOWN),
            (None, PaymentStatus.UNKNOWN),
        ],
    )
    def test_alipay(self, trade_status, expected):
        assert alipay_status(trade_status) == expected

    def test_wechat(self):
        assert wechat_status("FAIL") == PaymentStatus.FAILED
        assert wechat_status("SUCCESS") == PaymentStatus.COMPLETED
        assert wechat_status("SUCCESS", "REFUND") == PaymentStatus.REFUNDED
        assert wechat_status("SUCCESS", "NOTPAY") == PaymentStatus.PENDING
        assert wechat_status("SUCCESS", "MYSTERY") == PaymentStatus.UNKNOWN


class TestProviderParsing:
    def test_aliases(self):
        assert PaymentProvider.parse("wechat") == PaymentProvider.WECHAT_PAY
        assert PaymentProvider.parse("WeChat-Pay") == PaymentProvider.WECHAT_PAY
        assert PaymentProvider.parse("alipay") == PaymentProvider.ALIPAY

    def test_unknown(self):
        with pytest.raises(NotFoundError):
            PaymentProvider.parse("paypal")


class TestWeChat:
    @pytest.mark.asyncio
    async def test_valid_notification(self, processor):
        result = await processor.process("wechat_pay", wechat_body())
        notification = result.notification

        assert notification.provider == PaymentProvider.WECHAT_PAY
        assert notification.amount == Decimal("125.50")
        assert notification.status == PaymentStatus.COMPLETED
        assert notification.order_id == "INV-2024-7"
        assert notification.timestamp.utcoffset().total_seconds() == 8 * 3600
        assert result.media_type == "application/xml"
        assert "SUCCESS" in result.ack_body

    @pytest.mark.asyncio
    async def test_failed_payment(self, processor):
        result = await processor.process("wechat", wechat_body(result_code="FAIL"))
        assert result.notification.status == PaymentStatus.FAILED

    @pytest.mark.asyncio
    async def test_tampered_body(self, processor):
        body = wechat_body().replace(b"12550", b"1")
        with pytest.raises(SignatureError, match="WeChat"):
            await processor.process("wechat_pay", body)

    @pytest.mark.asyncio
    async def test_communication_failure(self, processor):
        with pytest.raises(ValidationError):
            await processor.process("wechat_pay", wechat_body(return_code="FAIL", return_msg="bad"))

    @pytest.mark.asyncio
    async def test_key_not_configured(self):
        with pytest.raises(SignatureError):
            await WebhookProcessor().process("wechat_pay", wechat_body())


class TestAlipay:
    @pytest.mark.asyncio
    async def test_valid_notification(self, processor, rsa_key):
        result = await processor.process("alipay", alipay_body(rsa_key))
        notification = result.notification

        assert notification.amount == Decimal("300.00")
        assert notification.status == PaymentStatus.COMPLETED
        assert notification.transaction_id == "2024050122001"
        assert result.ack_body == "success"
        assert result.media_type == "text/plain"

    @pytest.mark.asyncio
    async def test_signed_by_someone_else(self, processor):
        intruder = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        with pytest.raises(SignatureError, match="Alipay"):
            await processor.process("alipay", alipay_body(intruder))

    @pytest.mark.asyncio
    async def test_pem_string_key(self, rsa_key):
        pem = rsa_key.public_key().public_bytes(
            serialization.Encoding.PEM,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode()
        processor = WebhookProcessor(alipay_public_key=pem)
        result = await processor.process("alipay", alipay_body(rsa_key, trade_status="TRADE_CLOSED"))
        assert result.notification.status == PaymentStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_invalid_utf8_is_validation_error(self, processor):
        with pytest.raises(ValidationError, match="UTF-8"):
            await processor.process("alipay", b"trade_no=\xff\xfe&sign=abc")


class TestGeneric:
    @pytest.mark.asyncio
    async def test_header_signature(self, processor):
        payload = generic_payload()
        body = json.dumps(payload).encode()
        result = await processor.process("generic", body, {"X-Signature": generic_sign(payload, SECRET)})

        notification = result.notification
        assert notification.status == PaymentStatus.COMPLETED
        assert notification.amount == Decimal("42.50")
        assert notification.event == "payment.success"
        assert json.loads(result.ack_body) == {"success": True}

    @pytest.mark.asyncio
    async def test_body_signature(self, processor):
        payload = generic_payload(status="refunded")
        payload["signature"] = generic_sign(payload, SECRET)
        result = await processor.process("generic", json.dumps(payload).encode())
        assert result.notification.status == PaymentStatus.REFUNDED

    @pytest.mark.asyncio
    async def test_missing_signature(self, processor):
        with pytest.raises(SignatureError):
            await processor.process("generic", json.dumps(generic_payload()).encode())

    @pytest.mark.asyncio
    async def test_disallowed_event(self, processor):
        payload = generic_payload(event="account.deleted")
        payload["signature"] = generic_sign(payload, SECRET)
        with pytest.raises(ValidationError, match="not allowed"):
            await processor.process("generic", json.dumps(payload).encode())

    @pytest.mark.asyncio
    async def test_invalid_json(self, processor):
        with pytest.raises(ValidationError):
            await processor.process("generic", b"{not json")

    @pytest.mark.asyncio
    async def test_non_string_signature_is_rejected(self, processor):
        body = json.dumps(generic_payload(signature=12345)).encode()
        with pytest.raises(SignatureError):
            await processor.process("generic", body)

    @pytest.mark.asyncio
    async def test_non_string_event_is_rejected(self, processor):
        payload = generic_payload(event=["payment.success"])
        payload["signature"] = generic_sign(payload, SECRET)
        with pytest.raises(ValidationError, match="event"):
            await processor.process("generic", json.dumps(payload).encode())

    @pytest.mark.asyncio
    async def test_non_finite_amount_is_rejected(self, processor):
        payload = generic_payload(amount="NaN")
        payload["signature"] = generic_sign(payload, SECRET)
        with pytest.raises(ValidationError, match="amount"):
            await processor.process("generic", json.dumps(payload).encode())


class TestDispatch:
    @pytest.mark.asyncio
    async def test_provider_handlers_then_catch_all(self, processor, rsa_key):
        seen = []

        async def on_alipay(notification):
            seen.append(("alipay", notification.order_id))

        async def on_any(notification):
            seen.append(("any", notification.order_id))

        async def on_wechat(notification):
            seen.append(("wechat", notification.order_id))

        processor.subscribe(on_any)
        processor.subscribe(on_alipay, "alipay")
        processor.subscribe(on_wechat, PaymentProvider.WECHAT_PAY)

        await processor.process("alipay", alipay_body(rsa_key))
        assert seen == [("alipay", "INV-2024-8"), ("any", "INV-2024-8")]

    @pytest.mark.asyncio
    async def test_handler_failure_propagates(self, processor):
        async def broken(notification):
            raise RuntimeError("ledger unavailable")

        processor.subscribe(broken)
        with pytest.raises(RuntimeError, match="ledger"):
            await processor.process("wechat_pay", wechat_body())


class TestConfiguration:
    @pytest.mark.asyncio
    async def test_disabled(self):
        with pytest.raises(NotFoundError, match="disabled"):
            await WebhookProcessor(enabled=False).process("alipay", b"")

    @pytest.mark.asyncio
    async def test_from_settings(self):
        settings = GatewaySettings(wechat_api_key=WECHAT_KEY, webhook_secret=SECRET)
        processor = WebhookProcessor.from_settings(settings)
        assert processor.alipay_public_key is None
        assert processor.allowed_events == {"payment.success", "payment.failure", "court.filing.update"}
        result = await processor.process("wechat_pay", wechat_body())
        assert result.notification.amount == Decimal("125.50")
