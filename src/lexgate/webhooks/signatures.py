"""
Payment webhook signature schemes.

Each provider signs its notifications differently:

    WeChat Pay  MD5 (default) or HMAC-SHA256 over ``k=v&...&key=API_KEY``,
                uppercase hex; XML body
    Alipay      RSA2 (SHA256withRSA) over ``k=v&...``, base64; form body
    generic     HMAC-SHA256 hex over canonical JSON; JSON body

For WeChat and Alipay the signed string is built from the notification
fields sorted by key, skipping empty values and the signature fields
themselves. Comparisons of computed digests use ``hmac.compare_digest``.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
from collections.abc import Iterable, Mapping
from typing import Any
from xml.etree import ElementTree

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from lexgate.core.errors import ConfigError, ValidationError

WECHAT_SIGN_MD5 = "MD5"
WECHAT_SIGN_HMAC = "HMAC-SHA256"


def canonical_query(params: Mapping[str, Any], exclude: Iterable[str] = ("sign",)) -> str:
    """``k1=v1&k2=v2`` sorted by key, empty values and ``exclude`` keys skipped."""
    skipped = set(exclude)
    return "&".join(
        f"{k}={params[k]}"
        for k in sorted(params)
        if k not in skipped and params[k] not in (None, "")
    )


def canonical_json(payload: Any) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


# ── WeChat Pay ───────────────────────────────────────────────────────────


def parse_wechat_xml(body: bytes | str) -> dict[str, str]:
    """Flatten a ``<xml><field>value</field>...</xml>`` notification."""
    try:
        root = ElementTree.fromstring(body)
    except ElementTree.ParseError as e:
        raise ValidationError(f"Malformed WeChat Pay XML: {e}", cause=e) from e
    return {child.tag: (child.text or "").strip() for child in root}


def wechat_ack(success: bool = True, message: str = "OK") -> str:
    code = "SUCCESS" if success else "FAIL"
    return (
        f"<xml><return_code><![CDATA[{code}]]></return_code>"
        f"<return_msg><![CDATA[{message}]]></return_msg></xml>"
    )


def wechat_sign(params: Mapping[str, Any], api_key: str, sign_type: str | None = None) -> str:
    """Compute the WeChat Pay signature for ``params``."""
    sign_type = (sign_type or params.get("sign_type") or WECHAT_SIGN_MD5).upper()
    payload = f"{canonical_query(params)}&key={api_key}"
    if sign_type == WECHAT_SIGN_HMAC:
        digest = hmac.new(api_key.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()
    elif sign_type == WECHAT_SIGN_MD5:
        digest = hashlib.md5(payload.encode("utf-8")).hexdigest()
    else:
        raise ValidationError(f"Unsupported WeChat Pay sign_type: {sign_type}")
    return digest.upper()


def verify_wechat(params: Mapping[str, Any], api_key: str) -> bool:
    received = str(params.get("sign") or "")
    if not received:
        return False
    expected = wechat_sign(params, api_key)
    return hmac.compare_digest(expected.encode("utf-8"), received.upper().encode("utf-8"))


# ── Alipay ───────────────────────────────────────────────────────────────

ALIPAY_EXCLUDED = ("sign", "sign_type")


def load_public_key(pem: str | bytes) -> rsa.RSAPublicKey:
    """Load an RSA public key from PEM, or from the bare base64 body Alipay hands out."""
    data = pem.encode("ascii") if isinstance(pem, str) else pem
    if b"-----BEGIN" not in data:
        body = b"".join(data.split())
        lines = [body[i:i + 64] for i in range(0, len(body), 64)]
        data = b"-----BEGIN PUBLIC KEY-----\n" + b"\n".join(lines) + b"\n-----END PUBLIC KEY-----\n"
    try:
        key = serialization.load_pem_public_key(data)
    except ValueError as e:
        raise ConfigError(f"Invalid Alipay public key: {e}", cause=e) from e
    if not isinstance(key, rsa.RSAPublicKey):
        raise ConfigError("Alipay public key must be an RSA key")
    return key


def alipay_sign(params: Mapping[str, Any], private_key: rsa.RSAPrivateKey) -> str:
    """RSA2-sign ``params`` (used by tests and outbound requests)."""
    message = canonical_query(params, exclude=ALIPAY_EXCLUDED).encode("utf-8")
    signature = private_key.sign(message, padding.PKCS1v15(), hashes.SHA256())
    return base64.b64encode(signature).decode("ascii")


def verify_alipay(params: Mapping[str, Any], public_key: rsa.RSAPublicKey) -> bool:
    received = params.get("sign")
    if not received:
        return False
    sign_type = str(params.get("sign_type") or "RSA2").upper()
    algorithm = hashes.SHA256() if sign_type == "RSA2" else hashes.SHA1()
    try:
        signature = base64.b64decode(str(received), validate=True)
    except (binascii.Error, ValueError):
        return False
    message = canonical_query(params, exclude=ALIPAY_EXCLUDED).encode("utf-8")
    try:
        public_key.verify(signature, message, padding.PKCS1v15(), algorithm)
    except InvalidSignature:
        return False
    return True


# ── Generic HMAC ─────────────────────────────────────────────────────────


def generic_sign(payload: Mapping[str, Any], secret: str) -> str:
    body = {k: v for k, v in payload.items() if k != "signature"}
    return hmac.new(secret.encode("utf-8"), canonical_json(body).encode("utf-8"), hashlib.sha256).hexdigest()


def verify_generic(payload: Mapping[str, Any], signature: Any, secret: str) -> bool:
    """``signature`` comes from untrusted input; anything but a non-empty string fails."""
    if not isinstance(signature, str) or not signature:
        return False
    expected = generic_sign(payload, secret)
    return hmac.compare_digest(expected.encode("utf-8"), signature.lower().encode("utf-8"))


__all__ = [
    "alipay_sign",
    "canonical_json",
    "canonical_query",
    "generic_sign",
    "load_public_key",
    "parse_wechat_xml",
    "verify_alipay",
    "verify_generic",
    "verify_wechat",
    "wechat_ack",
    "wechat_sign",
]
