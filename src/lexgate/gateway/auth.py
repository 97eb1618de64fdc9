"""API-key authentication for gateway callers.

Keys are never stored in clear: the store indexes records by the SHA-256
digest of the key and compares digests with :func:`hmac.compare_digest`.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from lexgate.core.config.settings import ApiKeyConfig
from lexgate.core.errors import AuthenticationError, AuthorizationError, NotFoundError, ValidationError
from lexgate.core.logging import get_logger
from lexgate.gateway.models import Principal, utcnow

logger = get_logger(__name__)


def hash_api_key(key: str) -> str:
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def generate_api_key(prefix: str = "lgk") -> str:
    """Create a new random API key."""
    return f"{prefix}_{secrets.token_urlsafe(32)}"


@dataclass
class ApiKeyRecord:
    """A provisioned API key (hash only) and what it may access."""

    key_hash: str
    principal_id: str
    services: frozenset[str] = frozenset({"*"})
    admin: bool = False
    active: bool = True
    expires_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    last_used_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at

    def principal(self) -> Principal:
        return Principal(id=self.principal_id, services=self.services, admin=self.admin)


class ApiKeyStore(Protocol):
    """Lookup of API key records by key hash."""

    def get(self, key_hash: str) -> ApiKeyRecord | None: ...

    def add(self, record: ApiKeyRecord) -> None: ...

    def touch(self, key_hash: str, when: datetime) -> None: ...

    def revoke(self, key_hash: str) -> bool: ...


class InMemoryApiKeyStore:
    """Process-local key store."""

    def __init__(self, records: Iterable[ApiKeyRecord] = ()) -> None:
        self._records: dict[str, ApiKeyRecord] = {}
        self._lock = threading.Lock()
        for record in records:
            self.add(record)

    @classmethod
    def from_config(cls, keys: Iterable[ApiKeyConfig]) -> InMemoryApiKeyStore:
        return cls(
            ApiKeyRecord(
                key_hash=hash_api_key(k.key.get_secret_value()),
                principal_id=k.principal_id,
                services=frozenset(k.services),
                admin=k.admin,
                active=k.active,
                expires_at=k.expires_at,
            )
            for k in keys
        )

    def get(self, key_hash: str) -> ApiKeyRecord | None:
        with self._lock:
            for stored_hash, record in self._records.items():
                if hmac.compare_digest(stored_hash, key_hash):
                    return record
            return None

    def add(self, record: ApiKeyRecord) -> None:
        with self._lock:
            self._records[record.key_hash] = record

    def touch(self, key_hash: str, when: datetime) -> None:
        with self._lock:
            record = self._records.get(key_hash)
            if record is not None:
                record.last_used_at = when

    def revoke(self, key_hash: str) -> bool:
        with self._lock:
            record = self._records.get(key_hash)
            if record is None:
                return False
            record.active = False
            return True

    def __len__(self) -> int:
        return len(self._records)


class Authenticator:
    """Resolves API keys to principals and checks service grants."""

    def __init__(self, store: ApiKeyStore, now: Callable[[], datetime] = utcnow) -> None:
        self.store = store
        self._now = now

    def issue(
        self,
        principal_id: str,
        services: Iterable[str] = ("*",),
        *,
        admin: bool = False,
        expires_at: datetime | None = None,
    ) -> str:
        """Provision a new key and return it in clear (only time it is visible)."""
        key = generate_api_key()
        self.store.add(
            ApiKeyRecord(
                key_hash=hash_api_key(key),
                principal_id=principal_id,
                services=frozenset(services),
                admin=admin,
                expires_at=expires_at,
            )
        )
        logger.info("auth.key_issued", principal_id=principal_id, admin=admin)
        return key

    def authenticate(self, api_key: str | None) -> Principal:
        """Return the principal owning ``api_key``.

        Raises:
            AuthenticationError: missing, unknown, inactive or expired key
        """
        if not api_key:
            raise AuthenticationError("API key required")

        key_hash = hash_api_key(api_key)
        record = self.store.get(key_hash)
        if record is None:
            raise AuthenticationError("Invalid API key")
        if not record.active:
            raise AuthenticationError("API key is inactive")
        now = self._now()
        if record.is_expired(now):
            raise AuthenticationError("API key has expired")

        self.store.touch(key_hash, now)
        return record.principal()

    def revoke(self, api_key: str) -> ApiKeyRecord:
        """Deactivate ``api_key``; later calls with it fail authentication.

        Raises:
            NotFoundError: the key was never issued
        """
        key_hash = hash_api_key(api_key)
        record = self.store.get(key_hash)
        if record is None or not self.store.revoke(key_hash):
            raise NotFoundError("API key not found")
        logger.info("auth.key_revoked", principal_id=record.principal_id)
        return record

    def rotate(self, api_key: str, *, expires_at: datetime | None = None) -> str:
        """Replace ``api_key`` with a new key carrying the same grants.

        The old key is revoked. Only active keys can be rotated.

        Raises:
            NotFoundError: the key was never issued
            ValidationError: the key is already inactive
        """
        record = self.store.get(hash_api_key(api_key))
        if record is None:
            raise NotFoundError("API key not found")
        if not record.active:
            raise ValidationError("API key is inactive and cannot be rotated")
        new_key = self.issue(
            record.principal_id,
            record.services,
            admin=record.admin,
            expires_at=expires_at if expires_at is not None else record.expires_at,
        )
        self.revoke(api_key)
        logger.info("auth.key_rotated", principal_id=record.principal_id)
        return new_key

    @staticmethod
    def authorize(principal: Principal, service: str) -> None:
        """Raises AuthorizationError unless ``principal`` may call ``service``."""
        if not principal.can_access(service):
            raise AuthorizationError(
                f"Principal '{principal.id}' is not allowed to access service '{service}'"
            )


__all__ = [
    "ApiKeyRecord",
    "ApiKeyStore",
    "Authenticator",
    "InMemoryApiKeyStore",
    "generate_api_key",
    "hash_api_key",
]
