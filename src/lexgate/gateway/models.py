"""Request/response envelopes passed through the integration gateway."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from lexgate.core.errors import ErrorCategory, LexgateError


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:16]}"


@dataclass
class IntegrationRequest:
    """A call to ``operation`` on a third-party ``service``."""

    service: str
    operation: str
    parameters: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    timeout: float | None = None
    id: str = field(default_factory=new_request_id)

    def header(self, name: str) -> str | None:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


@dataclass
class IntegrationResponse:
    """Outcome of a routed request. The gateway never raises; it returns one of these."""

    request_id: str
    service: str
    operation: str
    success: bool
    status_code: int = 200
    data: Any = None
    error: str | None = None
    error_category: ErrorCategory | None = None
    retryable: bool = False
    headers: dict[str, str] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)
    duration_ms: float = 0.0
    id: str = field(default_factory=lambda: f"res_{uuid.uuid4().hex[:16]}")

    @classmethod
    def ok(
        cls,
        request: IntegrationRequest,
        data: Any = None,
        status_code: int = 200,
        headers: dict[str, str] | None = None,
    ) -> IntegrationResponse:
        return cls(
            request_id=request.id,
            service=request.service,
            operation=request.operation,
            success=True,
            status_code=status_code,
            data=data,
            headers=dict(headers or {}),
        )

    @classmethod
    def fail(
        cls,
        request: IntegrationRequest,
        error: str,
        status_code: int,
        *,
        category: ErrorCategory | None = None,
        retryable: bool = False,
        data: Any = None,
        headers: dict[str, str] | None = None,
    ) -> IntegrationResponse:
        return cls(
            request_id=request.id,
            service=request.service,
            operation=request.operation,
            success=False,
            status_code=status_code,
            data=data,
            error=error,
            error_category=category,
            retryable=retryable,
            headers=dict(headers or {}),
        )

    @classmethod
    def from_error(
        cls,
        request: IntegrationRequest,
        error: LexgateError,
        status_code: int,
        headers: dict[str, str] | None = None,
    ) -> IntegrationResponse:
        return cls.fail(
            request,
            error.message,
            status_code,
            category=error.category,
            retryable=error.retryable,
            headers=headers,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "request_id": self.request_id,
            "service": self.service,
            "operation": self.operation,
            "success": self.success,
            "status_code": self.status_code,
            "data": self.data,
            "error": self.error,
            "error_category": self.error_category.value if self.error_category else None,
            "retryable": self.retryable,
            "timestamp": self.timestamp.isoformat(),
            "duration_ms": round(self.duration_ms, 3),
        }


@dataclass(frozen=True)
class Principal:
    """The authenticated owner of an API key."""

    id: str
    services: frozenset[str] = frozenset({"*"})
    admin: bool = False

    def can_access(self, service: str) -> bool:
        return "*" in self.services or service in self.services


SYSTEM_PRINCIPAL = Principal(id="system", services=frozenset({"*"}), admin=True)


__all__ = [
    "IntegrationRequest",
    "IntegrationResponse",
    "Principal",
    "SYSTEM_PRINCIPAL",
    "new_request_id",
    "utcnow",
]
