"""Request bodies for the orchestration endpoints."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from lexgate.core.config.services import RetryConfig
from lexgate.execution.retry import RetryPolicy
from lexgate.orchestration.models import (
    Compensation,
    CoordinationStrategy,
    ServiceCall,
    TransactionalOperation,
)


class ExecuteWorkflowRequest(BaseModel):
    parameters: dict[str, Any] = Field(default_factory=dict)
    user_id: str | None = None


class ServiceCallBody(BaseModel):
    service: str
    operation: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    timeout: float | None = Field(default=None, gt=0)
    retry: RetryConfig | None = None

    def to_call(self) -> ServiceCall:
        return ServiceCall(
            service=self.service,
            operation=self.operation,
            parameters=dict(self.parameters),
            timeout=self.timeout,
            retry=RetryPolicy.from_config(self.retry) if self.retry else None,
        )


class CoordinateRequest(BaseModel):
    calls: list[ServiceCallBody] = Field(min_length=1)
    strategy: CoordinationStrategy = CoordinationStrategy.SEQUENTIAL


class CompensationBody(BaseModel):
    service: str
    operation: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class TransactionOperationBody(BaseModel):
    id: str
    service: str
    operation: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    compensation: CompensationBody | None = None

    def to_operation(self) -> TransactionalOperation:
        compensation = None
        if self.compensation is not None:
            compensation = Compensation(
                service=self.compensation.service,
                operation=self.compensation.operation,
                parameters=dict(self.compensation.parameters),
            )
        return TransactionalOperation(
            id=self.id,
            service=self.service,
            operation=self.operation,
            parameters=dict(self.parameters),
            compensation=compensation,
        )


class TransactionRequest(BaseModel):
    operations: list[TransactionOperationBody] = Field(min_length=1)
