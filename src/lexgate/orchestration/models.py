"""
Orchestration data model: service calls, workflows, executions, transactions.

Everything here is a plain dataclass. ``WorkflowExecution`` is the only
stateful type: it is appended to while its workflow runs and frozen once it
reaches COMPLETED or FAILED.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from lexgate.core.errors import ExecutionStateError
from lexgate.execution.retry import RetryPolicy
from lexgate.gateway.models import utcnow


class CoordinationStrategy(str, Enum):
    """How ``coordinate`` issues a batch of service calls."""

    SEQUENTIAL = "SEQUENTIAL"
    PARALLEL = "PARALLEL"
    FAN_OUT_FAN_IN = "FAN_OUT_FAN_IN"


class ExecutionStatus(str, Enum):
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not ExecutionStatus.RUNNING


# ── Service calls ────────────────────────────────────────────────────────


@dataclass
class ServiceCall:
    """One gateway call issued by the orchestrator."""

    service: str
    operation: str
    parameters: dict[str, Any] = field(default_factory=dict)
    timeout: float | None = None
    retry: RetryPolicy | None = None


@dataclass
class ServiceResult:
    """Outcome of a :class:`ServiceCall`."""

    service: str
    operation: str
    success: bool
    data: Any = None
    error: str | None = None
    status_code: int | None = None
    retryable: bool = False
    duration_ms: float = 0.0
    attempts: int = 1

    @classmethod
    def failed(cls, call: ServiceCall, error: str, duration_ms: float = 0.0) -> ServiceResult:
        return cls(
            service=call.service,
            operation=call.operation,
            success=False,
            error=error,
            duration_ms=duration_ms,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "service": self.service,
            "operation": self.operation,
            "success": self.success,
            "data": self.data,
            "error": self.error,
            "status_code": self.status_code,
            "duration_ms": round(self.duration_ms, 3),
            "attempts": self.attempts,
        }


@dataclass
class CoordinationResult:
    """Outcome of ``coordinate``; ``aggregate`` is only set for FAN_OUT_FAN_IN."""

    strategy: CoordinationStrategy
    success: bool
    results: list[ServiceResult] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    aggregate: Any = None
    duration_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy": self.strategy.value,
            "success": self.success,
            "results": [r.to_dict() for r in self.results],
            "errors": list(self.errors),
            "aggregate": self.aggregate,
            "duration_ms": round(self.duration_ms, 3),
        }


# ── Workflows ────────────────────────────────────────────────────────────


@dataclass
class WorkflowStep:
    """A single gateway call inside a workflow."""

    id: str
    service: str
    operation: str
    parameters: dict[str, Any] = field(default_factory=dict)
    optional: bool = False
    timeout: float | None = None
    retry: RetryPolicy | None = None


@dataclass
class WorkflowDefinition:
    """An ordered list of steps registered under ``id``."""

    id: str
    name: str
    steps: list[WorkflowStep]
    description: str = ""

    def __post_init__(self) -> None:
        ids = [step.id for step in self.steps]
        duplicates = {i for i in ids if ids.count(i) > 1}
        if duplicates:
            raise ValueError(f"Duplicate step ids in workflow '{self.id}': {sorted(duplicates)}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "steps": [
                {
                    "id": s.id,
                    "service": s.service,
                    "operation": s.operation,
                    "optional": s.optional,
                    "timeout": s.timeout,
                    "retry": s.retry.to_dict() if s.retry else None,
                }
                for s in self.steps
            ],
        }


@dataclass
class WorkflowContext:
    """Inputs and accumulated step data for one execution."""

    workflow_id: str
    execution_id: str
    parameters: dict[str, Any] = field(default_factory=dict)
    state: dict[str, Any] = field(default_factory=dict)
    user_id: str | None = None
    started_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class StepResult:
    """Outcome of one workflow step."""

    step_id: str
    service: str
    operation: str
    success: bool
    data: Any = None
    error: str | None = None
    duration_ms: float = 0.0
    retry_count: int = 0
    optional: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_id": self.step_id,
            "service": self.service,
            "operation": self.operation,
            "success": self.success,
            "data": self.data,
            "error": self.error,
            "duration_ms": round(self.duration_ms, 3),
            "retry_count": self.retry_count,
            "optional": self.optional,
        }


@dataclass
class WorkflowExecution:
    """History record of one workflow run.

    Steps are appended while RUNNING; ``finish`` moves it to a terminal
    status, after which ``add_step`` and ``finish`` raise ExecutionStateError.
    """

    workflow_id: str
    id: str = field(default_factory=lambda: f"exec_{uuid.uuid4().hex[:16]}")
    user_id: str | None = None
    status: ExecutionStatus = ExecutionStatus.RUNNING
    start_time: datetime = field(default_factory=utcnow)
    end_time: datetime | None = None
    error: str | None = None
    _steps: list[StepResult] = field(default_factory=list, repr=False)

    @property
    def steps(self) -> tuple[StepResult, ...]:
        return tuple(self._steps)

    @property
    def success(self) -> bool:
        return self.status == ExecutionStatus.COMPLETED

    @property
    def duration_ms(self) -> float | None:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds() * 1000

    def _ensure_running(self) -> None:
        if self.status.is_terminal:
            raise ExecutionStateError(
                f"Execution '{self.id}' is already {self.status.value}"
            ).with_context(execution_id=self.id, workflow_id=self.workflow_id)

    def add_step(self, result: StepResult) -> None:
        self._ensure_running()
        self._steps.append(result)

    def finish(self, status: ExecutionStatus, error: str | None = None) -> None:
        self._ensure_running()
        if not status.is_terminal:
            raise ExecutionStateError(f"Cannot finish execution '{self.id}' as {status.value}")
        self.status = status
        self.error = error
        self.end_time = utcnow()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "user_id": self.user_id,
            "status": self.status.value,
            "success": self.success,
            "steps": [s.to_dict() for s in self._steps],
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_ms": self.duration_ms,
            "error": self.error,
        }


@dataclass
class WorkflowResult:
    """What ``execute_workflow`` returns: the execution plus its context."""

    execution: WorkflowExecution
    context: WorkflowContext

    @property
    def success(self) -> bool:
        return self.execution.success

    @property
    def error(self) -> str | None:
        return self.execution.error

    @property
    def steps(self) -> tuple[StepResult, ...]:
        return self.execution.steps

    def to_dict(self) -> dict[str, Any]:
        data = self.execution.to_dict()
        data["state"] = self.context.state
        return data


# ── Transactions ─────────────────────────────────────────────────────────


@dataclass
class Compensation:
    """Corrective call that undoes a completed transactional operation."""

    service: str
    operation: str
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass
class TransactionalOperation:
    id: str
    service: str
    operation: str
    parameters: dict[str, Any] = field(default_factory=dict)
    compensation: Compensation | None = None


@dataclass
class TransactionResult:
    success: bool
    transaction_id: str
    results: list[ServiceResult] = field(default_factory=list)
    compensations: list[ServiceResult] = field(default_factory=list)
    error: str | None = None
    duration_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "transaction_id": self.transaction_id,
            "results": [r.to_dict() for r in self.results],
            "compensations": [c.to_dict() for c in self.compensations],
            "error": self.error,
            "duration_ms": round(self.duration_ms, 3),
        }


__all__ = [
    "Compensation",
    "CoordinationResult",
    "CoordinationStrategy",
    "ExecutionStatus",
    "ServiceCall",
    "ServiceResult",
    "StepResult",
    "TransactionResult",
    "TransactionalOperation",
    "WorkflowContext",
    "WorkflowDefinition",
    "WorkflowExecution",
    "WorkflowResult",
    "WorkflowStep",
]
