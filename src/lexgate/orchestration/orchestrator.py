"""
Integration orchestrator: workflows, coordinated calls and compensating transactions.

Manifesto:
    Filing a case touches the internal case store, a court system and the
    case store again. Each call can fail on its own; the orchestrator owns
    the order, the retries, and what happens to the work already done
    when a later call fails.

Capabilities::

    execute_workflow(id, parameters)     registered multi-step workflows, history kept
    coordinate(calls, strategy)          SEQUENTIAL | PARALLEL | FAN_OUT_FAN_IN
    execute_with_retry(op, policy)       backoff around any async operation
    execute_transaction(operations)      saga: compensate completed steps in reverse

All service calls go through a :class:`ServiceCaller`. The default,
:class:`GatewayServiceCaller`, uses the gateway's trusted ``invoke`` path so
rate limits and circuit breakers still apply.

Error handling:
    Nothing a service does escapes as an exception. Failed calls, raised
    exceptions and exhausted retries all become ``ServiceResult(success=False)``.
    Only asking for an unknown workflow raises (NotFoundError).

Tags:
    lexgate, orchestration, workflow, saga, compensation
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections import OrderedDict
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, Protocol, TypeVar

from lexgate.core.errors import NotFoundError, TransientError
from lexgate.core.logging import LogContext, get_logger
from lexgate.execution.retry import RetryExecutor, RetryPolicy, RetryState
from lexgate.gateway.gateway import IntegrationGateway
from lexgate.gateway.models import SYSTEM_PRINCIPAL, IntegrationRequest, Principal
from lexgate.orchestration.builtin import builtin_workflows
from lexgate.orchestration.models import (
    CoordinationResult,
    CoordinationStrategy,
    ExecutionStatus,
    ServiceCall,
    ServiceResult,
    StepResult,
    TransactionalOperation,
    TransactionResult,
    WorkflowContext,
    WorkflowDefinition,
    WorkflowExecution,
    WorkflowResult,
    WorkflowStep,
)

T = TypeVar("T")

logger = get_logger(__name__)

Aggregator = Callable[[list[ServiceResult]], Any]


class ServiceCaller(Protocol):
    """Executes one service call."""

    async def call(self, call: ServiceCall) -> ServiceResult: ...


class GatewayServiceCaller:
    """Routes orchestrated calls through :meth:`IntegrationGateway.invoke`."""

    def __init__(self, gateway: IntegrationGateway, principal: Principal = SYSTEM_PRINCIPAL) -> None:
        self.gateway = gateway
        self.principal = principal

    async def call(self, call: ServiceCall) -> ServiceResult:
        request = IntegrationRequest(
            service=call.service,
            operation=call.operation,
            parameters=dict(call.parameters),
            timeout=call.timeout,
        )
        response = await self.gateway.invoke(request, self.principal)
        return ServiceResult(
            service=call.service,
            operation=call.operation,
            success=response.success,
            data=response.data,
            error=response.error,
            status_code=response.status_code,
            retryable=response.retryable,
            duration_ms=response.duration_ms,
        )


class _RetryableResult(TransientError):
    """Carries an unsuccessful-but-retryable result through the retry executor."""

    def __init__(self, result: ServiceResult):
        super().__init__(result.error or f"{result.service}.{result.operation} failed")
        self.result = result


def default_aggregator(results: list[ServiceResult]) -> dict[str, Any]:
    """Group successful data by service.

    Returns ``{"result_count", "failed_count", "by_service": {service: [data, ...]}}``.
    """
    by_service: dict[str, list[Any]] = {}
    for result in results:
        if result.success:
            by_service.setdefault(result.service, []).append(result.data)
    succeeded = sum(1 for r in results if r.success)
    return {
        "result_count": succeeded,
        "failed_count": len(results) - succeeded,
        "by_service": by_service,
    }


def _transaction_id() -> str:
    return f"txn_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class IntegrationOrchestrator:
    """Coordinates multi-service operations.

    Args:
        caller: How individual service calls are made
        sleep: Async sleep used between retries (injectable for tests)
        step_retry: Policy for workflow steps that do not define one
        max_history: Executions kept for ``get_execution``/``list_executions``
        register_builtin: Register the built-in workflows (case-filing)
    """

    def __init__(
        self,
        caller: ServiceCaller,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        step_retry: RetryPolicy | None = None,
        max_history: int = 1000,
        register_builtin: bool = True,
    ) -> None:
        self.caller = caller
        self._sleep = sleep
        self.step_retry = step_retry or RetryPolicy()
        self.max_history = max_history
        self._workflows: dict[str, WorkflowDefinition] = {}
        self._executions: OrderedDict[str, WorkflowExecution] = OrderedDict()
        if register_builtin:
            for workflow in builtin_workflows():
                self.register_workflow(workflow)

    @classmethod
    def for_gateway(cls, gateway: IntegrationGateway, **kwargs: Any) -> IntegrationOrchestrator:
        return cls(GatewayServiceCaller(gateway), **kwargs)

    # ── Workflow registry ────────────────────────────────────────────

    def register_workflow(self, workflow: WorkflowDefinition) -> None:
        if workflow.id in self._workflows:
            logger.info("orchestrator.workflow_replaced", workflow_id=workflow.id)
        self._workflows[workflow.id] = workflow

    def get_workflow(self, workflow_id: str) -> WorkflowDefinition:
        workflow = self._workflows.get(workflow_id)
        if workflow is None:
            raise NotFoundError(f"Workflow '{workflow_id}' not found").with_context(workflow_id=workflow_id)
        return workflow

    def list_workflows(self) -> list[WorkflowDefinition]:
        return list(self._workflows.values())

    # ── Execution history ────────────────────────────────────────────

    def get_execution(self, execution_id: str) -> WorkflowExecution:
        execution = self._executions.get(execution_id)
        if execution is None:
            raise NotFoundError(f"Execution '{execution_id}' not found").with_context(execution_id=execution_id)
        return execution

    def list_executions(
        self,
        workflow_id: str | None = None,
        status: ExecutionStatus | None = None,
        limit: int | None = None,
    ) -> list[WorkflowExecution]:
        """Most recent first."""
        found = [
            e for e in reversed(self._executions.values())
            if (workflow_id is None or e.workflow_id == workflow_id)
            and (status is None or e.status == status)
        ]
        return found[:limit] if limit is not None else found

    def _remember(self, execution: WorkflowExecution) -> None:
        self._executions[execution.id] = execution
        while len(self._executions) > self.max_history:
            self._executions.popitem(last=False)

    # ── Workflows ────────────────────────────────────────────────────

    async def execute_workflow(
        self,
        workflow_id: str,
        parameters: dict[str, Any] | None = None,
        user_id: str | None = None,
    ) -> WorkflowResult:
        """Run a registered workflow step by step.

        Raises:
            NotFoundError: unknown ``workflow_id``
        """
        workflow = self.get_workflow(workflow_id)
        execution = WorkflowExecution(workflow_id=workflow.id, user_id=user_id)
        context = WorkflowContext(
            workflow_id=workflow.id,
            execution_id=execution.id,
            parameters=dict(parameters or {}),
            user_id=user_id,
        )
        self._remember(execution)

        async with LogContext(workflow_id=workflow.id, execution_id=execution.id):
            logger.info("workflow.started", steps=len(workflow.steps), user_id=user_id)
            failure: str | None = None

            for step in workflow.steps:
                result = await self._run_step(step, context)
                execution.add_step(result)

                if result.success:
                    context.state[step.id] = result.data
                    continue

                if step.optional:
                    logger.warning("workflow.optional_step_failed", step_id=step.id, error=result.error)
                    continue

                failure = f"Step {step.id} failed: {result.error}"
                break

            if failure is None:
                execution.finish(ExecutionStatus.COMPLETED)
                logger.info("workflow.completed", duration_ms=execution.duration_ms)
            else:
                execution.finish(ExecutionStatus.FAILED, error=failure)
                logger.warning("workflow.failed", error=failure, duration_ms=execution.duration_ms)

        return WorkflowResult(execution=execution, context=context)

    async def _run_step(self, step: WorkflowStep, context: WorkflowContext) -> StepResult:
        call = ServiceCall(
            service=step.service,
            operation=step.operation,
            parameters={**step.parameters, **context.parameters},
            timeout=step.timeout,
        )
        logger.info("workflow.step_started", step_id=step.id, service=step.service, operation=step.operation)

        start = time.perf_counter()
        result = await self._call_with_policy(call, step.retry or self.step_retry)
        duration_ms = (time.perf_counter() - start) * 1000

        return StepResult(
            step_id=step.id,
            service=step.service,
            operation=step.operation,
            success=result.success,
            data=result.data,
            error=result.error,
            duration_ms=duration_ms,
            retry_count=result.attempts - 1,
            optional=step.optional,
        )

    # ── Single calls ─────────────────────────────────────────────────

    async def _safe_call(self, call: ServiceCall) -> ServiceResult:
        """One attempt; exceptions become failed results."""
        start = time.perf_counter()
        try:
            return await self.caller.call(call)
        except Exception as e:
            logger.warning(
                "orchestrator.call_raised",
                service=call.service,
                operation=call.operation,
                error=str(e),
            )
            return ServiceResult.failed(call, str(e), (time.perf_counter() - start) * 1000)

    async def _call_with_policy(self, call: ServiceCall, policy: RetryPolicy) -> ServiceResult:
        """Call under ``policy``, retrying retryable failures and exceptions."""
        state = RetryState()

        async def attempt() -> ServiceResult:
            result = await self.caller.call(call)
            if not result.success and result.retryable:
                raise _RetryableResult(result)
            return result

        executor = RetryExecutor(policy, sleep=self._sleep, name=f"{call.service}.{call.operation}")
        try:
            result = await executor.run(attempt, state)
        except _RetryableResult as e:
            result = e.result
        except Exception as e:
            result = ServiceResult.failed(call, str(e))
        result.attempts = state.attempts
        return result

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy | None = None,
    ) -> T:
        """Run ``operation`` with backoff; the last error propagates."""
        executor = RetryExecutor(policy or RetryPolicy(), sleep=self._sleep)
        return await executor.run(operation)

    # ── Coordination ─────────────────────────────────────────────────

    async def coordinate(
        self,
        calls: Iterable[ServiceCall],
        strategy: CoordinationStrategy = CoordinationStrategy.SEQUENTIAL,
        aggregator: Aggregator | None = None,
    ) -> CoordinationResult:
        """Issue ``calls`` using ``strategy``.

        SEQUENTIAL stops at the first failure. PARALLEL and FAN_OUT_FAN_IN
        run every call concurrently; FAN_OUT_FAN_IN additionally folds the
        results with ``aggregator`` (default: :func:`default_aggregator`).
        """
        calls = list(calls)
        strategy = CoordinationStrategy(strategy)
        start = time.perf_counter()
        logger.info("orchestrator.coordinate_started", strategy=strategy.value, call_count=len(calls))

        results: list[ServiceResult] = []
        if strategy == CoordinationStrategy.SEQUENTIAL:
            for call in calls:
                result = await self._dispatch(call)
                results.append(result)
                if not result.success:
                    break
        else:
            results = list(await asyncio.gather(*(self._dispatch(call) for call in calls)))

        errors = [f"Service {r.service} failed: {r.error}" for r in results if not r.success]
        outcome = CoordinationResult(
            strategy=strategy,
            success=not errors,
            results=results,
            errors=errors,
        )
        if strategy == CoordinationStrategy.FAN_OUT_FAN_IN:
            outcome.aggregate = (aggregator or default_aggregator)(results)

        outcome.duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "orchestrator.coordinate_finished",
            strategy=strategy.value,
            success=outcome.success,
            executed=len(results),
            errors=len(errors),
        )
        return outcome

    async def _dispatch(self, call: ServiceCall) -> ServiceResult:
        if call.retry is not None:
            return await self._call_with_policy(call, call.retry)
        return await self._safe_call(call)

    # ── Transactions ─────────────────────────────────────────────────

    async def execute_transaction(self, operations: Iterable[TransactionalOperation]) -> TransactionResult:
        """Run ``operations`` in order; on failure, compensate completed ones in reverse."""
        operations = list(operations)
        transaction_id = _transaction_id()
        start = time.perf_counter()
        results: list[ServiceResult] = []
        completed: list[TransactionalOperation] = []
        error: str | None = None

        async with LogContext(transaction_id=transaction_id):
            logger.info("transaction.started", operation_count=len(operations))

            for op in operations:
                result = await self._safe_call(ServiceCall(op.service, op.operation, dict(op.parameters)))
                results.append(result)
                if not result.success:
                    error = f"Operation {op.id} failed: {result.error}"
                    break
                completed.append(op)

            compensations: list[ServiceResult] = []
            if error is not None:
                logger.warning("transaction.rolling_back", error=error, completed=len(completed))
                compensations = await self._compensate(completed)

            outcome = TransactionResult(
                success=error is None,
                transaction_id=transaction_id,
                results=results,
                compensations=compensations,
                error=error,
                duration_ms=(time.perf_counter() - start) * 1000,
            )
            logger.info("transaction.finished", success=outcome.success, compensations=len(compensations))
        return outcome

    async def _compensate(self, completed: list[TransactionalOperation]) -> list[ServiceResult]:
        """Best effort: each compensation is attempted once, failures are logged."""
        compensations: list[ServiceResult] = []
        for op in reversed(completed):
            if op.compensation is None:
                continue
            comp = op.compensation
            result = await self._safe_call(ServiceCall(comp.service, comp.operation, dict(comp.parameters)))
            compensations.append(result)
            if not result.success:
                logger.error(
                    "transaction.compensation_failed",
                    operation_id=op.id,
                    service=comp.service,
                    operation=comp.operation,
                    error=result.error,
                )
        return compensations


__all__ = [
    "Aggregator",
    "GatewayServiceCaller",
    "IntegrationOrchestrator",
    "ServiceCaller",
    "default_aggregator",
]
