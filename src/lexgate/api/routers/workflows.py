"""Orchestration endpoints: workflows, executions, coordination, transactions.

Callers must authenticate, and must be granted every service the
workflow, coordination or transaction will touch. Calls themselves are
issued by the orchestrator under the system principal.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from fastapi import APIRouter, Query

from lexgate.api.deps import CurrentPrincipal, Orchestrator
from lexgate.api.schemas.integration import CoordinateRequest, ExecuteWorkflowRequest, TransactionRequest
from lexgate.gateway.auth import Authenticator
from lexgate.gateway.models import Principal
from lexgate.orchestration.models import ExecutionStatus

router = APIRouter()


def _authorize_all(principal: Principal, services: Iterable[str]) -> None:
    for service in sorted(set(services)):
        Authenticator.authorize(principal, service)


@router.get("/workflows")
async def list_workflows(orchestrator: Orchestrator) -> dict[str, Any]:
    return {"workflows": [w.to_dict() for w in orchestrator.list_workflows()]}


@router.post("/workflows/{workflow_id}/execute")
async def execute_workflow(
    workflow_id: str,
    orchestrator: Orchestrator,
    principal: CurrentPrincipal,
    body: ExecuteWorkflowRequest | None = None,
) -> dict[str, Any]:
    """Run a registered workflow and return its execution record."""
    body = body or ExecuteWorkflowRequest()
    workflow = orchestrator.get_workflow(workflow_id)
    _authorize_all(principal, (step.service for step in workflow.steps))
    result = await orchestrator.execute_workflow(
        workflow_id,
        body.parameters,
        user_id=body.user_id or principal.id,
    )
    return result.to_dict()


@router.get("/executions")
async def list_executions(
    orchestrator: Orchestrator,
    principal: CurrentPrincipal,
    workflow_id: str | None = Query(default=None),
    status: ExecutionStatus | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=1000),
) -> dict[str, Any]:
    executions = orchestrator.list_executions(workflow_id=workflow_id, status=status, limit=limit)
    return {"executions": [e.to_dict() for e in executions]}


@router.get("/executions/{execution_id}")
async def get_execution(execution_id: str, orchestrator: Orchestrator, principal: CurrentPrincipal) -> dict[str, Any]:
    return orchestrator.get_execution(execution_id).to_dict()


@router.post("/coordinate")
async def coordinate(body: CoordinateRequest, orchestrator: Orchestrator, principal: CurrentPrincipal) -> dict[str, Any]:
    _authorize_all(principal, (call.service for call in body.calls))
    result = await orchestrator.coordinate([call.to_call() for call in body.calls], body.strategy)
    return result.to_dict()


@router.post("/transactions")
async def execute_transaction(
    body: TransactionRequest,
    orchestrator: Orchestrator,
    principal: CurrentPrincipal,
) -> dict[str, Any]:
    """Run operations in order, compensating completed ones on failure."""
    services = [op.service for op in body.operations]
    services += [op.compensation.service for op in body.operations if op.compensation]
    _authorize_all(principal, services)
    result = await orchestrator.execute_transaction(op.to_operation() for op in body.operations)
    return result.to_dict()
