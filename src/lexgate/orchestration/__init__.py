"""Workflow orchestration over the integration gateway."""

from lexgate.orchestration.builtin import (
    CASE_FILING_WORKFLOW_ID,
    builtin_workflows,
    case_filing_workflow,
    register_internal_handlers,
)
from lexgate.orchestration.loader import WorkflowSpec, load_workflows_dir
from lexgate.orchestration.models import (
    Compensation,
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
from lexgate.orchestration.orchestrator import (
    GatewayServiceCaller,
    IntegrationOrchestrator,
    ServiceCaller,
    default_aggregator,
)

__all__ = [
    "CASE_FILING_WORKFLOW_ID",
    "Compensation",
    "CoordinationResult",
    "CoordinationStrategy",
    "ExecutionStatus",
    "GatewayServiceCaller",
    "IntegrationOrchestrator",
    "ServiceCall",
    "ServiceCaller",
    "ServiceResult",
    "StepResult",
    "TransactionResult",
    "TransactionalOperation",
    "WorkflowContext",
    "WorkflowDefinition",
    "WorkflowExecution",
    "WorkflowResult",
    "WorkflowSpec",
    "WorkflowStep",
    "builtin_workflows",
    "case_filing_workflow",
    "default_aggregator",
    "load_workflows_dir",
    "register_internal_handlers",
]
