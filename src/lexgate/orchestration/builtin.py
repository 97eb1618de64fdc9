"""Built-in workflows and the ``internal`` service handlers they rely on."""

from __future__ import annotations

from typing import Any

from lexgate.core.errors import ValidationError
from lexgate.execution.retry import RetryPolicy
from lexgate.gateway.models import utcnow
from lexgate.gateway.transports import LocalTransport
from lexgate.orchestration.models import WorkflowDefinition, WorkflowStep

CASE_FILING_WORKFLOW_ID = "case-filing"

_CASE_REQUIRED_FIELDS = ("case_number", "court")


def case_filing_workflow() -> WorkflowDefinition:
    """Validate a case, file it with PACER, then update the case record."""
    return WorkflowDefinition(
        id=CASE_FILING_WORKFLOW_ID,
        name="Case Filing Workflow",
        description="File a case with court system and update internal records",
        steps=[
            WorkflowStep(id="validate-case", service="internal", operation="validateCase"),
            WorkflowStep(
                id="file-with-court",
                service="pacer",
                operation="fileCase",
                retry=RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=5.0, backoff_multiplier=2.0),
            ),
            WorkflowStep(id="update-internal-records", service="internal", operation="updateCaseRecord"),
        ],
    )


def builtin_workflows() -> list[WorkflowDefinition]:
    return [case_filing_workflow()]


async def validate_case(params: dict[str, Any]) -> dict[str, Any]:
    missing = [f for f in _CASE_REQUIRED_FIELDS if not params.get(f)]
    if missing:
        raise ValidationError(f"Missing case fields: {', '.join(missing)}")
    return {"valid": True, "case_number": params["case_number"], "court": params["court"]}


async def update_case_record(params: dict[str, Any]) -> dict[str, Any]:
    if not params.get("case_number"):
        raise ValidationError("case_number is required")
    return {
        "updated": True,
        "case_number": params["case_number"],
        "updated_at": utcnow().isoformat(),
    }


def register_internal_handlers(transport: LocalTransport) -> LocalTransport:
    """Install the ``internal`` operations used by the built-in workflows."""
    transport.register("internal", "validateCase", validate_case)
    transport.register("internal", "updateCaseRecord", update_case_record)
    return transport


__all__ = [
    "CASE_FILING_WORKFLOW_ID",
    "builtin_workflows",
    "case_filing_workflow",
    "register_internal_handlers",
    "update_case_record",
    "validate_case",
]
