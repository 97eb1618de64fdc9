"""Pydantic models for workflow YAML files.

Workflows can be declared in YAML and registered next to the built-in ones.

Usage::

    from lexgate.orchestration.loader import WorkflowSpec, load_workflows_dir

    spec = WorkflowSpec.from_yaml_file("workflows/client-intake.yaml")
    orchestrator.register_workflow(spec.to_definition())

    for workflow in load_workflows_dir("workflows/"):
        orchestrator.register_workflow(workflow)

Example YAML::

    apiVersion: lexgate/v1
    kind: Workflow
    metadata:
      id: client-intake
      name: Client Intake
      description: Conflict check, then engagement letter
    spec:
      steps:
        - id: conflict-check
          service: westlaw
          operation: conflictCheck
          retry:
            max_attempts: 3
            base_delay: 0.5
        - id: send-letter
          service: sendgrid
          operation: sendTemplate
          optional: true
          parameters:
            template: engagement-letter

Tags:
    lexgate, orchestration, yaml, declarative
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from lexgate.core.config.services import RetryConfig
from lexgate.core.errors import ConfigError
from lexgate.execution.retry import RetryPolicy
from lexgate.orchestration.models import WorkflowDefinition, WorkflowStep


class WorkflowMetadataSpec(BaseModel):
    """Metadata section of a workflow file."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1, description="Workflow id used to execute it")
    name: str = Field(default="", description="Display name (defaults to id)")
    description: str = Field(default="")


class WorkflowStepSpec(BaseModel):
    """One step of a workflow file."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1)
    service: str = Field(..., min_length=1)
    operation: str = Field(..., min_length=1)
    parameters: dict[str, Any] = Field(default_factory=dict)
    optional: bool = False
    timeout: float | None = Field(default=None, gt=0)
    retry: RetryConfig | None = None

    def to_step(self) -> WorkflowStep:
        return WorkflowStep(
            id=self.id,
            service=self.service,
            operation=self.operation,
            parameters=dict(self.parameters),
            optional=self.optional,
            timeout=self.timeout,
            retry=RetryPolicy.from_config(self.retry) if self.retry else None,
        )


class WorkflowSpecSection(BaseModel):
    model_config = ConfigDict(extra="forbid")

    steps: list[WorkflowStepSpec] = Field(..., min_length=1)

    @field_validator("steps")
    @classmethod
    def validate_unique_ids(cls, v: list[WorkflowStepSpec]) -> list[WorkflowStepSpec]:
        """Ensure step ids are unique."""
        ids = [step.id for step in v]
        if len(ids) != len(set(ids)):
            duplicates = {i for i in ids if ids.count(i) > 1}
            raise ValueError(f"Duplicate step ids: {sorted(duplicates)}")
        return v


class WorkflowSpec(BaseModel):
    """Root model of a workflow YAML file."""

    model_config = ConfigDict(extra="forbid")

    apiVersion: Literal["lexgate/v1"] = "lexgate/v1"
    kind: Literal["Workflow"] = "Workflow"
    metadata: WorkflowMetadataSpec
    spec: WorkflowSpecSection

    def to_definition(self) -> WorkflowDefinition:
        return WorkflowDefinition(
            id=self.metadata.id,
            name=self.metadata.name or self.metadata.id,
            description=self.metadata.description,
            steps=[step.to_step() for step in self.spec.steps],
        )

    @classmethod
    def from_yaml(cls, yaml_content: str, source: str = "<string>") -> WorkflowSpec:
        """Parse and validate YAML content.

        Raises:
            ConfigError: invalid YAML or schema violation
        """
        try:
            data = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {source}: {e}", cause=e) from e
        if not isinstance(data, dict):
            raise ConfigError(f"{source}: workflow file must contain a mapping")
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            raise ConfigError(f"Invalid workflow in {source}: {e}", cause=e) from e

    @classmethod
    def from_yaml_file(cls, path: str | Path) -> WorkflowSpec:
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Workflow file not found: {path}")
        return cls.from_yaml(path.read_text(encoding="utf-8"), source=str(path))


def load_workflows_dir(directory: str | Path) -> list[WorkflowDefinition]:
    """Load every ``*.yaml``/``*.yml`` workflow in ``directory`` (sorted by name)."""
    directory = Path(directory)
    if not directory.is_dir():
        raise ConfigError(f"Workflows directory not found: {directory}")
    files = sorted([*directory.glob("*.yaml"), *directory.glob("*.yml")])
    return [WorkflowSpec.from_yaml_file(f).to_definition() for f in files]


__all__ = [
    "WorkflowMetadataSpec",
    "WorkflowSpec",
    "WorkflowSpecSection",
    "WorkflowStepSpec",
    "load_workflows_dir",
]
