"""Tests for YAML workflow definitions."""

import pytest

from lexgate.core.errors import ConfigError
from lexgate.orchestration.loader import WorkflowSpec, load_workflows_dir

INTAKE_YAML = """
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
      timeout: 20
      retry:
        max_attempts: 3
        base_delay: 0.5
    - id: send-letter
      service: sendgrid
      operation: sendTemplate
      optional: true
      parameters:
        template: engagement-letter
"""


class TestWorkflowSpec:
    def test_parses_into_definition(self):
        definition = WorkflowSpec.from_yaml(INTAKE_YAML).to_definition()

        assert definition.id == "client-intake"
        assert definition.name == "Client Intake"
        first, second = definition.steps
        assert first.timeout == 20
        assert first.retry.max_attempts == 3
        assert first.retry.base_delay == 0.5
        assert second.optional
        assert second.retry is None
        assert second.parameters == {"template": "engagement-letter"}

    def test_name_defaults_to_id(self):
        content = "metadata:\n  id: ping\nspec:\n  steps:\n    - {id: a, service: internal, operation: ping}\n"
        assert WorkflowSpec.from_yaml(content).to_definition().name == "ping"

    @pytest.mark.parametrize(
        "content, message",
        [
            ("metadata: [", "Invalid YAML"),
            ("- just\n- a list\n", "must contain a mapping"),
            ("metadata:\n  id: x\nspec:\n  steps: []\n", "Invalid workflow"),
            ("kind: Job\nmetadata:\n  id: x\nspec:\n  steps:\n    - {id: a, service: s, operation: o}\n", "Invalid workflow"),
            (
                "metadata:\n  id: x\nspec:\n  steps:\n"
                "    - {id: a, service: s, operation: o}\n"
                "    - {id: a, service: s, operation: p}\n",
                "Duplicate step ids",
            ),
            ("metadata:\n  id: x\nspec:\n  steps:\n    - {id: a, service: s, operation: o, bogus: 1}\n", "Invalid workflow"),
        ],
    )
    def test_invalid_content(self, content, message):
        with pytest.raises(ConfigError, match=message):
            WorkflowSpec.from_yaml(content, source="inline.yaml")


class TestLoadDirectory:
    def test_loads_yaml_and_yml_sorted(self, tmp_path):
        (tmp_path / "b-intake.yaml").write_text(INTAKE_YAML)
        (tmp_path / "a-ping.yml").write_text(
            "metadata:\n  id: ping\nspec:\n  steps:\n    - {id: a, service: internal, operation: ping}\n"
        )
        (tmp_path / "notes.txt").write_text("ignored")

        workflows = load_workflows_dir(tmp_path)
        assert [w.id for w in workflows] == ["ping", "client-intake"]

    def test_missing_directory(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_workflows_dir(tmp_path / "nope")

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            WorkflowSpec.from_yaml_file(tmp_path / "nope.yaml")
