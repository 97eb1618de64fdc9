"""
CLI: ``lexgate workflow`` lists, validates and runs workflows.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer

from lexgate.cli.utils import console, fail, parse_params, print_json, print_table
from lexgate.core.config.settings import get_settings
from lexgate.core.errors import ConfigError, LexgateError
from lexgate.orchestration.loader import WorkflowSpec

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_workflows(json_out: bool = typer.Option(False, "--json")) -> None:
    """List built-in workflows and those in the workflows directory."""
    from lexgate.api.app import build_orchestrator, default_transport
    from lexgate.gateway.gateway import IntegrationGateway

    settings = get_settings()
    try:
        gateway = IntegrationGateway.from_settings(settings, transport=default_transport())
        orchestrator = build_orchestrator(gateway, settings)
    except ConfigError as e:
        fail(e)

    workflows = [w.to_dict() for w in orchestrator.list_workflows()]
    if json_out:
        print_json(workflows)
        return
    print_table(
        [
            {"id": w["id"], "name": w["name"], "steps": " -> ".join(s["id"] for s in w["steps"])}
            for w in workflows
        ],
        title="Workflows",
    )


@app.command("validate")
def validate(path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Workflow YAML file")) -> None:
    """Validate a workflow YAML file."""
    try:
        definition = WorkflowSpec.from_yaml_file(path).to_definition()
    except ConfigError as e:
        fail(e)
    console.print(f"[green]OK[/green] {definition.id}: {len(definition.steps)} steps")


@app.command("run")
def run_workflow(
    workflow_id: str = typer.Argument(..., help="Workflow id"),
    param: list[str] = typer.Option([], "--param", "-p", help="key=value parameter (repeatable)"),
    user_id: str | None = typer.Option(None, "--user"),
) -> None:
    """Execute a workflow in-process through a gateway built from settings."""
    from lexgate.api.app import build_orchestrator, default_transport
    from lexgate.gateway.gateway import IntegrationGateway

    parameters = parse_params(param)
    settings = get_settings()

    async def _run() -> dict:
        gateway = IntegrationGateway.from_settings(settings, transport=default_transport())
        try:
            orchestrator = build_orchestrator(gateway, settings)
            result = await orchestrator.execute_workflow(workflow_id, parameters, user_id=user_id)
            return result.to_dict()
        finally:
            await gateway.aclose()

    try:
        outcome = asyncio.run(_run())
    except LexgateError as e:
        fail(e)
    print_json(outcome)
    if not outcome["success"]:
        raise typer.Exit(code=1)
