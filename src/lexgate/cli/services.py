"""
CLI: ``lexgate services`` inspects the resolved service table.
"""

from __future__ import annotations

import typer

from lexgate.cli.utils import console, fail, print_json, print_table
from lexgate.core.config.settings import get_settings
from lexgate.core.errors import ConfigError

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_services(
    enabled_only: bool = typer.Option(False, "--enabled", help="Only enabled services"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List configured services (defaults, services file and env overrides)."""
    try:
        services = get_settings().service_configs()
    except ConfigError as e:
        fail(e)

    rows = [
        {
            "name": s.name,
            "category": s.category.value,
            "enabled": s.enabled,
            "base_url": s.base_url or "",
            "timeout": s.timeout,
            "rate_limit": f"{s.rate_limit.max_requests}/{s.rate_limit.window_seconds:g}s" if s.rate_limit.enabled else "off",
            "breaker": s.circuit_breaker.failure_threshold if s.circuit_breaker.enabled else "off",
        }
        for s in sorted(services.values(), key=lambda s: s.name)
        if s.enabled or not enabled_only
    ]
    if json_out:
        print_json(rows)
    else:
        print_table(rows, title="Services")


@app.command("show")
def show_service(
    name: str = typer.Argument(..., help="Service name"),
) -> None:
    """Show one service's configuration (credentials omitted)."""
    try:
        services = get_settings().service_configs()
    except ConfigError as e:
        fail(e)
    service = services.get(name)
    if service is None:
        console.print(f"[red]Unknown service:[/red] {name}")
        raise typer.Exit(code=1)
    print_json(service.public_view())
