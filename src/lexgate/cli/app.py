"""
Root Typer application for the lexgate CLI.
"""

from __future__ import annotations

import sys
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version

import typer
from typer import Typer

from lexgate.cli.keys import app as keys_app
from lexgate.cli.serve import app as serve_app
from lexgate.cli.services import app as services_app
from lexgate.cli.workflow import app as wf_app
from lexgate.core.config.settings import get_settings
from lexgate.core.logging import configure_logging

app = Typer(
    name="lexgate",
    help="lexgate: integration gateway for legal practice systems.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        try:
            v = pkg_version("lexgate")
        except PackageNotFoundError:
            from lexgate import __version__ as v
        typer.echo(f"lexgate {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """lexgate CLI: inspect services, manage workflows and keys, run the API."""
    settings = get_settings()
    # stdout carries command output
    configure_logging(
        level=settings.log_level,
        json_format=settings.json_logs,
        sensitive_fields=settings.log_mask_fields,
        stream=sys.stderr,
    )


app.add_typer(services_app, name="services", help="Service table.")
app.add_typer(wf_app, name="workflow", help="Workflow management.")
app.add_typer(keys_app, name="keys", help="API key provisioning.")
app.add_typer(serve_app, name="serve", help="Start the API server.")
