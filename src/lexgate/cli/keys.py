"""
CLI: ``lexgate keys`` provisions gateway API keys.
"""

from __future__ import annotations

import typer

from lexgate.cli.utils import console, print_json
from lexgate.gateway.auth import generate_api_key, hash_api_key

app = typer.Typer(no_args_is_help=True)


@app.command("generate")
def generate(
    principal_id: str = typer.Argument(..., help="Owner of the key"),
    service: list[str] = typer.Option(["*"], "--service", "-s", help="Granted service (repeatable)"),
    admin: bool = typer.Option(False, "--admin"),
) -> None:
    """Generate a new API key and print its ``LEXGATE_API_KEYS`` entry.

    The plaintext key is shown once; only its hash is kept by the gateway.
    """
    key = generate_api_key()
    console.print(f"[bold]API key:[/bold] {key}")
    print_json({
        "key": key,
        "principal_id": principal_id,
        "services": service,
        "admin": admin,
        "sha256": hash_api_key(key),
    })
