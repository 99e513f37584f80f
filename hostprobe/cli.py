"""hostprobe CLI.

Serves the probes over HTTP, or lists and runs them locally.
"""

import asyncio
import inspect
from typing import Optional

import click
import uvicorn
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from hostprobe.api.encoders import encode_text
from hostprobe.config import ProbeSettings, set_settings
from hostprobe.errors import HttpError
from hostprobe.probes import (
    DispatchPolicy,
    ProbeContext,
    ProbeRegistry,
    register_builtin_probes,
)

console = Console()


def print_error(text: str) -> None:
    console.print(f"[red]Error: {escape(text)}[/red]")


@click.group()
def cli():
    """Diagnostic probes over HTTP."""
    pass


@cli.command()
@click.option("--listen", default=None, help="Listen address, e.g. :8080")
@click.option(
    "--policy",
    type=click.Choice([p.value for p in DispatchPolicy]),
    default=None,
    help="What dispatching all probes does when one fails",
)
@click.option(
    "--default-content-type",
    default=None,
    help="Media type used when Accept negotiation is inconclusive",
)
def serve(
    listen: Optional[str], policy: Optional[str], default_content_type: Optional[str]
):
    """Serve the probes over HTTP."""
    overrides = {
        "listen": listen,
        "dispatch_policy": policy,
        "default_content_type": default_content_type,
    }
    try:
        settings = ProbeSettings(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as e:
        print_error(str(e))
        raise SystemExit(2)
    set_settings(settings)

    from hostprobe.api.main import create_app

    host, port = settings.bind()
    uvicorn.run(create_app(settings), host=host, port=port, log_config=None)


@cli.command(name="list")
def list_probes():
    """List the built-in probes."""
    registry = register_builtin_probes(ProbeRegistry())

    table = Table(title="Probes")
    table.add_column("Name", style="cyan")
    table.add_column("Description", style="white")
    for name in registry.names():
        doc = inspect.getdoc(registry.get(name)) or ""
        table.add_row(name, doc.splitlines()[0] if doc else "")
    console.print(table)


@cli.command()
@click.argument("name", default="")
def run(name: str):
    """Run one probe (or all with no NAME) and print the text rendering."""
    registry = register_builtin_probes(ProbeRegistry())
    ctx = ProbeContext("CLI-1")
    try:
        payload = asyncio.run(registry.dispatch(ctx, name))
    except HttpError as e:
        print_error(f"{e.status} {e.message}")
        raise SystemExit(1)
    click.echo(encode_text(payload), nl=False)


if __name__ == "__main__":
    cli()
