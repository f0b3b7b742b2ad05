from pathlib import Path

import typer
from rich.console import Console
from pydantic import ValidationError
from rich.table import Table

from docrest.config import build_registry, load_config
from docrest.core.errors import SchemaError
from docrest.db import InMemoryDocumentStore

console = Console()


def routes(
    config: Path = typer.Option(..., "--config", "-c", exists=True, dir_okay=False, help="API config file (JSON)."),
) -> None:
    """Print the routes generated for CONFIG, in binding order."""
    try:
        registry = build_registry(load_config(config), InMemoryDocumentStore())
    except (SchemaError, ValidationError) as exc:
        console.print(f"[red]Invalid configuration:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    table = Table(title=f"Routes ({len(registry.routes)})")
    table.add_column("Method", style="cyan")
    table.add_column("Path", style="green")
    table.add_column("Name")
    table.add_column("Middleware", justify="right")
    for descriptor in registry.routes:
        table.add_row(descriptor.method, descriptor.path, descriptor.name, str(len(descriptor.middleware)))
    console.print(table)
