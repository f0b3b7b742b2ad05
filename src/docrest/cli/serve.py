import logging
from pathlib import Path

import typer
from rich.console import Console

console = Console()


def serve(
    config: Path = typer.Option(..., "--config", "-c", exists=True, dir_okay=False, help="API config file (JSON)."),
    host: str = "127.0.0.1",
    port: int = 8000,
    log_level: str = typer.Option("info", help="Python logging level."),
    memory: bool = typer.Option(False, "--memory", help="Serve from an in-memory store instead of DATABASE_URL."),
) -> None:
    """Start the REST API for the collections in CONFIG."""
    import uvicorn

    from docrest.api.app import create_app
    from docrest.config import build_registry, load_config
    from docrest.core.ports.store import DocumentStore
    from docrest.db import InMemoryDocumentStore, SqlDocumentStore, get_engine

    logging.basicConfig(level=log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    store: DocumentStore = InMemoryDocumentStore() if memory else SqlDocumentStore(get_engine())
    registry = build_registry(load_config(config), store)
    app = create_app(store, registry)

    console.print(f"[green]Starting API server on {host}:{port}[/green] ({len(registry.routes)} routes)")
    uvicorn.run(app, host=host, port=port, log_level=log_level.lower())
