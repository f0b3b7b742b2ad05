import typer

from docrest.cli.routes import routes
from docrest.cli.serve import serve

app = typer.Typer(
    name="docrest",
    help="docrest CLI: serve REST endpoints generated from collection schemas.",
    no_args_is_help=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)

app.command("serve")(serve)
app.command("routes")(routes)


def main() -> None:
    app()
