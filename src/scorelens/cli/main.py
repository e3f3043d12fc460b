"""scorelens CLI entry point."""

import logging
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from scorelens import __version__
from scorelens.cli.aggregate_cmd import aggregate
from scorelens.cli.explain_cmd import explain
from scorelens.cli.metrics_cmd import metrics
from scorelens.cli.runs_cmd import runs
from scorelens.errors import ConfigError
from scorelens.models.config import load_project_config

app = typer.Typer(
    name="scorelens",
    help="Explain and aggregate multi-model evaluation scores",
    no_args_is_help=True,
)

# Register subcommands
app.command()(aggregate)
app.command()(explain)
app.command()(metrics)
app.command()(runs)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"scorelens {__version__}")
        raise typer.Exit()


def configure_logging(level: str) -> None:
    """Route library logging to stderr through Rich."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Logging level (DEBUG, INFO, WARNING, ERROR). Defaults to scorelens.yaml.",
    ),
) -> None:
    """Explain and aggregate multi-model evaluation scores."""
    if log_level is None:
        try:
            log_level = load_project_config().log_level
        except ConfigError as exc:
            typer.echo(f"Error: {exc}", err=True)
            raise typer.Exit(code=1)
    if log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR"):
        typer.echo(f"Error: invalid log level '{log_level}'", err=True)
        raise typer.Exit(code=1)
    configure_logging(log_level)
