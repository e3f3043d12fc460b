"""scorelens aggregate -- combine per-model scores into one score.

Uses the strategy and tolerance from scorelens.yaml unless overridden on
the command line. Scores given as 'none' stand for failed models and are
skipped.
"""

from __future__ import annotations

from typing import Optional

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from scorelens.consensus.aggregators import aggregate_scores, get_strategy
from scorelens.errors import ConfigError, ConsensusToleranceError, UnknownStrategyError
from scorelens.explanation.interpretation import format_percent
from scorelens.models.config import load_project_config


def _parse_score(raw: str) -> float | None:
    if raw.strip().lower() in ("none", "null", "-"):
        return None
    try:
        value = float(raw)
    except ValueError:
        raise typer.BadParameter(f"'{raw}' is not a number") from None
    if not 0.0 <= value <= 1.0:
        raise typer.BadParameter(f"score {value} is outside [0, 1]")
    return value


def aggregate(
    scores: list[str] = typer.Argument(..., help="Per-model scores in [0, 1]; 'none' for a failed model"),
    strategy: Optional[str] = typer.Option(None, "--strategy", "-s", help="Aggregation strategy"),
    tolerance: Optional[float] = typer.Option(
        None, "--tolerance", "-t", help="Maximum score spread for the consensus strategy"
    ),
) -> None:
    """Aggregate per-model scores with a consensus strategy."""
    console = Console()

    try:
        project_config = load_project_config()
    except ConfigError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=1)

    strategy_name = strategy or project_config.aggregation.strategy
    if tolerance is None:
        tolerance = project_config.aggregation.tolerance

    values = [_parse_score(raw) for raw in scores]

    try:
        resolved = get_strategy(strategy_name)
        result = aggregate_scores(values, resolved, tolerance=tolerance)
    except (UnknownStrategyError, ConsensusToleranceError) as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=1)

    table = Table(box=box.SIMPLE, show_header=False, padding=(0, 2))
    table.add_column("Key", style="bold")
    table.add_column("Value")
    table.add_row("Strategy", resolved.value)
    table.add_row("Models", f"{sum(v is not None for v in values)}/{len(values)} scored")
    if tolerance is not None:
        table.add_row("Tolerance", f"{tolerance:.2f}")
    table.add_row("Score", f"{result:.4f} ({format_percent(result)})" if result is not None else "N/A")
    console.print(table)
