"""scorelens runs -- list metric runs saved in the project store."""

from __future__ import annotations

from typing import Optional

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from scorelens.errors import ConfigError, CorruptRunError
from scorelens.explanation.interpretation import format_percent
from scorelens.models.config import find_project_root, load_project_config
from scorelens.models.run import MetricRun
from scorelens.storage.json_store import RunStore


def runs(
    limit: int = typer.Option(10, "--limit", "-l", help="Number of most recent runs to show"),
    metric: Optional[str] = typer.Option(None, "--metric", "-m", help="Filter by metric name"),
) -> None:
    """List saved metric runs, most recent last."""
    console = Console()

    project_root = find_project_root()
    try:
        project_config = load_project_config(project_root)
    except ConfigError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=1)
    if not (project_root / project_config.storage_dir).exists():
        console.print("[dim]No saved runs. Use 'scorelens explain RUN_FILE --save' first.[/dim]")
        raise typer.Exit(code=0)

    store = RunStore(project_root, storage_dir=project_config.storage_dir)
    run_ids = store.list_runs(metric_name=metric)
    if not run_ids:
        if metric:
            console.print(f"[dim]No runs found for metric '{metric}'.[/dim]")
        else:
            console.print("[dim]No runs found.[/dim]")
        raise typer.Exit(code=0)

    loaded: list[MetricRun] = []
    for run_id in run_ids[-limit:]:
        try:
            loaded.append(store.load_run(run_id))
        except (FileNotFoundError, CorruptRunError):
            console.print(f"[dim]Warning: skipping run {run_id} (could not load)[/dim]")

    table = Table(box=box.ROUNDED, title="Metric Runs")
    table.add_column("Run ID")
    table.add_column("Metric")
    table.add_column("Score", justify="right")
    table.add_column("Models", justify="right")
    table.add_column("Excluded", justify="right")
    table.add_column("Explained", justify="center")

    for run in loaded:
        explained = store.load_explanation(run.run_id) is not None
        table.add_row(
            run.run_id,
            run.metric_name,
            format_percent(run.aggregated_score),
            str(len(run.model_ids)),
            str(len(run.exclusions)),
            "✓" if explained else "-",
        )

    console.print(table)
    console.print(f"\n{len(loaded)} run(s) shown.")
