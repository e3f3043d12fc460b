"""scorelens explain -- build and display the explanation for a metric run.

Accepts either a path to a run file (JSON or YAML, a serialized
MetricRun) or the ID of a run saved in the project's .scorelens/ store.
Renders the explanation with Rich, or prints it as JSON for scripting.
"""

from __future__ import annotations

from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console

from scorelens.cli.output import render_explanation
from scorelens.dispatch import dispatch
from scorelens.errors import ConfigError, CorruptRunError
from scorelens.explanation.interpretation import format_percent
from scorelens.models.config import ProjectConfig, find_project_root, load_project_config
from scorelens.models.run import MetricRun
from scorelens.storage.json_store import RunStore


def load_run_file(path: Path) -> MetricRun:
    """Load a MetricRun from a JSON or YAML file.

    Raises:
        CorruptRunError: If the file cannot be parsed or is not a valid run.
    """
    content = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() in (".yaml", ".yml"):
            import yaml

            try:
                raw = yaml.safe_load(content)
            except yaml.YAMLError as exc:
                raise CorruptRunError(f"Invalid YAML in {path}: {exc}") from exc
            return MetricRun.model_validate(raw)
        return MetricRun.model_validate_json(content)
    except ValidationError as exc:
        raise CorruptRunError(f"Invalid metric run in {path}: {exc}") from exc


def _resolve_run(run_ref: str, store: RunStore, console: Console) -> tuple[MetricRun, bool]:
    """Load a run by file path or stored ID.

    Returns:
        The run and whether it came from the store.
    """
    candidate = Path(run_ref)
    if candidate.is_file():
        return load_run_file(candidate), False
    try:
        return store.load_run(run_ref), True
    except FileNotFoundError:
        console.print(f"Run '{run_ref}' not found (no such file or stored run).")
        available = store.list_runs()
        if available:
            console.print(f"Available runs: {', '.join(available[-10:])}")
        raise typer.Exit(code=1)


def explain(
    run_ref: str = typer.Argument(..., help="Path to a run file (JSON/YAML) or a stored run ID"),
    json_output: bool = typer.Option(False, "--json", help="Print the explanation as JSON"),
    steps_only: bool = typer.Option(False, "--steps-only", help="Show only the step breakdown"),
    verbose: bool = typer.Option(False, "--verbose", help="Show inputs, reasons and per-model results"),
    save: bool = typer.Option(False, "--save", help="Save the run and its explanation to the store"),
    from_steps: bool = typer.Option(False, "--from-steps", help="Ignore metadata and reconstruct from raw steps"),
) -> None:
    """Explain how a metric run arrived at its score."""
    console = Console()

    project_root = find_project_root()
    try:
        project_config = load_project_config(project_root)
    except ConfigError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=1)
    store = RunStore(project_root, storage_dir=project_config.storage_dir)

    try:
        run, from_store = _resolve_run(run_ref, store, console)
    except CorruptRunError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=1)

    explanation = _explain_run(run, project_config, from_steps=from_steps)

    if save:
        if not from_store:
            store.save_run(run)
        if explanation is not None:
            store.save_explanation(run.run_id, explanation)
        if not json_output:
            console.print(f"[dim]Saved run {run.run_id}[/dim]")

    if explanation is None:
        console.print(
            f"[dim]No explanation available for metric '{run.metric_name}'.[/dim] "
            f"Score: {format_percent(run.aggregated_score)}"
        )
        raise typer.Exit(code=0)

    if json_output:
        typer.echo(explanation.model_dump_json(indent=2))
        return

    render_explanation(explanation, console, verbose=verbose, steps_only=steps_only)


def _explain_run(run: MetricRun, project_config: ProjectConfig, *, from_steps: bool):
    return dispatch(
        run,
        prefer_metadata=project_config.explain.prefer_metadata and not from_steps,
        text_limit=project_config.explain.text_limit,
    )
