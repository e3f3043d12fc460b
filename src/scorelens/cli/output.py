"""Rich terminal output for explanations.

Provides a headline table (score, level, meaning, formula), a per-step
breakdown with per-model outcomes, and the interpretation scale.
"""

from __future__ import annotations

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from scorelens.explanation.formatting import majority_verdict
from scorelens.explanation.models import BaseExplanation, StepExplanation

# Level styling: level name -> Rich markup style
_LEVEL_STYLES: dict[str, str] = {
    "Excellent": "bold green",
    "Good": "green",
    "Moderate": "yellow",
    "Poor": "bold red",
    "PASS": "bold green",
    "FAIL": "bold red",
    "Unknown": "dim",
}

_STATUS_STYLES: dict[str, str] = {
    "AGREE": "green",
    "DISAGREE": "yellow",
    "ERROR": "bold red",
    "OK": "green",
}


def level_style(level: str) -> str:
    if level.startswith("Level ") or "/" in level:
        return "bold"
    return _LEVEL_STYLES.get(level, "bold")


def render_headline(explanation: BaseExplanation, console: Console) -> None:
    """Render a compact key-value table for the explanation's score.

    Args:
        explanation: The explanation to display.
        console: Rich Console for output.
    """
    interp = explanation.interpretation
    style = level_style(interp.level)

    table = Table(box=box.SIMPLE, show_header=False, padding=(0, 2))
    table.add_column("Key", style="bold")
    table.add_column("Value")

    table.add_row("Metric", explanation.metric_type)
    table.add_row("Score", f"{interp.score_percent}  [{style}]{interp.level}[/{style}]")
    table.add_row("Meaning", escape(interp.meaning))
    if explanation.simple_description:
        table.add_row("About", escape(explanation.simple_description))
    table.add_row("Formula", escape(interp.formula))
    table.add_row("Calculation", escape(interp.calculation))

    console.print()
    console.print(table)


def render_step(step: StepExplanation, console: Console, *, verbose: bool = False) -> None:
    """Render one explanation step: header, items, and per-model table."""
    console.print(f"[bold]{step.step_number}. {step.title}[/bold] [dim]({step.step_name})[/dim]")
    if step.description:
        console.print(f"   [dim]{escape(step.description)}[/dim]")
    if step.input_data and verbose:
        console.print(f"   Input: {escape(step.input_data)}")

    for item in step.items:
        if item.passed is None:
            marker = "[dim]-[/dim]"
        elif item.passed:
            marker = "[green]✓[/green]"
        else:
            marker = "[red]✗[/red]"
        verdict = f" [dim]{escape('[' + item.verdict + ']')}[/dim]" if item.verdict else ""
        console.print(f"   {marker} {escape(item.content)}{verdict}")
        if item.reason and verbose:
            console.print(f"       [dim]{escape(item.reason)}[/dim]")

    if step.model_results and verbose:
        majority = majority_verdict(step.model_results)
        table = Table(box=box.ROUNDED, padding=(0, 1))
        table.add_column("Model")
        table.add_column("Status")
        table.add_column("Result")
        for result in step.model_results:
            status = result.display_status(majority)
            status_style = _STATUS_STYLES.get(status, "bold")
            if result.success:
                detail = result.verdict or ""
            else:
                detail = result.error_message or ""
            table.add_row(result.model_id, f"[{status_style}]{status}[/{status_style}]", escape(detail))
        console.print(table)
        if step.has_model_disagreement:
            console.print(f"   [yellow]Models disagree ({step.agreement_percent:.0f}% agreement)[/yellow]")

    if step.output_summary:
        console.print(f"   → {escape(step.output_summary)}")
    console.print()


def render_steps(explanation: BaseExplanation, console: Console, *, verbose: bool = False) -> None:
    console.print()
    for step in explanation.steps:
        render_step(step, console, verbose=verbose)


def render_scale(explanation: BaseExplanation, console: Console) -> None:
    """Render the interpretation scale with the current level highlighted."""
    interp = explanation.interpretation
    if not interp.scale_levels:
        return
    table = Table(box=box.SIMPLE, title="Scale")
    table.add_column("Level")
    table.add_column("Range", justify="right")
    table.add_column("Description")
    for level in interp.scale_levels:
        row_style = "reverse" if level.current else None
        table.add_row(level.name, level.range, level.description, style=row_style)
    console.print(table)


def render_explanation(
    explanation: BaseExplanation,
    console: Console,
    *,
    verbose: bool = False,
    steps_only: bool = False,
) -> None:
    """Render a full explanation to the terminal.

    Args:
        explanation: The explanation to display.
        console: Rich Console for output.
        verbose: Include inputs, reasons, and per-model tables.
        steps_only: Show only the step breakdown.
    """
    if steps_only:
        render_steps(explanation, console, verbose=verbose)
        return
    render_headline(explanation, console)
    render_steps(explanation, console, verbose=verbose)
    render_scale(explanation, console)
