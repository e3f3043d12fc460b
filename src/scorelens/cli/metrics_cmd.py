"""scorelens metrics -- list the metric families that can be explained."""

from __future__ import annotations

from rich import box
from rich.console import Console
from rich.table import Table

from scorelens.dispatch import aliases_for, metadata_kinds
from scorelens.explanation.models import MetricFamily


def metrics() -> None:
    """List supported metric families and how each can be explained."""
    console = Console()
    with_metadata = metadata_kinds()

    table = Table(box=box.ROUNDED, title="Explainable Metrics")
    table.add_column("Family")
    table.add_column("Metadata", justify="center")
    table.add_column("Steps", justify="center")
    table.add_column("Also accepts")

    for family in MetricFamily:
        has_metadata = family.value in with_metadata
        table.add_row(
            family.value,
            "[green]✓[/green]" if has_metadata else "[dim]-[/dim]",
            "[green]✓[/green]",
            ", ".join(aliases_for(family)) or "[dim]-[/dim]",
        )

    console.print(table)
    console.print(f"\n{len(MetricFamily)} metric families.")
