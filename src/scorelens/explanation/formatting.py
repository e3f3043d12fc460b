"""Plain-text rendering of explanations for logs and terminal output.

Compact by default (score, level, meaning), with every step and
per-model outcome on demand.
"""

from __future__ import annotations

from scorelens.explanation.models import BaseExplanation, ModelStepResult, StepExplanation


def majority_verdict(results: list[ModelStepResult]) -> str | None:
    """Most common verdict among successful models, or None if none reported one."""
    counts: dict[str, int] = {}
    for result in results:
        if result.success and result.verdict is not None:
            counts[result.verdict] = counts.get(result.verdict, 0) + 1
    if not counts:
        return None
    return max(counts, key=counts.__getitem__)


def format_step(step: StepExplanation, *, show_models: bool = True) -> list[str]:
    """Lines describing one step: header, items, and per-model results."""
    lines = [f"{step.step_number}. {step.title} [{step.step_name}]"]
    if step.description:
        lines.append(f"   {step.description}")
    if step.input_data:
        lines.append(f"   Input: {step.input_data}")
    for item in step.items:
        prefix = f"{item.index}. " if item.index is not None else ""
        verdict = f" [{item.verdict}]" if item.verdict else ""
        lines.append(f"   {item.status_icon} {prefix}{item.content}{verdict}")
        if item.reason:
            lines.append(f"       {item.reason}")
    for key, value in step.metadata.items():
        lines.append(f"   {key}: {value}")
    if show_models and step.model_results:
        majority = majority_verdict(step.model_results)
        for result in step.model_results:
            status = result.display_status(majority)
            if result.success:
                detail = result.verdict if result.verdict is not None else ""
            else:
                detail = result.error_message or ""
            lines.append(f"   [{status}] {result.model_id}: {detail}".rstrip())
        if step.has_model_disagreement:
            lines.append(f"   Models disagree ({step.agreement_percent:.0f}% agreement)")
    if step.output_summary:
        lines.append(f"   → {step.output_summary}")
    return lines


def format_explanation(explanation: BaseExplanation, verbose: bool = False) -> str:
    """Format an explanation as plain text (no Rich markup).

    Args:
        explanation: Any explanation variant.
        verbose: Include every step and per-model result.

    Returns:
        Multi-line formatted string.
    """
    interp = explanation.interpretation
    lines = [
        f"{explanation.metric_type}: {interp.score_percent} ({interp.level})",
        f"  {interp.meaning}",
    ]
    if explanation.simple_description:
        lines.append(f"  {explanation.simple_description}")

    lines.append("")
    lines.append(f"  Formula: {interp.formula}")
    lines.append(f"  Calculation: {interp.calculation}")

    if not verbose:
        return "\n".join(lines)

    lines.append("")
    for step in explanation.steps:
        lines.extend(format_step(step))
        lines.append("")

    lines.append("  Scale:")
    for level in interp.scale_levels:
        marker = "→" if level.current else " "
        lines.append(f"  {marker} {level.name:<10} {level.range:<10} {level.description}")

    return "\n".join(lines).rstrip()
