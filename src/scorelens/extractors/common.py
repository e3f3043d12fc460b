"""Step builders shared by the metric-family extractors."""

from __future__ import annotations

from scorelens.consensus.voting import modal_agreement
from scorelens.explanation.interpretation import format_percent
from scorelens.explanation.models import ExplanationItem, ModelStepResult, StepExplanation


def compute_score_step(
    step_number: int,
    score: float | None,
    *,
    title: str = "Compute final score",
    description: str = "The aggregated score across all successful models.",
    input_data: str | None = None,
    output_summary: str | None = None,
) -> StepExplanation:
    return StepExplanation(
        step_name="ComputeScore",
        step_number=step_number,
        title=title,
        description=description,
        input_data=input_data,
        output_summary=output_summary if output_summary is not None else format_percent(score),
    )


def text_items(texts: list[str], *, verdict: str | None = None) -> list[ExplanationItem]:
    """Neutral, 1-indexed items for a list of texts."""
    return [ExplanationItem(content=t, verdict=verdict, index=i) for i, t in enumerate(texts, 1)]


def failed_model_results(errors: dict[str, str]) -> list[ModelStepResult]:
    return [
        ModelStepResult(model_id=model_id, success=False, error_message=message)
        for model_id, message in errors.items()
    ]


def agreement_step(
    step_name: str,
    step_number: int,
    title: str,
    model_results: list[ModelStepResult],
    **fields,
) -> StepExplanation:
    """StepExplanation whose agreement is computed over successful models' verdicts.

    Models agree when they report the same verdict (or, lacking a
    verdict, the same numeric result).
    """
    outcomes = [
        r.verdict if r.verdict is not None else r.numeric_result
        for r in model_results
        if r.success
    ]
    percent, disagreement = modal_agreement(outcomes)
    return StepExplanation(
        step_name=step_name,
        step_number=step_number,
        title=title,
        model_results=model_results,
        has_model_disagreement=disagreement,
        agreement_percent=percent,
        **fields,
    )
