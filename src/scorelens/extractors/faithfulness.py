"""Faithfulness explanations.

Faithfulness decomposes the response into atomic statements, then asks
each judge model whether every statement can be inferred from the
retrieved context (verdict 1) or not (verdict 0). The displayed
statements and verdicts come from the first model; the score itself is
the externally aggregated one.
"""

from __future__ import annotations

from scorelens.explanation.interpretation import format_percent, standard_interpretation, truncate
from scorelens.explanation.models import (
    DetailItem,
    ExplanationItem,
    FaithfulnessExplanation,
    ModelStepResult,
    StatementVerdict,
    StepExplanation,
)
from scorelens.extraction.payloads import get_dicts, get_int, get_strings, get_text, response_from_prompt
from scorelens.extraction.steps import RunReader, first_entry
from scorelens.extractors.common import agreement_step, compute_score_step, failed_model_results, text_items
from scorelens.models.metadata import FaithfulnessMetadata

DESCRIPTION = "Measures how factually consistent the response is with the retrieved context."

_MEANINGS = (
    "Virtually every claim in the response is supported by the context.",
    "Most claims are supported; a few are not grounded in the context.",
    "A substantial share of the claims cannot be inferred from the context.",
    "Most of the response is not supported by the context.",
)


def _model_result(model_id: str, verdicts: list[StatementVerdict]) -> ModelStepResult:
    faithful = sum(1 for v in verdicts if v.faithful)
    return ModelStepResult(
        model_id=model_id,
        verdict=f"{faithful}/{len(verdicts)}",
        numerator=faithful,
        denominator=len(verdicts),
        items=[
            DetailItem(content=v.statement, passed=v.faithful, reason=v.reason or None)
            for v in verdicts
        ],
    )


def build_faithfulness(
    score: float | None,
    *,
    response: str,
    statements: list[str],
    verdicts: list[StatementVerdict],
    model_verdicts: dict[str, list[StatementVerdict]],
    failed_models: dict[str, str] | None = None,
    text_limit: int = 200,
) -> FaithfulnessExplanation:
    """Assemble a FaithfulnessExplanation from normalized evidence.

    Args:
        score: Aggregated faithfulness score, or None.
        response: The evaluated response text.
        statements: Statements extracted by the first model.
        verdicts: The first model's verdict per statement.
        model_verdicts: Every successful model's verdicts, for the
            per-model breakdown.
        failed_models: Model id to error for models that failed verification.
        text_limit: Maximum echoed response length.
    """
    faithful_count = sum(1 for v in verdicts if v.faithful)
    total_count = len(verdicts)

    model_results = [_model_result(m, v) for m, v in model_verdicts.items()]
    model_results += failed_model_results(failed_models or {})

    steps = [
        StepExplanation(
            step_name="GenerateStatements",
            step_number=1,
            title="Break the response into statements",
            description="The response is decomposed into simple, self-contained statements.",
            input_data=truncate(response, text_limit) or None,
            output_summary=f"{len(statements)} statements",
            items=text_items(statements),
        ),
        agreement_step(
            "EvaluateFaithfulness",
            2,
            "Verify each statement against the context",
            model_results,
            description="Each statement is judged as inferable (1) or not (0) from the context.",
            output_summary=f"{faithful_count}/{total_count} statements are faithful",
            items=[
                ExplanationItem(
                    content=v.statement,
                    passed=v.faithful,
                    verdict="FAITHFUL" if v.faithful else "NOT FAITHFUL",
                    reason=v.reason or None,
                    index=i,
                )
                for i, v in enumerate(verdicts, 1)
            ],
        ),
        compute_score_step(3, score),
    ]

    if total_count:
        calculation = f"{faithful_count}/{total_count} = {format_percent(faithful_count / total_count)}"
    else:
        calculation = format_percent(score)

    return FaithfulnessExplanation(
        score=score,
        simple_description=DESCRIPTION,
        steps=steps,
        interpretation=standard_interpretation(
            score,
            formula="Faithfulness = Faithful statements / Total statements",
            calculation=calculation,
            meanings=_MEANINGS,
            numerator=faithful_count,
            denominator=total_count,
        ),
        response=response,
        statements=statements,
        verdicts=verdicts,
        faithful_count=faithful_count,
        total_count=total_count,
    )


def faithfulness_from_metadata(
    reader: RunReader, metadata: FaithfulnessMetadata
) -> FaithfulnessExplanation | None:
    model_verdicts = {
        model_id: [
            StatementVerdict(statement=v.statement, faithful=v.verdict == 1, reason=v.reason)
            for v in summaries
        ]
        for model_id, summaries in metadata.verdicts.items()
    }
    verdicts = first_entry(model_verdicts)
    if not verdicts:
        return None
    return build_faithfulness(
        reader.score,
        response=reader.sample_text("response", response_from_prompt, "GenerateStatements"),
        statements=first_entry(metadata.extracted_statements) or [v.statement for v in verdicts],
        verdicts=verdicts,
        model_verdicts=model_verdicts,
        failed_models=reader.exclusion_causes(model_verdicts),
        text_limit=reader.text_limit,
    )


def _verdicts_from_payload(data: dict) -> list[StatementVerdict]:
    verdicts: list[StatementVerdict] = []
    for entry in get_dicts(data, "verdicts"):
        statement = get_text(entry, "statement")
        verdict = get_int(entry, "verdict")
        if statement is None or verdict is None:
            continue
        verdicts.append(
            StatementVerdict(
                statement=statement,
                faithful=verdict == 1,
                reason=get_text(entry, "reason", "reasoning") or "",
            )
        )
    return verdicts


def faithfulness_from_steps(reader: RunReader) -> FaithfulnessExplanation | None:
    generate = reader.step("GenerateStatements")
    evaluate = reader.step("EvaluateFaithfulness")

    model_verdicts: dict[str, list[StatementVerdict]] = {}
    for model_id, data in reader.payloads(evaluate):
        parsed = _verdicts_from_payload(data)
        if parsed and model_id not in model_verdicts:
            model_verdicts[model_id] = parsed
    verdicts = first_entry(model_verdicts) or []
    if not verdicts and not reader.not_calculated:
        return None

    statements_payload = reader.first_payload(generate, "statements")
    statements = get_strings(statements_payload, "statements") if statements_payload else []

    return build_faithfulness(
        reader.score,
        response=reader.sample_text("response", response_from_prompt, "GenerateStatements"),
        statements=statements or [v.statement for v in verdicts],
        verdicts=verdicts,
        model_verdicts=model_verdicts,
        failed_models=reader.failed_models(evaluate),
        text_limit=reader.text_limit,
    )
