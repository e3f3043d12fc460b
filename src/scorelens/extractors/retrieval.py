"""Explanations for retrieval-quality metrics.

Context precision, context recall, context entity recall, context
relevance, and noise sensitivity all judge the retrieved contexts
rather than the response alone. List-valued evidence (relevance flags,
classifications, entities, statements) is taken from the first model
that produced it.
"""

from __future__ import annotations

import re
import statistics

from scorelens.explanation.interpretation import (
    format_percent,
    inverted_interpretation,
    round_half_up,
    standard_interpretation,
    truncate,
)
from scorelens.explanation.models import (
    ContextEntityRecallExplanation,
    ContextJudgment,
    ContextPrecisionExplanation,
    ContextRating,
    ContextRecallExplanation,
    ContextRelevanceExplanation,
    ExplanationItem,
    ModelStepResult,
    NoiseSensitivityExplanation,
    RecallClassification,
    ResponseGroundednessExplanation,
    StatementMatch,
    StepExplanation,
)
from scorelens.extraction.payloads import (
    chunk_from_prompt,
    get_bool,
    get_dicts,
    get_float,
    get_int,
    get_strings,
    get_text,
    reference_from_prompt,
    response_from_prompt,
)
from scorelens.extraction.steps import RunReader, first_entry
from scorelens.extractors.common import agreement_step, compute_score_step, failed_model_results, text_items
from scorelens.models.metadata import (
    ContextEntityRecallMetadata,
    ContextPrecisionMetadata,
    ContextRecallMetadata,
    ContextRelevanceMetadata,
    NoiseSensitivityMetadata,
    ResponseGroundednessMetadata,
)
from scorelens.models.run import StepType

# -- Context precision --

PRECISION_DESCRIPTION = "Measures whether relevant contexts are ranked above irrelevant ones."
PRECISION_COMPUTE_STEP = "ComputePrecision"

_PRECISION_MEANINGS = (
    "Relevant contexts are consistently ranked at the top.",
    "Relevant contexts are mostly ranked near the top.",
    "Relevant contexts are mixed with irrelevant ones.",
    "Irrelevant contexts dominate the top of the ranking.",
)


def precision_at_k(relevance: list[bool | None]) -> list[float | None]:
    """Running precision at each judged position: relevant_so_far / k.

    Contexts no model judged (None) get no precision and do not advance
    k, so later contexts keep the rank they have among judged ones.
    """
    values: list[float | None] = []
    relevant_so_far = 0
    k = 0
    for relevant in relevance:
        if relevant is None:
            values.append(None)
            continue
        k += 1
        if relevant:
            relevant_so_far += 1
        values.append(relevant_so_far / k)
    return values


def _relevance_verdict(relevant: bool | None) -> str:
    if relevant is None:
        return "NOT EVALUATED"
    return "RELEVANT" if relevant else "NOT RELEVANT"


def build_context_precision(
    score: float | None,
    *,
    relevance: list[bool | None],
    texts: list[str],
    model_relevance: dict[str, list[bool | None]],
    failed_models: dict[str, str] | None = None,
) -> ContextPrecisionExplanation:
    """Assemble a ContextPrecisionExplanation.

    Args:
        score: Aggregated score, or None.
        relevance: The first judging model's relevance flag per context,
            in retrieval order; None where no model judged the context.
        texts: Context texts aligned with relevance.
        model_relevance: Every successful model's relevance flags, aligned
            with relevance by position.
        failed_models: Model id to error for failed models.
    """
    precisions = precision_at_k(relevance)
    contexts = [
        ContextJudgment(index=i + 1, text=texts[i], relevant=rel, precision_at_k=precisions[i])
        for i, rel in enumerate(relevance)
    ]
    relevant_count = sum(1 for r in relevance if r)
    judged_count = sum(1 for r in relevance if r is not None)
    unjudged_count = len(contexts) - judged_count

    model_results = []
    for m, flags in model_relevance.items():
        judged = [f for f in flags if f is not None]
        model_results.append(
            ModelStepResult(
                model_id=m,
                verdict=f"{sum(1 for f in judged if f)}/{len(judged)}",
                numerator=sum(1 for f in judged if f),
                denominator=len(judged),
            )
        )
    model_results += failed_model_results(failed_models or {})

    relevant_precisions = [c.precision_at_k for c in contexts if c.relevant]
    if relevant_precisions:
        terms = " + ".join(f"{p:.2f}" for p in relevant_precisions)
        calculation = (
            f"({terms}) / {len(relevant_precisions)} = "
            f"{format_percent(sum(relevant_precisions) / len(relevant_precisions))}"
        )
    else:
        calculation = format_percent(score)

    summary = f"{relevant_count}/{judged_count} contexts relevant"
    if unjudged_count:
        summary += f", {unjudged_count} not evaluated"

    ranked: list[ExplanationItem] = []
    rank = 0
    for c in contexts:
        if c.precision_at_k is None:
            content = f"Context {c.index} not evaluated"
        else:
            rank += 1
            content = f"precision@{rank} = {c.precision_at_k:.3f}"
        ranked.append(
            ExplanationItem(content=content, passed=c.relevant, numeric_value=c.precision_at_k, index=c.index)
        )

    steps = [
        agreement_step(
            "EvaluateContexts",
            1,
            "Judge each retrieved context",
            model_results,
            description="Each context is judged relevant or not for answering the question.",
            output_summary=summary,
            items=[
                ExplanationItem(
                    content=truncate(c.text, 100),
                    passed=c.relevant,
                    verdict=_relevance_verdict(c.relevant),
                    numeric_value=None if c.precision_at_k is None else round(c.precision_at_k, 4),
                    index=c.index,
                )
                for c in contexts
            ],
        ),
        StepExplanation(
            step_name="ComputePrecisionAtK",
            step_number=2,
            title="Precision at each rank",
            description="precision@k = relevant contexts in the top k / k, over judged contexts",
            items=ranked,
        ),
        compute_score_step(3, score),
    ]

    return ContextPrecisionExplanation(
        score=score,
        simple_description=PRECISION_DESCRIPTION,
        steps=steps,
        interpretation=standard_interpretation(
            score,
            formula="Context Precision = Σ(precision@k × relevant_k) / relevant contexts",
            calculation=calculation,
            meanings=_PRECISION_MEANINGS,
            numerator=relevant_count,
            denominator=judged_count,
        ),
        contexts=contexts,
        relevant_count=relevant_count,
    )


def _context_texts(reader: RunReader, count: int, prompts: list[str | None] | None = None) -> list[str]:
    sample_contexts = reader.contexts()
    texts: list[str] = []
    for i in range(count):
        if i < len(sample_contexts):
            texts.append(sample_contexts[i])
            continue
        scraped = chunk_from_prompt(prompts[i]) if prompts and i < len(prompts) else None
        texts.append(scraped or f"Context {i + 1}")
    return texts


def context_precision_from_metadata(
    reader: RunReader, metadata: ContextPrecisionMetadata
) -> ContextPrecisionExplanation | None:
    relevance = first_entry(metadata.model_relevance_results)
    if relevance is None:
        return None
    return build_context_precision(
        reader.score,
        relevance=list(relevance),
        texts=_context_texts(reader, len(relevance)),
        model_relevance={m: list(v) for m, v in metadata.model_relevance_results.items()},
        failed_models=reader.exclusion_causes(metadata.model_relevance_results),
    )


def context_precision_from_steps(reader: RunReader) -> ContextPrecisionExplanation | None:
    # Every model-backed step except the final computation judges one context
    context_steps = [
        s
        for s in reader.run.steps
        if s.step_type == StepType.LLM and s.step_name != PRECISION_COMPUTE_STEP
    ]
    if not context_steps:
        return None

    # One slot per context step, so an unjudged context keeps its position
    step_flags: list[dict[str, bool]] = []
    for step in context_steps:
        flags: dict[str, bool] = {}
        for model_id, data in reader.payloads(step):
            flag = get_bool(data, "relevant", "verdict")
            if flag is not None and model_id not in flags:
                flags[model_id] = flag
        step_flags.append(flags)

    relevance = [first_entry(flags) for flags in step_flags]
    if all(r is None for r in relevance) and not reader.not_calculated:
        return None

    judges = list(dict.fromkeys(m for flags in step_flags for m in flags))
    model_relevance = {m: [flags.get(m) for flags in step_flags] for m in judges}

    failed: dict[str, str] = {}
    for step in context_steps:
        for model_id, message in reader.failed_models(step).items():
            failed.setdefault(model_id, message)

    return build_context_precision(
        reader.score,
        relevance=relevance,
        texts=_context_texts(reader, len(relevance), [s.request_text for s in context_steps]),
        model_relevance=model_relevance,
        failed_models={m: e for m, e in failed.items() if m not in model_relevance},
    )


# -- Context recall --

RECALL_DESCRIPTION = "Measures how much of the reference answer is supported by the retrieved context."
CLASSIFY_STEP = "ClassifyStatements"

_RECALL_MEANINGS = (
    "The context covers virtually all of the reference answer.",
    "The context covers most of the reference answer.",
    "The context misses a significant part of the reference answer.",
    "The context supports little of the reference answer.",
)


def build_context_recall(
    score: float | None,
    *,
    reference: str,
    classifications: list[RecallClassification],
    model_classifications: dict[str, list[RecallClassification]],
    failed_models: dict[str, str] | None = None,
    text_limit: int = 200,
) -> ContextRecallExplanation:
    attributed = sum(1 for c in classifications if c.attributed)
    total = len(classifications)

    model_results = [
        ModelStepResult(
            model_id=m,
            verdict=f"{sum(1 for c in cs if c.attributed)}/{len(cs)}",
            numerator=sum(1 for c in cs if c.attributed),
            denominator=len(cs),
        )
        for m, cs in model_classifications.items()
    ]
    model_results += failed_model_results(failed_models or {})

    steps = [
        agreement_step(
            CLASSIFY_STEP,
            1,
            "Attribute reference statements to the context",
            model_results,
            description="Each statement of the reference answer is checked against the retrieved context.",
            input_data=truncate(reference, text_limit) or None,
            output_summary=f"{attributed}/{total} statements attributed",
            items=[
                ExplanationItem(
                    content=c.statement,
                    passed=c.attributed,
                    verdict="ATTRIBUTED" if c.attributed else "NOT ATTRIBUTED",
                    reason=c.reason or None,
                    index=i,
                )
                for i, c in enumerate(classifications, 1)
            ],
        ),
        compute_score_step(2, score),
    ]

    calculation = f"{attributed}/{total} = {format_percent(attributed / total)}" if total else format_percent(score)
    return ContextRecallExplanation(
        score=score,
        simple_description=RECALL_DESCRIPTION,
        steps=steps,
        interpretation=standard_interpretation(
            score,
            formula="Context Recall = Attributed statements / Total reference statements",
            calculation=calculation,
            meanings=_RECALL_MEANINGS,
            numerator=attributed,
            denominator=total,
        ),
        reference=reference,
        classifications=classifications,
        attributed_count=attributed,
        total_count=total,
    )


def context_recall_from_metadata(
    reader: RunReader, metadata: ContextRecallMetadata
) -> ContextRecallExplanation | None:
    model_classifications = {
        m: [RecallClassification(statement=c.statement, attributed=c.attributed == 1, reason=c.reason) for c in cs]
        for m, cs in metadata.classifications.items()
    }
    classifications = first_entry(model_classifications)
    if not classifications:
        return None
    return build_context_recall(
        reader.score,
        reference=reader.sample_text("reference", reference_from_prompt, CLASSIFY_STEP),
        classifications=classifications,
        model_classifications=model_classifications,
        failed_models=reader.exclusion_causes(model_classifications),
        text_limit=reader.text_limit,
    )


def context_recall_from_steps(reader: RunReader) -> ContextRecallExplanation | None:
    step = reader.step(CLASSIFY_STEP)
    model_classifications: dict[str, list[RecallClassification]] = {}
    for model_id, data in reader.payloads(step):
        parsed = []
        for entry in get_dicts(data, "classifications"):
            statement = get_text(entry, "statement")
            attributed = get_int(entry, "attributed")
            if statement is None or attributed is None:
                continue
            parsed.append(
                RecallClassification(
                    statement=statement,
                    attributed=attributed == 1,
                    reason=get_text(entry, "reason", "reasoning") or "",
                )
            )
        if parsed and model_id not in model_classifications:
            model_classifications[model_id] = parsed

    classifications = first_entry(model_classifications) or []
    if not classifications and not reader.not_calculated:
        return None
    return build_context_recall(
        reader.score,
        reference=reader.sample_text("reference", reference_from_prompt, CLASSIFY_STEP),
        classifications=classifications,
        model_classifications=model_classifications,
        failed_models=reader.failed_models(step),
        text_limit=reader.text_limit,
    )


# -- Context entity recall --

ENTITY_DESCRIPTION = "Measures how many entities of the reference answer appear in the retrieved context."

_ENTITY_MEANINGS = (
    "Nearly every reference entity is present in the context.",
    "Most reference entities are present in the context.",
    "Many reference entities are missing from the context.",
    "Most reference entities are missing from the context.",
)


def match_entities(reference_entities: list[str], context_entities: list[str]) -> tuple[list[str], list[str]]:
    """Split reference entities into (found, missing) by case-insensitive exact match."""
    context_keys = {e.strip().lower() for e in context_entities}
    found = [e for e in reference_entities if e.strip().lower() in context_keys]
    found_set = set(found)
    missing = [e for e in reference_entities if e not in found_set]
    return found, missing


def build_context_entity_recall(
    score: float | None,
    *,
    reference_entities: list[str],
    context_entities: list[str],
    model_context_entities: dict[str, list[str]],
    failed_models: dict[str, str] | None = None,
) -> ContextEntityRecallExplanation:
    found, missing = match_entities(reference_entities, context_entities)
    total = len(reference_entities)

    model_results = []
    for m, entities in model_context_entities.items():
        model_found, _ = match_entities(reference_entities, entities)
        model_results.append(
            ModelStepResult(
                model_id=m,
                verdict=f"{len(model_found)}/{total}",
                numerator=len(model_found),
                denominator=total,
            )
        )
    model_results += failed_model_results(failed_models or {})

    steps = [
        StepExplanation(
            step_name="ExtractReferenceEntities",
            step_number=1,
            title="Entities in the reference answer",
            description="Named entities, dates, and numbers extracted from the reference.",
            output_summary=f"{total} entities",
            items=text_items(reference_entities),
        ),
        agreement_step(
            "ExtractContextEntities",
            2,
            "Entities in the retrieved context",
            model_results,
            description="The same kinds of entities extracted from the context.",
            output_summary=f"{len(context_entities)} entities",
            items=text_items(context_entities),
        ),
        StepExplanation(
            step_name="ComputeEntityRecall",
            step_number=3,
            title="Match entities",
            description="A reference entity is found when the context contains it (case-insensitive).",
            output_summary=f"{len(found)} found, {len(missing)} missing",
            items=[ExplanationItem(content=e, passed=True, verdict="FOUND") for e in found]
            + [ExplanationItem(content=e, passed=False, verdict="MISSING") for e in missing],
        ),
        compute_score_step(4, score),
    ]

    calculation = f"{len(found)}/{total} = {format_percent(len(found) / total)}" if total else format_percent(score)
    return ContextEntityRecallExplanation(
        score=score,
        simple_description=ENTITY_DESCRIPTION,
        steps=steps,
        interpretation=standard_interpretation(
            score,
            formula="Entity Recall = |Reference ∩ Context| / |Reference|",
            calculation=calculation,
            meanings=_ENTITY_MEANINGS,
            numerator=len(found),
            denominator=total,
        ),
        reference_entities=reference_entities,
        context_entities=context_entities,
        found_entities=found,
        missing_entities=missing,
    )


def context_entity_recall_from_metadata(
    reader: RunReader, metadata: ContextEntityRecallMetadata
) -> ContextEntityRecallExplanation | None:
    if not metadata.reference_entities:
        return None
    return build_context_entity_recall(
        reader.score,
        reference_entities=list(metadata.reference_entities),
        context_entities=list(first_entry(metadata.context_entities) or []),
        model_context_entities={m: list(e) for m, e in metadata.context_entities.items()},
        failed_models=reader.exclusion_causes(metadata.context_entities),
    )


def context_entity_recall_from_steps(reader: RunReader) -> ContextEntityRecallExplanation | None:
    reference_entities: list[str] | None = None
    context_entities: dict[str, list[str]] = {}
    failed: dict[str, str] = {}
    for step in reader.run.steps:
        if step.step_type == StepType.COMPUTE:
            continue
        if "Context" in step.step_name:
            for model_id, data in reader.payloads(step):
                if "entities" in data and model_id not in context_entities:
                    context_entities[model_id] = get_strings(data, "entities")
            failed.update(reader.failed_models(step))
        elif reference_entities is None:
            payload = reader.first_payload(step, "entities")
            if payload is not None:
                reference_entities = get_strings(payload, "entities")

    if not reference_entities and not reader.not_calculated:
        return None
    return build_context_entity_recall(
        reader.score,
        reference_entities=reference_entities or [],
        context_entities=first_entry(context_entities) or [],
        model_context_entities=context_entities,
        failed_models={m: e for m, e in failed.items() if m not in context_entities},
    )


# -- Context relevance --

RELEVANCE_DESCRIPTION = "Rates how relevant each retrieved context is to the question on a 0-2 scale."
RELEVANCE_STEP_PREFIX = "EvaluateRelevance_"

_RELEVANCE_MEANINGS = (
    "The retrieved contexts are highly relevant.",
    "The retrieved contexts are mostly relevant.",
    "The retrieved contexts are only partially relevant.",
    "The retrieved contexts are largely irrelevant.",
)


def build_context_relevance(
    score: float | None,
    *,
    contexts: list[ContextRating],
    model_results: list[ModelStepResult],
) -> ContextRelevanceExplanation:
    steps = [
        agreement_step(
            "EvaluateRelevance",
            1,
            "Rate each context",
            model_results,
            description="Judges rate each context 0 (irrelevant), 1 (partial) or 2 (fully relevant).",
            output_summary=f"{len(contexts)} contexts rated",
            items=[
                ExplanationItem(
                    content=c.label,
                    passed=c.raw_score >= 1,
                    verdict=f"{c.raw_score}/2",
                    reason=c.reasoning or None,
                    numeric_value=c.normalized,
                    index=i,
                )
                for i, c in enumerate(contexts, 1)
            ],
        ),
        StepExplanation(
            step_name="NormalizeScores",
            step_number=2,
            title="Normalize ratings",
            description="Each rating is divided by 2 to map it to [0, 1].",
            items=[
                ExplanationItem(content=f"{c.label}: {c.raw_score}/2 = {c.normalized:.2f}", index=i)
                for i, c in enumerate(contexts, 1)
            ],
        ),
        compute_score_step(3, score),
    ]
    if contexts:
        terms = " + ".join(f"{c.normalized:.2f}" for c in contexts)
        calculation = f"({terms}) / {len(contexts)} = {format_percent(score)}"
    else:
        calculation = format_percent(score)
    return ContextRelevanceExplanation(
        score=score,
        simple_description=RELEVANCE_DESCRIPTION,
        steps=steps,
        interpretation=standard_interpretation(
            score,
            formula="Context Relevance = mean(rating_i / 2)",
            calculation=calculation,
            meanings=_RELEVANCE_MEANINGS,
        ),
        contexts=contexts,
    )


def context_relevance_from_metadata(
    reader: RunReader, metadata: ContextRelevanceMetadata
) -> ContextRelevanceExplanation | None:
    contexts = [
        ContextRating(label=f"Context {i}", raw_score=round_half_up(s * 2), normalized=s)
        for i, s in enumerate(metadata.context_scores, 1)
    ]
    return build_context_relevance(
        reader.score,
        contexts=contexts,
        model_results=failed_model_results(reader.exclusion_causes()),
    )


def _relevance_index(name: str) -> int:
    match = re.search(r"(\d+)$", name)
    return int(match.group(1)) if match else 0


def context_relevance_from_steps(reader: RunReader) -> ContextRelevanceExplanation | None:
    steps = sorted(
        reader.steps_where(lambda name: name.startswith(RELEVANCE_STEP_PREFIX)),
        key=lambda s: _relevance_index(s.step_name),
    )
    if not steps:
        return None

    contexts: list[ContextRating] = []
    per_model: dict[str, list[float]] = {}
    failed: dict[str, str] = {}
    for i, step in enumerate(steps, 1):
        ratings: list[float] = []
        reasoning = ""
        for model_id, data in reader.payloads(step):
            rating = get_float(data, "score", "rating")
            if rating is None:
                continue
            ratings.append(rating)
            per_model.setdefault(model_id, []).append(rating)
            reasoning = reasoning or (get_text(data, "reasoning", "reason") or "")
        failed.update(reader.failed_models(step))
        if not ratings:
            continue
        normalized = max(0.0, min(1.0, statistics.fmean(ratings) / 2))
        contexts.append(
            ContextRating(
                label=f"Context {i}",
                raw_score=round_half_up(normalized * 2),
                normalized=normalized,
                reasoning=reasoning,
            )
        )

    model_results = [
        ModelStepResult(model_id=m, verdict=f"{statistics.fmean(r):.1f}/2", numeric_result=statistics.fmean(r))
        for m, r in per_model.items()
    ]
    model_results += failed_model_results({m: e for m, e in failed.items() if m not in per_model})
    return build_context_relevance(reader.score, contexts=contexts, model_results=model_results)


# -- Noise sensitivity --

NOISE_DESCRIPTION = "Measures how often the response contains incorrect claims induced by noisy context. Lower is better."

_NOISE_MEANINGS = (
    "The response is robust to noise in the retrieved context.",
    "The response is mostly robust; a few claims are affected by noise.",
    "Noise in the context noticeably affects the response.",
    "The response is heavily affected by noisy context.",
)


def build_noise_sensitivity(
    score: float | None,
    *,
    mode: str,
    reference_statements: list[str],
    response_statements: list[str],
    matches: list[StatementMatch],
    reference: str = "",
    response: str = "",
    text_limit: int = 200,
) -> NoiseSensitivityExplanation:
    error_count = sum(1 for m in matches if not m.correct)
    steps = [
        StepExplanation(
            step_name="ExtractReferenceStatements",
            step_number=1,
            title="Statements in the reference",
            description="The reference answer is decomposed into statements.",
            input_data=truncate(reference, text_limit) or None,
            output_summary=f"{len(reference_statements)} statements",
            items=text_items(reference_statements),
        ),
        StepExplanation(
            step_name="ExtractResponseStatements",
            step_number=2,
            title="Statements in the response",
            description="The response is decomposed into statements.",
            input_data=truncate(response, text_limit) or None,
            output_summary=f"{len(response_statements)} statements",
            items=text_items(response_statements),
        ),
        StepExplanation(
            step_name="AnalyzeMatches",
            step_number=3,
            title="Check statements against contexts",
            description=f"Incorrect response statements supported by {mode.lower()} contexts count as errors.",
            output_summary=f"{error_count}/{len(matches)} errors",
            items=[
                ExplanationItem(
                    content=m.statement,
                    passed=m.correct,
                    verdict="OK" if m.correct else "ERROR",
                    reason=m.analysis,
                    source=m.context_source,
                    index=i,
                )
                for i, m in enumerate(matches, 1)
            ],
        ),
        compute_score_step(4, score),
    ]
    return NoiseSensitivityExplanation(
        score=score,
        simple_description=NOISE_DESCRIPTION,
        steps=steps,
        interpretation=inverted_interpretation(
            score,
            formula="Noise Sensitivity = Incorrect claims / Total claims",
            meanings=_NOISE_MEANINGS,
            numerator=error_count,
            denominator=len(matches),
        ),
        mode=mode,
        reference_statements=reference_statements,
        response_statements=response_statements,
        matches=matches,
        error_count=error_count,
        total_checks=len(matches),
    )


def noise_sensitivity_from_metadata(
    reader: RunReader, metadata: NoiseSensitivityMetadata
) -> NoiseSensitivityExplanation | None:
    return build_noise_sensitivity(
        reader.score,
        mode=metadata.mode,
        reference_statements=list(first_entry(metadata.reference_statements) or []),
        response_statements=list(first_entry(metadata.response_statements) or []),
        matches=[],
        reference=reader.sample_text("reference", reference_from_prompt),
        response=reader.sample_text("response", response_from_prompt),
        text_limit=reader.text_limit,
    )


def noise_sensitivity_from_steps(reader: RunReader) -> NoiseSensitivityExplanation | None:
    reference_statements: list[str] | None = None
    response_statements: list[str] | None = None
    for step in reader.run.steps:
        name = step.step_name
        if reference_statements is None and ("Reference" in name or "Ground" in name):
            payload = reader.first_payload(step, "statements")
            if payload is not None:
                reference_statements = get_strings(payload, "statements")
        elif response_statements is None and "Response" in name and "Matrix" not in name:
            payload = reader.first_payload(step, "statements")
            if payload is not None:
                response_statements = get_strings(payload, "statements")

    if reference_statements is None and response_statements is None and not reader.not_calculated:
        return None
    return build_noise_sensitivity(
        reader.score,
        mode=str(reader.config_value("mode", default="RELEVANT")),
        reference_statements=reference_statements or [],
        response_statements=response_statements or [],
        matches=[],
        reference=reader.sample_text("reference", reference_from_prompt),
        response=reader.sample_text("response", response_from_prompt),
        text_limit=reader.text_limit,
    )


# -- Response groundedness --

GROUNDEDNESS_DESCRIPTION = "Rates how well the response is grounded in the retrieved context on a 0-2 scale."
HEURISTIC_STEP = "ApplyHeuristics"
GROUNDEDNESS_STEP = "EvaluateGroundedness"

_GROUNDEDNESS_MEANINGS = (
    "The response is fully grounded in the context.",
    "The response is mostly grounded in the context.",
    "The response is only partially grounded in the context.",
    "The response is largely not grounded in the context.",
)


def build_response_groundedness(
    score: float | None,
    *,
    used_heuristic: bool,
    heuristic_match: bool = False,
    judge_ratings: dict[str, tuple[float, str]] | None = None,
    failed_models: dict[str, str] | None = None,
) -> ResponseGroundednessExplanation:
    """Assemble a ResponseGroundednessExplanation.

    The heuristic path short-circuits the judges when the response is an
    exact or substring match of the context, so its step list has no
    judging step.

    Args:
        score: Aggregated score in [0, 1], or None.
        used_heuristic: Whether the heuristic short-circuit decided the score.
        heuristic_match: Whether the heuristic found a match.
        judge_ratings: Model id to (0-2 rating, reasoning) on the judged path.
        failed_models: Model id to error for failed judges.
    """
    raw_score = None if score is None else round_half_up(score * 2)
    judge_ratings = judge_ratings or {}
    reasoning = next((r for _, r in judge_ratings.values() if r), "")

    steps: list[StepExplanation] = []
    if used_heuristic:
        steps.append(
            StepExplanation(
                step_name=HEURISTIC_STEP,
                step_number=1,
                title="Heuristic match",
                description="Exact and substring matches against the context are checked before any judge is asked.",
                output_summary="Match found" if heuristic_match else "No match",
                items=[
                    ExplanationItem(
                        content="Response text found in context" if heuristic_match else "Response text not found in context",
                        passed=heuristic_match,
                        verdict="MATCH" if heuristic_match else "NO MATCH",
                    )
                ],
            )
        )
    else:
        model_results = [
            ModelStepResult(model_id=m, verdict=f"{round_half_up(r)}/2", numeric_result=r, reasoning=why or None)
            for m, (r, why) in judge_ratings.items()
        ]
        model_results += failed_model_results(failed_models or {})
        steps.append(
            agreement_step(
                GROUNDEDNESS_STEP,
                1,
                "Judge groundedness",
                model_results,
                description="Judges rate the response 0 (not grounded), 1 (partially) or 2 (fully grounded).",
                output_summary=f"{len(judge_ratings)} ratings",
            )
        )
    steps.append(
        StepExplanation(
            step_name="NormalizeScore",
            step_number=2,
            title="Normalize rating",
            description="The 0-2 rating is divided by 2.",
            output_summary="N/A" if raw_score is None else f"{raw_score}/2 = {score:.2f}",
        )
    )
    steps.append(compute_score_step(3, score))

    calculation = format_percent(score) if raw_score is None else f"{raw_score}/2 = {format_percent(score)}"
    return ResponseGroundednessExplanation(
        score=score,
        simple_description=GROUNDEDNESS_DESCRIPTION,
        steps=steps,
        interpretation=standard_interpretation(
            score,
            formula="Groundedness = rating / 2",
            calculation=calculation,
            meanings=_GROUNDEDNESS_MEANINGS,
        ),
        used_heuristic=used_heuristic,
        heuristic_match=heuristic_match,
        raw_score=raw_score,
        reasoning=reasoning,
    )


def response_groundedness_from_metadata(
    reader: RunReader, metadata: ResponseGroundednessMetadata
) -> ResponseGroundednessExplanation | None:
    judge_ratings = {}
    if not metadata.used_heuristic_shortcuts:
        judge_ratings = _groundedness_ratings(reader)
    return build_response_groundedness(
        reader.score,
        used_heuristic=metadata.used_heuristic_shortcuts,
        heuristic_match=metadata.heuristic_match,
        judge_ratings=judge_ratings,
        failed_models=reader.exclusion_causes(judge_ratings),
    )


def _groundedness_ratings(reader: RunReader) -> dict[str, tuple[float, str]]:
    ratings: dict[str, tuple[float, str]] = {}
    for model_id, data in reader.payloads(reader.step(GROUNDEDNESS_STEP)):
        rating = get_float(data, "score", "rating")
        if rating is None or model_id in ratings:
            continue
        ratings[model_id] = (rating, get_text(data, "reasoning", "reason") or "")
    return ratings


def response_groundedness_from_steps(reader: RunReader) -> ResponseGroundednessExplanation | None:
    heuristic = reader.step(HEURISTIC_STEP)
    judged = reader.step(GROUNDEDNESS_STEP)
    if heuristic is None and judged is None:
        return None

    if judged is None:
        payload = reader.first_payload(heuristic) or {}
        match = get_bool(payload, "match", "matched", "heuristicMatch")
        if match is None:
            match = reader.score is not None and reader.score >= 1.0
        return build_response_groundedness(reader.score, used_heuristic=True, heuristic_match=match)

    ratings = _groundedness_ratings(reader)
    failed = {m: e for m, e in reader.failed_models(judged).items() if m not in ratings}
    return build_response_groundedness(
        reader.score,
        used_heuristic=False,
        judge_ratings=ratings,
        failed_models=failed,
    )
