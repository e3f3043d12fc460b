"""Explanations for judge-style critique metrics.

Covers aspect critic (binary verdict with strictness voting), simple
criteria (free-form numeric score) and rubrics (level selection from
``scoreN_description`` rubric definitions). All three read a single
"Evaluate" step on the reconstructive path.
"""

from __future__ import annotations

import re

from scorelens.consensus.voting import boolean_consensus, numeric_consensus
from scorelens.explanation.interpretation import (
    NOT_CALCULATED,
    UNKNOWN_LEVEL,
    binary_interpretation,
    round_half_up,
    truncate,
)
from scorelens.explanation.models import (
    AspectCriticExplanation,
    ExplanationItem,
    ModelStepResult,
    ModelVote,
    RubricLevel,
    RubricsExplanation,
    ScaleLevel,
    ScoreInterpretation,
    SimpleCriteriaExplanation,
    StepExplanation,
)
from scorelens.extraction.payloads import get_bool, get_float, get_int, get_text, response_from_prompt
from scorelens.extraction.steps import RunReader, first_entry
from scorelens.extractors.common import agreement_step, compute_score_step, failed_model_results
from scorelens.models.metadata import AspectCriticMetadata, RubricsMetadata, SimpleCriteriaMetadata
from scorelens.models.run import StepResult

EVALUATE_STEP = "Evaluate"

RUBRIC_KEY = re.compile(r"score(\d+)_description")

DEFAULT_RUBRICS: tuple[RubricLevel, ...] = (
    RubricLevel(level=5, description="Excellent"),
    RubricLevel(level=4, description="Good"),
    RubricLevel(level=3, description="Adequate"),
    RubricLevel(level=2, description="Poor"),
    RubricLevel(level=1, description="Very Poor"),
)


def _evaluate_step(reader: RunReader) -> StepResult | None:
    step = reader.step(EVALUATE_STEP)
    if step is None:
        candidates = reader.steps_where(lambda name: name.startswith(EVALUATE_STEP))
        step = candidates[0] if candidates else None
    return step


def _reasoning(data: dict | None) -> str:
    if data is None:
        return ""
    return get_text(data, "reasoning", "reason") or ""


# -- Aspect critic --

ASPECT_DESCRIPTION = "Checks whether the response satisfies a predefined aspect, as a PASS/FAIL verdict."


def build_aspect_critic(
    score: float | None,
    *,
    definition: str,
    strictness: int,
    votes: dict[str, list[bool | None]],
    reasonings: dict[str, str],
    failed_models: dict[str, str] | None = None,
) -> AspectCriticExplanation:
    """Assemble an AspectCriticExplanation from per-model iteration votes.

    The displayed verdict follows the aggregated score (PASS iff
    score >= 0.5). Without a score it falls back to the cross-model
    majority of per-model majorities.

    Args:
        score: Aggregated score, or None if every model failed.
        definition: The aspect being checked.
        strictness: Iterations requested per model.
        votes: Model id to per-iteration verdicts (None for failed
            iterations).
        reasonings: Model id to its first reasoning text.
        failed_models: Model id to error for models that failed outright.
    """
    consensus = boolean_consensus(votes)
    passed = score >= 0.5 if score is not None else bool(consensus.decision)
    decisions = consensus.model_decisions
    pass_count = sum(1 for d in decisions.values() if d)
    fail_count = len(decisions) - pass_count
    total = pass_count + fail_count

    model_votes = [
        ModelVote(
            model_id=model_id,
            votes=[v for v in iterations if v is not None],
            decision=decisions.get(model_id),
            reasoning=reasonings.get(model_id, ""),
        )
        for model_id, iterations in votes.items()
    ]

    model_results = [
        ModelStepResult(
            model_id=mv.model_id,
            verdict="PASS" if mv.decision else "FAIL",
            numeric_result=1.0 if mv.decision else 0.0,
            numerator=sum(1 for v in mv.votes if v),
            denominator=len(mv.votes),
            reasoning=mv.reasoning or None,
        )
        for mv in model_votes
        if mv.decision is not None
    ]
    errors = {m: "all iterations failed" for m in consensus.excluded_models}
    errors.update(failed_models or {})
    model_results += failed_model_results(errors)

    steps = [
        StepExplanation(
            step_name="DefineAspect",
            step_number=1,
            title="Define the aspect",
            description="The criterion the response is checked against.",
            input_data=definition or None,
        ),
        agreement_step(
            "EvaluateAspect",
            2,
            "Each model judges the aspect",
            model_results,
            description=f"Every model returns a PASS/FAIL verdict ({strictness} iteration(s) per model).",
            output_summary=f"{pass_count} PASS, {fail_count} FAIL",
        ),
    ]
    if strictness > 1 and any(mv.votes for mv in model_votes):
        steps.append(
            StepExplanation(
                step_name="MajorityVoting",
                step_number=len(steps) + 1,
                title="Majority voting per model",
                description="A model passes only when more than half of its iterations pass.",
                items=[
                    ExplanationItem(
                        content=mv.model_id,
                        passed=mv.decision,
                        verdict="%d/%d PASS → %s"
                        % (sum(1 for v in mv.votes if v), len(mv.votes), "PASS" if mv.decision else "FAIL"),
                        index=i,
                    )
                    for i, mv in enumerate(model_votes, 1)
                    if mv.decision is not None
                ],
            )
        )
    steps.append(
        compute_score_step(
            len(steps) + 1,
            score,
            output_summary="N/A" if score is None else ("PASS" if passed else "FAIL"),
        )
    )

    if total > 1:
        calculation = f"{pass_count} PASS + {fail_count} FAIL = {pass_count}/{total} = {pass_count / total:.2f}"
    elif total == 1:
        calculation = "PASS → 1.0" if pass_count else "FAIL → 0.0"
    else:
        calculation = "N/A"

    return AspectCriticExplanation(
        score=score,
        simple_description=ASPECT_DESCRIPTION,
        steps=steps,
        interpretation=binary_interpretation(
            score,
            passed,
            formula="Score = PASS models / Total models (majority of per-model majority votes)",
            calculation=calculation,
            meanings=(
                "The response satisfies the aspect.",
                "The response does not satisfy the aspect.",
            ),
            numerator=pass_count,
            denominator=total,
        ),
        definition=definition,
        strictness=strictness,
        passed=passed,
        model_votes=model_votes,
        pass_count=pass_count,
        fail_count=fail_count,
        excluded_models=consensus.excluded_models,
    )


def aspect_critic_from_metadata(
    reader: RunReader, metadata: AspectCriticMetadata
) -> AspectCriticExplanation | None:
    votes: dict[str, list[bool | None]] = {m: list(v) for m, v in metadata.model_verdicts.items()}
    return build_aspect_critic(
        reader.score,
        definition=metadata.definition,
        strictness=metadata.strictness,
        votes=votes,
        reasonings={m: r[0] for m, r in metadata.model_reasonings.items() if r},
        failed_models=reader.exclusion_causes(votes),
    )


def aspect_critic_from_steps(reader: RunReader) -> AspectCriticExplanation | None:
    step = _evaluate_step(reader)
    iterations = reader.iterations_by_model(step)
    if not iterations:
        return None

    votes: dict[str, list[bool | None]] = {}
    reasonings: dict[str, str] = {}
    for model_id, payloads in iterations.items():
        votes[model_id] = [
            get_bool(data, "verdict", "passed") if data is not None else None for data in payloads
        ]
        reasoning = next((_reasoning(d) for d in payloads if _reasoning(d)), "")
        if reasoning:
            reasonings[model_id] = reasoning

    strictness = reader.config_value("strictness", default=None)
    if strictness is None:
        strictness = max(len(v) for v in votes.values())

    return build_aspect_critic(
        reader.score,
        definition=str(reader.config_value("definition", default="")),
        strictness=int(strictness),
        votes=votes,
        reasonings=reasonings,
    )


# -- Simple criteria --

SIMPLE_DESCRIPTION = "Scores the response against a free-form criterion on a numeric scale."


def _normalized(score: float | None, low: int, high: int) -> float | None:
    if score is None or high <= low:
        return None
    return (score - low) / (high - low)


def build_simple_criteria(
    score: float | None,
    *,
    definition: str,
    min_score: int,
    max_score: int,
    model_scores: dict[str, list[float | None]],
    reasoning: str,
    failed_models: dict[str, str] | None = None,
) -> SimpleCriteriaExplanation:
    """Assemble a SimpleCriteriaExplanation.

    The displayed raw score is the aggregated score rounded half-up;
    without a score, the rounded cross-model mean of judge scores.
    """
    consensus = numeric_consensus(model_scores)
    if score is not None:
        raw_score: int | None = round_half_up(score)
    elif consensus.total_count:
        raw_score = round_half_up(float(consensus.decision))
    else:
        raw_score = None

    model_results = [
        ModelStepResult(model_id=m, verdict=str(round_half_up(v)), numeric_result=v)
        for m, v in consensus.model_decisions.items()
    ]
    errors = {m: "all iterations failed" for m in consensus.excluded_models}
    errors.update(failed_models or {})
    model_results += failed_model_results(errors)

    steps = [
        StepExplanation(
            step_name="DefineCriteria",
            step_number=1,
            title="Define the criterion",
            description=f"Scores range from {min_score} to {max_score}.",
            input_data=definition or None,
        ),
        agreement_step(
            "EvaluateCriteria",
            2,
            "Each model scores the response",
            model_results,
            description="Models return a score and their reasoning.",
            output_summary=None if raw_score is None else f"Score {raw_score}",
            items=[ExplanationItem(content=reasoning, index=1)] if reasoning else [],
        ),
        compute_score_step(
            3,
            score,
            output_summary="N/A" if score is None else f"{score:.2f}",
        ),
    ]

    normalized = _normalized(score, min_score, max_score)
    interpretation = ScoreInterpretation(
        formula=f"Score on a {min_score}-{max_score} scale",
        calculation="N/A" if score is None else f"{score:.2f} → {raw_score}",
        numerator=None if raw_score is None else raw_score - min_score,
        denominator=max_score - min_score,
        score=score,
        score_percent="N/A" if normalized is None else "%.2f%%" % (normalized * 100),
        level=UNKNOWN_LEVEL if score is None else f"{raw_score}/{max_score}",
        is_good=None,
        meaning=NOT_CALCULATED if score is None else f"The judges rated the response {raw_score} of {max_score}.",
        scale_levels=[
            ScaleLevel(name=str(v), range=str(v), current=score is not None and v == raw_score)
            for v in range(max_score, min_score - 1, -1)
        ],
        current_level_index=(max_score - raw_score) if score is not None and raw_score is not None else -1,
        min_level=min_score,
        max_level=max_score,
    )

    return SimpleCriteriaExplanation(
        score=score,
        simple_description=SIMPLE_DESCRIPTION,
        steps=steps,
        interpretation=interpretation,
        definition=definition,
        min_score=min_score,
        max_score=max_score,
        raw_score=raw_score,
        reasoning=reasoning,
    )


def simple_criteria_from_metadata(
    reader: RunReader, metadata: SimpleCriteriaMetadata
) -> SimpleCriteriaExplanation | None:
    model_scores: dict[str, list[float | None]] = {m: list(s) for m, s in metadata.model_raw_scores.items()}
    reasonings = first_entry(metadata.model_reasonings) or []
    return build_simple_criteria(
        reader.score,
        definition=metadata.definition,
        min_score=metadata.min_score,
        max_score=metadata.max_score,
        model_scores=model_scores,
        reasoning=reasonings[0] if reasonings else "",
        failed_models=reader.exclusion_causes(model_scores),
    )


def simple_criteria_from_steps(reader: RunReader) -> SimpleCriteriaExplanation | None:
    step = _evaluate_step(reader)
    iterations = reader.iterations_by_model(step)
    if not iterations:
        return None
    model_scores = {
        m: [get_float(d, "score") if d is not None else None for d in payloads]
        for m, payloads in iterations.items()
    }
    return build_simple_criteria(
        reader.score,
        definition=str(reader.config_value("definition", default="")),
        min_score=int(reader.config_value("min_score", "minScore", default=1)),
        max_score=int(reader.config_value("max_score", "maxScore", default=5)),
        model_scores=model_scores,
        reasoning=_reasoning(reader.first_payload(step)),
    )


# -- Rubrics --

RUBRICS_DESCRIPTION = "Rates the response by selecting the best-matching level from a rubric."


def parse_rubric_levels(rubrics: dict[str, str] | None) -> list[RubricLevel]:
    """Rubric levels from ``scoreN_description`` keys, highest level first.

    Keys that do not match the pattern are ignored. An empty or missing
    mapping yields the default five-level rubric.
    """
    levels: list[RubricLevel] = []
    for key, description in (rubrics or {}).items():
        match = RUBRIC_KEY.fullmatch(key.strip())
        if match:
            levels.append(RubricLevel(level=int(match.group(1)), description=str(description)))
    if not levels:
        return list(DEFAULT_RUBRICS)
    return sorted(levels, key=lambda r: r.level, reverse=True)


def build_rubrics(
    score: float | None,
    *,
    levels: list[RubricLevel],
    model_levels: dict[str, int],
    reasoning: str,
    response: str = "",
    failed_models: dict[str, str] | None = None,
    text_limit: int = 200,
) -> RubricsExplanation:
    """Assemble a RubricsExplanation.

    The selected level is the aggregated score rounded half-up; the
    numeric score itself is kept as is (e.g. 1.6 selects level 2).
    Without a score, the middle of the rubric range is shown.
    """
    min_level = min(r.level for r in levels)
    max_level = max(r.level for r in levels)
    selected = round_half_up(score) if score is not None else (min_level + max_level) // 2
    selected_desc = next((r.description for r in levels if r.level == selected), "")

    model_results = [
        ModelStepResult(model_id=m, verdict=f"Level {lvl}", numeric_result=float(lvl))
        for m, lvl in model_levels.items()
    ]
    model_results += failed_model_results(failed_models or {})

    steps = [
        StepExplanation(
            step_name="DefineRubric",
            step_number=1,
            title="Rubric levels",
            description="The rubric the judges select from.",
            input_data=truncate(response, text_limit) or None,
            items=[
                ExplanationItem(
                    content=r.description,
                    passed=r.level == selected,
                    verdict=f"Level {r.level}",
                    index=r.level,
                )
                for r in levels
            ],
        ),
        agreement_step(
            "SelectLevel",
            2,
            "Each model selects a level",
            model_results,
            description="Models pick the rubric level that best describes the response.",
            output_summary=f"Level {selected}: {selected_desc}",
            items=[ExplanationItem(content=reasoning, passed=True, index=1)] if reasoning else [],
        ),
        compute_score_step(3, score, output_summary="N/A" if score is None else f"{score:.2f}"),
    ]

    normalized = _normalized(score, min_level, max_level)
    interpretation = ScoreInterpretation(
        formula=f"(Level - {min_level}) / ({max_level} - {min_level})",
        calculation="N/A" if score is None else f"{score:.2f}",
        numerator=selected - min_level,
        denominator=max_level - min_level,
        score=score,
        score_percent="N/A" if normalized is None else "%.2f%%" % (normalized * 100),
        level=UNKNOWN_LEVEL if score is None else f"Level {selected}",
        is_good=None,
        meaning=NOT_CALCULATED if score is None else f"Level {selected}: {selected_desc}",
        scale_levels=[
            ScaleLevel(
                name=f"Level {r.level}",
                range=str(r.level),
                description=r.description,
                current=score is not None and r.level == selected,
            )
            for r in levels
        ],
        current_level_index=next(
            (i for i, r in enumerate(levels) if r.level == selected and score is not None), -1
        ),
        min_level=min_level,
        max_level=max_level,
    )

    return RubricsExplanation(
        score=score,
        simple_description=RUBRICS_DESCRIPTION,
        steps=steps,
        interpretation=interpretation,
        rubric_levels=levels,
        selected_level=selected,
        reasoning=reasoning,
    )


def rubrics_from_metadata(reader: RunReader, metadata: RubricsMetadata) -> RubricsExplanation | None:
    return build_rubrics(
        reader.score,
        levels=parse_rubric_levels(metadata.rubrics),
        model_levels=dict(metadata.model_scores),
        reasoning=first_entry(metadata.model_reasonings) or "",
        response=reader.sample_text("response", response_from_prompt, EVALUATE_STEP),
        failed_models=reader.exclusion_causes(metadata.model_scores),
        text_limit=reader.text_limit,
    )


def rubrics_from_steps(reader: RunReader) -> RubricsExplanation | None:
    step = _evaluate_step(reader)
    model_levels: dict[str, int] = {}
    for model_id, data in reader.payloads(step):
        level = get_int(data, "score", "level")
        if level is not None and model_id not in model_levels:
            model_levels[model_id] = level

    rubrics = reader.config_value("rubrics", default=None)
    return build_rubrics(
        reader.score,
        levels=parse_rubric_levels(rubrics if isinstance(rubrics, dict) else None),
        model_levels=model_levels,
        reasoning=_reasoning(reader.first_payload(step)),
        response=reader.sample_text("response", response_from_prompt, EVALUATE_STEP),
        failed_models=reader.failed_models(step),
        text_limit=reader.text_limit,
    )
