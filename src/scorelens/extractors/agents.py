"""Explanations for agentic metrics.

Agent goal accuracy (binary judge verdict), tool call accuracy (F1 over
aligned tool calls), and topic adherence (precision/recall of on-topic
conversation topics).
"""

from __future__ import annotations

import logging

from scorelens.consensus.voting import boolean_consensus
from scorelens.explanation.interpretation import binary_interpretation, format_percent, standard_interpretation
from scorelens.explanation.models import (
    AgentGoalAccuracyExplanation,
    DetailItem,
    ExplanationItem,
    ModelStepResult,
    StepExplanation,
    ToolCallAccuracyExplanation,
    ToolCallMatch,
    TopicAdherenceExplanation,
    TopicClassification,
)
from scorelens.extraction.payloads import get_bool, get_dicts, get_float, get_int, get_strings, get_text
from scorelens.extraction.steps import RunReader, first_entry
from scorelens.extractors.common import agreement_step, compute_score_step, failed_model_results, text_items
from scorelens.models.metadata import AgentGoalAccuracyMetadata, ToolCallAccuracyMetadata, TopicAdherenceMetadata

logger = logging.getLogger(__name__)


def f1_score(precision: float, recall: float) -> float:
    if precision + recall == 0:
        return 0.0
    return 2 * precision * recall / (precision + recall)


# -- Agent goal accuracy --

GOAL_DESCRIPTION = "Judges whether the agent achieved the user's goal by the end of the conversation."
INFER_GOAL_STEP = "InferGoal"
OUTCOME_STEPS = ("EvaluateOutcome", "CompareOutcome")

_GOAL_MEANINGS = (
    "The agent achieved the user's goal.",
    "The agent did not achieve the user's goal.",
)


def build_agent_goal_accuracy(
    score: float | None,
    *,
    mode: str,
    inferred_goal: str | None,
    model_verdicts: dict[str, bool],
    model_reasonings: dict[str, str] | None = None,
    failed_models: dict[str, str] | None = None,
) -> AgentGoalAccuracyExplanation:
    """Assemble an AgentGoalAccuracyExplanation.

    The displayed decision follows the aggregated score when there is
    one (achieved iff score >= 0.5); otherwise the cross-model
    consensus of the judges decides.
    """
    model_reasonings = model_reasonings or {}
    consensus = boolean_consensus({m: [v] for m, v in model_verdicts.items()})
    achieved = score >= 0.5 if score is not None else bool(consensus.decision)
    reasoning = next((r for r in model_reasonings.values() if r), "")

    model_results = [
        ModelStepResult(
            model_id=m,
            verdict="ACHIEVED" if v else "NOT ACHIEVED",
            numeric_result=1.0 if v else 0.0,
            reasoning=model_reasonings.get(m) or None,
        )
        for m, v in model_verdicts.items()
    ]
    model_results += failed_model_results(failed_models or {})

    steps: list[StepExplanation] = []
    if inferred_goal:
        steps.append(
            StepExplanation(
                step_name=INFER_GOAL_STEP,
                step_number=1,
                title="Infer the user's goal",
                description="The goal the user was pursuing is inferred from the conversation.",
                output_summary=inferred_goal,
            )
        )
    steps.append(
        StepExplanation(
            step_name="EvaluateOutcome",
            step_number=len(steps) + 1,
            title="Judge the outcome",
            description=(
                "The end state is compared with the reference outcome."
                if mode == "WITH_REFERENCE"
                else "The end state is compared with the inferred goal."
            ),
            output_summary=f"{consensus.success_count}/{consensus.total_count} judges agree",
            model_results=model_results,
            has_model_disagreement=consensus.has_disagreement,
            agreement_percent=consensus.agreement_percent,
        )
    )
    steps.append(compute_score_step(len(steps) + 1, score))

    achieved_count = sum(1 for v in model_verdicts.values() if v)
    if score is None:
        calculation = "N/A"
    elif len(model_verdicts) > 1:
        calculation = (
            f"{achieved_count} ACHIEVED + {len(model_verdicts) - achieved_count} NOT ACHIEVED"
            f" → {'PASS' if achieved else 'FAIL'} = {score:.1f}"
        )
    else:
        calculation = f"{'PASS' if achieved else 'FAIL'} → {score:.1f}"

    return AgentGoalAccuracyExplanation(
        score=score,
        simple_description=GOAL_DESCRIPTION,
        steps=steps,
        interpretation=binary_interpretation(
            score,
            achieved,
            formula="Goal Accuracy = 1 if the goal was achieved else 0",
            calculation=calculation,
            meanings=_GOAL_MEANINGS,
            numerator=achieved_count,
            denominator=len(model_verdicts),
        ),
        mode=mode,
        inferred_goal=inferred_goal,
        achieved=achieved,
        model_verdicts=model_verdicts,
        reasoning=reasoning,
    )


def agent_goal_accuracy_from_metadata(
    reader: RunReader, metadata: AgentGoalAccuracyMetadata
) -> AgentGoalAccuracyExplanation | None:
    return build_agent_goal_accuracy(
        reader.score,
        mode=metadata.mode,
        inferred_goal=metadata.inferred_goal,
        model_verdicts=dict(metadata.model_verdicts),
        model_reasonings=dict(metadata.model_reasonings),
        failed_models=reader.exclusion_causes(metadata.model_verdicts),
    )


def agent_goal_accuracy_from_steps(reader: RunReader) -> AgentGoalAccuracyExplanation | None:
    outcome = reader.step(*OUTCOME_STEPS)
    if outcome is None:
        return None

    goal_payload = reader.first_payload(reader.step(INFER_GOAL_STEP)) or {}
    inferred_goal = get_text(goal_payload, "goal", "inferredGoal", "inferred_goal")

    verdicts: dict[str, bool] = {}
    reasonings: dict[str, str] = {}
    for model_id, data in reader.payloads(outcome):
        verdict = get_bool(data, "goalAchieved", "achieved", "verdict")
        if verdict is None or model_id in verdicts:
            continue
        verdicts[model_id] = verdict
        reasonings[model_id] = get_text(data, "reasoning", "reason") or ""

    default_mode = "WITH_REFERENCE" if outcome.step_name == "CompareOutcome" else "WITHOUT_REFERENCE"
    return build_agent_goal_accuracy(
        reader.score,
        mode=str(reader.config_value("mode", default=default_mode)),
        inferred_goal=inferred_goal,
        model_verdicts=verdicts,
        model_reasonings=reasonings,
        failed_models={m: e for m, e in reader.failed_models(outcome).items() if m not in verdicts},
    )


# -- Tool call accuracy --

TOOL_DESCRIPTION = "Measures how accurately the agent called the expected tools with the expected arguments."
ALIGN_STEP = "AlignToolCalls"
PRECISION_RECALL_STEP = "ComputePrecisionRecall"

_TOOL_MEANINGS = (
    "The agent made the expected tool calls with correct arguments.",
    "Most tool calls match the reference; a few are missing or extra.",
    "Many tool calls are missing, extra, or have wrong arguments.",
    "The agent's tool calls largely diverge from the reference.",
)


def build_tool_call_accuracy(
    score: float | None,
    *,
    mode: str,
    precision: float,
    recall: float,
    true_positives: int,
    false_positives: int,
    false_negatives: int,
    matches: list[ToolCallMatch],
) -> ToolCallAccuracyExplanation:
    """Assemble a ToolCallAccuracyExplanation.

    When precision and recall are both exactly zero while the score is
    positive, the counts did not survive upstream and both are shown as
    the score itself.
    """
    if precision == 0 and recall == 0 and score is not None and score > 0:
        logger.debug("Tool call precision/recall unavailable; approximating both with score %.4f", score)
        precision = recall = score

    steps = [
        StepExplanation(
            step_name=ALIGN_STEP,
            step_number=1,
            title="Align actual and reference tool calls",
            description=(
                "Calls match when name and arguments are identical."
                if mode == "STRICT"
                else "Calls match when names agree and arguments are similar enough."
            ),
            output_summary=f"{sum(1 for m in matches if m.matched)}/{len(matches)} aligned pairs matched",
            items=[
                ExplanationItem(
                    content=f"{m.actual_call_name or '-'} ↔ {m.reference_call_name or '-'}",
                    passed=m.matched,
                    verdict="MATCH" if m.matched else "NO MATCH",
                    numeric_value=m.match_score,
                    index=i,
                )
                for i, m in enumerate(matches, 1)
            ],
        ),
        StepExplanation(
            step_name=PRECISION_RECALL_STEP,
            step_number=2,
            title="Precision and recall",
            description="Precision = TP / (TP + FP); Recall = TP / (TP + FN).",
            output_summary="TP=%d, FP=%d, FN=%d" % (true_positives, false_positives, false_negatives),
            metadata={"precision": f"{precision:.4f}", "recall": f"{recall:.4f}"},
        ),
        compute_score_step(
            3,
            score,
            output_summary="F1 = %.2f" % f1_score(precision, recall),
        ),
    ]

    calculation = (
        f"2 × ({precision:.2f} × {recall:.2f}) / ({precision:.2f} + {recall:.2f})"
        f" = {format_percent(f1_score(precision, recall))}"
    )
    return ToolCallAccuracyExplanation(
        score=score,
        simple_description=TOOL_DESCRIPTION,
        steps=steps,
        interpretation=standard_interpretation(
            score,
            formula="F1 = 2 × (Precision × Recall) / (Precision + Recall)",
            calculation=calculation,
            meanings=_TOOL_MEANINGS,
            numerator=true_positives,
            denominator=true_positives + false_positives + false_negatives,
        ),
        mode=mode,
        precision=precision,
        recall=recall,
        true_positives=true_positives,
        false_positives=false_positives,
        false_negatives=false_negatives,
        matches=matches,
    )


def tool_call_accuracy_from_metadata(
    reader: RunReader, metadata: ToolCallAccuracyMetadata
) -> ToolCallAccuracyExplanation | None:
    return build_tool_call_accuracy(
        reader.score,
        mode=metadata.mode,
        precision=metadata.precision,
        recall=metadata.recall,
        true_positives=metadata.true_positives,
        false_positives=metadata.false_positives,
        false_negatives=metadata.false_negatives,
        matches=[ToolCallMatch(**m.model_dump()) for m in metadata.matches],
    )


def _tool_matches(data: dict) -> list[ToolCallMatch]:
    matches: list[ToolCallMatch] = []
    for entry in get_dicts(data, "matches"):
        matched = get_bool(entry, "matched", "isMatch")
        score = get_float(entry, "matchScore", "match_score", "score")
        matches.append(
            ToolCallMatch(
                actual_call_name=get_text(entry, "actualCallName", "actual_call_name", "actual"),
                reference_call_name=get_text(entry, "referenceCallName", "reference_call_name", "reference"),
                matched=bool(matched),
                match_score=score if score is not None else (1.0 if matched else 0.0),
            )
        )
    return matches


def tool_call_accuracy_from_steps(reader: RunReader) -> ToolCallAccuracyExplanation | None:
    counts = reader.first_payload(reader.step(PRECISION_RECALL_STEP))
    align = reader.first_payload(reader.step(ALIGN_STEP))
    if counts is None and align is None and not reader.not_calculated:
        return None
    counts = counts or {}
    matches = _tool_matches(align or {})

    tp = get_int(counts, "truePositives", "true_positives", "tp")
    fp = get_int(counts, "falsePositives", "false_positives", "fp")
    fn = get_int(counts, "falseNegatives", "false_negatives", "fn")
    if tp is None:
        tp = sum(1 for m in matches if m.matched)
    if fp is None:
        fp = sum(1 for m in matches if m.actual_call_name and not m.matched)
    if fn is None:
        fn = sum(1 for m in matches if m.reference_call_name and not m.matched)

    precision = get_float(counts, "precision")
    recall = get_float(counts, "recall")
    if precision is None:
        precision = tp / (tp + fp) if tp + fp else 0.0
    if recall is None:
        recall = tp / (tp + fn) if tp + fn else 0.0

    return build_tool_call_accuracy(
        reader.score,
        mode=str(reader.config_value("mode", default="STRICT")).upper(),
        precision=precision,
        recall=recall,
        true_positives=tp,
        false_positives=fp,
        false_negatives=fn,
        matches=matches,
    )


# -- Topic adherence --

TOPIC_DESCRIPTION = "Measures whether the conversation stays within the allowed reference topics."
EXTRACT_TOPICS_STEP = "ExtractTopics"
CLASSIFY_TOPICS_STEP = "ClassifyTopics"

_TOPIC_MEANINGS = (
    "The conversation stays on the reference topics.",
    "The conversation mostly stays on the reference topics.",
    "The conversation frequently drifts off the reference topics.",
    "The conversation is mostly off the reference topics.",
)


def topic_precision_recall(
    classifications: list[TopicClassification], reference_topics: list[str]
) -> tuple[float, float]:
    """(precision, recall) of the on-topic classifications.

    Precision is the on-topic share of classified topics. Recall is the
    share of distinct reference topics matched by at least one on-topic
    classification.
    """
    on_topic = [c for c in classifications if c.on_topic]
    precision = len(on_topic) / len(classifications) if classifications else 0.0
    reference_keys = {t.strip().lower() for t in reference_topics}
    matched = {
        c.matched_reference_topic.strip().lower()
        for c in on_topic
        if c.matched_reference_topic and c.matched_reference_topic.strip().lower() in reference_keys
    }
    recall = len(matched) / len(reference_keys) if reference_keys else 0.0
    return precision, recall


def build_topic_adherence(
    score: float | None,
    *,
    mode: str,
    extracted_topics: list[str],
    reference_topics: list[str],
    classifications: list[TopicClassification],
    model_classifications: dict[str, list[TopicClassification]] | None = None,
    failed_models: dict[str, str] | None = None,
) -> TopicAdherenceExplanation:
    mode = mode.upper()
    precision, recall = topic_precision_recall(classifications, reference_topics)
    f1 = f1_score(precision, recall)
    on_topic = sum(1 for c in classifications if c.on_topic)

    model_results = []
    for m, cs in (model_classifications or {}).items():
        model_on_topic = sum(1 for c in cs if c.on_topic)
        model_results.append(
            ModelStepResult(
                model_id=m,
                verdict=f"{model_on_topic}/{len(cs)}",
                numerator=model_on_topic,
                denominator=len(cs),
                items=[
                    DetailItem(content=c.extracted_topic, passed=c.on_topic, reason=c.reasoning or None)
                    for c in cs
                ],
            )
        )
    model_results += failed_model_results(failed_models or {})

    steps = [
        StepExplanation(
            step_name=EXTRACT_TOPICS_STEP,
            step_number=1,
            title="Extract conversation topics",
            output_summary=f"{len(extracted_topics)} topics",
            items=text_items(extracted_topics),
            metadata={"reference_topics": ", ".join(reference_topics)} if reference_topics else {},
        ),
        agreement_step(
            CLASSIFY_TOPICS_STEP,
            2,
            "Classify topics against the reference",
            model_results,
            description="Each extracted topic is judged on-topic or off-topic for the reference topics.",
            output_summary=f"{on_topic}/{len(classifications)} on-topic",
            items=[
                ExplanationItem(
                    content=c.extracted_topic,
                    passed=c.on_topic,
                    verdict="ON TOPIC" if c.on_topic else "OFF TOPIC",
                    reason=c.reasoning or None,
                    source=c.matched_reference_topic,
                    index=i,
                )
                for i, c in enumerate(classifications, 1)
            ],
        ),
        StepExplanation(
            step_name=PRECISION_RECALL_STEP,
            step_number=3,
            title="Precision, recall and F1",
            metadata={"precision": f"{precision:.4f}", "recall": f"{recall:.4f}", "f1": f"{f1:.4f}"},
            output_summary=f"{mode} = {format_percent({'PRECISION': precision, 'RECALL': recall}.get(mode, f1))}",
        ),
        compute_score_step(4, score),
    ]

    if mode == "PRECISION":
        formula = "Precision = On-topic topics / Extracted topics"
        calculation = f"{on_topic}/{len(classifications)} = {format_percent(precision)}"
    elif mode == "RECALL":
        formula = "Recall = Matched reference topics / Reference topics"
        calculation = format_percent(recall)
    else:
        formula = "F1 = 2 × (Precision × Recall) / (Precision + Recall)"
        calculation = (
            f"2 × ({precision:.2f} × {recall:.2f}) / ({precision:.2f} + {recall:.2f}) = {format_percent(f1)}"
        )

    return TopicAdherenceExplanation(
        score=score,
        simple_description=TOPIC_DESCRIPTION,
        steps=steps,
        interpretation=standard_interpretation(
            score,
            formula=formula,
            calculation=calculation,
            meanings=_TOPIC_MEANINGS,
        ),
        mode=mode,
        precision=precision,
        recall=recall,
        extracted_topics=extracted_topics,
        reference_topics=reference_topics,
        classifications=classifications,
    )


def topic_adherence_from_metadata(
    reader: RunReader, metadata: TopicAdherenceMetadata
) -> TopicAdherenceExplanation | None:
    model_classifications = {
        m: [TopicClassification(**c.model_dump()) for c in cs] for m, cs in metadata.model_classifications.items()
    }
    return build_topic_adherence(
        reader.score,
        mode=metadata.mode,
        extracted_topics=list(metadata.extracted_topics),
        reference_topics=list(metadata.reference_topics) or _reference_topics(reader),
        classifications=first_entry(model_classifications) or [],
        model_classifications=model_classifications,
        failed_models=reader.exclusion_causes(model_classifications),
    )


def _reference_topics(reader: RunReader) -> list[str]:
    sample = reader.run.sample
    if sample is not None and sample.reference_topics:
        return list(sample.reference_topics)
    configured = reader.config_value("reference_topics", "referenceTopics", default=[])
    return [str(t) for t in configured] if isinstance(configured, list) else []


def _topic_classifications(data: dict) -> list[TopicClassification]:
    parsed = []
    for entry in get_dicts(data, "classifications"):
        topic = get_text(entry, "extractedTopic", "extracted_topic", "topic")
        on_topic = get_bool(entry, "onTopic", "on_topic")
        if topic is None or on_topic is None:
            continue
        parsed.append(
            TopicClassification(
                extracted_topic=topic,
                on_topic=on_topic,
                matched_reference_topic=get_text(entry, "matchedReferenceTopic", "matched_reference_topic"),
                reasoning=get_text(entry, "reasoning", "reason") or "",
            )
        )
    return parsed


def topic_adherence_from_steps(reader: RunReader) -> TopicAdherenceExplanation | None:
    classify = reader.step(CLASSIFY_TOPICS_STEP)
    extract = reader.step(EXTRACT_TOPICS_STEP)
    if classify is None and extract is None:
        return None

    model_classifications: dict[str, list[TopicClassification]] = {}
    for model_id, data in reader.payloads(classify):
        parsed = _topic_classifications(data)
        if parsed and model_id not in model_classifications:
            model_classifications[model_id] = parsed

    topics_payload = reader.first_payload(extract, "topics")
    extracted = get_strings(topics_payload, "topics", "topic") if topics_payload else []
    classifications = first_entry(model_classifications) or []

    return build_topic_adherence(
        reader.score,
        mode=str(reader.config_value("mode", default="F1")),
        extracted_topics=extracted or [c.extracted_topic for c in classifications],
        reference_topics=_reference_topics(reader),
        classifications=classifications,
        model_classifications=model_classifications,
        failed_models={m: e for m, e in reader.failed_models(classify).items() if m not in model_classifications},
    )
