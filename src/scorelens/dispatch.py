"""Explanation dispatcher -- routes a sealed metric run to its family extractor.

Two registries cover every metric family:

- ``METADATA_EXTRACTORS`` maps a structured metadata record type to the
  extractor that builds an explanation from it without parsing text.
- ``STEP_EXTRACTORS`` maps a MetricFamily to the reconstructive
  extractor that reads raw step payloads and scrapes prompts.

Both registries are checked for completeness at import time. The
metadata path is preferred; the step path is used when a run carries no
metadata or its metadata type yields no explanation. Any exception
raised inside an extractor is logged and turned into "no explanation".
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, get_args

from scorelens.explanation.models import BaseExplanation, MetricFamily
from scorelens.extraction.steps import DEFAULT_TEXT_LIMIT, RunReader
from scorelens.extractors import agents, answer, critique, faithfulness, retrieval, text
from scorelens.models import metadata as md
from scorelens.models.run import MetricRun, MetricRunBuilder, Sample, StepResult

logger = logging.getLogger(__name__)

StepExtractor = Callable[[RunReader], BaseExplanation | None]
MetadataExtractor = Callable[[RunReader, Any], BaseExplanation | None]


def _no_explanation(reader: RunReader, metadata: Any) -> None:
    return None


STEP_EXTRACTORS: dict[MetricFamily, StepExtractor] = {
    MetricFamily.FAITHFULNESS: faithfulness.faithfulness_from_steps,
    MetricFamily.ASPECT_CRITIC: critique.aspect_critic_from_steps,
    MetricFamily.SIMPLE_CRITERIA: critique.simple_criteria_from_steps,
    MetricFamily.RUBRICS: critique.rubrics_from_steps,
    MetricFamily.CONTEXT_PRECISION: retrieval.context_precision_from_steps,
    MetricFamily.CONTEXT_RECALL: retrieval.context_recall_from_steps,
    MetricFamily.CONTEXT_ENTITY_RECALL: retrieval.context_entity_recall_from_steps,
    MetricFamily.NOISE_SENSITIVITY: retrieval.noise_sensitivity_from_steps,
    MetricFamily.RESPONSE_RELEVANCY: answer.response_relevancy_from_steps,
    MetricFamily.SEMANTIC_SIMILARITY: answer.semantic_similarity_from_steps,
    MetricFamily.FACTUAL_CORRECTNESS: answer.factual_correctness_from_steps,
    MetricFamily.ANSWER_CORRECTNESS: answer.answer_correctness_from_steps,
    MetricFamily.AGENT_GOAL_ACCURACY: agents.agent_goal_accuracy_from_steps,
    MetricFamily.TOOL_CALL_ACCURACY: agents.tool_call_accuracy_from_steps,
    MetricFamily.TOPIC_ADHERENCE: agents.topic_adherence_from_steps,
    MetricFamily.CONTEXT_RELEVANCE: retrieval.context_relevance_from_steps,
    MetricFamily.RESPONSE_GROUNDEDNESS: retrieval.response_groundedness_from_steps,
    MetricFamily.ANSWER_ACCURACY: answer.answer_accuracy_from_steps,
    MetricFamily.BLEU: text.bleu_from_steps,
    MetricFamily.ROUGE: text.rouge_from_steps,
    MetricFamily.CHRF: text.chrf_from_steps,
    MetricFamily.STRING_SIMILARITY: text.string_similarity_from_steps,
}

METADATA_EXTRACTORS: dict[type, MetadataExtractor] = {
    md.FaithfulnessMetadata: faithfulness.faithfulness_from_metadata,
    md.AspectCriticMetadata: critique.aspect_critic_from_metadata,
    md.SimpleCriteriaMetadata: critique.simple_criteria_from_metadata,
    md.RubricsMetadata: critique.rubrics_from_metadata,
    md.ContextPrecisionMetadata: retrieval.context_precision_from_metadata,
    md.ContextRecallMetadata: retrieval.context_recall_from_metadata,
    md.ContextEntityRecallMetadata: retrieval.context_entity_recall_from_metadata,
    md.NoiseSensitivityMetadata: retrieval.noise_sensitivity_from_metadata,
    md.ResponseRelevancyMetadata: answer.response_relevancy_from_metadata,
    md.FactualCorrectnessMetadata: answer.factual_correctness_from_metadata,
    md.AnswerCorrectnessMetadata: answer.answer_correctness_from_metadata,
    md.SemanticSimilarityMetadata: answer.semantic_similarity_from_metadata,
    md.AgentGoalAccuracyMetadata: agents.agent_goal_accuracy_from_metadata,
    md.ToolCallAccuracyMetadata: agents.tool_call_accuracy_from_metadata,
    md.TopicAdherenceMetadata: agents.topic_adherence_from_metadata,
    md.BleuMetadata: text.bleu_from_metadata,
    md.RougeMetadata: text.rouge_from_metadata,
    md.ChrfMetadata: text.chrf_from_metadata,
    md.StringSimilarityMetadata: text.string_similarity_from_metadata,
    md.AnswerAccuracyMetadata: answer.answer_accuracy_from_metadata,
    md.ContextRelevanceMetadata: retrieval.context_relevance_from_metadata,
    md.ResponseGroundednessMetadata: retrieval.response_groundedness_from_metadata,
    md.HallucinationMetadata: _no_explanation,
}

# Alternate spellings seen in metric class names, compared without hyphens
_ALIASES: dict[str, MetricFamily] = {
    "aspectcritique": MetricFamily.ASPECT_CRITIC,
    "simplecriteriascore": MetricFamily.SIMPLE_CRITERIA,
    "rubricsscore": MetricFamily.RUBRICS,
    "rubricscore": MetricFamily.RUBRICS,
    "answerrelevancy": MetricFamily.RESPONSE_RELEVANCY,
    "answerrelevance": MetricFamily.RESPONSE_RELEVANCY,
    "answersimilarity": MetricFamily.SEMANTIC_SIMILARITY,
    "agentgoalaccuracywithreference": MetricFamily.AGENT_GOAL_ACCURACY,
    "agentgoalaccuracywithoutreference": MetricFamily.AGENT_GOAL_ACCURACY,
    "contextprecisionwithreference": MetricFamily.CONTEXT_PRECISION,
    "contextprecisionwithoutreference": MetricFamily.CONTEXT_PRECISION,
    "bleuscore": MetricFamily.BLEU,
    "rougescore": MetricFamily.ROUGE,
    "chrfscore": MetricFamily.CHRF,
    "nonllmstringsimilarity": MetricFamily.STRING_SIMILARITY,
}

_FAMILY_KEYS: dict[str, MetricFamily] = {
    **{family.value.replace("-", ""): family for family in MetricFamily},
    **_ALIASES,
}


def _check_registries() -> None:
    missing_steps = [f.value for f in MetricFamily if f not in STEP_EXTRACTORS]
    if missing_steps:
        raise RuntimeError(f"No step extractor registered for: {', '.join(missing_steps)}")
    union, *_ = get_args(md.MetricMetadata)
    metadata_types = set(get_args(union))
    missing_records = sorted(t.__name__ for t in metadata_types if t not in METADATA_EXTRACTORS)
    if missing_records:
        raise RuntimeError(f"No metadata extractor registered for: {', '.join(missing_records)}")


_check_registries()


def normalize_metric_name(name: str) -> str:
    """Lower-case, drop 'metric', map underscores to hyphens, trim."""
    return name.lower().replace("metric", "").replace("_", "-").strip().strip("-")


def resolve_family(name: str) -> MetricFamily | None:
    """Map a metric name to its family, or None when unsupported.

    Accepts hyphenated ("context-entity-recall"), concatenated
    ("ContextEntityRecall"), class-style ("ContextEntityRecallMetric")
    and snake_case spellings.
    """
    key = normalize_metric_name(name).replace("-", "").replace(" ", "")
    return _FAMILY_KEYS.get(key)


def aliases_for(family: MetricFamily) -> list[str]:
    """Alternate metric-name spellings that resolve to family."""
    return sorted(alias for alias, target in _ALIASES.items() if target is family)


def metadata_kinds() -> set[str]:
    """The ``kind`` of every metadata record that has an extractor."""
    return {record.model_fields["kind"].default for record in METADATA_EXTRACTORS}


def _guarded(metric_name: str, extractor: Callable[..., BaseExplanation | None], *args: Any) -> BaseExplanation | None:
    try:
        return extractor(*args)
    except Exception:
        logger.warning("Failed to extract explanation for metric %s", metric_name, exc_info=True)
        return None


def explain_from_metadata(run: MetricRun, *, text_limit: int = DEFAULT_TEXT_LIMIT) -> BaseExplanation | None:
    """Build an explanation from the run's structured metadata record only."""
    if run.metadata is None:
        return None
    extractor = METADATA_EXTRACTORS.get(type(run.metadata))
    if extractor is None:
        logger.debug("No metadata extractor for %s", type(run.metadata).__name__)
        return None
    return _guarded(run.metric_name, extractor, RunReader(run, text_limit), run.metadata)


def explain_from_steps(run: MetricRun, *, text_limit: int = DEFAULT_TEXT_LIMIT) -> BaseExplanation | None:
    """Build an explanation by reconstructing evidence from the run's raw steps."""
    family = resolve_family(run.metric_name)
    if family is None:
        logger.debug("No explanation extractor for metric: %s", run.metric_name)
        return None
    return _guarded(run.metric_name, STEP_EXTRACTORS[family], RunReader(run, text_limit))


def dispatch(
    run: MetricRun,
    *,
    prefer_metadata: bool = True,
    text_limit: int = DEFAULT_TEXT_LIMIT,
) -> BaseExplanation | None:
    """Produce the explanation for a sealed metric run.

    Args:
        run: The sealed run.
        prefer_metadata: Use the structured metadata record when the run
            carries one, falling back to the steps only if it yields
            nothing. When False the steps are always used.
        text_limit: Maximum length of echoed response/reference text.

    Returns:
        The explanation, or None when the metric is unsupported or
        extraction failed. Never raises for extractor errors.
    """
    if prefer_metadata and run.metadata is not None:
        explanation = explain_from_metadata(run, text_limit=text_limit)
        if explanation is not None or isinstance(run.metadata, md.HallucinationMetadata):
            return explanation
    return explain_from_steps(run, text_limit=text_limit)


def explain(
    metric_name: str,
    steps: list[StepResult],
    score: float | None,
    config: Mapping[str, Any] | None = None,
    metadata: md.MetricMetadata | None = None,
    sample: Sample | None = None,
    **options: Any,
) -> BaseExplanation | None:
    """Convenience entry point taking the loose pieces of a run.

    The steps are sealed into a MetricRun and passed to ``dispatch``;
    ``options`` are forwarded to it.
    """
    builder = MetricRunBuilder(metric_name, config=dict(config or {}), sample=sample)
    for step in steps:
        builder.add_step(step)
    run = builder.seal(score, metadata=metadata)
    return dispatch(run, **options)
