"""Structured metadata records supplied by metrics.

Each metric family may attach one record to its MetricRun describing
what every model produced along the way: extracted statements, verdict
maps, precision/recall counts and so on. Per-model maps are keyed by
model id in model order; the first entry is the representative one for
list-valued display fields.

Records are discriminated on ``kind`` so a persisted run restores the
correct record type.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class _Record(BaseModel):
    model_config = {"extra": "forbid", "frozen": True, "protected_namespaces": ()}


# -- Shared summaries --


class StatementVerdictSummary(_Record):
    """A statement and whether the context supports it (1) or not (0)."""

    statement: str
    reason: str = ""
    verdict: int = 0


class ClassificationSummary(_Record):
    """A reference statement and whether it is attributable to the context."""

    statement: str
    reason: str = ""
    attributed: int = 0


class NliVerdictSummary(_Record):
    """Natural-language-inference verdict for a single claim."""

    claim: str
    verdict: Literal["SUPPORTED", "CONTRADICTED", "NEUTRAL"] = "NEUTRAL"
    reason: str = ""


class ToolCallMatchSummary(_Record):
    """Alignment of one actual tool call against a reference call."""

    actual_call_name: str | None = None
    reference_call_name: str | None = None
    matched: bool = False
    match_score: float = 0.0


class TopicClassificationSummary(_Record):
    """Classification of an extracted topic against the reference topics."""

    extracted_topic: str
    on_topic: bool = False
    matched_reference_topic: str | None = None
    reasoning: str = ""


class JudgmentSummary(_Record):
    """A 0-2 judge rating with reasoning."""

    raw_score: int = 0
    reasoning: str = ""


# -- Family records --


class FaithfulnessMetadata(_Record):
    kind: Literal["faithfulness"] = "faithfulness"
    extracted_statements: dict[str, list[str]] = Field(default_factory=dict)
    verdicts: dict[str, list[StatementVerdictSummary]] = Field(default_factory=dict)
    faithful_count: int = 0
    total_count: int = 0


class AspectCriticMetadata(_Record):
    """Per-model iteration verdicts for an aspect critic run.

    ``model_verdicts[model]`` holds one boolean per strictness iteration.
    """

    kind: Literal["aspect-critic"] = "aspect-critic"
    definition: str = ""
    strictness: int = 1
    model_verdicts: dict[str, list[bool]] = Field(default_factory=dict)
    model_reasonings: dict[str, list[str]] = Field(default_factory=dict)


class SimpleCriteriaMetadata(_Record):
    kind: Literal["simple-criteria"] = "simple-criteria"
    definition: str = ""
    min_score: int = 1
    max_score: int = 5
    strictness: int = 1
    model_raw_scores: dict[str, list[float]] = Field(default_factory=dict)
    model_reasonings: dict[str, list[str]] = Field(default_factory=dict)


class RubricsMetadata(_Record):
    """Rubric definitions keyed ``scoreN_description`` and each model's choice."""

    kind: Literal["rubrics"] = "rubrics"
    rubrics: dict[str, str] = Field(default_factory=dict)
    model_scores: dict[str, int] = Field(default_factory=dict)
    model_rubric_levels: dict[str, str] = Field(default_factory=dict)
    model_reasonings: dict[str, str] = Field(default_factory=dict)


class ContextPrecisionMetadata(_Record):
    kind: Literal["context-precision"] = "context-precision"
    evaluation_strategy: str = "REFERENCE"
    model_relevance_results: dict[str, list[bool]] = Field(default_factory=dict)
    context_count: int = 0


class ContextRecallMetadata(_Record):
    kind: Literal["context-recall"] = "context-recall"
    classifications: dict[str, list[ClassificationSummary]] = Field(default_factory=dict)
    attributed_count: int = 0
    total_count: int = 0


class ContextEntityRecallMetadata(_Record):
    kind: Literal["context-entity-recall"] = "context-entity-recall"
    reference_entities: list[str] = Field(default_factory=list)
    context_entities: dict[str, list[str]] = Field(default_factory=dict)
    common_entities: dict[str, list[str]] = Field(default_factory=dict)
    recall_numerator: int = 0
    recall_denominator: int = 0


class NoiseSensitivityMetadata(_Record):
    kind: Literal["noise-sensitivity"] = "noise-sensitivity"
    mode: str = "RELEVANT"
    reference_statements: dict[str, list[str]] = Field(default_factory=dict)
    response_statements: dict[str, list[str]] = Field(default_factory=dict)
    num_contexts: int = 0


class ResponseRelevancyMetadata(_Record):
    kind: Literal["response-relevancy"] = "response-relevancy"
    generated_questions: dict[str, list[str]] = Field(default_factory=dict)
    noncommittal_flags: dict[str, list[bool]] = Field(default_factory=dict)
    similarity_scores: dict[str, float] = Field(default_factory=dict)
    number_of_questions: int = 3


class FactualCorrectnessMetadata(_Record):
    kind: Literal["factual-correctness"] = "factual-correctness"
    mode: str = "F1"
    response_claims: dict[str, list[str]] = Field(default_factory=dict)
    reference_claims: dict[str, list[str]] = Field(default_factory=dict)
    precision_verdicts: dict[str, list[NliVerdictSummary]] = Field(default_factory=dict)
    recall_verdicts: dict[str, list[NliVerdictSummary]] = Field(default_factory=dict)


class AnswerCorrectnessMetadata(_Record):
    kind: Literal["answer-correctness"] = "answer-correctness"
    factual_score: float = 0.0
    semantic_score: float = 0.0
    normalized_factual_weight: float = 0.75
    normalized_semantic_weight: float = 0.25


class SemanticSimilarityMetadata(_Record):
    kind: Literal["semantic-similarity"] = "semantic-similarity"
    embedding_model_scores: dict[str, float] = Field(default_factory=dict)
    threshold: float | None = None


class AgentGoalAccuracyMetadata(_Record):
    kind: Literal["agent-goal-accuracy"] = "agent-goal-accuracy"
    mode: str = "WITH_REFERENCE"
    inferred_goal: str | None = None
    model_verdicts: dict[str, bool] = Field(default_factory=dict)
    model_reasonings: dict[str, str] = Field(default_factory=dict)


class ToolCallAccuracyMetadata(_Record):
    kind: Literal["tool-call-accuracy"] = "tool-call-accuracy"
    mode: Literal["STRICT", "FLEXIBLE"] = "STRICT"
    argument_match_threshold: float = 1.0
    actual_call_count: int = 0
    reference_call_count: int = 0
    true_positives: int = 0
    false_positives: int = 0
    false_negatives: int = 0
    precision: float = 0.0
    recall: float = 0.0
    matches: list[ToolCallMatchSummary] = Field(default_factory=list)


class TopicAdherenceMetadata(_Record):
    kind: Literal["topic-adherence"] = "topic-adherence"
    mode: Literal["PRECISION", "RECALL", "F1"] = "F1"
    reference_topics: list[str] = Field(default_factory=list)
    extracted_topics: list[str] = Field(default_factory=list)
    model_classifications: dict[str, list[TopicClassificationSummary]] = Field(default_factory=dict)


class BleuMetadata(_Record):
    kind: Literal["bleu"] = "bleu"
    max_ngram: int = 4
    smoothing: bool = True


class RougeMetadata(_Record):
    kind: Literal["rouge"] = "rouge"
    rouge_type: str = "ROUGE_L"
    mode: str = "FMEASURE"


class ChrfMetadata(_Record):
    kind: Literal["chrf"] = "chrf"
    char_ngram_order: int = 6
    word_ngram_order: int = 0
    beta: float = 2.0


class StringSimilarityMetadata(_Record):
    kind: Literal["string-similarity"] = "string-similarity"
    distance_measure: str = "LEVENSHTEIN"
    case_sensitive: bool = True


class AnswerAccuracyMetadata(_Record):
    kind: Literal["answer-accuracy"] = "answer-accuracy"
    initial_judgments: dict[str, JudgmentSummary] = Field(default_factory=dict)
    confirmed_judgments: dict[str, JudgmentSummary] = Field(default_factory=dict)
    used_dual_judge: bool = True


class ContextRelevanceMetadata(_Record):
    kind: Literal["context-relevance"] = "context-relevance"
    context_scores: list[float] = Field(default_factory=list)
    context_count: int = 0


class ResponseGroundednessMetadata(_Record):
    kind: Literal["response-groundedness"] = "response-groundedness"
    used_heuristic_shortcuts: bool = False
    heuristic_match: bool = False


class HallucinationMetadata(_Record):
    kind: Literal["hallucination"] = "hallucination"
    claim_analyses: dict[str, list[StatementVerdictSummary]] = Field(default_factory=dict)


MetricMetadata = Annotated[
    Union[
        FaithfulnessMetadata,
        AspectCriticMetadata,
        SimpleCriteriaMetadata,
        RubricsMetadata,
        ContextPrecisionMetadata,
        ContextRecallMetadata,
        ContextEntityRecallMetadata,
        NoiseSensitivityMetadata,
        ResponseRelevancyMetadata,
        FactualCorrectnessMetadata,
        AnswerCorrectnessMetadata,
        SemanticSimilarityMetadata,
        AgentGoalAccuracyMetadata,
        ToolCallAccuracyMetadata,
        TopicAdherenceMetadata,
        BleuMetadata,
        RougeMetadata,
        ChrfMetadata,
        StringSimilarityMetadata,
        AnswerAccuracyMetadata,
        ContextRelevanceMetadata,
        ResponseGroundednessMetadata,
        HallucinationMetadata,
    ],
    Field(discriminator="kind"),
]
