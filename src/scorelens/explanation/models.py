"""Explanation data models.

An Explanation is the immutable, score-attached record of how a metric
arrived at its number: the protocol steps with their per-item verdicts
and per-model outcomes, followed by an interpretation block (formula,
calculation, level on a scale, meaning).

Every metric family has its own variant, discriminated on
``metric_type``. The common envelope is shared; each variant adds the
family-specific evidence (statements, verdicts, precision/recall, ...).
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter


class MetricFamily(str, Enum):
    """The closed set of metric families that can be explained."""

    FAITHFULNESS = "faithfulness"
    ASPECT_CRITIC = "aspect-critic"
    SIMPLE_CRITERIA = "simple-criteria"
    RUBRICS = "rubrics"
    CONTEXT_PRECISION = "context-precision"
    CONTEXT_RECALL = "context-recall"
    CONTEXT_ENTITY_RECALL = "context-entity-recall"
    NOISE_SENSITIVITY = "noise-sensitivity"
    RESPONSE_RELEVANCY = "response-relevancy"
    SEMANTIC_SIMILARITY = "semantic-similarity"
    FACTUAL_CORRECTNESS = "factual-correctness"
    ANSWER_CORRECTNESS = "answer-correctness"
    AGENT_GOAL_ACCURACY = "agent-goal-accuracy"
    TOOL_CALL_ACCURACY = "tool-call-accuracy"
    TOPIC_ADHERENCE = "topic-adherence"
    CONTEXT_RELEVANCE = "context-relevance"
    RESPONSE_GROUNDEDNESS = "response-groundedness"
    ANSWER_ACCURACY = "answer-accuracy"
    BLEU = "bleu"
    ROUGE = "rouge"
    CHRF = "chrf"
    STRING_SIMILARITY = "string-similarity"


class _Frozen(BaseModel):
    model_config = {"extra": "forbid", "frozen": True, "protected_namespaces": ()}


# -- Building blocks --


class ExplanationItem(_Frozen):
    """One line of evidence within a step (a statement, a context, a claim).

    ``passed`` is None for neutral items that carry no verdict.
    """

    content: str
    passed: bool | None = None
    verdict: str | None = None
    reason: str | None = None
    source: str | None = None
    numeric_value: float | None = None
    index: int | None = None

    @property
    def status_class(self) -> str:
        if self.passed is None:
            return "neutral"
        return "passed" if self.passed else "failed"

    @property
    def status_icon(self) -> str:
        if self.passed is None:
            return "-"
        return "✓" if self.passed else "✗"


class DetailItem(_Frozen):
    """A per-model detail line within a ModelStepResult."""

    content: str
    passed: bool | None = None
    verdict: str | None = None
    reason: str | None = None


class ModelStepResult(_Frozen):
    """What one model produced for one step."""

    model_id: str
    success: bool = True
    verdict: str | None = None
    numeric_result: float | None = None
    numerator: int | None = None
    denominator: int | None = None
    items: list[DetailItem] = Field(default_factory=list)
    reasoning: str | None = None
    error_message: str | None = None

    def display_status(self, majority_verdict: str | None = None) -> str:
        """Status label relative to the majority verdict.

        ERROR for failed models, AGREE/DISAGREE when a majority verdict
        is known, OK otherwise.
        """
        if not self.success:
            return "ERROR"
        if majority_verdict is not None and self.verdict is not None:
            return "AGREE" if self.verdict == majority_verdict else "DISAGREE"
        return "OK"


class StepExplanation(_Frozen):
    """One protocol step as displayed in an explanation."""

    step_name: str
    step_number: int
    title: str
    description: str = ""
    input_data: str | None = None
    output_summary: str | None = None
    items: list[ExplanationItem] = Field(default_factory=list)
    model_results: list[ModelStepResult] = Field(default_factory=list)
    metadata: dict[str, str] = Field(default_factory=dict)
    has_model_disagreement: bool = False
    agreement_percent: float = 100.0


class ScaleLevel(_Frozen):
    name: str
    range: str
    description: str = ""
    current: bool = False


class ScoreInterpretation(_Frozen):
    """Formula, calculation, and placement of the score on a scale.

    The scale fields are pure projections of ``score`` and can be
    recomputed from it alone.
    """

    formula: str
    calculation: str
    numerator: int | None = None
    denominator: int | None = None
    score: float | None = None
    score_percent: str
    level: str
    is_good: bool | None = None
    meaning: str
    scale_levels: list[ScaleLevel] = Field(default_factory=list)
    current_level_index: int = -1
    min_level: int | None = None
    max_level: int | None = None


# -- Family-specific evidence --


class StatementVerdict(_Frozen):
    statement: str
    faithful: bool
    reason: str = ""


class ModelVote(_Frozen):
    """A model's iteration votes and its majority decision."""

    model_id: str
    votes: list[bool] = Field(default_factory=list)
    decision: bool | None = None
    reasoning: str = ""


class RubricLevel(_Frozen):
    level: int
    description: str


class ContextJudgment(_Frozen):
    """Relevance of one retrieved context with its running precision@k."""

    index: int
    text: str
    relevant: bool | None = None
    precision_at_k: float | None = None


class RecallClassification(_Frozen):
    statement: str
    attributed: bool
    reason: str = ""


class StatementMatch(_Frozen):
    statement: str
    in_reference: bool = False
    correct: bool = True
    context_source: str | None = None
    analysis: str | None = None


class GeneratedQuestion(_Frozen):
    question: str
    similarity: float | None = None
    noncommittal: bool = False


class ClaimVerdict(_Frozen):
    claim: str
    verdict: str
    reason: str = ""


class ToolCallMatch(_Frozen):
    actual_call_name: str | None = None
    reference_call_name: str | None = None
    matched: bool = False
    match_score: float = 0.0


class TopicClassification(_Frozen):
    extracted_topic: str
    on_topic: bool
    matched_reference_topic: str | None = None
    reasoning: str = ""


class ContextRating(_Frozen):
    """A 0-2 judge rating for one context, normalized to [0, 1]."""

    label: str
    raw_score: int
    normalized: float
    reasoning: str = ""


class JudgeRating(_Frozen):
    model_id: str
    raw_score: int
    reasoning: str = ""


# -- Explanation envelope and variants --


class BaseExplanation(_Frozen):
    """Fields common to every explanation variant."""

    metric_type: str
    score: float | None = None
    simple_description: str = ""
    steps: list[StepExplanation] = Field(default_factory=list)
    interpretation: ScoreInterpretation

    @property
    def level(self) -> str:
        return self.interpretation.level

    @property
    def score_percent(self) -> str:
        return self.interpretation.score_percent


class FaithfulnessExplanation(BaseExplanation):
    metric_type: Literal["faithfulness"] = "faithfulness"
    response: str = ""
    statements: list[str] = Field(default_factory=list)
    verdicts: list[StatementVerdict] = Field(default_factory=list)
    faithful_count: int = 0
    total_count: int = 0


class AspectCriticExplanation(BaseExplanation):
    metric_type: Literal["aspect-critic"] = "aspect-critic"
    definition: str = ""
    strictness: int = 1
    passed: bool = False
    model_votes: list[ModelVote] = Field(default_factory=list)
    pass_count: int = 0
    fail_count: int = 0
    excluded_models: list[str] = Field(default_factory=list)


class SimpleCriteriaExplanation(BaseExplanation):
    metric_type: Literal["simple-criteria"] = "simple-criteria"
    definition: str = ""
    min_score: int = 1
    max_score: int = 5
    raw_score: int | None = None
    reasoning: str = ""


class RubricsExplanation(BaseExplanation):
    metric_type: Literal["rubrics"] = "rubrics"
    rubric_levels: list[RubricLevel] = Field(default_factory=list)
    selected_level: int
    reasoning: str = ""


class ContextPrecisionExplanation(BaseExplanation):
    metric_type: Literal["context-precision"] = "context-precision"
    contexts: list[ContextJudgment] = Field(default_factory=list)
    relevant_count: int = 0


class ContextRecallExplanation(BaseExplanation):
    metric_type: Literal["context-recall"] = "context-recall"
    reference: str = ""
    classifications: list[RecallClassification] = Field(default_factory=list)
    attributed_count: int = 0
    total_count: int = 0


class ContextEntityRecallExplanation(BaseExplanation):
    metric_type: Literal["context-entity-recall"] = "context-entity-recall"
    reference_entities: list[str] = Field(default_factory=list)
    context_entities: list[str] = Field(default_factory=list)
    found_entities: list[str] = Field(default_factory=list)
    missing_entities: list[str] = Field(default_factory=list)


class NoiseSensitivityExplanation(BaseExplanation):
    metric_type: Literal["noise-sensitivity"] = "noise-sensitivity"
    mode: str = "RELEVANT"
    reference_statements: list[str] = Field(default_factory=list)
    response_statements: list[str] = Field(default_factory=list)
    matches: list[StatementMatch] = Field(default_factory=list)
    error_count: int = 0
    total_checks: int = 0


class ResponseRelevancyExplanation(BaseExplanation):
    metric_type: Literal["response-relevancy"] = "response-relevancy"
    response: str = ""
    questions: list[GeneratedQuestion] = Field(default_factory=list)
    noncommittal: bool = False
    model_similarities: dict[str, float] = Field(default_factory=dict)


class SemanticSimilarityExplanation(BaseExplanation):
    metric_type: Literal["semantic-similarity"] = "semantic-similarity"
    response: str = ""
    reference: str = ""
    threshold: float | None = None
    model_similarities: dict[str, float] = Field(default_factory=dict)


class FactualCorrectnessExplanation(BaseExplanation):
    metric_type: Literal["factual-correctness"] = "factual-correctness"
    mode: str = "F1"
    response_claims: list[str] = Field(default_factory=list)
    reference_claims: list[str] = Field(default_factory=list)
    precision_verdicts: list[ClaimVerdict] = Field(default_factory=list)
    recall_verdicts: list[ClaimVerdict] = Field(default_factory=list)
    precision: float | None = None
    recall: float | None = None


class AnswerCorrectnessExplanation(BaseExplanation):
    metric_type: Literal["answer-correctness"] = "answer-correctness"
    response: str = ""
    reference: str = ""
    factual_score: float | None = 0.0
    semantic_score: float | None = 0.0
    factual_weight: float = 0.75
    semantic_weight: float = 0.25


class AgentGoalAccuracyExplanation(BaseExplanation):
    metric_type: Literal["agent-goal-accuracy"] = "agent-goal-accuracy"
    mode: str = "WITH_REFERENCE"
    inferred_goal: str | None = None
    achieved: bool = False
    model_verdicts: dict[str, bool] = Field(default_factory=dict)
    reasoning: str = ""


class ToolCallAccuracyExplanation(BaseExplanation):
    metric_type: Literal["tool-call-accuracy"] = "tool-call-accuracy"
    mode: str = "STRICT"
    precision: float = 0.0
    recall: float = 0.0
    true_positives: int = 0
    false_positives: int = 0
    false_negatives: int = 0
    matches: list[ToolCallMatch] = Field(default_factory=list)


class TopicAdherenceExplanation(BaseExplanation):
    metric_type: Literal["topic-adherence"] = "topic-adherence"
    mode: str = "F1"
    precision: float = 0.0
    recall: float = 0.0
    extracted_topics: list[str] = Field(default_factory=list)
    reference_topics: list[str] = Field(default_factory=list)
    classifications: list[TopicClassification] = Field(default_factory=list)


class ContextRelevanceExplanation(BaseExplanation):
    metric_type: Literal["context-relevance"] = "context-relevance"
    contexts: list[ContextRating] = Field(default_factory=list)


class ResponseGroundednessExplanation(BaseExplanation):
    metric_type: Literal["response-groundedness"] = "response-groundedness"
    used_heuristic: bool = False
    heuristic_match: bool = False
    raw_score: int | None = None
    reasoning: str = ""


class AnswerAccuracyExplanation(BaseExplanation):
    metric_type: Literal["answer-accuracy"] = "answer-accuracy"
    response: str = ""
    reference: str = ""
    initial_judgments: list[JudgeRating] = Field(default_factory=list)
    confirmed_judgments: list[JudgeRating] = Field(default_factory=list)
    final_raw_score: int | None = None
    used_dual_judge: bool = True


class _TextMetricExplanation(BaseExplanation):
    response: str = ""
    reference: str = ""


class BleuExplanation(_TextMetricExplanation):
    metric_type: Literal["bleu"] = "bleu"
    max_ngram: int = 4
    smoothing: bool = True


class RougeExplanation(_TextMetricExplanation):
    metric_type: Literal["rouge"] = "rouge"
    rouge_type: str = "ROUGE_L"
    mode: str = "FMEASURE"


class ChrfExplanation(_TextMetricExplanation):
    metric_type: Literal["chrf"] = "chrf"
    char_ngram_order: int = 6
    word_ngram_order: int = 0
    beta: float = 2.0


class StringSimilarityExplanation(_TextMetricExplanation):
    metric_type: Literal["string-similarity"] = "string-similarity"
    distance_measure: str = "LEVENSHTEIN"
    case_sensitive: bool = True


Explanation = Annotated[
    Union[
        FaithfulnessExplanation,
        AspectCriticExplanation,
        SimpleCriteriaExplanation,
        RubricsExplanation,
        ContextPrecisionExplanation,
        ContextRecallExplanation,
        ContextEntityRecallExplanation,
        NoiseSensitivityExplanation,
        ResponseRelevancyExplanation,
        SemanticSimilarityExplanation,
        FactualCorrectnessExplanation,
        AnswerCorrectnessExplanation,
        AgentGoalAccuracyExplanation,
        ToolCallAccuracyExplanation,
        TopicAdherenceExplanation,
        ContextRelevanceExplanation,
        ResponseGroundednessExplanation,
        AnswerAccuracyExplanation,
        BleuExplanation,
        RougeExplanation,
        ChrfExplanation,
        StringSimilarityExplanation,
    ],
    Field(discriminator="metric_type"),
]

explanation_adapter: TypeAdapter[Explanation] = TypeAdapter(Explanation)
