"""Tests for scorelens.dispatch -- family resolution, registries, and path selection."""

from __future__ import annotations

import json
import logging

import pytest

from scorelens import dispatch as dispatch_module
from scorelens.dispatch import (
    METADATA_EXTRACTORS,
    STEP_EXTRACTORS,
    aliases_for,
    dispatch,
    explain,
    metadata_kinds,
    normalize_metric_name,
    resolve_family,
)
from scorelens.explanation.interpretation import NOT_CALCULATED
from scorelens.explanation.models import FaithfulnessExplanation, MetricFamily
from scorelens.models import metadata as md
from scorelens.models.run import MetricRun, MetricRunBuilder, ModelResult, StepType


def _faithfulness_run(metadata=None, score: float | None = 1.0) -> MetricRun:
    builder = MetricRunBuilder("faithfulness")
    builder.record_step("GenerateStatements", [ModelResult.ok("m1", json.dumps({"statements": ["a"]}))])
    builder.record_step(
        "EvaluateFaithfulness",
        [ModelResult.ok("m1", json.dumps({"verdicts": [{"statement": "a", "verdict": 1}]}))],
    )
    return builder.seal(score, metadata=metadata)


class TestResolveFamily:
    """Tests for metric name normalization."""

    @pytest.mark.parametrize(
        "name, family",
        [
            ("faithfulness", MetricFamily.FAITHFULNESS),
            ("FaithfulnessMetric", MetricFamily.FAITHFULNESS),
            ("context_entity_recall", MetricFamily.CONTEXT_ENTITY_RECALL),
            ("ContextEntityRecall", MetricFamily.CONTEXT_ENTITY_RECALL),
            ("AnswerRelevancy", MetricFamily.RESPONSE_RELEVANCY),
            ("answer-similarity", MetricFamily.SEMANTIC_SIMILARITY),
            ("AspectCritique", MetricFamily.ASPECT_CRITIC),
            ("ToolCallAccuracy", MetricFamily.TOOL_CALL_ACCURACY),
            ("chrF", MetricFamily.CHRF),
        ],
    )
    def test_known_names(self, name: str, family: MetricFamily) -> None:
        assert resolve_family(name) is family

    def test_unknown_name(self) -> None:
        assert resolve_family("perplexity") is None

    def test_normalize_metric_name(self) -> None:
        assert normalize_metric_name("Context_Recall_Metric") == "context-recall"

    def test_aliases_for(self) -> None:
        assert aliases_for(MetricFamily.RUBRICS) == ["rubricscore", "rubricsscore"]
        assert aliases_for(MetricFamily.FAITHFULNESS) == []


class TestRegistries:
    """Tests for registry completeness."""

    def test_every_family_has_step_extractor(self) -> None:
        assert set(STEP_EXTRACTORS) == set(MetricFamily)

    def test_metadata_kinds_cover_every_family(self) -> None:
        assert metadata_kinds() == {f.value for f in MetricFamily} | {"hallucination"}
        assert md.HallucinationMetadata in METADATA_EXTRACTORS


class TestDispatch:
    """Tests for metadata-first dispatch with step fallback."""

    def test_metadata_preferred(self) -> None:
        run = _faithfulness_run(
            md.FaithfulnessMetadata(
                verdicts={"m1": [md.StatementVerdictSummary(statement="from metadata", verdict=1)]},
                faithful_count=1,
                total_count=1,
            )
        )
        explanation = dispatch(run)
        assert explanation.statements == ["from metadata"]

    def test_prefer_metadata_false_uses_steps(self) -> None:
        run = _faithfulness_run(
            md.FaithfulnessMetadata(verdicts={"m1": [md.StatementVerdictSummary(statement="from metadata")]})
        )
        explanation = dispatch(run, prefer_metadata=False)
        assert explanation.statements == ["a"]

    def test_empty_metadata_falls_back_to_steps(self) -> None:
        explanation = dispatch(_faithfulness_run(md.FaithfulnessMetadata()))
        assert isinstance(explanation, FaithfulnessExplanation)
        assert explanation.statements == ["a"]

    def test_no_metadata_uses_steps(self) -> None:
        assert isinstance(dispatch(_faithfulness_run()), FaithfulnessExplanation)

    def test_hallucination_metadata_blocks_fallback(self) -> None:
        """Hallucination records have no explanation and are not reconstructed from steps."""
        run = _faithfulness_run(md.HallucinationMetadata())
        assert dispatch(run) is None

    def test_unsupported_metric(self) -> None:
        run = MetricRunBuilder("perplexity").seal(0.3)
        assert dispatch(run) is None

    def test_extractor_errors_become_none(self, monkeypatch: pytest.MonkeyPatch, caplog) -> None:
        """An exception inside an extractor is logged, never raised."""

        def boom(reader):
            raise KeyError("missing")

        monkeypatch.setitem(STEP_EXTRACTORS, MetricFamily.FAITHFULNESS, boom)
        with caplog.at_level(logging.WARNING, logger=dispatch_module.__name__):
            assert dispatch(_faithfulness_run()) is None
        assert "Failed to extract explanation for metric faithfulness" in caplog.text

    def test_explain_convenience(self) -> None:
        steps = _faithfulness_run().steps
        explanation = explain("Faithfulness", steps, 1.0)
        assert isinstance(explanation, FaithfulnessExplanation)
        assert [s.step_name for s in explanation.steps][-1] == "ComputeScore"

    def test_explain_forwards_options(self) -> None:
        steps = _faithfulness_run().steps
        metadata = md.FaithfulnessMetadata(verdicts={"m1": [md.StatementVerdictSummary(statement="meta")]})
        explanation = explain("faithfulness", steps, 0.0, metadata=metadata, prefer_metadata=False)
        assert explanation.statements == ["a"]


NONE_SCORE_RECORDS = [
    md.FaithfulnessMetadata(verdicts={"m1": [md.StatementVerdictSummary(statement="a")]}),
    md.AspectCriticMetadata(model_verdicts={"m1": [True]}),
    md.SimpleCriteriaMetadata(),
    md.RubricsMetadata(),
    md.ContextPrecisionMetadata(model_relevance_results={"m1": [True]}),
    md.ContextRecallMetadata(classifications={"m1": [md.ClassificationSummary(statement="a")]}),
    md.ContextEntityRecallMetadata(reference_entities=["Paris"]),
    md.NoiseSensitivityMetadata(),
    md.ResponseRelevancyMetadata(),
    md.SemanticSimilarityMetadata(),
    md.FactualCorrectnessMetadata(),
    md.AnswerCorrectnessMetadata(),
    md.AgentGoalAccuracyMetadata(),
    md.ToolCallAccuracyMetadata(),
    md.TopicAdherenceMetadata(),
    md.ContextRelevanceMetadata(),
    md.ResponseGroundednessMetadata(),
    md.AnswerAccuracyMetadata(),
    md.BleuMetadata(),
    md.RougeMetadata(),
    md.ChrfMetadata(),
    md.StringSimilarityMetadata(),
]


@pytest.mark.parametrize("record", NONE_SCORE_RECORDS, ids=lambda r: r.kind)
def test_missing_score_is_not_calculated(record) -> None:
    """Every family explains a missing score with the fixed not-calculated meaning."""
    run = MetricRunBuilder(record.kind).seal(None, metadata=record)
    explanation = dispatch(run)
    assert explanation is not None
    assert explanation.score is None
    assert explanation.interpretation.meaning == NOT_CALCULATED
    assert explanation.score_percent == "N/A"


FAILED_PROTOCOLS = {
    "faithfulness": ["GenerateStatements", "EvaluateFaithfulness"],
    "aspect-critic": ["Evaluate"],
    "simple-criteria": ["Evaluate"],
    "rubrics": ["Evaluate"],
    "context-precision": ["EvaluateContext_1", "EvaluateContext_2"],
    "context-recall": ["ClassifyStatements"],
    "context-entity-recall": ["ExtractReferenceEntities", "ExtractContextEntities"],
    "noise-sensitivity": ["ExtractReferenceStatements", "ExtractResponseStatements"],
    "response-relevancy": ["GenerateQuestions", "ComputeCosineSimilarity"],
    "semantic-similarity": ["ComputeCosineSimilarity"],
    "factual-correctness": ["DecomposeResponseClaims", "VerifyClaimsNLI"],
    "answer-correctness": ["ComputeFactualCorrectness", "ComputeSemanticSimilarity"],
    "agent-goal-accuracy": ["InferGoal", "EvaluateOutcome"],
    "tool-call-accuracy": ["AlignToolCalls"],
    "topic-adherence": ["ExtractTopics", "ClassifyTopics"],
    "context-relevance": ["EvaluateRelevance_1", "EvaluateRelevance_2"],
    "response-groundedness": ["EvaluateGroundedness"],
    "answer-accuracy": ["InitialJudgment", "ConfirmJudgment"],
}

TEXT_METRICS = ["bleu", "rouge", "chrf", "string-similarity"]


def _failed_run(metric_name: str) -> MetricRun:
    builder = MetricRunBuilder(metric_name)
    if metric_name in TEXT_METRICS:
        builder.record_step("Compute", [ModelResult.failed(metric_name, "empty reference")], step_type=StepType.COMPUTE)
    else:
        for step_name in FAILED_PROTOCOLS[metric_name]:
            builder.record_step(
                step_name,
                [ModelResult.failed("m1", "rate limited"), ModelResult.failed("m2", "timeout")],
            )
    return builder.seal(None)


def test_failed_protocols_cover_every_family() -> None:
    assert set(FAILED_PROTOCOLS) | set(TEXT_METRICS) == {f.value for f in MetricFamily}


@pytest.mark.parametrize("metric_name", [*FAILED_PROTOCOLS, *TEXT_METRICS])
def test_all_models_failed_on_steps_is_not_calculated(metric_name: str) -> None:
    """Without metadata, a run where every model failed still explains its missing score."""
    explanation = dispatch(_failed_run(metric_name))
    assert explanation is not None
    assert explanation.metric_type == metric_name
    assert explanation.score is None
    assert explanation.interpretation.meaning == NOT_CALCULATED
    assert explanation.score_percent == "N/A"


def _ok(model_id: str, payload: dict) -> ModelResult:
    return ModelResult.ok(model_id, json.dumps(payload))


def _faithfulness_pair() -> tuple[MetricRunBuilder, md.MetricMetadata, float]:
    builder = MetricRunBuilder("faithfulness")
    builder.record_step("GenerateStatements", [_ok("m1", {"statements": ["a", "b"]})])
    builder.record_step(
        "EvaluateFaithfulness",
        [_ok("m1", {"verdicts": [{"statement": "a", "verdict": 1}, {"statement": "b", "verdict": 0}]})],
    )
    metadata = md.FaithfulnessMetadata(
        extracted_statements={"m1": ["a", "b"]},
        verdicts={
            "m1": [
                md.StatementVerdictSummary(statement="a", verdict=1),
                md.StatementVerdictSummary(statement="b", verdict=0),
            ]
        },
        faithful_count=1,
        total_count=2,
    )
    return builder, metadata, 0.5


def _aspect_critic_pair() -> tuple[MetricRunBuilder, md.MetricMetadata, float]:
    builder = MetricRunBuilder("aspect-critic", config={"definition": "Is it polite?", "strictness": 1})
    builder.record_step("Evaluate", [_ok("m1", {"verdict": True, "reasoning": "Polite."})])
    metadata = md.AspectCriticMetadata(
        definition="Is it polite?", strictness=1, model_verdicts={"m1": [True]}, model_reasonings={"m1": ["Polite."]}
    )
    return builder, metadata, 1.0


def _context_precision_pair() -> tuple[MetricRunBuilder, md.MetricMetadata, float]:
    builder = MetricRunBuilder("context-precision")
    for i, verdict in enumerate([1, 0, 1], 1):
        builder.record_step(f"EvaluateContext_{i}", [_ok("m1", {"verdict": verdict})])
    metadata = md.ContextPrecisionMetadata(model_relevance_results={"m1": [True, False, True]}, context_count=3)
    return builder, metadata, 5 / 6


def _context_recall_pair() -> tuple[MetricRunBuilder, md.MetricMetadata, float]:
    builder = MetricRunBuilder("context-recall")
    builder.record_step(
        "ClassifyStatements",
        [
            _ok(
                "m1",
                {
                    "classifications": [
                        {"statement": "a", "attributed": 1},
                        {"statement": "b", "attributed": 0},
                        {"statement": "c", "attributed": 1},
                    ]
                },
            )
        ],
    )
    metadata = md.ContextRecallMetadata(
        classifications={
            "m1": [
                md.ClassificationSummary(statement="a", attributed=1),
                md.ClassificationSummary(statement="b", attributed=0),
                md.ClassificationSummary(statement="c", attributed=1),
            ]
        },
        attributed_count=2,
        total_count=3,
    )
    return builder, metadata, 2 / 3


def _context_entity_recall_pair() -> tuple[MetricRunBuilder, md.MetricMetadata, float]:
    builder = MetricRunBuilder("context-entity-recall")
    builder.record_step("ExtractReferenceEntities", [_ok("m1", {"entities": ["Paris", "1889"]})])
    builder.record_step("ExtractContextEntities", [_ok("m1", {"entities": ["paris"]})])
    metadata = md.ContextEntityRecallMetadata(
        reference_entities=["Paris", "1889"],
        context_entities={"m1": ["paris"]},
        recall_numerator=1,
        recall_denominator=2,
    )
    return builder, metadata, 0.5


def _noise_sensitivity_pair() -> tuple[MetricRunBuilder, md.MetricMetadata, float]:
    builder = MetricRunBuilder("noise-sensitivity")
    builder.record_step("ExtractReferenceStatements", [_ok("m1", {"statements": ["r1", "r2"]})])
    builder.record_step("ExtractResponseStatements", [_ok("m1", {"statements": ["s1"]})])
    metadata = md.NoiseSensitivityMetadata(
        reference_statements={"m1": ["r1", "r2"]}, response_statements={"m1": ["s1"]}, num_contexts=2
    )
    return builder, metadata, 0.2


def _tool_call_pair() -> tuple[MetricRunBuilder, md.MetricMetadata, float]:
    builder = MetricRunBuilder("tool-call-accuracy")
    builder.record_step(
        "AlignToolCalls",
        [
            _ok(
                "compute",
                {
                    "matches": [
                        {"actualCallName": "search", "referenceCallName": "search", "matched": True},
                        {"actualCallName": "book", "matched": False},
                    ]
                },
            )
        ],
        step_type=StepType.COMPUTE,
    )
    metadata = md.ToolCallAccuracyMetadata(
        true_positives=1, false_positives=1, false_negatives=0, precision=0.5, recall=1.0
    )
    return builder, metadata, 2 / 3


@pytest.mark.parametrize(
    "make_pair",
    [
        _faithfulness_pair,
        _aspect_critic_pair,
        _context_precision_pair,
        _context_recall_pair,
        _context_entity_recall_pair,
        _noise_sensitivity_pair,
        _tool_call_pair,
    ],
    ids=lambda f: f.__name__.strip("_").removesuffix("_pair"),
)
def test_metadata_and_steps_paths_agree(make_pair) -> None:
    """Equivalent metadata and steps explain the same score the same way."""
    builder, metadata, score = make_pair()
    run = builder.seal(score, metadata=metadata)
    from_metadata = dispatch(run)
    from_steps = dispatch(run, prefer_metadata=False)
    assert from_metadata is not None and from_steps is not None
    assert type(from_metadata) is type(from_steps)
    assert from_metadata.score == from_steps.score == pytest.approx(score)
    assert from_metadata.interpretation.level == from_steps.interpretation.level
    assert from_metadata.interpretation.score_percent == from_steps.interpretation.score_percent
