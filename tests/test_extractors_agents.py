"""Tests for agentic metric explanations."""

from __future__ import annotations

import json

import pytest

from scorelens.dispatch import explain_from_metadata, explain_from_steps
from scorelens.explanation.interpretation import NOT_CALCULATED
from scorelens.explanation.models import (
    AgentGoalAccuracyExplanation,
    ToolCallAccuracyExplanation,
    TopicAdherenceExplanation,
    TopicClassification,
)
from scorelens.extractors.agents import f1_score, topic_precision_recall
from scorelens.models.metadata import (
    AgentGoalAccuracyMetadata,
    ToolCallAccuracyMetadata,
    ToolCallMatchSummary,
    TopicAdherenceMetadata,
    TopicClassificationSummary,
)
from scorelens.models.run import MetricRunBuilder, ModelResult, Sample, StepType


def _ok(model_id: str, payload: dict) -> ModelResult:
    return ModelResult.ok(model_id, json.dumps(payload))


class TestAgentGoalAccuracy:
    """Tests for the binary goal verdict."""

    def test_from_metadata(self) -> None:
        run = MetricRunBuilder("AgentGoalAccuracyWithoutReference").seal(
            1.0,
            metadata=AgentGoalAccuracyMetadata(
                mode="WITHOUT_REFERENCE",
                inferred_goal="Book a table for two",
                model_verdicts={"m1": True, "m2": True, "m3": False},
                model_reasonings={"m1": "The booking was confirmed."},
            ),
        )
        explanation = explain_from_metadata(run)
        assert isinstance(explanation, AgentGoalAccuracyExplanation)
        assert explanation.achieved is True
        assert [s.step_name for s in explanation.steps] == ["InferGoal", "EvaluateOutcome", "ComputeScore"]
        assert explanation.interpretation.calculation == "2 ACHIEVED + 1 NOT ACHIEVED → PASS = 1.0"
        evaluate = explanation.steps[1]
        assert evaluate.output_summary == "2/3 judges agree"
        assert evaluate.has_model_disagreement is True
        assert explanation.reasoning == "The booking was confirmed."

    def test_tie_without_score_is_not_achieved(self) -> None:
        run = MetricRunBuilder("agent-goal-accuracy").seal(
            None, metadata=AgentGoalAccuracyMetadata(model_verdicts={"m1": True, "m2": False})
        )
        explanation = explain_from_metadata(run)
        assert explanation.achieved is False
        assert explanation.interpretation.meaning == NOT_CALCULATED
        assert explanation.steps[0].step_name == "EvaluateOutcome"

    def test_from_steps_compare_outcome(self) -> None:
        builder = MetricRunBuilder("agent-goal-accuracy")
        builder.record_step(
            "CompareOutcome",
            [_ok("m1", {"goalAchieved": False, "reasoning": "No booking made."}), ModelResult.failed("m2", "timeout")],
        )
        explanation = explain_from_steps(builder.seal(0.0))
        assert explanation.mode == "WITH_REFERENCE"
        assert explanation.model_verdicts == {"m1": False}
        assert explanation.interpretation.calculation == "FAIL → 0.0"
        failed = [r for r in explanation.steps[0].model_results if not r.success]
        assert [r.model_id for r in failed] == ["m2"]

    def test_from_steps_infers_goal(self) -> None:
        builder = MetricRunBuilder("agent-goal-accuracy")
        builder.record_step("InferGoal", [_ok("m1", {"goal": "Find a flight"})])
        builder.record_step("EvaluateOutcome", [_ok("m1", {"achieved": True})])
        explanation = explain_from_steps(builder.seal(1.0))
        assert explanation.mode == "WITHOUT_REFERENCE"
        assert explanation.inferred_goal == "Find a flight"


class TestToolCallAccuracy:
    """Tests for tool call precision/recall."""

    def test_f1_score(self) -> None:
        assert f1_score(0.5, 1.0) == pytest.approx(2 / 3)
        assert f1_score(0.0, 0.0) == 0.0

    def test_from_metadata(self) -> None:
        run = MetricRunBuilder("tool-call-accuracy").seal(
            2 / 3,
            metadata=ToolCallAccuracyMetadata(
                true_positives=1,
                false_positives=1,
                false_negatives=0,
                precision=0.5,
                recall=1.0,
                matches=[
                    ToolCallMatchSummary(actual_call_name="search", reference_call_name="search", matched=True, match_score=1.0),
                    ToolCallMatchSummary(actual_call_name="book"),
                ],
            ),
        )
        explanation = explain_from_metadata(run)
        assert isinstance(explanation, ToolCallAccuracyExplanation)
        assert [i.content for i in explanation.steps[0].items] == ["search ↔ search", "book ↔ -"]
        assert explanation.steps[1].output_summary == "TP=1, FP=1, FN=0"
        assert explanation.interpretation.calculation == "2 × (0.50 × 1.00) / (0.50 + 1.00) = 66.67%"

    def test_missing_counts_fall_back_to_score(self) -> None:
        """Zero precision and recall with a positive score are shown as the score."""
        run = MetricRunBuilder("tool-call-accuracy").seal(0.8, metadata=ToolCallAccuracyMetadata())
        explanation = explain_from_metadata(run)
        assert explanation.precision == pytest.approx(0.8)
        assert explanation.recall == pytest.approx(0.8)
        assert explanation.interpretation.calculation == "2 × (0.80 × 0.80) / (0.80 + 0.80) = 80.00%"

    def test_zero_score_keeps_zero_counts(self) -> None:
        run = MetricRunBuilder("tool-call-accuracy").seal(0.0, metadata=ToolCallAccuracyMetadata())
        explanation = explain_from_metadata(run)
        assert explanation.precision == 0.0

    def test_from_steps_derives_counts_from_matches(self) -> None:
        builder = MetricRunBuilder("tool-call-accuracy", config={"mode": "flexible"})
        builder.record_step(
            "AlignToolCalls",
            [
                ModelResult.ok(
                    "compute",
                    json.dumps(
                        {
                            "matches": [
                                {"actualCallName": "search", "referenceCallName": "search", "matched": True},
                                {"actualCallName": "book", "matched": False},
                            ]
                        }
                    ),
                )
            ],
            step_type=StepType.COMPUTE,
        )
        explanation = explain_from_steps(builder.seal(2 / 3))
        assert explanation.mode == "FLEXIBLE"
        assert (explanation.true_positives, explanation.false_positives, explanation.false_negatives) == (1, 1, 0)
        assert explanation.precision == pytest.approx(0.5)
        assert explanation.recall == pytest.approx(1.0)
        assert explanation.matches[0].match_score == 1.0

    def test_from_steps_without_steps(self) -> None:
        assert explain_from_steps(MetricRunBuilder("tool-call-accuracy").seal(1.0)) is None


class TestTopicAdherence:
    """Tests for topic precision/recall."""

    CLASSIFICATIONS = [
        TopicClassification(extracted_topic="weather today", on_topic=True, matched_reference_topic="Weather"),
        TopicClassification(extracted_topic="rain tomorrow", on_topic=True, matched_reference_topic="weather"),
        TopicClassification(extracted_topic="elections", on_topic=False),
    ]

    def test_precision_recall(self) -> None:
        precision, recall = topic_precision_recall(self.CLASSIFICATIONS, ["Weather", "Travel"])
        assert precision == pytest.approx(2 / 3)
        assert recall == pytest.approx(0.5)

    def test_empty_inputs(self) -> None:
        assert topic_precision_recall([], []) == (0.0, 0.0)

    def test_from_metadata_f1(self) -> None:
        run = MetricRunBuilder("topic-adherence", sample=Sample(reference_topics=["Weather", "Travel"])).seal(
            4 / 7,
            metadata=TopicAdherenceMetadata(
                extracted_topics=[c.extracted_topic for c in self.CLASSIFICATIONS],
                model_classifications={
                    "m1": [TopicClassificationSummary(**c.model_dump()) for c in self.CLASSIFICATIONS]
                },
            ),
        )
        explanation = explain_from_metadata(run)
        assert isinstance(explanation, TopicAdherenceExplanation)
        assert explanation.reference_topics == ["Weather", "Travel"]
        assert explanation.interpretation.calculation == "2 × (0.67 × 0.50) / (0.67 + 0.50) = 57.14%"
        assert explanation.steps[1].model_results[0].verdict == "2/3"

    def test_from_steps_precision_mode(self) -> None:
        builder = MetricRunBuilder(
            "topic-adherence", config={"mode": "precision"}, sample=Sample(reference_topics=["Weather"])
        )
        builder.record_step(
            "ClassifyTopics",
            [
                _ok(
                    "m1",
                    {
                        "classifications": [
                            {"topic": "weather", "onTopic": True, "matchedReferenceTopic": "Weather"},
                            {"topic": "politics", "on_topic": False},
                        ]
                    },
                )
            ],
        )
        explanation = explain_from_steps(builder.seal(0.5))
        assert explanation.mode == "PRECISION"
        assert explanation.extracted_topics == ["weather", "politics"]
        assert explanation.interpretation.calculation == "1/2 = 50.00%"
        assert explanation.recall == pytest.approx(1.0)
