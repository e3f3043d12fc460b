"""Tests for scorelens.models.run -- run records and the run builder."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from scorelens.errors import RunSealedError
from scorelens.models.metadata import FaithfulnessMetadata, StatementVerdictSummary
from scorelens.models.run import MetricRun, MetricRunBuilder, ModelResult, Sample, StepResult, StepType


class TestModelResult:
    """Tests for per-model result validation."""

    def test_ok_result(self) -> None:
        result = ModelResult.ok("gpt-4o", '{"verdict": 1}', duration_seconds=0.4)
        assert result.success is True
        assert result.payload == '{"verdict": 1}'
        assert result.error_message is None

    def test_failed_result(self) -> None:
        result = ModelResult.failed("claude", "rate limited")
        assert result.success is False
        assert result.payload is None

    def test_success_derived_from_error(self) -> None:
        """Omitting success infers it from the presence of an error."""
        result = ModelResult.model_validate({"model_id": "m", "error_message": "timeout"})
        assert result.success is False

    def test_failed_with_payload_rejected(self) -> None:
        with pytest.raises(ValidationError, match="must not carry a payload"):
            ModelResult(model_id="m", success=False, payload="x", error_message="boom")

    def test_failed_without_error_rejected(self) -> None:
        with pytest.raises(ValidationError, match="requires an error_message"):
            ModelResult(model_id="m", success=False)

    def test_success_with_error_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ModelResult(model_id="m", success=True, error_message="boom")


class TestStepResult:
    """Tests for step-level statistics."""

    def _step(self) -> StepResult:
        return StepResult(
            step_name="Evaluate",
            model_results=[
                ModelResult.ok("a", "1", duration_seconds=1.0),
                ModelResult.failed("b", "timeout", duration_seconds=2.0),
                ModelResult.ok("a", "0"),
            ],
        )

    def test_counts(self) -> None:
        step = self._step()
        assert step.success_count == 2
        assert step.fail_count == 1
        assert step.success_rate == pytest.approx(2 / 3)

    def test_total_duration_is_slowest_model(self) -> None:
        """Models run in parallel, so the step takes as long as the slowest one."""
        assert self._step().total_duration == pytest.approx(2.0)

    def test_empty_step(self) -> None:
        step = StepResult(step_name="Evaluate")
        assert step.success_rate == 0.0
        assert step.total_duration is None

    def test_results_grouped_by_model(self) -> None:
        grouped = self._step().results_by_model_id()
        assert list(grouped) == ["a", "b"]
        assert len(grouped["a"]) == 2


class TestMetricRunBuilder:
    """Tests for building and sealing a run."""

    def test_steps_renumbered_in_order(self) -> None:
        builder = MetricRunBuilder("faithfulness")
        builder.add_step(StepResult(step_name="GenerateStatements", step_index=7))
        builder.record_step("EvaluateFaithfulness", [ModelResult.ok("m1", "{}")])
        run = builder.seal(0.5)
        assert [s.step_index for s in run.steps] == [0, 1]
        assert all(s.total_steps == 2 for s in run.steps)

    def test_model_ids_derived_by_step_type(self) -> None:
        builder = MetricRunBuilder("semantic-similarity")
        builder.record_step("Judge", [ModelResult.ok("gpt", "1"), ModelResult.ok("gpt", "0")])
        builder.record_step("Embed", [ModelResult.ok("ada", "0.9")], step_type=StepType.EMBEDDING)
        run = builder.seal(0.9)
        assert run.model_ids == ["gpt"]
        assert run.embedding_model_ids == ["ada"]

    def test_explicit_model_ids_deduplicated(self) -> None:
        run = MetricRunBuilder("bleu", model_ids=["a", "b", "a"]).seal(None)
        assert run.model_ids == ["a", "b"]

    def test_exclusion_recorded_at_first_failed_step(self) -> None:
        builder = MetricRunBuilder("faithfulness")
        builder.record_step("GenerateStatements", [ModelResult.ok("m1", "{}"), ModelResult.ok("m2", "{}")])
        builder.record_step(
            "EvaluateFaithfulness",
            [ModelResult.ok("m1", "{}"), ModelResult.failed("m2", "first"), ModelResult.failed("m2", "last")],
        )
        builder.record_step("Later", [ModelResult.failed("m2", "again")])
        run = builder.seal(1.0)
        assert run.excluded_models == ["m2"]
        exclusion = run.exclusions[0]
        assert exclusion.failed_step_name == "EvaluateFaithfulness"
        assert exclusion.failed_step_index == 1
        assert exclusion.cause == "last"

    def test_partial_failure_is_not_exclusion(self) -> None:
        builder = MetricRunBuilder("aspect-critic")
        builder.record_step("Evaluate", [ModelResult.failed("m1", "x"), ModelResult.ok("m1", "{}")])
        assert builder.seal(1.0).exclusions == []

    def test_compute_steps_never_exclude(self) -> None:
        builder = MetricRunBuilder("bleu")
        builder.record_step("Compute", [ModelResult.failed("local", "x")], step_type=StepType.COMPUTE)
        assert builder.seal(None).exclusions == []

    def test_add_after_seal_raises(self) -> None:
        builder = MetricRunBuilder("rubrics")
        builder.seal(0.5)
        assert builder.sealed is True
        with pytest.raises(RunSealedError):
            builder.record_step("Evaluate", [])

    def test_double_seal_raises(self) -> None:
        builder = MetricRunBuilder("rubrics")
        builder.seal(0.5)
        with pytest.raises(RunSealedError):
            builder.seal(0.5)

    def test_seal_carries_sample_config_and_metadata(self) -> None:
        metadata = FaithfulnessMetadata(
            verdicts={"m1": [StatementVerdictSummary(statement="s", verdict=1)]},
            faithful_count=1,
            total_count=1,
        )
        builder = MetricRunBuilder(
            "faithfulness",
            config={"strictness": 3},
            sample=Sample(response="Paris is the capital."),
            run_id="fixed-id",
        )
        run = builder.seal(1.0, metadata=metadata, model_scores={"m1": 1.0})
        assert run.run_id == "fixed-id"
        assert run.config == {"strictness": 3}
        assert run.sample.response == "Paris is the capital."
        assert run.metadata == metadata
        assert run.model_scores == {"m1": 1.0}


class TestMetricRun:
    """Tests for the sealed run record."""

    def test_step_lookup(self) -> None:
        run = MetricRun(
            metric_name="context-relevance",
            steps=[
                StepResult(step_name="EvaluateRelevance_1"),
                StepResult(step_name="EvaluateRelevance_2"),
                StepResult(step_name="Compute"),
            ],
        )
        assert run.step("Compute") is not None
        assert run.step("Missing") is None
        assert [s.step_name for s in run.steps_matching("EvaluateRelevance_")] == [
            "EvaluateRelevance_1",
            "EvaluateRelevance_2",
        ]

    def test_frozen(self) -> None:
        run = MetricRun(metric_name="bleu")
        with pytest.raises(ValidationError):
            run.aggregated_score = 0.5

    def test_json_round_trip_restores_metadata_variant(self) -> None:
        """The metadata discriminator restores the concrete record type."""
        run = MetricRunBuilder("faithfulness").seal(
            0.5, metadata=FaithfulnessMetadata(faithful_count=1, total_count=2)
        )
        restored = MetricRun.model_validate_json(run.model_dump_json())
        assert isinstance(restored.metadata, FaithfulnessMetadata)
        assert restored == run
