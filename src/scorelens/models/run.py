"""Metric run data models and the single-owner run builder.

A MetricRun is the sealed, read-only record of one metric evaluation:
the ordered protocol steps, each model's outcome at each step, the
final aggregated score, and the optional structured metadata the
metric computed along the way. Runs are assembled by a
MetricRunBuilder that belongs to exactly one evaluation and is sealed
once the evaluation completes.
"""

from __future__ import annotations

from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from scorelens.errors import RunSealedError
from scorelens.models.metadata import MetricMetadata


class StepType(str, Enum):
    """Kind of work performed by a protocol step."""

    LLM = "LLM"
    EMBEDDING = "EMBEDDING"
    COMPUTE = "COMPUTE"


class ModelResult(BaseModel):
    """Outcome of one model call within one step.

    A failed result carries an error message and never a payload.
    Repeated iterations of the same model within a step appear as
    separate results, ordered by completion of the iteration.
    """

    model_config = {"extra": "forbid", "frozen": True, "protected_namespaces": ()}

    model_id: str
    success: bool = True
    payload: str | None = None
    error_message: str | None = None
    duration_seconds: float | None = None

    @model_validator(mode="before")
    @classmethod
    def _derive_success(cls, data: Any) -> Any:
        if isinstance(data, dict) and "success" not in data:
            data = {**data, "success": data.get("error_message") is None}
        return data

    @model_validator(mode="after")
    def _check_failure_shape(self) -> ModelResult:
        if not self.success:
            if self.payload is not None:
                raise ValueError(f"failed result for '{self.model_id}' must not carry a payload")
            if self.error_message is None:
                raise ValueError(f"failed result for '{self.model_id}' requires an error_message")
        elif self.error_message is not None:
            raise ValueError(f"successful result for '{self.model_id}' must not carry an error_message")
        return self

    @classmethod
    def ok(cls, model_id: str, payload: str | None, duration_seconds: float | None = None) -> ModelResult:
        """Build a successful result."""
        return cls(model_id=model_id, payload=payload, duration_seconds=duration_seconds)

    @classmethod
    def failed(cls, model_id: str, error_message: str, duration_seconds: float | None = None) -> ModelResult:
        """Build a failed result."""
        return cls(
            model_id=model_id,
            success=False,
            error_message=error_message,
            duration_seconds=duration_seconds,
        )


class StepResult(BaseModel):
    """All model outcomes for one protocol step."""

    model_config = {"extra": "forbid", "frozen": True, "protected_namespaces": ()}

    step_name: str
    step_index: int = 0
    total_steps: int | None = None
    step_type: StepType = StepType.LLM
    model_results: list[ModelResult] = Field(default_factory=list)
    request_text: str | None = None

    def successful_results(self) -> list[ModelResult]:
        return [r for r in self.model_results if r.success]

    def failed_results(self) -> list[ModelResult]:
        return [r for r in self.model_results if not r.success]

    @property
    def success_count(self) -> int:
        return len(self.successful_results())

    @property
    def fail_count(self) -> int:
        return len(self.failed_results())

    @property
    def success_rate(self) -> float:
        """Fraction of successful results, 0.0 for a step with no results."""
        if not self.model_results:
            return 0.0
        return self.success_count / len(self.model_results)

    @property
    def total_duration(self) -> float | None:
        """Wall-clock duration of the step.

        Models run in parallel, so this is the slowest model's duration.
        """
        durations = [r.duration_seconds for r in self.model_results if r.duration_seconds is not None]
        return max(durations) if durations else None

    def results_by_model_id(self) -> dict[str, list[ModelResult]]:
        """Group results by model id, keeping iteration order within each model."""
        grouped: dict[str, list[ModelResult]] = {}
        for result in self.model_results:
            grouped.setdefault(result.model_id, []).append(result)
        return grouped


class ModelExclusion(BaseModel):
    """Records the first step at which a model failed."""

    model_config = {"extra": "forbid", "frozen": True, "protected_namespaces": ()}

    model_id: str
    failed_step_name: str
    failed_step_index: int
    cause: str


class Sample(BaseModel):
    """Textual context of the evaluated sample."""

    model_config = {"extra": "forbid", "frozen": True}

    user_input: str | None = None
    response: str | None = None
    reference: str | None = None
    retrieved_contexts: list[str] = Field(default_factory=list)
    reference_topics: list[str] = Field(default_factory=list)


class MetricRun(BaseModel):
    """Sealed record of one metric evaluation.

    ``aggregated_score`` is None exactly when every model failed every
    step contributing to the score.
    """

    model_config = {"extra": "forbid", "frozen": True, "protected_namespaces": ()}

    run_id: str = Field(default_factory=lambda: uuid4().hex)
    metric_name: str
    steps: list[StepResult] = Field(default_factory=list)
    aggregated_score: float | None = None
    config: dict[str, Any] = Field(default_factory=dict)
    model_ids: list[str] = Field(default_factory=list)
    embedding_model_ids: list[str] = Field(default_factory=list)
    model_scores: dict[str, float] = Field(default_factory=dict)
    exclusions: list[ModelExclusion] = Field(default_factory=list)
    sample: Sample | None = None
    metadata: MetricMetadata | None = None

    @field_validator("model_ids", "embedding_model_ids")
    @classmethod
    def _dedupe_ids(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))

    @property
    def excluded_models(self) -> list[str]:
        return [e.model_id for e in self.exclusions]

    def step(self, step_name: str) -> StepResult | None:
        """Return the first step with the given name, or None."""
        for step in self.steps:
            if step.step_name == step_name:
                return step
        return None

    def steps_matching(self, prefix: str) -> list[StepResult]:
        """Return all steps whose name starts with prefix, in run order."""
        return [s for s in self.steps if s.step_name.startswith(prefix)]


class MetricRunBuilder:
    """Accumulates step results for a single evaluation, then seals them.

    A builder is owned by exactly one evaluation. Appending after
    sealing, or sealing twice, raises RunSealedError.

    Args:
        metric_name: Name of the metric being evaluated.
        model_ids: Judge model ids. Derived from LLM steps when omitted.
        embedding_model_ids: Embedding model ids. Derived from
            EMBEDDING steps when omitted.
        config: Opaque metric configuration.
        sample: Textual context of the evaluated sample.
    """

    def __init__(
        self,
        metric_name: str,
        *,
        model_ids: list[str] | None = None,
        embedding_model_ids: list[str] | None = None,
        config: dict[str, Any] | None = None,
        sample: Sample | None = None,
        run_id: str | None = None,
    ) -> None:
        self.metric_name = metric_name
        self.model_ids = list(model_ids) if model_ids is not None else None
        self.embedding_model_ids = list(embedding_model_ids) if embedding_model_ids is not None else None
        self.config = dict(config or {})
        self.sample = sample
        self.run_id = run_id or uuid4().hex
        self._steps: list[StepResult] = []
        self._sealed = False

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def steps(self) -> list[StepResult]:
        return list(self._steps)

    def add_step(self, step: StepResult) -> StepResult:
        """Append a completed step, renumbering it to its position in the run.

        Raises:
            RunSealedError: If the builder has already been sealed.
        """
        if self._sealed:
            raise RunSealedError(f"run for '{self.metric_name}' is sealed; cannot add step '{step.step_name}'")
        step = step.model_copy(update={"step_index": len(self._steps)})
        self._steps.append(step)
        return step

    def record_step(
        self,
        step_name: str,
        results: list[ModelResult],
        *,
        step_type: StepType = StepType.LLM,
        request_text: str | None = None,
    ) -> StepResult:
        """Build a StepResult from model results and append it."""
        return self.add_step(
            StepResult(
                step_name=step_name,
                step_type=step_type,
                model_results=list(results),
                request_text=request_text,
            )
        )

    def seal(
        self,
        aggregated_score: float | None,
        *,
        metadata: MetricMetadata | None = None,
        model_scores: dict[str, float] | None = None,
    ) -> MetricRun:
        """Freeze the accumulated steps into a MetricRun.

        Args:
            aggregated_score: Final score, or None if every model failed.
            metadata: Optional structured metadata computed by the metric.
            model_scores: Optional per-model final scores.

        Returns:
            The sealed, immutable MetricRun.

        Raises:
            RunSealedError: If the builder has already been sealed.
        """
        if self._sealed:
            raise RunSealedError(f"run for '{self.metric_name}' is already sealed")
        self._sealed = True

        total = len(self._steps)
        steps = [s.model_copy(update={"total_steps": total}) for s in self._steps]

        return MetricRun(
            run_id=self.run_id,
            metric_name=self.metric_name,
            steps=steps,
            aggregated_score=aggregated_score,
            config=self.config,
            model_ids=self.model_ids if self.model_ids is not None else _ids_for(steps, StepType.LLM),
            embedding_model_ids=(
                self.embedding_model_ids
                if self.embedding_model_ids is not None
                else _ids_for(steps, StepType.EMBEDDING)
            ),
            model_scores=dict(model_scores or {}),
            exclusions=_find_exclusions(steps),
            sample=self.sample,
            metadata=metadata,
        )


def _ids_for(steps: list[StepResult], step_type: StepType) -> list[str]:
    """Model ids seen in steps of the given type, in order of first appearance."""
    seen: dict[str, None] = {}
    for step in steps:
        if step.step_type == step_type:
            for result in step.model_results:
                seen.setdefault(result.model_id, None)
    return list(seen)


def _find_exclusions(steps: list[StepResult]) -> list[ModelExclusion]:
    """One exclusion per model, at the first model-backed step where
    none of its iterations succeeded."""
    exclusions: dict[str, ModelExclusion] = {}
    for step in steps:
        if step.step_type == StepType.COMPUTE:
            continue
        for model_id, results in step.results_by_model_id().items():
            if model_id in exclusions or any(r.success for r in results):
                continue
            exclusions[model_id] = ModelExclusion(
                model_id=model_id,
                failed_step_name=step.step_name,
                failed_step_index=step.step_index,
                cause=results[-1].error_message or "",
            )
    return list(exclusions.values())
