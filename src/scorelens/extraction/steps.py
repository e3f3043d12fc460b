"""Read-only access to a sealed metric run for explanation extractors.

RunReader locates protocol steps by name, parses each successful
model's payload, and recovers sample text, preferring the run's
Sample and falling back to prompt scraping. Nothing here mutates the
run, and every lookup returns None or an empty collection when data is
missing.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any, TypeVar

from scorelens.extraction.payloads import parse_payload, parse_scalar
from scorelens.models.run import MetricRun, ModelResult, StepResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TEXT_LIMIT = 200


def first_entry(mapping: Mapping[str, T]) -> T | None:
    """Value of the first model in a per-model map, or None if empty."""
    for value in mapping.values():
        return value
    return None


class RunReader:
    """Query helper over one sealed MetricRun.

    Args:
        run: The sealed run to read.
        text_limit: Maximum length of response/reference text echoed
            into explanation steps.
    """

    def __init__(self, run: MetricRun, text_limit: int = DEFAULT_TEXT_LIMIT) -> None:
        self.run = run
        self.text_limit = text_limit

    @property
    def score(self) -> float | None:
        return self.run.aggregated_score

    @property
    def not_calculated(self) -> bool:
        """True when the protocol ran but every model failed, leaving no score.

        Step extractors still build an explanation in this case so the
        "not calculated" meaning reaches the report.
        """
        return self.run.aggregated_score is None and bool(self.run.steps)

    # -- Step lookup --

    def step(self, *names: str) -> StepResult | None:
        """First step whose name equals any of names (tried in order)."""
        for name in names:
            found = self.run.step(name)
            if found is not None:
                return found
        return None

    def steps_where(self, predicate: Callable[[str], bool]) -> list[StepResult]:
        return [s for s in self.run.steps if predicate(s.step_name)]

    # -- Payloads --

    def _parsed(self, result: ModelResult, step: StepResult) -> dict | None:
        data = parse_payload(result.payload)
        if data is None:
            logger.debug(
                "Malformed payload from model '%s' at step '%s' of %s",
                result.model_id,
                step.step_name,
                self.run.metric_name,
            )
        return data

    def first_payload(self, step: StepResult | None, *required: str) -> dict | None:
        """Payload of the first successful model whose JSON parses.

        Args:
            step: Step to read; None yields None.
            required: Keys the payload must contain to be accepted.
        """
        if step is None:
            return None
        for result in step.successful_results():
            data = self._parsed(result, step)
            if data is not None and all(key in data for key in required):
                return data
        return None

    def payloads(self, step: StepResult | None) -> list[tuple[str, dict]]:
        """(model_id, payload) for every successful, parseable result in order."""
        if step is None:
            return []
        parsed: list[tuple[str, dict]] = []
        for result in step.successful_results():
            data = self._parsed(result, step)
            if data is not None:
                parsed.append((result.model_id, data))
        return parsed

    def iterations_by_model(self, step: StepResult | None) -> dict[str, list[dict | None]]:
        """Per-model iteration payloads in order of appearance.

        Failed or unparseable iterations appear as None, so callers can
        tell an excluded model from one that voted.
        """
        if step is None:
            return {}
        grouped: dict[str, list[dict | None]] = {}
        for result in step.model_results:
            data = self._parsed(result, step) if result.success else None
            grouped.setdefault(result.model_id, []).append(data)
        return grouped

    def scalars_by_model(self, step: StepResult | None) -> dict[str, float]:
        """First parseable numeric payload of each successful model."""
        if step is None:
            return {}
        values: dict[str, float] = {}
        for result in step.successful_results():
            if result.model_id in values:
                continue
            value = parse_scalar(result.payload)
            if value is None:
                logger.debug(
                    "Non-numeric payload from model '%s' at step '%s'",
                    result.model_id,
                    step.step_name,
                )
                continue
            values[result.model_id] = value
        return values

    def failed_models(self, step: StepResult | None) -> dict[str, str]:
        """Model id to error message for models with no successful result at step."""
        if step is None:
            return {}
        failed: dict[str, str] = {}
        for model_id, results in step.results_by_model_id().items():
            if not any(r.success for r in results):
                failed[model_id] = results[-1].error_message or ""
        return failed

    # -- Sample text --

    def sample_text(
        self,
        field: str,
        scraper: Callable[[str | None], str | None],
        *step_names: str,
    ) -> str:
        """Sample field if present, else the first span scraped from a prompt.

        Args:
            field: Sample attribute name (e.g. 'response').
            scraper: Prompt scraping function for the same text.
            step_names: Steps whose prompts are searched first; all steps
                are searched afterwards.
        """
        sample = self.run.sample
        if sample is not None:
            value = getattr(sample, field, None)
            if value:
                return value
        preferred = [s for name in step_names if (s := self.run.step(name)) is not None]
        for step in preferred + self.run.steps:
            found = scraper(step.request_text)
            if found:
                return found
        return ""

    def contexts(self) -> list[str]:
        sample = self.run.sample
        return list(sample.retrieved_contexts) if sample is not None else []

    # -- Config --

    def config_value(self, *keys: str, default: Any = None) -> Any:
        """First present config key (accepts snake_case and camelCase variants)."""
        for key in keys:
            if key in self.run.config and self.run.config[key] is not None:
                return self.run.config[key]
        return default

    # -- Exclusions --

    def exclusion_causes(self, present: Iterable[str] = ()) -> dict[str, str]:
        """Model id to failure cause for excluded models not in present."""
        skip = set(present)
        return {e.model_id: e.cause for e in self.run.exclusions if e.model_id not in skip}
