"""Score aggregation strategies across models.

Reduces the final per-model scores of a metric run to one aggregated
score. Only models that produced a score take part; an empty input
means every model failed and yields None.
"""

from __future__ import annotations

import statistics
from collections.abc import Callable, Iterable
from enum import Enum

from scorelens.consensus.voting import strict_majority
from scorelens.errors import ConsensusToleranceError, UnknownStrategyError


class AggregationStrategy(str, Enum):
    """Supported strategies for combining per-model scores."""

    AVERAGE = "average"
    MEDIAN = "median"
    MIN = "min"
    MAX = "max"
    MAJORITY_VOTING = "majority_voting"
    CONSENSUS = "consensus"


def _majority_voting(scores: list[float]) -> float:
    # A score counts as a pass vote at >= 0.5
    return 1.0 if strict_majority([s >= 0.5 for s in scores]) else 0.0


_REDUCERS: dict[AggregationStrategy, Callable[[list[float]], float]] = {
    AggregationStrategy.AVERAGE: statistics.fmean,
    AggregationStrategy.MEDIAN: statistics.median,
    AggregationStrategy.MIN: min,
    AggregationStrategy.MAX: max,
    AggregationStrategy.MAJORITY_VOTING: _majority_voting,
    AggregationStrategy.CONSENSUS: statistics.fmean,
}


def get_strategy(name: str | AggregationStrategy) -> AggregationStrategy:
    """Resolve a strategy by name (case-insensitive, '-' or '_').

    Raises:
        UnknownStrategyError: If the name is not a known strategy.
    """
    if isinstance(name, AggregationStrategy):
        return name
    normalized = name.strip().lower().replace("-", "_")
    try:
        return AggregationStrategy(normalized)
    except ValueError:
        known = ", ".join(s.value for s in AggregationStrategy)
        raise UnknownStrategyError(f"Unknown aggregation strategy '{name}'. Known: {known}") from None


def aggregate_scores(
    scores: Iterable[float | None],
    strategy: str | AggregationStrategy = AggregationStrategy.AVERAGE,
    tolerance: float | None = None,
) -> float | None:
    """Combine per-model scores into one score.

    Args:
        scores: Per-model scores; None entries (failed models) are skipped.
        strategy: Strategy name or enum member.
        tolerance: Maximum allowed max-min spread for the consensus
            strategy. Ignored by the other strategies.

    Returns:
        The aggregated score, or None if no model produced a score.

    Raises:
        UnknownStrategyError: If the strategy is not recognized.
        ConsensusToleranceError: If the consensus strategy is used and
            the scores spread wider than tolerance.
    """
    resolved = get_strategy(strategy)
    values = [float(s) for s in scores if s is not None]
    if not values:
        return None

    if resolved is AggregationStrategy.CONSENSUS and tolerance is not None:
        spread = max(values) - min(values)
        if spread > tolerance:
            raise ConsensusToleranceError(spread, tolerance)

    return float(_REDUCERS[resolved](values))
