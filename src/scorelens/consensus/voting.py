"""Majority voting and agreement statistics across models and iterations.

Reduces per-model verdicts, possibly gathered over several repeated
iterations per model (strictness), into a single decision plus an
agreement percentage and a disagreement flag.

Two policies are intentional and relied on downstream:
- a model passes only with a strict majority of its iterations, so a
  1/2 split is a fail;
- the cross-model decision on a tie (pass_count == fail_count) is a fail.

A failed iteration is represented by None. A model whose iterations all
failed is excluded from the decision and from every count, and is
reported separately in ``excluded_models``.
"""

from __future__ import annotations

import statistics
from collections import Counter
from collections.abc import Hashable, Mapping, Sequence

from pydantic import BaseModel, Field


class ConsensusResult(BaseModel):
    """Outcome of reducing a per-model verdict map.

    ``success_count`` is the number of contributing models that sided
    with the majority; ``total_count`` is the number of contributing
    models (excluded models are not counted).
    """

    model_config = {"extra": "forbid", "frozen": True}

    decision: bool | int | float
    agreement_percent: float
    has_disagreement: bool
    success_count: int
    total_count: int
    model_decisions: dict[str, bool | float] = Field(default_factory=dict)
    excluded_models: list[str] = Field(default_factory=list)


def strict_majority(votes: Sequence[bool]) -> bool:
    """True iff more than half of the votes are True.

    An empty sequence and an exact tie are both False.
    """
    return sum(1 for v in votes if v) > len(votes) / 2


def model_majorities(
    verdicts: Mapping[str, Sequence[bool | None]],
) -> tuple[dict[str, bool], list[str]]:
    """Reduce each model's iterations to a single pass/fail decision.

    Args:
        verdicts: Model id to per-iteration verdicts; None marks a
            failed iteration.

    Returns:
        Tuple of (decisions, excluded):
        - decisions: Model id to its strict-majority decision, for
          models with at least one successful iteration.
        - excluded: Model ids with no successful iteration, in input order.
    """
    decisions: dict[str, bool] = {}
    excluded: list[str] = []
    for model_id, votes in verdicts.items():
        successful = [v for v in votes if v is not None]
        if not successful:
            excluded.append(model_id)
            continue
        decisions[model_id] = strict_majority(successful)
    return decisions, excluded


def boolean_consensus(verdicts: Mapping[str, Sequence[bool | None]]) -> ConsensusResult:
    """Cross-model majority of per-model majorities.

    Args:
        verdicts: Model id to per-iteration boolean verdicts (None for
            failed iterations).

    Returns:
        ConsensusResult with a boolean decision. When every model is
        excluded the decision is False, agreement is 0.0 and there is
        no disagreement.
    """
    decisions, excluded = model_majorities(verdicts)
    total = len(decisions)
    pass_count = sum(1 for d in decisions.values() if d)
    fail_count = total - pass_count

    decision = pass_count > fail_count
    agreement = max(pass_count, fail_count) / total * 100 if total else 0.0

    return ConsensusResult(
        decision=decision,
        agreement_percent=agreement,
        has_disagreement=0 < pass_count < total,
        success_count=pass_count if decision else fail_count,
        total_count=total,
        model_decisions=dict(decisions),
        excluded_models=excluded,
    )


def numeric_consensus(verdicts: Mapping[str, Sequence[float | None]]) -> ConsensusResult:
    """Consensus over numeric judge scores (e.g. 1-5 ratings).

    Each model's value is the mean of its successful iterations; the
    decision is the mean across models. Agreement is the share of
    models whose rounded value equals the most common rounded value.

    Args:
        verdicts: Model id to per-iteration scores (None for failed
            iterations).

    Returns:
        ConsensusResult with a float decision (0.0 if all excluded).
    """
    values: dict[str, float] = {}
    excluded: list[str] = []
    for model_id, scores in verdicts.items():
        successful = [float(s) for s in scores if s is not None]
        if not successful:
            excluded.append(model_id)
            continue
        values[model_id] = statistics.fmean(successful)

    total = len(values)
    if not total:
        return ConsensusResult(
            decision=0.0,
            agreement_percent=0.0,
            has_disagreement=False,
            success_count=0,
            total_count=0,
            excluded_models=excluded,
        )

    rounded = Counter(round(v) for v in values.values())
    top_count = rounded.most_common(1)[0][1]

    return ConsensusResult(
        decision=statistics.fmean(values.values()),
        agreement_percent=top_count / total * 100,
        has_disagreement=len(rounded) > 1,
        success_count=top_count,
        total_count=total,
        model_decisions=dict(values),
        excluded_models=excluded,
    )


def agreement_of(values: Sequence[bool]) -> tuple[float, bool]:
    """Agreement percentage and disagreement flag for a flat list of votes.

    Returns:
        Tuple of (agreement_percent, has_disagreement). An empty list
        counts as unanimous (100.0, False).
    """
    if not values:
        return (100.0, False)
    pass_count = sum(1 for v in values if v)
    total = len(values)
    return (max(pass_count, total - pass_count) / total * 100, 0 < pass_count < total)


def modal_agreement(values: Sequence[Hashable]) -> tuple[float, bool]:
    """Share of entries equal to the most common value, and whether any differ.

    Used for per-model counts or labels, where "agreement" means
    producing the same result as most other models.
    """
    if not values:
        return (100.0, False)
    counts = Counter(values)
    top = counts.most_common(1)[0][1]
    return (top / len(values) * 100, len(counts) > 1)
