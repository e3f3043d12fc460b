"""Cross-model consensus: majority voting, agreement, and score aggregation."""

from scorelens.consensus.aggregators import AggregationStrategy, aggregate_scores, get_strategy
from scorelens.consensus.voting import (
    ConsensusResult,
    agreement_of,
    boolean_consensus,
    modal_agreement,
    model_majorities,
    numeric_consensus,
    strict_majority,
)

__all__ = [
    "AggregationStrategy",
    "ConsensusResult",
    "aggregate_scores",
    "agreement_of",
    "boolean_consensus",
    "get_strategy",
    "modal_agreement",
    "model_majorities",
    "numeric_consensus",
    "strict_majority",
]
