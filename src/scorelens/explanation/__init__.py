"""Explanation package: typed explanation variants, interpretation, and text rendering."""

from __future__ import annotations

from scorelens.explanation.formatting import format_explanation
from scorelens.explanation.interpretation import NOT_CALCULATED, format_percent
from scorelens.explanation.models import BaseExplanation, Explanation, MetricFamily, explanation_adapter

__all__ = [
    "NOT_CALCULATED",
    "BaseExplanation",
    "Explanation",
    "MetricFamily",
    "explanation_adapter",
    "format_explanation",
    "format_percent",
]
