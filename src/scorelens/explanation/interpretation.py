"""Score interpretation helpers: percent formatting, scales, levels, meanings.

Level names, scale membership, and the current-level index are pure
functions of the score. A None score (every model failed) always maps
to the "Unknown" level and the fixed NOT_CALCULATED meaning, and no
arithmetic is attempted on it.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

from scorelens.explanation.models import ScaleLevel, ScoreInterpretation

NOT_CALCULATED = "Score not calculated"
UNKNOWN_LEVEL = "Unknown"

# (name, lower bound, range label), best first
STANDARD_BANDS: tuple[tuple[str, float, str], ...] = (
    ("Excellent", 0.9, "90-100%"),
    ("Good", 0.7, "70-90%"),
    ("Moderate", 0.5, "50-70%"),
    ("Poor", 0.0, "0-50%"),
)

# (name, upper bound, range label), best first; lower is better
INVERTED_BANDS: tuple[tuple[str, float, str], ...] = (
    ("Excellent", 0.1, "0-10%"),
    ("Good", 0.3, "10-30%"),
    ("Moderate", 0.5, "30-50%"),
    ("Poor", 1.0, "50-100%"),
)

GENERIC_DESCRIPTIONS: tuple[str, str, str, str] = (
    "Very high quality",
    "Good quality with minor issues",
    "Noticeable issues",
    "Significant issues",
)


def format_percent(value: float | None) -> str:
    """Format a 0-1 value as a percentage with two decimals, or 'N/A'."""
    if value is None:
        return "N/A"
    return "%.2f%%" % (value * 100)


def truncate(text: str | None, limit: int) -> str:
    """Shorten text to limit characters, appending '...' when cut."""
    if not text:
        return ""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def standard_level_index(score: float | None) -> int:
    if score is None:
        return len(STANDARD_BANDS) - 1
    for i, (_, lower, _) in enumerate(STANDARD_BANDS):
        if score >= lower:
            return i
    return len(STANDARD_BANDS) - 1


def standard_level(score: float | None) -> str:
    if score is None:
        return UNKNOWN_LEVEL
    return STANDARD_BANDS[standard_level_index(score)][0]


def inverted_level_index(score: float | None) -> int:
    if score is None:
        return len(INVERTED_BANDS) - 1
    for i, (_, upper, _) in enumerate(INVERTED_BANDS):
        if score <= upper:
            return i
    return len(INVERTED_BANDS) - 1


def _scale(
    bands: tuple[tuple[str, float, str], ...],
    current: int | None,
    descriptions: Sequence[str],
) -> list[ScaleLevel]:
    return [
        ScaleLevel(name=name, range=label, description=descriptions[i], current=i == current)
        for i, (name, _, label) in enumerate(bands)
    ]


def _meaning(score: float | None, index: int, meanings: Sequence[str]) -> str:
    if score is None:
        return NOT_CALCULATED
    return meanings[index]


def standard_interpretation(
    score: float | None,
    *,
    formula: str,
    meanings: Sequence[str],
    calculation: str | None = None,
    descriptions: Sequence[str] = GENERIC_DESCRIPTIONS,
    numerator: int | None = None,
    denominator: int | None = None,
) -> ScoreInterpretation:
    """Interpretation on the standard Excellent/Good/Moderate/Poor scale.

    Args:
        score: Aggregated score in [0, 1], or None.
        formula: Human-readable formula of the metric.
        meanings: Four meanings, best level first.
        calculation: Worked calculation; defaults to the percent score.
        descriptions: Four scale-level descriptions, best level first.
        numerator: Optional numerator of the score fraction.
        denominator: Optional denominator of the score fraction.

    Returns:
        The ScoreInterpretation.
    """
    index = standard_level_index(score)
    return ScoreInterpretation(
        formula=formula,
        calculation=calculation if calculation is not None else format_percent(score),
        numerator=numerator,
        denominator=denominator,
        score=score,
        score_percent=format_percent(score),
        level=standard_level(score),
        is_good=None if score is None else score >= 0.7,
        meaning=_meaning(score, index, meanings),
        scale_levels=_scale(STANDARD_BANDS, None if score is None else index, descriptions),
        current_level_index=index,
    )


def inverted_interpretation(
    score: float | None,
    *,
    formula: str,
    meanings: Sequence[str],
    descriptions: Sequence[str] = GENERIC_DESCRIPTIONS,
    numerator: int | None = None,
    denominator: int | None = None,
) -> ScoreInterpretation:
    """Interpretation on a scale where lower scores are better."""
    index = inverted_level_index(score)
    return ScoreInterpretation(
        formula=formula,
        calculation=format_percent(score),
        numerator=numerator,
        denominator=denominator,
        score=score,
        score_percent=format_percent(score),
        level=UNKNOWN_LEVEL if score is None else INVERTED_BANDS[index][0],
        is_good=score is not None and score <= 0.2,
        meaning=_meaning(score, index, meanings),
        scale_levels=_scale(INVERTED_BANDS, None if score is None else index, descriptions),
        current_level_index=index,
    )


def binary_interpretation(
    score: float | None,
    passed: bool,
    *,
    formula: str,
    calculation: str,
    meanings: tuple[str, str],
    numerator: int | None = None,
    denominator: int | None = None,
) -> ScoreInterpretation:
    """Interpretation on a PASS (1.0) / FAIL (0.0) scale.

    Args:
        score: Aggregated score, or None.
        passed: Whether the final decision is a pass.
        formula: Human-readable formula.
        calculation: Worked calculation.
        meanings: (pass meaning, fail meaning).
    """
    if score is None:
        level, index, meaning = UNKNOWN_LEVEL, -1, NOT_CALCULATED
    else:
        level = "PASS" if passed else "FAIL"
        index = 0 if passed else 1
        meaning = meanings[0] if passed else meanings[1]
    return ScoreInterpretation(
        formula=formula,
        calculation=calculation,
        numerator=numerator,
        denominator=denominator,
        score=score,
        score_percent=format_percent(score),
        level=level,
        is_good=None if score is None else passed,
        meaning=meaning,
        scale_levels=[
            ScaleLevel(name="PASS", range="1.0", description=meanings[0], current=score is not None and passed),
            ScaleLevel(name="FAIL", range="0.0", description=meanings[1], current=score is not None and not passed),
        ],
        current_level_index=index,
    )


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives (2.5 -> 3)."""
    return int(math.floor(value + 0.5))
