"""Exception taxonomy for scorelens.

Per-model and per-field problems (a model that errored, a payload
missing a field) are never raised: they are recorded on the run or
simply omitted from the explanation. The exceptions below cover
misuse of the run lifecycle, corrupt run state, aggregation policy
violations, and configuration problems.
"""

from __future__ import annotations


class ScorelensError(Exception):
    """Base class for all scorelens errors."""


class RunSealedError(ScorelensError):
    """Raised when a sealed MetricRunBuilder is appended to or sealed again."""


class CorruptRunError(ScorelensError):
    """Raised when a metric run's state is internally inconsistent.

    Attributes:
        metric_name: Name of the metric whose run is corrupt.
    """

    def __init__(self, message: str, metric_name: str = "") -> None:
        self.metric_name = metric_name
        super().__init__(message)


class ConsensusToleranceError(ScorelensError):
    """Raised when model scores spread wider than the allowed tolerance.

    Attributes:
        spread: max(scores) - min(scores).
        tolerance: The configured maximum spread.
    """

    def __init__(self, spread: float, tolerance: float) -> None:
        self.spread = spread
        self.tolerance = tolerance
        super().__init__(
            f"Model scores disagree by {spread:.4f}, exceeding tolerance {tolerance:.4f}"
        )


class UnknownStrategyError(ScorelensError, ValueError):
    """Raised when an aggregation strategy name is not recognized."""


class ConfigError(ScorelensError):
    """Raised when scorelens.yaml cannot be parsed or validated.

    Attributes:
        path: Path of the offending config file, if known.
    """

    def __init__(self, message: str, path: str | None = None) -> None:
        self.path = path
        super().__init__(message)
