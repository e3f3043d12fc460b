"""scorelens data models - re-exports the public run and config classes."""

from scorelens.models.config import ProjectConfig
from scorelens.models.metadata import MetricMetadata
from scorelens.models.run import (
    MetricRun,
    MetricRunBuilder,
    ModelExclusion,
    ModelResult,
    Sample,
    StepResult,
    StepType,
)

__all__ = [
    "MetricMetadata",
    "MetricRun",
    "MetricRunBuilder",
    "ModelExclusion",
    "ModelResult",
    "ProjectConfig",
    "Sample",
    "StepResult",
    "StepType",
]
