"""Project configuration model for scorelens.

Captures scorelens.yaml fields with sensible defaults for storage,
logging, explanation rendering, and cross-model score aggregation.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

from scorelens.errors import ConfigError

CONFIG_FILENAME = "scorelens.yaml"


class ExplainConfig(BaseModel):
    """Controls how explanations are produced and displayed.

    ``prefer_metadata`` picks the structured metadata path whenever a
    run carries a metadata record; ``text_limit`` caps the length of
    response/reference text echoed in explanation steps.
    """

    model_config = {"extra": "forbid"}

    prefer_metadata: bool = True
    text_limit: int = Field(default=200, ge=20)


class AggregationConfig(BaseModel):
    """Default strategy for reducing per-model scores to one score."""

    model_config = {"extra": "forbid"}

    strategy: Literal["average", "median", "min", "max", "majority_voting", "consensus"] = "average"
    tolerance: float | None = Field(default=None, ge=0.0, le=1.0)


class ProjectConfig(BaseModel):
    """Project-level configuration loaded from scorelens.yaml."""

    model_config = {"extra": "forbid"}

    storage_dir: str = ".scorelens"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"
    explain: ExplainConfig = Field(default_factory=ExplainConfig)
    aggregation: AggregationConfig = Field(default_factory=AggregationConfig)


def find_project_root(start: Path | None = None) -> Path:
    """Walk up from start (default: cwd) looking for scorelens.yaml or .scorelens/.

    Args:
        start: Starting path (file or directory). Defaults to cwd.

    Returns:
        Path to the directory containing scorelens.yaml or .scorelens/,
        or cwd if neither is found.
    """
    current = (start or Path.cwd()).resolve()
    if current.is_file():
        current = current.parent
    while current != current.parent:
        if (current / CONFIG_FILENAME).exists() or (current / ".scorelens").exists():
            return current
        current = current.parent
    return Path.cwd()


def load_project_config(project_root: Path | None = None) -> ProjectConfig:
    """Load ProjectConfig from scorelens.yaml. Returns defaults if not found.

    Args:
        project_root: Path to the project root directory. If None,
            uses find_project_root() to locate it.

    Returns:
        Validated ProjectConfig instance.

    Raises:
        ConfigError: If the file is not valid YAML or fails validation.
    """
    if project_root is None:
        project_root = find_project_root()
    config_path = project_root / CONFIG_FILENAME
    if not config_path.exists():
        return ProjectConfig()
    import yaml

    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {config_path}: {exc}", path=str(config_path)) from exc
    if raw is None:
        return ProjectConfig()
    try:
        return ProjectConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration in {config_path}: {exc}", path=str(config_path)) from exc
