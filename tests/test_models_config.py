"""Tests for scorelens.models.config - ProjectConfig, find_project_root, load_project_config."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from scorelens.errors import ConfigError


class TestProjectConfig:
    """Test ProjectConfig model."""

    def test_defaults(self):
        """ProjectConfig has sensible defaults."""
        from scorelens.models import ProjectConfig

        config = ProjectConfig()
        assert config.storage_dir == ".scorelens"
        assert config.log_level == "WARNING"
        assert config.explain.prefer_metadata is True
        assert config.explain.text_limit == 200
        assert config.aggregation.strategy == "average"
        assert config.aggregation.tolerance is None

    def test_custom_values(self):
        """ProjectConfig accepts nested custom values."""
        from scorelens.models import ProjectConfig

        config = ProjectConfig.model_validate(
            {
                "storage_dir": "data/evals",
                "log_level": "DEBUG",
                "explain": {"prefer_metadata": False, "text_limit": 80},
                "aggregation": {"strategy": "consensus", "tolerance": 0.2},
            }
        )
        assert config.storage_dir == "data/evals"
        assert config.explain.prefer_metadata is False
        assert config.explain.text_limit == 80
        assert config.aggregation.strategy == "consensus"
        assert config.aggregation.tolerance == 0.2

    def test_rejects_unknown_keys(self):
        """ProjectConfig rejects unknown keys."""
        from scorelens.models import ProjectConfig

        with pytest.raises(ValidationError, match="extra_forbidden"):
            ProjectConfig.model_validate({"unknown_field": True})

    def test_rejects_unknown_strategy(self):
        from scorelens.models.config import AggregationConfig

        with pytest.raises(ValidationError):
            AggregationConfig(strategy="geometric")

    def test_tolerance_range(self):
        """Tolerance must lie in [0, 1]."""
        from scorelens.models.config import AggregationConfig

        with pytest.raises(ValidationError):
            AggregationConfig(tolerance=1.5)

    def test_text_limit_minimum(self):
        from scorelens.models.config import ExplainConfig

        with pytest.raises(ValidationError):
            ExplainConfig(text_limit=5)


class TestFindProjectRoot:
    """Test find_project_root discovery."""

    def test_returns_cwd_when_nothing_found(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        """Falls back to cwd when no marker exists up the tree."""
        from scorelens.models.config import find_project_root

        deep = tmp_path / "a" / "b"
        deep.mkdir(parents=True)
        monkeypatch.chdir(tmp_path)
        assert find_project_root(deep) == Path.cwd()

    def test_finds_scorelens_yaml_in_parent(self, tmp_path: Path):
        """Finds scorelens.yaml in a parent directory."""
        from scorelens.models.config import find_project_root

        (tmp_path / "scorelens.yaml").write_text("log_level: INFO\n")
        child = tmp_path / "runs"
        child.mkdir()
        assert find_project_root(child) == tmp_path.resolve()

    def test_finds_dot_scorelens_in_parent(self, tmp_path: Path):
        """Finds a .scorelens/ directory in a parent."""
        from scorelens.models.config import find_project_root

        (tmp_path / ".scorelens").mkdir()
        child = tmp_path / "sub"
        child.mkdir()
        assert find_project_root(child) == tmp_path.resolve()

    def test_handles_file_path_input(self, tmp_path: Path):
        """A file path starts the search from its directory."""
        from scorelens.models.config import find_project_root

        (tmp_path / "scorelens.yaml").write_text("")
        run_file = tmp_path / "run.json"
        run_file.write_text("{}")
        assert find_project_root(run_file) == tmp_path.resolve()


class TestLoadProjectConfig:
    """Test load_project_config."""

    def test_returns_defaults_when_no_file(self, tmp_path: Path):
        from scorelens.models.config import load_project_config

        config = load_project_config(tmp_path)
        assert config.storage_dir == ".scorelens"

    def test_loads_valid_yaml(self, tmp_path: Path):
        from scorelens.models.config import load_project_config

        (tmp_path / "scorelens.yaml").write_text(
            "log_level: INFO\n"
            "explain:\n"
            "  text_limit: 120\n"
            "aggregation:\n"
            "  strategy: median\n"
        )
        config = load_project_config(tmp_path)
        assert config.log_level == "INFO"
        assert config.explain.text_limit == 120
        assert config.aggregation.strategy == "median"

    def test_empty_yaml_returns_defaults(self, tmp_path: Path):
        from scorelens.models.config import load_project_config

        (tmp_path / "scorelens.yaml").write_text("")
        assert load_project_config(tmp_path).log_level == "WARNING"

    def test_invalid_yaml_raises_config_error(self, tmp_path: Path):
        from scorelens.models.config import load_project_config

        config_path = tmp_path / "scorelens.yaml"
        config_path.write_text("explain: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML") as exc_info:
            load_project_config(tmp_path)
        assert exc_info.value.path == str(config_path)

    def test_invalid_values_raise_config_error(self, tmp_path: Path):
        from scorelens.models.config import load_project_config

        (tmp_path / "scorelens.yaml").write_text("log_level: LOUD\n")
        with pytest.raises(ConfigError, match="Invalid configuration"):
            load_project_config(tmp_path)
