"""Tests for the scorelens CLI -- explain, runs, metrics, aggregate."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from scorelens.cli.main import app
from scorelens.models.metadata import AspectCriticMetadata
from scorelens.models.run import MetricRun, MetricRunBuilder, ModelResult, Sample
from scorelens.storage.json_store import RunStore

runner = CliRunner()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_run(metric_name: str = "aspect-critic") -> MetricRun:
    builder = MetricRunBuilder(metric_name, sample=Sample(response="Thanks for asking!"))
    builder.record_step(
        "Evaluate",
        [
            ModelResult.ok("m1", '{"verdict": 1, "reasoning": "Courteous."}'),
            ModelResult.ok("m2", '{"verdict": 1}'),
            ModelResult.failed("m3", "rate limited"),
        ],
    )
    return builder.seal(
        1.0,
        metadata=AspectCriticMetadata(
            definition="Is the answer polite?",
            model_verdicts={"m1": [True], "m2": [True]},
            model_reasonings={"m1": ["Courteous."]},
        ),
    )


def _write_run(tmp_path: Path, run: MetricRun | None = None, name: str = "run.json") -> Path:
    run = run or _make_run()
    path = tmp_path / name
    if path.suffix == ".json":
        path.write_text(run.model_dump_json(indent=2))
    else:
        path.write_text(yaml.safe_dump(run.model_dump(mode="json")))
    return path


@pytest.fixture()
def project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Top level
# ---------------------------------------------------------------------------


class TestMain:
    """Tests for the app callback."""

    def test_version(self, project: Path) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "scorelens 0.1.0" in result.stdout

    def test_invalid_project_config(self, project: Path) -> None:
        (project / "scorelens.yaml").write_text("log_level: LOUD\n")
        result = runner.invoke(app, ["metrics"])
        assert result.exit_code == 1


class TestMetricsCommand:
    """Tests for scorelens metrics."""

    def test_lists_families(self, project: Path) -> None:
        result = runner.invoke(app, ["metrics"])
        assert result.exit_code == 0
        assert "Explainable Metrics" in result.stdout
        assert "faithfulness" in result.stdout
        assert "22 metric families." in result.stdout


# ---------------------------------------------------------------------------
# explain
# ---------------------------------------------------------------------------


class TestExplainCommand:
    """Tests for scorelens explain."""

    def test_renders_headline_and_steps(self, project: Path) -> None:
        path = _write_run(project)
        result = runner.invoke(app, ["explain", str(path)])
        assert result.exit_code == 0
        assert "aspect-critic" in result.stdout
        assert "PASS" in result.stdout
        assert "Each model judges the aspect" in result.stdout

    def test_verbose_shows_model_table(self, project: Path) -> None:
        path = _write_run(project)
        result = runner.invoke(app, ["explain", str(path), "--verbose"])
        assert result.exit_code == 0
        assert "rate limited" in result.stdout
        assert "ERROR" in result.stdout

    def test_steps_only_skips_headline(self, project: Path) -> None:
        path = _write_run(project)
        result = runner.invoke(app, ["explain", str(path), "--steps-only"])
        assert result.exit_code == 0
        assert "Formula" not in result.stdout
        assert "Define the aspect" in result.stdout

    def test_json_output(self, project: Path) -> None:
        path = _write_run(project)
        result = runner.invoke(app, ["explain", str(path), "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["metric_type"] == "aspect-critic"
        assert data["passed"] is True
        assert data["excluded_models"] == []

    def test_yaml_run_file(self, project: Path) -> None:
        path = _write_run(project, name="run.yaml")
        result = runner.invoke(app, ["explain", str(path), "--json"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["definition"] == "Is the answer polite?"

    def test_from_steps_flag(self, project: Path) -> None:
        """--from-steps ignores the metadata record."""
        path = _write_run(project)
        result = runner.invoke(app, ["explain", str(path), "--json", "--from-steps"])
        data = json.loads(result.stdout)
        assert data["definition"] == ""
        assert [v["model_id"] for v in data["model_votes"]] == ["m1", "m2", "m3"]
        assert data["excluded_models"] == ["m3"]

    def test_save_then_explain_by_id(self, project: Path) -> None:
        run = _make_run()
        path = _write_run(project, run)
        result = runner.invoke(app, ["explain", str(path), "--save"])
        assert result.exit_code == 0
        assert f"Saved run {run.run_id}" in result.stdout

        store = RunStore(project)
        assert store.list_runs() == [run.run_id]
        assert store.load_explanation(run.run_id) is not None

        result = runner.invoke(app, ["explain", run.run_id, "--json"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["metric_type"] == "aspect-critic"

    def test_unknown_run(self, project: Path) -> None:
        result = runner.invoke(app, ["explain", "no-such-run"])
        assert result.exit_code == 1
        assert "not found" in result.stdout

    def test_corrupt_run_file(self, project: Path) -> None:
        path = project / "broken.json"
        path.write_text('{"steps": "nope"}')
        result = runner.invoke(app, ["explain", str(path)])
        assert result.exit_code == 1
        assert "Error" in result.stdout

    def test_unsupported_metric(self, project: Path) -> None:
        path = _write_run(project, MetricRunBuilder("perplexity").seal(0.42))
        result = runner.invoke(app, ["explain", str(path)])
        assert result.exit_code == 0
        assert "No explanation available for metric 'perplexity'" in result.stdout
        assert "42.00%" in result.stdout


# ---------------------------------------------------------------------------
# runs
# ---------------------------------------------------------------------------


class TestRunsCommand:
    """Tests for scorelens runs."""

    def test_no_store(self, project: Path) -> None:
        result = runner.invoke(app, ["runs"])
        assert result.exit_code == 0
        assert "No saved runs" in result.stdout

    def test_lists_saved_runs(self, project: Path) -> None:
        store = RunStore(project)
        store.save_run(_make_run("aspect-critic"))
        store.save_run(_make_run("faithfulness"))
        result = runner.invoke(app, ["runs"])
        assert result.exit_code == 0
        assert "Metric Runs" in result.stdout
        assert "2 run(s) shown." in result.stdout

    def test_filter_by_metric(self, project: Path) -> None:
        store = RunStore(project)
        store.save_run(_make_run("aspect-critic"))
        store.save_run(_make_run("faithfulness"))
        result = runner.invoke(app, ["runs", "--metric", "faithfulness"])
        assert "1 run(s) shown." in result.stdout

    def test_filter_without_matches(self, project: Path) -> None:
        RunStore(project).save_run(_make_run())
        result = runner.invoke(app, ["runs", "-m", "bleu"])
        assert result.exit_code == 0
        assert "No runs found for metric 'bleu'" in result.stdout


# ---------------------------------------------------------------------------
# aggregate
# ---------------------------------------------------------------------------


class TestAggregateCommand:
    """Tests for scorelens aggregate."""

    def test_default_average_skips_failed(self, project: Path) -> None:
        result = runner.invoke(app, ["aggregate", "0.8", "0.6", "none"])
        assert result.exit_code == 0
        assert "0.7000" in result.stdout
        assert "2/3 scored" in result.stdout

    def test_strategy_option(self, project: Path) -> None:
        result = runner.invoke(app, ["aggregate", "--strategy", "median", "0.2", "0.9", "0.4"])
        assert result.exit_code == 0
        assert "0.4000" in result.stdout

    def test_strategy_from_project_config(self, project: Path) -> None:
        (project / "scorelens.yaml").write_text("aggregation:\n  strategy: max\n")
        result = runner.invoke(app, ["aggregate", "0.2", "0.9"])
        assert result.exit_code == 0
        assert "0.9000" in result.stdout

    def test_consensus_beyond_tolerance(self, project: Path) -> None:
        result = runner.invoke(app, ["aggregate", "-s", "consensus", "-t", "0.1", "0.2", "0.9"])
        assert result.exit_code == 1
        assert "Error" in result.stdout

    def test_unknown_strategy(self, project: Path) -> None:
        result = runner.invoke(app, ["aggregate", "-s", "mode", "0.5"])
        assert result.exit_code == 1

    def test_out_of_range_score(self, project: Path) -> None:
        result = runner.invoke(app, ["aggregate", "1.5"])
        assert result.exit_code != 0

    def test_all_failed(self, project: Path) -> None:
        result = runner.invoke(app, ["aggregate", "none", "null"])
        assert result.exit_code == 0
        assert "N/A" in result.stdout
