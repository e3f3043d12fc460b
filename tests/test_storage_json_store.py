"""Tests for the JSON storage layer (RunStore)."""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from scorelens.dispatch import dispatch
from scorelens.errors import CorruptRunError
from scorelens.explanation.models import AspectCriticExplanation
from scorelens.models.metadata import AspectCriticMetadata
from scorelens.models.run import MetricRun, MetricRunBuilder, ModelResult
from scorelens.storage.json_store import RunStore


def _make_run(metric_name: str = "aspect-critic", score: float = 1.0) -> MetricRun:
    """Build a sealed run with one judge step and a metadata record."""
    builder = MetricRunBuilder(metric_name, config={"definition": "Is it polite?"})
    builder.record_step(
        "Evaluate",
        [ModelResult.ok("m1", '{"verdict": 1}'), ModelResult.failed("m2", "timeout")],
    )
    return builder.seal(score, metadata=AspectCriticMetadata(definition="Is it polite?", model_verdicts={"m1": [True]}))


class TestRunStoreEnsureDirs:
    """Tests for directory creation."""

    def test_creates_runs_and_explanations_directories(self, tmp_path: Path) -> None:
        """ensure_dirs creates .scorelens/runs/ and .scorelens/explanations/."""
        store = RunStore(tmp_path)
        store.ensure_dirs()
        assert (tmp_path / ".scorelens" / "runs").is_dir()
        assert (tmp_path / ".scorelens" / "explanations").is_dir()

    def test_custom_storage_dir(self, tmp_path: Path) -> None:
        """A configured storage_dir replaces the default directory name."""
        store = RunStore(tmp_path, storage_dir="evidence")
        store.ensure_dirs()
        assert (tmp_path / "evidence" / "runs").is_dir()


class TestRunStoreSave:
    """Tests for saving runs."""

    def test_save_creates_json_file_and_returns_run_id(self, tmp_path: Path) -> None:
        """save_run writes {run_id}.json and returns the run's id."""
        store = RunStore(tmp_path)
        run = _make_run()
        run_id = store.save_run(run)
        assert run_id == run.run_id
        assert (tmp_path / ".scorelens" / "runs" / f"{run_id}.json").exists()

    def test_save_updates_index(self, tmp_path: Path) -> None:
        """Saving records the run id under its metric name in index.json."""
        store = RunStore(tmp_path)
        run_id = store.save_run(_make_run("faithfulness"))
        index = json.loads((tmp_path / ".scorelens" / "index.json").read_text())
        assert index == {"faithfulness": [run_id]}

    def test_saving_twice_does_not_duplicate_index_entry(self, tmp_path: Path) -> None:
        store = RunStore(tmp_path)
        run = _make_run()
        store.save_run(run)
        store.save_run(run)
        assert store.list_runs("aspect-critic") == [run.run_id]

    def test_no_tmp_files_left_behind(self, tmp_path: Path) -> None:
        store = RunStore(tmp_path)
        store.save_run(_make_run())
        assert list((tmp_path / ".scorelens").rglob("*.tmp")) == []


class TestRunStoreLoad:
    """Tests for loading runs."""

    def test_round_trip_restores_metadata_variant(self, tmp_path: Path) -> None:
        """A loaded run equals the saved one, including its typed metadata."""
        store = RunStore(tmp_path)
        run = _make_run()
        store.save_run(run)
        loaded = store.load_run(run.run_id)
        assert loaded == run
        assert isinstance(loaded.metadata, AspectCriticMetadata)
        assert loaded.excluded_models == ["m2"]

    def test_missing_run_raises_file_not_found(self, tmp_path: Path) -> None:
        store = RunStore(tmp_path)
        with pytest.raises(FileNotFoundError):
            store.load_run("does-not-exist")

    def test_corrupt_run_raises(self, tmp_path: Path) -> None:
        """A run file that does not validate raises CorruptRunError."""
        store = RunStore(tmp_path)
        store.ensure_dirs()
        (tmp_path / ".scorelens" / "runs" / "broken.json").write_text('{"metric_name": 3}')
        with pytest.raises(CorruptRunError, match="broken"):
            store.load_run("broken")


class TestRunStoreList:
    """Tests for listing runs."""

    def test_empty_store(self, tmp_path: Path) -> None:
        store = RunStore(tmp_path)
        assert store.list_runs() == []
        assert store.list_runs("faithfulness") == []

    def test_filter_by_metric(self, tmp_path: Path) -> None:
        store = RunStore(tmp_path)
        a = store.save_run(_make_run("faithfulness"))
        b = store.save_run(_make_run("aspect-critic"))
        c = store.save_run(_make_run("faithfulness"))
        assert store.list_runs("faithfulness") == [a, c]
        assert store.list_runs("aspect-critic") == [b]

    def test_unfiltered_ordered_by_file_time(self, tmp_path: Path) -> None:
        """Without a filter, runs come back oldest first."""
        store = RunStore(tmp_path)
        first = store.save_run(_make_run())
        second = store.save_run(_make_run())
        runs_dir = tmp_path / ".scorelens" / "runs"
        os.utime(runs_dir / f"{first}.json", (2_000_000_000, 2_000_000_000))
        os.utime(runs_dir / f"{second}.json", (1_000_000_000, 1_000_000_000))
        assert store.list_runs() == [second, first]


class TestRunStoreDelete:
    """Tests for deleting runs."""

    def test_delete_removes_run_explanation_and_index_entry(self, tmp_path: Path) -> None:
        store = RunStore(tmp_path)
        run = _make_run()
        store.save_run(run)
        store.save_explanation(run.run_id, dispatch(run))
        assert store.delete_run(run.run_id) is True
        assert store.list_runs() == []
        assert store.load_explanation(run.run_id) is None
        assert json.loads((tmp_path / ".scorelens" / "index.json").read_text()) == {}

    def test_delete_missing_run(self, tmp_path: Path) -> None:
        store = RunStore(tmp_path)
        assert store.delete_run("nope") is False


class TestRunStoreExplanations:
    """Tests for explanation persistence."""

    def test_round_trip_restores_concrete_variant(self, tmp_path: Path) -> None:
        """A stored explanation loads back as its family-specific type."""
        store = RunStore(tmp_path)
        run = _make_run()
        explanation = dispatch(run)
        store.save_explanation(run.run_id, explanation)
        loaded = store.load_explanation(run.run_id)
        assert isinstance(loaded, AspectCriticExplanation)
        assert loaded == explanation

    def test_missing_explanation(self, tmp_path: Path) -> None:
        store = RunStore(tmp_path)
        assert store.load_explanation("unknown") is None
