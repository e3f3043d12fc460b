"""JSON file storage for sealed metric runs and their explanations.

Stores MetricRun objects under .scorelens/runs/ and Explanation objects
under .scorelens/explanations/, keyed by run ID, with an index file
mapping metric names to run IDs. Uses atomic writes to prevent
corruption.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from scorelens.errors import CorruptRunError
from scorelens.explanation.models import BaseExplanation, explanation_adapter
from scorelens.models.run import MetricRun

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_DIR = ".scorelens"


def _atomic_write(path: Path, content: str) -> None:
    """Write to a .tmp sibling, then rename over the target."""
    tmp_file = path.with_name(path.name + ".tmp")
    tmp_file.write_text(content, encoding="utf-8")
    tmp_file.replace(path)


class RunStore:
    """Persist and query metric runs and explanations as JSON files.

    File layout:
        .scorelens/
            runs/
                {run-id}.json    # Sealed MetricRun
            explanations/
                {run-id}.json    # Explanation produced for that run
            index.json           # Metric name -> [run IDs] mapping
    """

    def __init__(self, project_root: Path, storage_dir: str | None = None) -> None:
        effective_dir = storage_dir or DEFAULT_STORAGE_DIR
        self.root_dir = project_root / effective_dir
        self.runs_dir = self.root_dir / "runs"
        self.explanations_dir = self.root_dir / "explanations"
        self.index_path = self.root_dir / "index.json"

    def ensure_dirs(self) -> None:
        self.runs_dir.mkdir(parents=True, exist_ok=True)
        self.explanations_dir.mkdir(parents=True, exist_ok=True)

    # -- Runs --

    def save_run(self, run: MetricRun) -> str:
        """Save a sealed MetricRun and record it in the index.

        Returns:
            The run ID.
        """
        self.ensure_dirs()
        _atomic_write(self.runs_dir / f"{run.run_id}.json", run.model_dump_json(indent=2))
        self._update_index(run.metric_name, run.run_id)
        logger.debug("Saved run %s (%s)", run.run_id, run.metric_name)
        return run.run_id

    def load_run(self, run_id: str) -> MetricRun:
        """Load a MetricRun from its JSON file.

        Raises:
            FileNotFoundError: If no run with that ID exists.
            CorruptRunError: If the file does not hold a valid run.
        """
        run_file = self.runs_dir / f"{run_id}.json"
        content = run_file.read_text(encoding="utf-8")
        try:
            return MetricRun.model_validate_json(content)
        except ValidationError as exc:
            raise CorruptRunError(f"Stored run {run_id} is invalid: {exc}") from exc

    def list_runs(self, metric_name: str | None = None) -> list[str]:
        """List run IDs, optionally filtered by metric name.

        Args:
            metric_name: If provided, only return runs for this metric,
                in the order they were saved.

        Returns:
            Run IDs; without a filter, ordered oldest first by file time.
        """
        if metric_name is not None:
            return list(self._load_index().get(metric_name, []))
        if not self.runs_dir.exists():
            return []
        files = sorted(self.runs_dir.glob("*.json"), key=lambda f: (f.stat().st_mtime, f.stem))
        return [f.stem for f in files]

    def delete_run(self, run_id: str) -> bool:
        """Delete a run, its explanation, and its index entry.

        Returns:
            True if the run existed and was deleted, False otherwise.
        """
        run_file = self.runs_dir / f"{run_id}.json"
        existed = run_file.exists()
        if existed:
            run_file.unlink()
        explanation_file = self.explanations_dir / f"{run_id}.json"
        if explanation_file.exists():
            explanation_file.unlink()
        self._remove_from_index(run_id)
        return existed

    # -- Explanations --

    def save_explanation(self, run_id: str, explanation: BaseExplanation) -> None:
        """Save the explanation produced for a run."""
        self.ensure_dirs()
        _atomic_write(self.explanations_dir / f"{run_id}.json", explanation.model_dump_json(indent=2))

    def load_explanation(self, run_id: str) -> BaseExplanation | None:
        """Load a stored explanation, restoring its concrete variant.

        Returns:
            The explanation, or None if none was saved for the run.
        """
        explanation_file = self.explanations_dir / f"{run_id}.json"
        if not explanation_file.exists():
            return None
        content = explanation_file.read_text(encoding="utf-8")
        return explanation_adapter.validate_json(content)

    # -- Index --

    def _load_index(self) -> dict[str, list[str]]:
        if self.index_path.exists():
            return json.loads(self.index_path.read_text(encoding="utf-8"))
        return {}

    def _save_index(self, index: dict[str, list[str]]) -> None:
        self.root_dir.mkdir(parents=True, exist_ok=True)
        _atomic_write(self.index_path, json.dumps(index, indent=2, ensure_ascii=False))

    def _update_index(self, metric_name: str, run_id: str) -> None:
        index = self._load_index()
        run_ids = index.setdefault(metric_name, [])
        if run_id not in run_ids:
            run_ids.append(run_id)
        self._save_index(index)

    def _remove_from_index(self, run_id: str) -> None:
        index = self._load_index()
        changed = False
        for metric_name in list(index):
            if run_id in index[metric_name]:
                index[metric_name].remove(run_id)
                changed = True
                if not index[metric_name]:
                    del index[metric_name]
        if changed:
            self._save_index(index)
