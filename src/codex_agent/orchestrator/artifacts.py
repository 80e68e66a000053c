"""Per-run artifact archive: prompts, commands and captured snapshots."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from codex_agent.errors import PathNotContained
from codex_agent.repo import Repository

TASK_PROMPT_FILE = "task.md"
COMMAND_FILE = "command.txt"
LOGS_FILE = "logs.txt"
DIFF_FILE = "diff.patch"
DIFFSTAT_FILE = "diffstat.txt"
SUMMARY_FILE = "summary.json"


class ArtifactStore:
    """Creates deterministic per-run / per-worker directory layout.

    Files are overwritten on every write: each one holds the latest
    snapshot, not a history.
    """

    def __init__(self, repository: Repository) -> None:
        self.root_dir = repository.runs_dir

    def run_dir(self, run_id: str) -> Path:
        path = self._contained(self.root_dir / run_id)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def worker_dir(self, run_id: str, worker_id: str) -> Path:
        path = self._contained(self.root_dir / run_id / "workers" / worker_id)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def task_prompt_path(self, run_id: str, worker_id: str) -> Path:
        return self.worker_dir(run_id, worker_id) / TASK_PROMPT_FILE

    def write_task_prompt(self, run_id: str, worker_id: str, content: str) -> Path:
        return self._write(run_id, worker_id, TASK_PROMPT_FILE, content)

    def write_command(self, run_id: str, worker_id: str, command: str) -> Path:
        return self._write(run_id, worker_id, COMMAND_FILE, command)

    def read_command(self, run_id: str, worker_id: str) -> str | None:
        path = self._contained(self.root_dir / run_id / "workers" / worker_id / COMMAND_FILE)
        if not path.is_file():
            return None
        command = path.read_text("utf-8").strip()
        return command or None

    def write_logs(self, run_id: str, worker_id: str, logs: str) -> Path:
        return self._write(run_id, worker_id, LOGS_FILE, logs)

    def write_diff(self, run_id: str, worker_id: str, diff: str) -> Path:
        return self._write(run_id, worker_id, DIFF_FILE, diff)

    def write_diffstat(self, run_id: str, worker_id: str, diffstat: str) -> Path:
        return self._write(run_id, worker_id, DIFFSTAT_FILE, diffstat)

    def write_summary(self, run_id: str, payload: dict[str, Any]) -> Path:
        path = self.run_dir(run_id) / SUMMARY_FILE
        path.write_text(json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True), "utf-8")
        return path

    def worker_artifact_paths(self, run_id: str, worker_id: str) -> dict[str, str]:
        base = self.root_dir / run_id / "workers" / worker_id
        return {
            "taskFile": str(base / TASK_PROMPT_FILE),
            "logs": str(base / LOGS_FILE),
            "diff": str(base / DIFF_FILE),
            "diffstat": str(base / DIFFSTAT_FILE),
        }

    def _write(self, run_id: str, worker_id: str, name: str, content: str) -> Path:
        path = self.worker_dir(run_id, worker_id) / name
        path.write_text(content, "utf-8")
        return path

    def _contained(self, path: Path) -> Path:
        root = os.path.realpath(self.root_dir)
        target = os.path.realpath(path)
        if not target.startswith(root + os.sep):
            raise PathNotContained(path, self.root_dir)
        return path
