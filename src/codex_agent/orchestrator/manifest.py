"""Task manifest loading and validation."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from codex_agent.errors import (
    DuplicateTaskId,
    ManifestInvalid,
    ManifestNotFound,
    TaskFileNotFound,
    TaskInvalid,
)
from codex_agent.orchestrator.models import Task
from codex_agent.orchestrator.session import tmux_safe_name
from codex_agent.repo import Repository


def load_manifest(repository: Repository, manifest_path: str | Path) -> list[Task]:
    """Read a YAML manifest from disk and return its validated tasks."""

    full_path = repository.resolve(manifest_path)
    if not full_path.is_file():
        raise ManifestNotFound(full_path)
    try:
        raw = yaml.safe_load(full_path.read_text("utf-8"))
    except yaml.YAMLError as error:
        raise ManifestInvalid(full_path, f"YAML parse error: {error}") from error
    return resolve_tasks(raw, repository, manifest_path=full_path)


def resolve_tasks(
    raw: Any,
    repository: Repository,
    *,
    manifest_path: Path | None = None,
) -> list[Task]:
    """Validate a parsed manifest document.

    Fails fast, before any side effect, on the first malformed entry,
    duplicate id, session-name clash or missing task file. Tasks keep
    manifest order.
    """

    if not isinstance(raw, dict) or not isinstance(raw.get("tasks"), list):
        raise ManifestInvalid(manifest_path, 'missing or invalid "tasks" array')

    tasks: list[Task] = []
    seen: set[str] = set()
    session_names: dict[str, tuple[int, str]] = {}
    for index, entry in enumerate(raw["tasks"]):
        task = _parse_entry(index, entry, manifest_path=manifest_path)
        if task.id in seen:
            raise DuplicateTaskId(task.id, index)
        seen.add(task.id)
        _claim_session_name(session_names, index, task.id, manifest_path)

        resolved = repository.resolve(task.file)
        if not resolved.is_file():
            raise TaskFileNotFound(task.id, index, resolved, task.file)
        tasks.append(task)
    return tasks


def read_task_prompt(repository: Repository, task: Task) -> str:
    path = repository.resolve(task.file)
    if not path.is_file():
        raise TaskFileNotFound(task.id, -1, path, task.file)
    return path.read_text("utf-8")


def _parse_entry(index: int, entry: Any, *, manifest_path: Path | None) -> Task:
    if not isinstance(entry, dict):
        raise TaskInvalid(index, "task entry must be a mapping", manifest_path=manifest_path)

    task_id = _scalar_text(entry.get("id"))
    if not task_id:
        raise TaskInvalid(
            index,
            f'missing required "id" field\nTask: {_preview(entry)}',
            manifest_path=manifest_path,
        )
    if any(char.isspace() for char in task_id):
        raise TaskInvalid(
            index,
            f"task id must not contain whitespace: {task_id!r}",
            manifest_path=manifest_path,
        )

    task_file = _scalar_text(entry.get("file"))
    if not task_file:
        raise TaskInvalid(
            index,
            f'missing required "file" field\nTask ID: {task_id}',
            manifest_path=manifest_path,
        )

    description = entry.get("description")
    return Task(
        id=task_id,
        file=task_file,
        description=str(description) if description is not None else None,
    )


def _claim_session_name(
    claimed: dict[str, tuple[int, str]],
    index: int,
    task_id: str,
    manifest_path: Path | None,
) -> None:
    # tmux folds "." and ":" into "_", so distinct ids can share a session.
    name = tmux_safe_name(task_id)
    if name in claimed:
        other_index, other_id = claimed[name]
        raise TaskInvalid(
            index,
            f"task id {task_id!r} maps to the same tmux session as {other_id!r}"
            f" (task index {other_index})",
            manifest_path=manifest_path,
        )
    claimed[name] = (index, task_id)


def _scalar_text(value: Any) -> str:
    # YAML turns ids such as ``1`` into ints; bools are never valid ids.
    if isinstance(value, bool) or not isinstance(value, str | int):
        return ""
    return str(value).strip()


def _preview(entry: dict[str, Any]) -> str:
    return json.dumps(entry, ensure_ascii=False, default=str)
