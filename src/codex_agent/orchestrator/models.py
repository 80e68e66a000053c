"""Domain models for tasks, workers and runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class WorkerStatus(str, Enum):
    """Worker lifecycle states; ``stopped`` and ``failed`` are terminal."""

    STARTING = "starting"
    RUNNING = "running"
    STOPPED = "stopped"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {WorkerStatus.STOPPED, WorkerStatus.FAILED}


@dataclass(frozen=True, slots=True)
class Task:
    """One validated manifest entry."""

    id: str
    file: str
    description: str | None = None


@dataclass(slots=True)
class WorkerRecord:
    """Persisted state of one worker (one task, one sandbox, one session)."""

    id: str
    task_id: str
    task_file: str
    session_name: str
    sandbox_path: str
    branch_name: str
    status: WorkerStatus
    started_at: str
    stopped_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "taskId": self.task_id,
            "taskFile": self.task_file,
            "tmuxSession": self.session_name,
            "worktreePath": self.sandbox_path,
            "branch": self.branch_name,
            "status": self.status.value,
            "startedAt": self.started_at,
        }
        if self.stopped_at is not None:
            payload["stoppedAt"] = self.stopped_at
        return payload

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> WorkerRecord:
        required = ("id", "taskId", "taskFile", "tmuxSession", "worktreePath", "status")
        missing = [key for key in required if key not in raw]
        if missing:
            raise ValueError(f"Worker record missing required fields: {', '.join(missing)}")
        task_id = str(raw["taskId"])
        stopped_at = raw.get("stoppedAt")
        return cls(
            id=str(raw["id"]),
            task_id=task_id,
            task_file=str(raw["taskFile"]),
            session_name=str(raw["tmuxSession"]),
            sandbox_path=str(raw["worktreePath"]),
            branch_name=str(raw.get("branch") or f"codex/{task_id}"),
            status=WorkerStatus(str(raw["status"])),
            started_at=str(raw.get("startedAt", "")),
            stopped_at=str(stopped_at) if stopped_at is not None else None,
        )


@dataclass(slots=True)
class RunState:
    """Single active run per repository; ``start`` overwrites it."""

    run_id: str
    repo_root: str
    repo_name: str
    started_at: str
    workers: list[WorkerRecord] = field(default_factory=list)

    def find_worker(self, worker_id: str) -> WorkerRecord | None:
        for worker in self.workers:
            if worker.id == worker_id:
                return worker
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "runId": self.run_id,
            "repoRoot": self.repo_root,
            "repoName": self.repo_name,
            "startedAt": self.started_at,
            "workers": [worker.to_dict() for worker in self.workers],
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> RunState:
        required = ("runId", "repoRoot", "repoName", "startedAt")
        missing = [key for key in required if key not in raw]
        if missing:
            raise ValueError(f"Run state missing required fields: {', '.join(missing)}")
        raw_workers = raw.get("workers", [])
        if not isinstance(raw_workers, list):
            raise TypeError("Run state workers must be an array")
        workers: list[WorkerRecord] = []
        for item in raw_workers:
            if not isinstance(item, dict):
                raise TypeError("Run state worker entry must be an object")
            workers.append(WorkerRecord.from_dict(item))
        return cls(
            run_id=str(raw["runId"]),
            repo_root=str(raw["repoRoot"]),
            repo_name=str(raw["repoName"]),
            started_at=str(raw["startedAt"]),
            workers=workers,
        )


@dataclass(slots=True)
class SandboxInfo:
    """Created worktree location and its companion branch."""

    path: str
    branch: str


@dataclass(slots=True)
class RemovalResult:
    """Outcome of removing one sandbox."""

    removed: bool
    branch_deleted: bool = False
    branch_error: str | None = None


@dataclass(slots=True)
class StopAllResult:
    stopped: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class CleanupResult:
    """Bulk teardown report; failures are collected, never raised."""

    had_state: bool
    sessions_killed: list[str] = field(default_factory=list)
    sandboxes_removed: list[str] = field(default_factory=list)
    branches_deleted: list[str] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)


def utc_now_iso() -> str:
    """Timestamp in the ISO-8601 form stored in run state."""

    return datetime.now(tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
