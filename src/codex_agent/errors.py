"""Typed failures raised by the worker orchestration engine.

The hierarchy mirrors how callers react to a failure:

- ``ValidationError``: bad manifest or argument, raised before any side effect.
- ``ResourceConflict``: a sandbox, session or worker is already in the way.
- ``ResourceNotFound``: the referenced run, worker, sandbox or session is absent.
- ``ExternalToolFailure``: git or tmux exited non-zero; the diagnostic is kept.
- ``SafetyViolation``: a destructive action would escape the managed root.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path


class OrchestratorError(RuntimeError):
    """Base class for all orchestration failures."""


class ValidationError(OrchestratorError):
    """Input rejected before any side effect happened."""


class NotARepository(ValidationError):
    """Command was invoked outside a git repository."""

    def __init__(self, cwd: Path) -> None:
        super().__init__(f"Not in a git repository: {cwd}")
        self.cwd = cwd


class ManifestNotFound(ValidationError):
    def __init__(self, path: Path) -> None:
        super().__init__(f"Task manifest not found: {path}")
        self.path = path


class ManifestInvalid(ValidationError):
    def __init__(self, path: Path | None, reason: str) -> None:
        location = f"\nManifest: {path}" if path is not None else ""
        super().__init__(f"Invalid manifest: {reason}{location}")
        self.path = path
        self.reason = reason


class TaskInvalid(ValidationError):
    def __init__(self, index: int, reason: str, *, manifest_path: Path | None = None) -> None:
        location = f"\nManifest: {manifest_path}" if manifest_path is not None else ""
        super().__init__(f"Invalid task at index {index}: {reason}{location}")
        self.index = index
        self.reason = reason


class DuplicateTaskId(ValidationError):
    def __init__(self, task_id: str, index: int) -> None:
        super().__init__(f"Duplicate task ID: {task_id}\nTask index: {index}")
        self.task_id = task_id
        self.index = index


class TaskFileNotFound(ValidationError):
    def __init__(self, task_id: str, index: int, resolved_path: Path, original: str) -> None:
        super().__init__(
            "Task file not found\n"
            f"Task ID: {task_id}\n"
            f"Task index: {index}\n"
            f"Resolved path: {resolved_path}\n"
            f"Original path: {original}",
        )
        self.task_id = task_id
        self.index = index
        self.resolved_path = resolved_path


class InvalidArgument(ValidationError, ValueError):
    """Caller passed an argument outside the accepted domain."""


class ResourceConflict(OrchestratorError):
    """Target resource already exists or is in an incompatible state."""


class SandboxAlreadyExists(ResourceConflict):
    def __init__(self, task_id: str, path: Path) -> None:
        super().__init__(f"Worktree already exists for task {task_id}: {path}")
        self.task_id = task_id
        self.path = path


class SessionAlreadyExists(ResourceConflict):
    def __init__(self, session_name: str) -> None:
        super().__init__(f"Tmux session already exists: {session_name}")
        self.session_name = session_name


class WorkerNotRunning(ResourceConflict):
    def __init__(self, worker_id: str, status: str) -> None:
        super().__init__(f"Worker {worker_id} is not running (status={status})")
        self.worker_id = worker_id
        self.status = status


class ResourceNotFound(OrchestratorError):
    """Referenced run, worker, sandbox or session does not exist."""


class NoActiveRun(ResourceNotFound):
    def __init__(self) -> None:
        super().__init__("No active orchestrator state found")


class WorkerNotFound(ResourceNotFound):
    def __init__(self, worker_id: str) -> None:
        super().__init__(f"Worker not found: {worker_id}")
        self.worker_id = worker_id


class SandboxNotFound(ResourceNotFound):
    def __init__(self, task_id: str, path: Path) -> None:
        super().__init__(f"Worktree does not exist for task {task_id}: {path}")
        self.task_id = task_id
        self.path = path


class SessionNotFound(ResourceNotFound):
    def __init__(self, session_name: str) -> None:
        super().__init__(f"Tmux session does not exist: {session_name}")
        self.session_name = session_name


class ExternalToolFailure(OrchestratorError):
    """External git/tmux command failed; original diagnostics are preserved."""

    def __init__(
        self,
        argv: Sequence[str],
        *,
        returncode: int | None,
        stderr: str = "",
        stdout: str = "",
        reason: str | None = None,
    ) -> None:
        command = " ".join(argv)
        detail = reason or (stderr.strip() or stdout.strip() or "no output")
        super().__init__(f"Command failed (exit={returncode}): {command}\n{detail}")
        self.argv = tuple(argv)
        self.returncode = returncode
        self.stderr = stderr
        self.stdout = stdout


class ToolNotFound(ExternalToolFailure):
    def __init__(self, argv: Sequence[str]) -> None:
        super().__init__(
            argv,
            returncode=None,
            reason=f"Executable not found in PATH: {argv[0] if argv else '<empty>'}",
        )


class SafetyViolation(OrchestratorError):
    """Destructive action refused; never bypassed by force flags."""


class PathNotContained(SafetyViolation):
    def __init__(self, path: Path, root: Path) -> None:
        super().__init__(f"Path not contained in worktree directory: {path} (root: {root})")
        self.path = path
        self.root = root
