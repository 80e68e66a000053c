"""Controllers for orchestrator CLI commands."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from codex_agent.config import Settings
from codex_agent.errors import InvalidArgument
from codex_agent.orchestrator.engine import WorkerOrchestrator, WorkerStatusView
from codex_agent.orchestrator.manifest import load_manifest
from codex_agent.orchestrator.models import WorkerStatus
from codex_agent.orchestrator.sanitization import sanitize_output
from codex_agent.orchestrator.scaffold import MANIFEST_NAME, write_examples
from codex_agent.orchestrator.tools import CommandRunner, SubprocessRunner
from codex_agent.repo import Repository, discover_repository, has_uncommitted_changes

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StartCommand:
    """CLI input for spawning workers from a manifest."""

    tasks_path: Path


@dataclass(slots=True)
class StatusCommand:
    worker_id: str | None
    as_json: bool = False


@dataclass(slots=True)
class LogsCommand:
    """CLI input for pane capture."""

    worker_id: str
    lines: int | None
    raw: bool = False


@dataclass(slots=True)
class DiffCommand:
    worker_id: str
    stat: bool = False


@dataclass(slots=True)
class SendCommand:
    """CLI input for follow-up instructions."""

    worker_id: str
    instruction: str


@dataclass(slots=True)
class StopCommand:
    worker_id: str | None
    force: bool = False


@dataclass(slots=True)
class CleanupCommand:
    """CLI input for bulk teardown."""

    force: bool
    keep_branches: bool = False


@dataclass(slots=True)
class CommandOutput:
    """Lines to print, and whether the command fully succeeded."""

    lines: list[str]
    success: bool = True


@dataclass(slots=True)
class _Context:
    settings: Settings
    repository: Repository
    runner: CommandRunner
    orchestrator: WorkerOrchestrator


class OrchestratorCliController:
    """Coordinates start, inspection, control and teardown CLI operations."""

    def __init__(
        self,
        *,
        runner: CommandRunner | None = None,
        cwd: Path | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._runner = runner
        self._cwd = cwd
        self._sleep = sleep

    def init(self) -> list[str]:
        settings = Settings.from_env()
        repository = self._repository(settings, self._make_runner(settings))
        result = write_examples(repository.root)

        lines = ["Initializing codex-agent..."]
        lines.extend(f"Created {path.relative_to(repository.root)}" for path in result.created)
        lines.extend(
            f"Skipped existing {path.relative_to(repository.root)}" for path in result.skipped
        )
        lines.extend(
            [
                "",
                "Initialization complete!",
                "Edit tasks.yaml and task files, then run: "
                f"codex-agent start --tasks {MANIFEST_NAME}",
            ],
        )
        return lines

    def start(self, command: StartCommand) -> list[str]:
        context = self._context()
        if has_uncommitted_changes(
            context.repository,
            context.runner,
            git_binary=context.settings.git_binary,
        ):
            logger.warning("Repository has uncommitted changes; worktrees start from HEAD")

        tasks = load_manifest(context.repository, command.tasks_path)
        run_id = context.orchestrator.start_workers(tasks)
        state = context.orchestrator.load_state()
        workers = state.workers if state is not None else []
        failed = [worker.id for worker in workers if worker.status is WorkerStatus.FAILED]

        lines = [
            f"Found {len(tasks)} tasks",
            f"Run ID: {run_id}",
            f"Workers: running={len(workers) - len(failed)} failed={len(failed)}",
        ]
        if failed:
            lines.append(f"Failed workers: {', '.join(failed)}")
        lines.extend(
            [
                "",
                "Use the following commands to monitor progress:",
                "  codex-agent status           # Show all workers",
                "  codex-agent logs <worker-id> # View worker logs",
                "  codex-agent diff <worker-id> # View worker changes",
            ],
        )
        return lines

    def status(self, command: StatusCommand) -> list[str]:
        context = self._context()
        views = context.orchestrator.get_status(command.worker_id)

        if command.as_json:
            return [
                json.dumps(
                    [_status_entry(view) for view in views],
                    indent=2,
                    ensure_ascii=False,
                ),
            ]
        if not views:
            return ["No workers found"]

        lines = ["Worker Status:", ""]
        for view in views:
            worker = view.record
            lines.extend(
                [
                    f"ID:           {worker.id}",
                    f"Task:         {worker.task_file}",
                    f"Status:       {worker.status.value}",
                    f"Branch:       {worker.branch_name}",
                    f"Tmux Session: {worker.session_name}"
                    f" ({'alive' if view.session_alive else 'gone'})",
                    f"Worktree:     {worker.sandbox_path or '-'}"
                    f"{'' if view.sandbox_present else ' (missing)'}",
                    f"Started:      {worker.started_at}",
                ],
            )
            if worker.stopped_at:
                lines.append(f"Stopped:      {worker.stopped_at}")
            lines.append("---")
        return lines

    def logs(self, command: LogsCommand) -> list[str]:
        context = self._context()
        logs = context.orchestrator.get_logs(command.worker_id, command.lines)
        return [logs if command.raw else sanitize_output(logs)]

    def diff(self, command: DiffCommand) -> list[str]:
        context = self._context()
        return [context.orchestrator.get_diff(command.worker_id, stat_only=command.stat)]

    def send(self, command: SendCommand) -> list[str]:
        context = self._context()
        result = context.orchestrator.send_instruction(command.worker_id, command.instruction)
        lines = []
        if result.restarted:
            lines.append(f"Agent was not running in worker {command.worker_id}; restarted it")
        lines.append(f"Instruction sent to worker {command.worker_id}")
        return lines

    def stop(self, command: StopCommand) -> CommandOutput:
        context = self._context()
        if command.worker_id is not None:
            context.orchestrator.stop_worker(command.worker_id)
            return CommandOutput([f"Worker {command.worker_id} stopped"])

        if not command.force:
            raise InvalidArgument("--force flag required to stop all workers")
        result = context.orchestrator.stop_all_workers()
        lines = [f"Workers stopped: {len(result.stopped)}"]
        for worker_id, error in result.failures.items():
            lines.append(f"  failed to stop {worker_id}: {error}")
        if not result.failures:
            lines.append("All workers stopped")
        return CommandOutput(lines, success=not result.failures)

    def cleanup(self, command: CleanupCommand) -> CommandOutput:
        if not command.force:
            raise InvalidArgument(
                "--force flag required for cleanup; this removes all tmux sessions and worktrees",
            )
        context = self._context()
        result = context.orchestrator.cleanup(
            delete_branches=not command.keep_branches,
            force=True,
        )

        lines = []
        if not result.had_state:
            lines.append("No active orchestrator state found; cleaning up discovered resources")
        lines.append(
            f"Sessions killed: {len(result.sessions_killed)} "
            f"worktrees removed: {len(result.sandboxes_removed)} "
            f"branches deleted: {len(result.branches_deleted)}",
        )
        lines.extend(f"  failed: {failure}" for failure in result.failures)
        lines.append(
            "Cleanup complete" if not result.failures else "Cleanup finished with failures",
        )
        return CommandOutput(lines, success=not result.failures)

    def _context(self) -> _Context:
        settings = Settings.from_env()
        runner = self._make_runner(settings)
        repository = self._repository(settings, runner)
        orchestrator = WorkerOrchestrator.from_settings(
            repository=repository,
            settings=settings,
            runner=runner,
            sleep=self._sleep,
        )
        return _Context(
            settings=settings,
            repository=repository,
            runner=runner,
            orchestrator=orchestrator,
        )

    def _make_runner(self, settings: Settings) -> CommandRunner:
        if self._runner is not None:
            return self._runner
        return SubprocessRunner(timeout_seconds=settings.tool_timeout_seconds)

    def _repository(self, settings: Settings, runner: CommandRunner) -> Repository:
        return discover_repository(
            runner,
            cwd=self._cwd,
            git_binary=settings.git_binary,
            control_dir_name=settings.control_dir_name,
        )


def _status_entry(view: WorkerStatusView) -> dict[str, object]:
    entry: dict[str, object] = view.record.to_dict()
    entry["sessionAlive"] = view.session_alive
    entry["worktreePresent"] = view.sandbox_present
    return entry
