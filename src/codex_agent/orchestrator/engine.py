"""Worker orchestrator: turns validated tasks into running, observable workers."""

from __future__ import annotations

import logging
import shlex
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from codex_agent.config import DEFAULT_COMMAND_TEMPLATE, Settings
from codex_agent.errors import (
    ExternalToolFailure,
    InvalidArgument,
    NoActiveRun,
    OrchestratorError,
    WorkerNotFound,
    WorkerNotRunning,
)
from codex_agent.orchestrator.artifacts import ArtifactStore
from codex_agent.orchestrator.manifest import read_task_prompt
from codex_agent.orchestrator.models import (
    CleanupResult,
    RunState,
    StopAllResult,
    Task,
    WorkerRecord,
    WorkerStatus,
    utc_now_iso,
)
from codex_agent.orchestrator.probe import Liveness, LivenessProbe, PromptPatternProbe
from codex_agent.orchestrator.sandbox import SandboxProvisioner
from codex_agent.orchestrator.session import SessionAdapter
from codex_agent.orchestrator.state import RunStateStore
from codex_agent.orchestrator.tools import CommandRunner
from codex_agent.repo import Repository

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class WorkerStatusView:
    """Persisted worker record joined with live resource checks."""

    record: WorkerRecord
    session_alive: bool
    sandbox_present: bool


@dataclass(slots=True)
class SendResult:
    liveness: Liveness
    restarted: bool


class WorkerOrchestrator:
    """Coordinates sandboxes, sessions and the persisted run state.

    Only this class writes the run state. Each public method loads the
    state fresh from disk, so no in-memory state survives between CLI
    invocations.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        repository: Repository,
        sandboxes: SandboxProvisioner,
        sessions: SessionAdapter,
        store: RunStateStore,
        artifacts: ArtifactStore,
        probe: LivenessProbe | None = None,
        command_template: str = DEFAULT_COMMAND_TEMPLATE,
        probe_tail_lines: int = 20,
        restart_wait_seconds: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.repository = repository
        self.sandboxes = sandboxes
        self.sessions = sessions
        self.store = store
        self.artifacts = artifacts
        self.probe = probe or PromptPatternProbe()
        self.command_template = command_template
        self.probe_tail_lines = probe_tail_lines
        self.restart_wait_seconds = restart_wait_seconds
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        *,
        repository: Repository,
        settings: Settings,
        runner: CommandRunner,
        sleep: Callable[[float], None] = time.sleep,
    ) -> WorkerOrchestrator:
        return cls(
            repository=repository,
            sandboxes=SandboxProvisioner(
                repository,
                runner,
                git_binary=settings.git_binary,
                branch_prefix=settings.branch_prefix,
            ),
            sessions=SessionAdapter(
                repository.name,
                runner,
                sandbox_root=repository.sandbox_root,
                tmux_binary=settings.tmux_binary,
                session_prefix=settings.session_prefix,
            ),
            store=RunStateStore(repository.state_path),
            artifacts=ArtifactStore(repository),
            command_template=settings.command_template,
            probe_tail_lines=settings.probe_tail_lines,
            restart_wait_seconds=settings.restart_wait_seconds,
            sleep=sleep,
        )

    def start_workers(self, tasks: list[Task]) -> str:
        """Start one worker per task and persist a single run snapshot.

        A failure affects only its own task: it is recorded as ``failed``
        and the remaining tasks are still attempted.
        """

        run_id = self._next_run_id()
        state = RunState(
            run_id=run_id,
            repo_root=str(self.repository.root),
            repo_name=self.repository.name,
            started_at=utc_now_iso(),
        )
        for task in tasks:
            state.workers.append(self._start_worker(run_id, task))

        self.store.save(state)
        failed = sum(1 for worker in state.workers if worker.status is WorkerStatus.FAILED)
        logger.info(
            "Run %s started: workers=%d failed=%d",
            run_id,
            len(state.workers),
            failed,
        )
        return run_id

    def render_command(self, prompt_path: str) -> str:
        """Agent invocation that reads the prompt from a file via stdin."""

        try:
            return self.command_template.format(prompt_file=shlex.quote(prompt_path))
        except (KeyError, IndexError) as error:
            raise InvalidArgument(
                f"Unsupported command template placeholder: {error}",
            ) from error

    def send_instruction(self, worker_id: str, text: str) -> SendResult:
        """Deliver ``text`` to the agent, relaunching it first if it looks gone."""

        state, worker = self._load_worker(worker_id)
        if worker.status.is_terminal:
            raise WorkerNotRunning(worker.id, worker.status.value)

        tail = self.sessions.capture(worker.task_id, self.probe_tail_lines)
        liveness = self.probe.assess(tail)
        restarted = False
        # UNKNOWN counts as absent.
        if liveness is not Liveness.PRESENT:
            logger.info("Agent not detected for worker %s (%s), restarting", worker.id, liveness)
            restarted = self._restart_agent(state.run_id, worker)

        self.sessions.send_text(worker.task_id, text)
        return SendResult(liveness=liveness, restarted=restarted)

    def stop_worker(self, worker_id: str) -> WorkerRecord:
        state, worker = self._load_worker(worker_id)
        if worker.status.is_terminal:
            raise WorkerNotRunning(worker.id, worker.status.value)

        self.sessions.interrupt(worker.task_id)
        worker.status = WorkerStatus.STOPPED
        worker.stopped_at = utc_now_iso()
        self.store.save(state)
        logger.info("Worker %s stopped", worker.id)
        return worker

    def stop_all_workers(self) -> StopAllResult:
        state = self._require_state()
        result = StopAllResult()
        for worker in state.workers:
            if worker.status is not WorkerStatus.RUNNING:
                continue
            try:
                self.stop_worker(worker.id)
                result.stopped.append(worker.id)
            except OrchestratorError as error:
                logger.error("Failed to stop worker %s: %s", worker.id, error)
                result.failures[worker.id] = str(error)
        return result

    def cleanup(self, *, delete_branches: bool = True, force: bool = False) -> CleanupResult:
        """Tear down every managed session and sandbox found on the host.

        Teardown is driven by discovery, not by the persisted records, so
        it also reclaims resources of tasks that never got a record. The
        run state is cleared last so that a failed teardown can be retried.
        """

        state = self._load_state_for_cleanup()
        result = CleanupResult(had_state=state is not None)

        try:
            killed = self.sessions.kill_all()
            result.sessions_killed.extend(killed.killed)
            result.failures.extend(killed.failures)
        except ExternalToolFailure as error:
            logger.error("Failed to enumerate tmux sessions: %s", error)
            result.failures.append(f"sessions: {error}")

        try:
            removal = self.sandboxes.remove_all(delete_branches=delete_branches, force=force)
            result.sandboxes_removed.extend(removal.removed)
            result.branches_deleted.extend(removal.branches_deleted)
            result.failures.extend(removal.failures)
        except ExternalToolFailure as error:
            logger.error("Failed to enumerate worktrees: %s", error)
            result.failures.append(f"worktrees: {error}")

        if state is not None:
            try:
                self.artifacts.write_summary(
                    state.run_id,
                    self._summary_payload(state, completed_at=utc_now_iso()),
                )
            except OSError as error:
                logger.warning("Failed to archive run summary for %s: %s", state.run_id, error)

        self.store.clear()
        logger.info(
            "Cleanup complete: sessions=%d worktrees=%d branches=%d failures=%d",
            len(result.sessions_killed),
            len(result.sandboxes_removed),
            len(result.branches_deleted),
            len(result.failures),
        )
        return result

    def get_status(self, worker_id: str | None = None) -> list[WorkerStatusView]:
        state = self.store.load()
        if state is None:
            return []

        if worker_id is not None:
            worker = state.find_worker(worker_id)
            if worker is None:
                raise WorkerNotFound(worker_id)
            workers = [worker]
        else:
            workers = list(state.workers)

        views = [
            WorkerStatusView(
                record=worker,
                session_alive=self.sessions.exists(worker.task_id),
                sandbox_present=bool(worker.sandbox_path) and self.sandboxes.exists(worker.task_id),
            )
            for worker in workers
        ]
        self.artifacts.write_summary(state.run_id, self._summary_payload(state, views=views))
        return views

    def get_logs(self, worker_id: str, lines: int | None = None) -> str:
        state, worker = self._load_worker(worker_id)
        logs = self.sessions.capture(worker.task_id, lines)
        self.artifacts.write_logs(state.run_id, worker.id, logs)
        return logs

    def get_diff(self, worker_id: str, *, stat_only: bool = False) -> str:
        state, worker = self._load_worker(worker_id)
        if stat_only:
            diffstat = self.sandboxes.diff_stat(worker.task_id)
            self.artifacts.write_diffstat(state.run_id, worker.id, diffstat)
            return diffstat
        diff = self.sandboxes.diff(worker.task_id)
        self.artifacts.write_diff(state.run_id, worker.id, diff)
        return diff

    def load_state(self) -> RunState | None:
        return self.store.load()

    def _start_worker(self, run_id: str, task: Task) -> WorkerRecord:
        logger.info("Starting worker for task: %s", task.id)
        session_name = self.sessions.session_name(task.id)
        branch_name = self.sandboxes.branch_name(task.id)
        sandbox_path = ""
        try:
            sandbox = self.sandboxes.create(task.id)
            sandbox_path = sandbox.path
            prompt = read_task_prompt(self.repository, task)
            prompt_path = self.artifacts.write_task_prompt(run_id, task.id, prompt)
            self.sessions.create(task.id, sandbox.path)
            command = self.render_command(str(prompt_path))
            self.sessions.send_text(task.id, command)
            self.artifacts.write_command(run_id, task.id, command)
        except (OrchestratorError, OSError, UnicodeDecodeError) as error:
            logger.error("Failed to start worker %s: %s", task.id, error)
            failed_at = utc_now_iso()
            return WorkerRecord(
                id=task.id,
                task_id=task.id,
                task_file=task.file,
                session_name=session_name,
                sandbox_path=sandbox_path,
                branch_name=branch_name,
                status=WorkerStatus.FAILED,
                started_at=failed_at,
                stopped_at=failed_at,
            )

        return WorkerRecord(
            id=task.id,
            task_id=task.id,
            task_file=task.file,
            session_name=session_name,
            sandbox_path=sandbox_path,
            branch_name=branch_name,
            status=WorkerStatus.RUNNING,
            started_at=utc_now_iso(),
        )

    def _restart_agent(self, run_id: str, worker: WorkerRecord) -> bool:
        command = self.artifacts.read_command(run_id, worker.id)
        if command is None:
            logger.warning(
                "No recorded command for worker %s in run %s, sending instruction anyway",
                worker.id,
                run_id,
            )
            return False
        self.sessions.send_text(worker.task_id, command)
        logger.info("Waiting %.1fs for agent to start in %s", self.restart_wait_seconds, worker.id)
        self._sleep(self.restart_wait_seconds)
        return True

    def _next_run_id(self) -> str:
        stamp = int(self._clock() * 1000)
        previous = self._previous_run_stamp()
        if previous is not None and stamp <= previous:
            stamp = previous + 1
        while (self.repository.runs_dir / f"run-{stamp}").exists():
            stamp += 1
        return f"run-{stamp}"

    def _previous_run_stamp(self) -> int | None:
        try:
            state = self.store.load()
        except (ValueError, TypeError, OSError):
            return None
        if state is None:
            return None
        try:
            return int(state.run_id.removeprefix("run-"))
        except ValueError:
            return None

    def _require_state(self) -> RunState:
        state = self.store.load()
        if state is None:
            raise NoActiveRun
        return state

    def _load_worker(self, worker_id: str) -> tuple[RunState, WorkerRecord]:
        state = self._require_state()
        worker = state.find_worker(worker_id)
        if worker is None:
            raise WorkerNotFound(worker_id)
        return state, worker

    def _load_state_for_cleanup(self) -> RunState | None:
        try:
            return self.store.load()
        except (ValueError, TypeError, OSError) as error:
            logger.warning("Ignoring unreadable run state %s: %s", self.store.state_path, error)
            return None

    def _summary_payload(
        self,
        state: RunState,
        *,
        views: list[WorkerStatusView] | None = None,
        completed_at: str | None = None,
    ) -> dict[str, Any]:
        live = {view.record.id: view for view in views or []}
        workers: dict[str, Any] = {}
        for worker in state.workers:
            entry: dict[str, Any] = {
                "status": worker.status.value,
                "artifacts": self.artifacts.worker_artifact_paths(state.run_id, worker.id),
            }
            view = live.get(worker.id)
            if view is not None:
                entry["sessionAlive"] = view.session_alive
                entry["worktreePresent"] = view.sandbox_present
            workers[worker.task_id] = entry
        payload: dict[str, Any] = {
            "runId": state.run_id,
            "startedAt": state.started_at,
            "workers": workers,
        }
        if completed_at is not None:
            payload["completedAt"] = completed_at
        return payload
