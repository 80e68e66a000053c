"""CLI entrypoint for codex-agent."""

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import rich_click as click

from codex_agent import __version__
from codex_agent.config import configure_logging
from codex_agent.errors import OrchestratorError
from codex_agent.orchestrator.controllers import (
    CleanupCommand,
    DiffCommand,
    LogsCommand,
    OrchestratorCliController,
    SendCommand,
    StartCommand,
    StatusCommand,
    StopCommand,
)

click.rich_click.USE_MARKDOWN = True
ORCHESTRATOR_CONTROLLER = OrchestratorCliController()


@click.group()
@click.version_option(version=__version__, prog_name="codex-agent")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    envvar="CODEX_AGENT_LOG_LEVEL",
    default="WARNING",
    show_default=True,
    help="Diagnostics level (written to stderr).",
)
def codex_agent(log_level: str) -> None:
    """Orchestrate coding-agent workers in git worktrees and tmux sessions.

    Run state lives in `.codex-agent/state.json` and is not locked:
    drive one repository from **one operator at a time**.
    """

    configure_logging(log_level)


@codex_agent.command("init")
def init() -> None:
    """Generate an example task manifest and task files."""

    with _orchestration_errors():
        _emit_lines(ORCHESTRATOR_CONTROLLER.init())


@codex_agent.command("start")
@click.option(
    "-t",
    "--tasks",
    "tasks_path",
    type=click.Path(path_type=Path),
    required=True,
    help="Task manifest (YAML); relative paths resolve against the repository root.",
)
def start(tasks_path: Path) -> None:
    """Spawn one worker per task, each in its own worktree and tmux session."""

    with _orchestration_errors():
        _emit_lines(ORCHESTRATOR_CONTROLLER.start(StartCommand(tasks_path=tasks_path)))


@codex_agent.command("status")
@click.argument("worker_id", required=False)
@click.option("--json", "as_json", is_flag=True, default=False, help="Print JSON.")
def status(worker_id: str | None, as_json: bool) -> None:
    """Show worker status (all workers or one)."""

    with _orchestration_errors():
        _emit_lines(
            ORCHESTRATOR_CONTROLLER.status(StatusCommand(worker_id=worker_id, as_json=as_json)),
        )


@codex_agent.command("logs")
@click.argument("worker_id")
@click.option(
    "--lines",
    type=click.IntRange(min=1),
    default=None,
    help="Only capture the last N lines.",
)
@click.option(
    "--raw",
    is_flag=True,
    default=False,
    help="Print captured output without stripping control sequences.",
)
def logs(worker_id: str, lines: int | None, raw: bool) -> None:
    """Capture recent tmux output from a worker."""

    with _orchestration_errors():
        _emit_lines(
            ORCHESTRATOR_CONTROLLER.logs(LogsCommand(worker_id=worker_id, lines=lines, raw=raw)),
        )


@codex_agent.command("diff")
@click.argument("worker_id")
@click.option("--stat", is_flag=True, default=False, help="Show only diff statistics.")
def diff(worker_id: str, stat: bool) -> None:
    """Show the changes made in a worker's worktree."""

    with _orchestration_errors():
        _emit_lines(ORCHESTRATOR_CONTROLLER.diff(DiffCommand(worker_id=worker_id, stat=stat)))


@codex_agent.command("send")
@click.argument("worker_id")
@click.argument("instruction")
def send(worker_id: str, instruction: str) -> None:
    """Send a follow-up instruction, restarting the agent if it has exited."""

    with _orchestration_errors():
        _emit_lines(
            ORCHESTRATOR_CONTROLLER.send(
                SendCommand(worker_id=worker_id, instruction=instruction),
            ),
        )


@codex_agent.command("stop")
@click.argument("worker_id", required=False)
@click.option("-f", "--force", is_flag=True, default=False, help="Required to stop all workers.")
def stop(worker_id: str | None, force: bool) -> None:
    """Interrupt one worker, or all running workers with --force."""

    with _orchestration_errors():
        result = ORCHESTRATOR_CONTROLLER.stop(StopCommand(worker_id=worker_id, force=force))
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Some workers failed to stop.")


@codex_agent.command("cleanup")
@click.option("-f", "--force", is_flag=True, default=False, help="Confirm destructive cleanup.")
@click.option(
    "--keep-branches",
    is_flag=True,
    default=False,
    help="Keep the codex/<task-id> branches after removing worktrees.",
)
def cleanup(force: bool, keep_branches: bool) -> None:
    """Kill all managed tmux sessions, remove worktrees and clear run state."""

    with _orchestration_errors():
        result = ORCHESTRATOR_CONTROLLER.cleanup(
            CleanupCommand(force=force, keep_branches=keep_branches),
        )
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Cleanup finished with failures.")


@contextmanager
def _orchestration_errors() -> Iterator[None]:
    try:
        yield
    except (OrchestratorError, ValueError) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    codex_agent()
