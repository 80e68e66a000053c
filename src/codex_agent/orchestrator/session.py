"""Tmux sessions: one addressable interactive terminal per task."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path

from codex_agent.errors import (
    ExternalToolFailure,
    InvalidArgument,
    SessionAlreadyExists,
    SessionNotFound,
)
from codex_agent.orchestrator.tools import CommandRunner, ToolResult

logger = logging.getLogger(__name__)

INTERRUPT_KEY = "C-c"
COMMIT_KEY = "Enter"

_LIST_FORMAT = "#{session_name}\t#{session_path}"
# Line breaks act as Enter in a literal send; other C0 bytes are key chords.
_LINE_BREAKS = re.compile(r"\r\n|[\r\n\t\v\f]")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")

_MISSING_SESSION_MARKERS = (
    "can't find session",
    "session not found",
    "no server running",
    "no sessions",
    "error connecting to",
)


@dataclass(slots=True)
class BulkKillResult:
    killed: list[str] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)


class SessionAdapter:
    """Drive task sessions through the tmux CLI.

    Every call passes arguments as argv, and text is delivered with
    ``send-keys -l`` so tmux never interprets it as key names. Sessions
    count as managed only when their name carries this repository's prefix
    and their start directory lies under ``sandbox_root``.
    """

    def __init__(
        self,
        repo_name: str,
        runner: CommandRunner,
        *,
        sandbox_root: Path,
        tmux_binary: str = "tmux",
        session_prefix: str = "codex",
    ) -> None:
        self.repo_name = repo_name
        self.runner = runner
        self.sandbox_root = sandbox_root
        self.tmux_binary = tmux_binary
        self.session_prefix = session_prefix

    @property
    def managed_prefix(self) -> str:
        return tmux_safe_name(f"{self.session_prefix}-{self.repo_name}-")

    def session_name(self, task_id: str) -> str:
        return self.managed_prefix + tmux_safe_name(task_id)

    def exists(self, task_id: str) -> bool:
        return self._has_session(self.session_name(task_id))

    def create(self, task_id: str, cwd: Path | str) -> str:
        name = self.session_name(task_id)
        if self._has_session(name):
            raise SessionAlreadyExists(name)
        self._tmux("new-session", "-d", "-s", name, "-c", str(cwd))
        logger.info("Created tmux session %s in %s", name, cwd)
        return name

    def send_text(self, task_id: str, text: str) -> None:
        """Type ``text`` literally as one line, then press Enter.

        Line breaks become spaces and other control characters are dropped,
        so the text can never end the line early or send a key chord.
        """

        name = self._require(task_id)
        line = neutralize_controls(text)
        if line != text:
            logger.debug("Neutralized control characters in text for %s", name)
        self._tmux("send-keys", "-t", _pane_target(name), "-l", "--", line)
        self._tmux("send-keys", "-t", _pane_target(name), COMMIT_KEY)

    def send_key(self, task_id: str, key: str) -> None:
        name = self._require(task_id)
        self._tmux("send-keys", "-t", _pane_target(name), key)

    def interrupt(self, task_id: str) -> None:
        self.send_key(task_id, INTERRUPT_KEY)

    def capture(self, task_id: str, last_n_lines: int | None = None) -> str:
        if last_n_lines is not None and not _is_positive_int(last_n_lines):
            raise InvalidArgument(f"Lines must be a positive integer, got {last_n_lines!r}")

        name = self._require(task_id)
        args = ["capture-pane", "-p", "-t", _pane_target(name)]
        if last_n_lines is not None:
            args.extend(["-S", f"-{last_n_lines}"])
        output = self._tmux(*args).stdout
        if last_n_lines is None:
            return output
        return _tail(output, last_n_lines)

    def kill(self, task_id: str) -> bool:
        """Kill the session; returns ``False`` when it was already gone."""

        return self._kill_by_name(self.session_name(task_id))

    def list_managed(self) -> list[str]:
        result = self._tmux("list-sessions", "-F", _LIST_FORMAT, check=False)
        if not result.ok:
            if _is_missing_session_error(result):
                return []
            raise ExternalToolFailure(
                result.argv,
                returncode=result.returncode,
                stderr=result.stderr,
                stdout=result.stdout,
            )
        prefix = self.managed_prefix
        managed = []
        for line in result.stdout.splitlines():
            name, _, path = line.partition("\t")
            name = name.strip()
            if name.startswith(prefix) and self._is_sandbox_path(path.strip()):
                managed.append(name)
        return managed

    def kill_all(self) -> BulkKillResult:
        result = BulkKillResult()
        for name in self.list_managed():
            try:
                if self._kill_by_name(name):
                    result.killed.append(name)
            except ExternalToolFailure as error:
                logger.error("Failed to kill session %s: %s", name, error)
                result.failures.append(f"session {name}: {error}")
        return result

    def _kill_by_name(self, name: str) -> bool:
        if not self._has_session(name):
            return False
        result = self._tmux("kill-session", "-t", f"={name}", check=False)
        if result.ok:
            logger.info("Killed tmux session %s", name)
            return True
        if _is_missing_session_error(result):
            return False
        raise ExternalToolFailure(
            result.argv,
            returncode=result.returncode,
            stderr=result.stderr,
            stdout=result.stdout,
        )

    def _require(self, task_id: str) -> str:
        name = self.session_name(task_id)
        if not self._has_session(name):
            raise SessionNotFound(name)
        return name

    def _is_sandbox_path(self, path: str) -> bool:
        if not path:
            return False
        root = os.path.realpath(self.sandbox_root)
        return os.path.realpath(path).startswith(root + os.sep)

    def _has_session(self, name: str) -> bool:
        return self._tmux("has-session", "-t", f"={name}", check=False).ok

    def _tmux(self, *args: str, check: bool = True) -> ToolResult:
        return self.runner.run([self.tmux_binary, *args], check=check)


def tmux_safe_name(value: str) -> str:
    """Session-name form of ``value``; tmux rewrites "." and ":" itself."""

    return value.replace(".", "_").replace(":", "_")


def neutralize_controls(text: str) -> str:
    return _CONTROL_CHARS.sub("", _LINE_BREAKS.sub(" ", text))


def _is_positive_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _pane_target(name: str) -> str:
    return f"={name}:"


def _tail(output: str, count: int) -> str:
    lines = output.rstrip("\n").split("\n")
    while lines and not lines[-1].strip():
        lines.pop()
    return "\n".join(lines[-count:]) + "\n" if lines else ""


def _is_missing_session_error(result: ToolResult) -> bool:
    text = f"{result.stderr}\n{result.stdout}".lower()
    return any(marker in text for marker in _MISSING_SESSION_MARKERS)
