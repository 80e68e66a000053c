"""Runtime configuration for the worker orchestrator."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

DEFAULT_COMMAND_TEMPLATE = "codex exec --sandbox workspace-write < {prompt_file}"


@dataclass(slots=True)
class Settings:
    """Orchestrator settings with sane defaults for local use."""

    control_dir_name: str = ".codex-agent"
    command_template: str = DEFAULT_COMMAND_TEMPLATE
    branch_prefix: str = "codex/"
    session_prefix: str = "codex"
    probe_tail_lines: int = 20
    restart_wait_seconds: float = 2.0
    tool_timeout_seconds: float = 60.0
    git_binary: str = "git"
    tmux_binary: str = "tmux"

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from ``CODEX_AGENT_*`` environment variables."""

        settings = cls(
            control_dir_name=os.getenv("CODEX_AGENT_CONTROL_DIR", ".codex-agent").strip(),
            command_template=os.getenv("CODEX_AGENT_COMMAND_TEMPLATE", DEFAULT_COMMAND_TEMPLATE),
            branch_prefix=os.getenv("CODEX_AGENT_BRANCH_PREFIX", "codex/").strip(),
            session_prefix=os.getenv("CODEX_AGENT_SESSION_PREFIX", "codex").strip(),
            probe_tail_lines=_env_int("CODEX_AGENT_PROBE_TAIL_LINES", 20),
            restart_wait_seconds=_env_float("CODEX_AGENT_RESTART_WAIT_SECONDS", 2.0),
            tool_timeout_seconds=_env_float("CODEX_AGENT_TOOL_TIMEOUT_SECONDS", 60.0),
            git_binary=os.getenv("CODEX_AGENT_GIT_BINARY", "git").strip(),
            tmux_binary=os.getenv("CODEX_AGENT_TMUX_BINARY", "tmux").strip(),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        """Raise configuration error if any value is unusable."""

        if not self.control_dir_name or "/" in self.control_dir_name:
            raise ValueError(
                "CODEX_AGENT_CONTROL_DIR must be a plain directory name, "
                f"got {self.control_dir_name!r}.",
            )
        if "{prompt_file}" not in self.command_template:
            raise ValueError("CODEX_AGENT_COMMAND_TEMPLATE must include {prompt_file}.")
        if not self.branch_prefix or " " in self.branch_prefix:
            raise ValueError(f"Invalid CODEX_AGENT_BRANCH_PREFIX: {self.branch_prefix!r}")
        if not self.session_prefix:
            raise ValueError("CODEX_AGENT_SESSION_PREFIX must not be empty.")
        if self.probe_tail_lines <= 0:
            raise ValueError("CODEX_AGENT_PROBE_TAIL_LINES must be > 0.")
        if self.restart_wait_seconds < 0:
            raise ValueError("CODEX_AGENT_RESTART_WAIT_SECONDS must be >= 0.")
        if self.tool_timeout_seconds <= 0:
            raise ValueError("CODEX_AGENT_TOOL_TIMEOUT_SECONDS must be > 0.")


def configure_logging(level: str) -> None:
    """Send diagnostics to stderr so stdout stays machine-readable."""

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="[%(levelname)s] %(name)s: %(message)s",
    )


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid float value for {name}: {value!r}") from error
