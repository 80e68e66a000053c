"""Blocking runner for the git and tmux command-line tools."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from codex_agent.errors import ExternalToolFailure, ToolNotFound

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ToolResult:
    """Captured outcome of one external command."""

    argv: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner(Protocol):
    """Protocol implemented by the subprocess runner and test fakes."""

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        check: bool = True,
    ) -> ToolResult:
        """Run ``argv`` without a shell and return captured output."""


class SubprocessRunner:
    """Execute commands as argv lists; never through a shell."""

    def __init__(self, *, timeout_seconds: float = 60.0) -> None:
        self.timeout_seconds = timeout_seconds

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        check: bool = True,
    ) -> ToolResult:
        args = [str(part) for part in argv]
        logger.debug("exec: %s (cwd=%s)", " ".join(args), cwd or ".")
        try:
            completed = subprocess.run(  # noqa: S603
                args,
                cwd=str(cwd) if cwd is not None else None,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout_seconds,
                check=False,
            )
        except FileNotFoundError as error:
            raise ToolNotFound(args) from error
        except subprocess.TimeoutExpired as error:
            raise ExternalToolFailure(
                args,
                returncode=None,
                reason=f"Timed out after {self.timeout_seconds:g}s",
            ) from error

        result = ToolResult(
            argv=tuple(args),
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
        if check and not result.ok:
            raise ExternalToolFailure(
                args,
                returncode=result.returncode,
                stderr=result.stderr,
                stdout=result.stdout,
            )
        return result
