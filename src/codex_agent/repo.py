"""Repository discovery and the private control-directory layout."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from codex_agent.errors import ExternalToolFailure, NotARepository
from codex_agent.orchestrator.tools import CommandRunner

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Repository:
    """Explicit handle to one git repository and its control directory.

    Every orchestrator component receives this value instead of reading
    global state; all persisted files live below ``control_dir``.
    """

    root: Path
    name: str
    control_dir_name: str = ".codex-agent"

    @property
    def control_dir(self) -> Path:
        return self.root / self.control_dir_name

    @property
    def sandbox_root(self) -> Path:
        return self.control_dir / "worktrees"

    @property
    def runs_dir(self) -> Path:
        return self.control_dir / "runs"

    @property
    def state_path(self) -> Path:
        return self.control_dir / "state.json"

    def resolve(self, path: str | Path) -> Path:
        """Resolve ``path`` against the repository root unless already absolute."""

        candidate = Path(path).expanduser()
        return candidate if candidate.is_absolute() else self.root / candidate


def discover_repository(
    runner: CommandRunner,
    *,
    cwd: Path | None = None,
    git_binary: str = "git",
    control_dir_name: str = ".codex-agent",
) -> Repository:
    """Locate the enclosing git repository for ``cwd``."""

    where = cwd or Path.cwd()
    try:
        result = runner.run([git_binary, "rev-parse", "--show-toplevel"], cwd=where, check=False)
    except ExternalToolFailure as error:
        raise NotARepository(where) from error
    top_level = result.stdout.strip()
    if not result.ok or not top_level:
        raise NotARepository(where)
    root = Path(top_level)
    return Repository(root=root, name=root.name, control_dir_name=control_dir_name)


def has_uncommitted_changes(
    repository: Repository,
    runner: CommandRunner,
    *,
    git_binary: str = "git",
) -> bool:
    result = runner.run([git_binary, "status", "--porcelain"], cwd=repository.root, check=False)
    if not result.ok:
        logger.debug("git status failed in %s: %s", repository.root, result.stderr.strip())
        return False
    return any(
        line.strip() and not _is_control_dir_entry(line, repository.control_dir_name)
        for line in result.stdout.splitlines()
    )


def _is_control_dir_entry(porcelain_line: str, control_dir_name: str) -> bool:
    path = porcelain_line[3:].strip().strip('"')
    return path == control_dir_name or path.startswith(f"{control_dir_name}/")
