"""Git worktree sandboxes: one isolated working copy and branch per task."""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from codex_agent.errors import (
    ExternalToolFailure,
    PathNotContained,
    SandboxAlreadyExists,
    SandboxNotFound,
)
from codex_agent.orchestrator.models import RemovalResult, SandboxInfo
from codex_agent.orchestrator.tools import CommandRunner
from codex_agent.repo import Repository

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BulkRemovalResult:
    removed: list[str] = field(default_factory=list)
    branches_deleted: list[str] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)


class SandboxProvisioner:
    """Creates, inspects and reclaims task worktrees under the private root."""

    def __init__(
        self,
        repository: Repository,
        runner: CommandRunner,
        *,
        git_binary: str = "git",
        branch_prefix: str = "codex/",
    ) -> None:
        self.repository = repository
        self.runner = runner
        self.git_binary = git_binary
        self.branch_prefix = branch_prefix

    @property
    def root(self) -> Path:
        return self.repository.sandbox_root

    def branch_name(self, task_id: str) -> str:
        return f"{self.branch_prefix}{task_id}"

    def sandbox_path(self, task_id: str) -> Path:
        """Return the worktree path for ``task_id``; refuses paths outside the root."""

        path = self.root / task_id
        self._ensure_contained(path)
        return path

    def exists(self, task_id: str) -> bool:
        return self.sandbox_path(task_id).exists()

    def create(self, task_id: str) -> SandboxInfo:
        path = self.sandbox_path(task_id)
        if path.exists():
            raise SandboxAlreadyExists(task_id, path)

        self.root.mkdir(parents=True, exist_ok=True)
        branch = self.branch_name(task_id)
        base_ref = self._current_ref()
        if self._branch_exists(branch):
            # Leftover from an uncleaned run: the new run owns the name.
            logger.info("Deleting stale branch %s before creating worktree", branch)
            self._git("branch", "-D", branch)
        self._git("worktree", "add", "-b", branch, str(path), base_ref)
        logger.info("Created worktree %s on branch %s (base %s)", path, branch, base_ref)
        return SandboxInfo(path=str(path), branch=branch)

    def remove(
        self,
        task_id: str,
        *,
        delete_branch: bool = False,
        force: bool = False,
    ) -> RemovalResult:
        path = self.sandbox_path(task_id)
        if not path.exists():
            return RemovalResult(removed=False)

        self._remove_path(path, force=force)
        result = RemovalResult(removed=True)
        if delete_branch:
            branch = self.branch_name(task_id)
            try:
                self._git("branch", "-D", branch)
                result.branch_deleted = True
            except ExternalToolFailure as error:
                logger.warning("Failed to delete branch %s: %s", branch, error)
                result.branch_error = str(error)
        return result

    def diff(self, task_id: str) -> str:
        path = self._existing_path(task_id)
        return self._git("diff", "HEAD", cwd=path)

    def diff_stat(self, task_id: str) -> str:
        """Tracked diffstat plus an ``Untracked files`` listing."""

        path = self._existing_path(task_id)
        stat = self._git("diff", "--stat", "HEAD", cwd=path)
        porcelain = self._git("status", "--porcelain", "-z", "--untracked-files=all", cwd=path)
        untracked = _untracked_paths(porcelain)
        if not untracked:
            return stat

        sections = [stat.rstrip("\n")] if stat.strip() else []
        sections.append("Untracked files:\n" + "\n".join(f"  {name}" for name in untracked))
        return "\n\n".join(sections) + "\n"

    def list_orphans(self) -> list[Path]:
        """Discover managed worktrees, registered with git or left on disk."""

        found: list[Path] = []
        seen: set[Path] = set()
        for path in self._registered_worktrees():
            if self._is_contained(path) and path not in seen:
                seen.add(path)
                found.append(path)
        if self.root.is_dir():
            for child in sorted(self.root.iterdir()):
                resolved = child.resolve()
                if child.is_dir() and resolved not in seen:
                    seen.add(resolved)
                    found.append(resolved)
        return found

    def list_managed_branches(self) -> list[str]:
        output = self._git(
            "branch",
            "--list",
            "--format=%(refname:short)",
            f"{self.branch_prefix}*",
        )
        return [line.strip() for line in output.splitlines() if line.strip()]

    def remove_all(self, *, delete_branches: bool, force: bool) -> BulkRemovalResult:
        """Reclaim every discovered sandbox; individual failures are collected."""

        result = BulkRemovalResult()
        for path in self.list_orphans():
            try:
                self._remove_path(path, force=force)
                result.removed.append(str(path))
            except (ExternalToolFailure, OSError) as error:
                logger.error("Failed to remove worktree %s: %s", path, error)
                result.failures.append(f"worktree {path}: {error}")

        try:
            self._git("worktree", "prune")
        except ExternalToolFailure as error:
            logger.warning("git worktree prune failed: %s", error)

        if delete_branches:
            try:
                branches = self.list_managed_branches()
            except ExternalToolFailure as error:
                logger.error("Failed to list managed branches: %s", error)
                result.failures.append(f"branch listing: {error}")
                branches = []
            for branch in branches:
                try:
                    self._git("branch", "-D", branch)
                    result.branches_deleted.append(branch)
                except ExternalToolFailure as error:
                    logger.error("Failed to delete branch %s: %s", branch, error)
                    result.failures.append(f"branch {branch}: {error}")
        return result

    def _remove_path(self, path: Path, *, force: bool) -> None:
        self._ensure_contained(path)
        if path.resolve() in set(self._registered_worktrees()):
            args = ["worktree", "remove"]
            if force:
                args.append("--force")
            self._git(*args, str(path))
        elif path.exists():
            # Not registered with git (pruned or half-created); plain directory.
            shutil.rmtree(path)
        logger.info("Removed worktree %s", path)

    def _existing_path(self, task_id: str) -> Path:
        path = self.sandbox_path(task_id)
        if not path.is_dir():
            raise SandboxNotFound(task_id, path)
        return path

    def _registered_worktrees(self) -> list[Path]:
        output = self._git("worktree", "list", "--porcelain")
        return [
            Path(line.removeprefix("worktree ").strip()).resolve()
            for line in output.splitlines()
            if line.startswith("worktree ")
        ]

    def _current_ref(self) -> str:
        result = self.runner.run(
            [self.git_binary, "rev-parse", "--abbrev-ref", "HEAD"],
            cwd=self.repository.root,
            check=False,
        )
        ref = result.stdout.strip()
        return ref if result.ok and ref else "HEAD"

    def _branch_exists(self, branch: str) -> bool:
        result = self.runner.run(
            [self.git_binary, "rev-parse", "--verify", "--quiet", f"refs/heads/{branch}"],
            cwd=self.repository.root,
            check=False,
        )
        return result.ok

    def _is_contained(self, path: Path) -> bool:
        root = os.path.realpath(self.root)
        target = os.path.realpath(path)
        return target != root and target.startswith(root + os.sep)

    def _ensure_contained(self, path: Path) -> None:
        if not self._is_contained(path):
            raise PathNotContained(path, self.root)

    def _git(self, *args: str, cwd: Path | None = None) -> str:
        result = self.runner.run(
            [self.git_binary, *args],
            cwd=cwd or self.repository.root,
        )
        return result.stdout


def _untracked_paths(porcelain: str) -> list[str]:
    """Untracked paths from ``git status --porcelain -z`` output.

    Entries are NUL-separated and never quoted; a rename or copy entry is
    followed by an extra entry holding its source path.
    """

    paths: list[str] = []
    entries = iter(porcelain.split("\0"))
    for entry in entries:
        if entry.startswith("?? "):
            paths.append(entry[3:])
        elif "R" in entry[:2] or "C" in entry[:2]:
            next(entries, None)
    return paths
