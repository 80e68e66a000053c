"""Shared test fixtures."""

from __future__ import annotations

import fnmatch
import os
import shutil
from collections.abc import Callable, Sequence
from pathlib import Path

import pytest

from codex_agent.errors import ExternalToolFailure, ToolNotFound
from codex_agent.orchestrator.tools import ToolResult
from codex_agent.repo import Repository

_Outcome = tuple[int, str, str]


class FakeTools:
    """In-memory stand-in for the git and tmux CLIs.

    Worktree directories are created on disk so that path checks behave
    as they do against a real repository.
    """

    def __init__(self, repo_root: Path) -> None:
        self.repo_root = repo_root
        self.head = "main"
        self.branches: set[str] = {"main"}
        self.worktrees: dict[Path, str] = {}
        self.sessions: dict[str, list[tuple[str, str]]] = {}
        self.session_cwds: dict[str, str] = {}
        self.panes: dict[str, str] = {}
        self.repo_status = ""
        self.sandbox_status = ""
        self.diff_output = ""
        self.diffstat_output = ""
        self.calls: list[tuple[str, ...]] = []
        self._failing: list[tuple[str, ...]] = []

    def fail_on(self, *fragments: str) -> None:
        """Make every call containing all ``fragments`` exit non-zero."""

        self._failing.append(fragments)

    def add_session(self, name: str, cwd: str | Path) -> None:
        self.sessions[name] = []
        self.session_cwds[name] = str(cwd)

    def sent(self, session_name: str) -> list[tuple[str, str]]:
        return self.sessions[session_name]

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        check: bool = True,
    ) -> ToolResult:
        args = tuple(str(part) for part in argv)
        self.calls.append(args)
        if any(all(fragment in args for fragment in failing) for failing in self._failing):
            outcome: _Outcome = (1, "", f"simulated failure: {' '.join(args)}")
        elif args[0] == "git":
            outcome = self._git(args[1:], cwd)
        elif args[0] == "tmux":
            outcome = self._tmux(args[1:])
        else:
            raise ToolNotFound(args)

        returncode, stdout, stderr = outcome
        result = ToolResult(argv=args, returncode=returncode, stdout=stdout, stderr=stderr)
        if check and not result.ok:
            raise ExternalToolFailure(args, returncode=returncode, stderr=stderr, stdout=stdout)
        return result

    def _git(self, args: tuple[str, ...], cwd: Path | None) -> _Outcome:  # noqa: PLR0911, C901
        if args == ("rev-parse", "--show-toplevel"):
            if cwd is not None and _is_within(Path(cwd), self.repo_root):
                return 0, f"{self.repo_root}\n", ""
            return 128, "", "fatal: not a git repository (or any of the parent directories): .git"
        if args == ("rev-parse", "--abbrev-ref", "HEAD"):
            return 0, f"{self.head}\n", ""
        if args[:3] == ("rev-parse", "--verify", "--quiet"):
            if args[3].removeprefix("refs/heads/") in self.branches:
                return 0, "abc123\n", ""
            return 1, "", ""
        if args[:2] == ("branch", "-D"):
            return self._delete_branch(args[2])
        if args[:2] == ("branch", "--list"):
            names = sorted(name for name in self.branches if fnmatch.fnmatch(name, args[3]))
            return 0, "".join(f"{name}\n" for name in names), ""
        if args[:3] == ("worktree", "add", "-b"):
            return self._add_worktree(args[3], Path(args[4]))
        if args == ("worktree", "list", "--porcelain"):
            return 0, self._worktree_listing(), ""
        if args[:2] == ("worktree", "remove"):
            return self._remove_worktree(Path(args[-1]))
        if args == ("worktree", "prune"):
            self.worktrees = {
                path: branch for path, branch in self.worktrees.items() if path.exists()
            }
            return 0, "", ""
        if args == ("diff", "HEAD"):
            return 0, self.diff_output, ""
        if args == ("diff", "--stat", "HEAD"):
            return 0, self.diffstat_output, ""
        if args == ("status", "--porcelain", "-z", "--untracked-files=all"):
            return 0, self.sandbox_status, ""
        if args == ("status", "--porcelain"):
            return 0, self.repo_status, ""
        return 1, "", f"unsupported git call: {' '.join(args)}"

    def _tmux(self, args: tuple[str, ...]) -> _Outcome:  # noqa: PLR0911
        command = args[0]
        if command == "list-sessions":
            if not self.sessions:
                return 1, "", "no server running on /tmp/tmux-0/default"
            rows = [f"{name}\t{self.session_cwds.get(name, '')}" for name in self.sessions]
            if "#{session_path}" not in args[-1]:
                rows = list(self.sessions)
            return 0, "".join(f"{row}\n" for row in rows), ""
        if command == "new-session":
            name = args[args.index("-s") + 1]
            if name in self.sessions:
                return 1, "", f"duplicate session: {name}"
            self.sessions[name] = []
            self.session_cwds[name] = args[args.index("-c") + 1]
            return 0, "", ""

        name = _session_from_target(args[args.index("-t") + 1])
        if name not in self.sessions:
            return 1, "", f"can't find session: {name}"
        if command == "has-session":
            return 0, "", ""
        if command == "send-keys":
            if "-l" in args:
                self.sessions[name].append(("text", args[-1]))
            else:
                self.sessions[name].append(("key", args[-1]))
            return 0, "", ""
        if command == "capture-pane":
            return 0, self.panes.get(name, ""), ""
        if command == "kill-session":
            del self.sessions[name]
            self.session_cwds.pop(name, None)
            return 0, "", ""
        return 1, "", f"unknown command: {command}"

    def _delete_branch(self, branch: str) -> _Outcome:
        if branch not in self.branches:
            return 1, "", f"error: branch '{branch}' not found."
        if branch in self.worktrees.values():
            return 1, "", f"error: Cannot delete branch '{branch}' checked out in a worktree"
        self.branches.discard(branch)
        return 0, f"Deleted branch {branch}.\n", ""

    def _add_worktree(self, branch: str, path: Path) -> _Outcome:
        if branch in self.branches:
            return 128, "", f"fatal: a branch named '{branch}' already exists"
        if path.exists():
            return 128, "", f"fatal: '{path}' already exists"
        path.mkdir(parents=True)
        self.worktrees[path.resolve()] = branch
        self.branches.add(branch)
        return 0, "", f"Preparing worktree (new branch '{branch}')\n"

    def _remove_worktree(self, path: Path) -> _Outcome:
        resolved = path.resolve()
        if resolved not in self.worktrees:
            return 128, "", f"fatal: '{path}' is not a working tree"
        if resolved.exists():
            shutil.rmtree(resolved)
        del self.worktrees[resolved]
        return 0, "", ""

    def _worktree_listing(self) -> str:
        blocks = [f"worktree {self.repo_root}\nHEAD abc123\nbranch refs/heads/{self.head}\n"]
        blocks.extend(
            f"worktree {path}\nHEAD abc123\nbranch refs/heads/{branch}\n"
            for path, branch in self.worktrees.items()
        )
        return "\n".join(blocks)


def _session_from_target(target: str) -> str:
    return target.removeprefix("=").removesuffix(":")


def _is_within(path: Path, root: Path) -> bool:
    resolved = path.resolve()
    return resolved == root or root in resolved.parents


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("CODEX_AGENT_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def repo_root(tmp_path: Path) -> Path:
    root = (tmp_path / "demo").resolve()
    root.mkdir()
    return root


@pytest.fixture()
def repository(repo_root: Path) -> Repository:
    return Repository(root=repo_root, name=repo_root.name)


@pytest.fixture()
def fake_tools(repo_root: Path) -> FakeTools:
    return FakeTools(repo_root)


@pytest.fixture()
def write_task(repo_root: Path) -> Callable[[str, str], str]:
    """Write ``tasks/<name>.md`` and return its repository-relative path."""

    def _write(name: str, body: str = "# Task\n\nDo the thing.\n") -> str:
        relative = f"tasks/{name}.md"
        path = repo_root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(body, "utf-8")
        return relative

    return _write
