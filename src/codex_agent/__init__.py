"""Orchestrate parallel coding-agent workers in git worktrees and tmux sessions."""

__version__ = "0.3.0"
