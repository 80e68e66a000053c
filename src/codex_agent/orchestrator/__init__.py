"""Worker orchestration for coding agents in git worktrees and tmux sessions.

Each task from a manifest gets three private resources:

- a git worktree under ``.codex-agent/worktrees/<task-id>`` on branch
  ``codex/<task-id>``;
- a detached tmux session ``codex-<repo>-<task-id>`` started in that worktree;
- an artifact directory ``.codex-agent/runs/<run-id>/workers/<task-id>``.

The agent reads its prompt from the archived ``task.md`` through stdin, so
multi-line prompts never pass through ``send-keys``. The active run is one
JSON document (``.codex-agent/state.json``); every CLI invocation reloads
it, and only ``WorkerOrchestrator`` writes it.
"""
