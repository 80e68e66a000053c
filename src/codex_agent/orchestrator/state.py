"""Durable single-document store for the active run."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path

from codex_agent.orchestrator.models import RunState


class RunStateStore:
    """JSON-file store for the current ``RunState``.

    Writes replace the document atomically, but there is no locking: two
    CLI invocations against one repository race and the last write wins.
    """

    def __init__(self, state_path: Path) -> None:
        self.state_path = state_path

    def exists(self) -> bool:
        return self.state_path.is_file()

    def load(self) -> RunState | None:
        """Return the persisted run or ``None`` when no run is active."""

        if not self.state_path.is_file():
            return None
        payload = json.loads(self.state_path.read_text("utf-8"))
        if not isinstance(payload, dict):
            raise TypeError(f"Expected JSON object in {self.state_path}")
        return RunState.from_dict(payload)

    def save(self, state: RunState) -> None:
        self.state_path.parent.mkdir(parents=True, exist_ok=True)
        body = json.dumps(state.to_dict(), ensure_ascii=False, indent=2)
        fd, tmp_name = tempfile.mkstemp(
            prefix=".state-",
            suffix=".json",
            dir=self.state_path.parent,
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(body)
            os.replace(tmp_name, self.state_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def clear(self) -> None:
        self.state_path.unlink(missing_ok=True)
