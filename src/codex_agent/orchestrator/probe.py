"""Heuristics that guess whether the agent is still running in a session."""

from __future__ import annotations

import re
from enum import Enum
from typing import Protocol


class Liveness(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    UNKNOWN = "unknown"


class LivenessProbe(Protocol):
    """Classify a captured output tail."""

    def assess(self, tail: str) -> Liveness:
        """Return the agent liveness inferred from recent pane output."""


# No "%": progress lines end with it.
_SHELL_PROMPT = re.compile(r"[$#]\s*$")
# The bare command name is echoed by the launch line, so it is not a marker.
_DEFAULT_AGENT_MARKERS = ("Claude", "assistant>", "esc to interrupt", "Working")


class PromptPatternProbe:
    """Shell prompt on the last line means the agent exited.

    Known agent markers anywhere in the tail mean it is still there;
    anything else is ``UNKNOWN`` and left to the caller's policy.
    """

    def __init__(self, agent_markers: tuple[str, ...] = _DEFAULT_AGENT_MARKERS) -> None:
        self.agent_markers = agent_markers

    def assess(self, tail: str) -> Liveness:
        lines = [line for line in tail.splitlines() if line.strip()]
        if not lines:
            return Liveness.UNKNOWN
        if _SHELL_PROMPT.search(lines[-1]):
            return Liveness.ABSENT
        if any(marker in tail for marker in self.agent_markers):
            return Liveness.PRESENT
        return Liveness.UNKNOWN
