from __future__ import annotations

import allure
import pytest

from codex_agent.orchestrator.probe import Liveness, PromptPatternProbe
from codex_agent.orchestrator.sanitization import sanitize_output

pytestmark = [
    allure.epic("Worker Orchestration"),
    allure.feature("Agent Liveness"),
]


@pytest.mark.parametrize(
    ("tail", "expected"),
    [
        ("Task finished.\nuser@host:~/repo$ ", Liveness.ABSENT),
        ("codex\nroot@box:/work# \n\n", Liveness.ABSENT),
        ("codex\n> Working (3s, esc to interrupt)", Liveness.PRESENT),
        ("assistant> thinking about it", Liveness.PRESENT),
        ("compiling module 3 of 9", Liveness.UNKNOWN),
        ("\n\n   \n", Liveness.UNKNOWN),
    ],
)
def test_prompt_pattern_probe(tail, expected) -> None:
    assert PromptPatternProbe().assess(tail) is expected


@pytest.mark.parametrize(
    "tail",
    [
        # the launch line is still on screen after the agent exits to fish
        "codex exec --sandbox workspace-write < /x/task.md\n~/demo/.codex-agent/worktrees/t1 >",
        "codex --full-auto\nSegmentation fault (core dumped)",
        "Downloading deps 100%",
        "zsh ~/repo %",
    ],
)
def test_ambiguous_tails_are_unknown(tail) -> None:
    assert PromptPatternProbe().assess(tail) is Liveness.UNKNOWN


def test_custom_agent_markers() -> None:
    probe = PromptPatternProbe(agent_markers=("aider>",))

    assert probe.assess("aider> ready") is Liveness.PRESENT
    assert probe.assess("codex is idle") is Liveness.UNKNOWN


def test_sanitize_output_strips_terminal_control_sequences() -> None:
    raw = "\x1b]0;codex\x07\x1b[1;32mok\x1b[0m line\r\nnext\x08\x1b(B line\ufffd\n"

    assert sanitize_output(raw) == "ok line\nnext line \n"
