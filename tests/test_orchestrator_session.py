from __future__ import annotations

import allure
import pytest

from codex_agent.errors import InvalidArgument, SessionAlreadyExists, SessionNotFound
from codex_agent.orchestrator.session import SessionAdapter

pytestmark = [
    allure.epic("Worker Orchestration"),
    allure.feature("Tmux Sessions"),
]


@pytest.fixture()
def sandbox_root(repository):
    return repository.sandbox_root


@pytest.fixture()
def sessions(fake_tools, sandbox_root) -> SessionAdapter:
    return SessionAdapter("demo", fake_tools, sandbox_root=sandbox_root)


def test_session_names_are_namespaced_and_tmux_safe(fake_tools, sandbox_root) -> None:
    sessions = SessionAdapter("my.repo", fake_tools, sandbox_root=sandbox_root)

    assert sessions.session_name("task-1") == "codex-my_repo-task-1"
    assert sessions.session_name("v1.2:fix") == "codex-my_repo-v1_2_fix"


def test_send_text_is_literal_and_followed_by_enter(sessions, fake_tools, sandbox_root) -> None:
    sessions.create("t1", sandbox_root / "t1")
    text = "echo 'hi' && rm -rf build; C-c"

    sessions.send_text("t1", text)

    assert fake_tools.calls[-2:] == [
        ("tmux", "send-keys", "-t", "=codex-demo-t1:", "-l", "--", text),
        ("tmux", "send-keys", "-t", "=codex-demo-t1:", "Enter"),
    ]
    assert fake_tools.sent("codex-demo-t1") == [("text", text), ("key", "Enter")]


@pytest.mark.parametrize(
    ("text", "delivered"),
    [
        ("a\nb", "a b"),
        ("please refactor\ntouch /tmp/pwned", "please refactor touch /tmp/pwned"),
        ("first\r\nsecond\rthird", "first second third"),
        ("tab\there", "tab here"),
        ("\x03stop\x04", "stop"),
        ("\x1b[A\x1b[Bup", "[A[Bup"),
        ("bell\x07 and del\x7f", "bell and del"),
    ],
)
def test_send_text_cannot_break_the_line_or_send_key_chords(
    sessions,
    fake_tools,
    sandbox_root,
    text,
    delivered,
) -> None:
    sessions.create("t1", sandbox_root / "t1")

    sessions.send_text("t1", text)

    assert fake_tools.sent("codex-demo-t1") == [("text", delivered), ("key", "Enter")]


def test_create_refuses_duplicate_session(sessions, sandbox_root) -> None:
    sessions.create("t1", sandbox_root / "t1")

    with pytest.raises(SessionAlreadyExists):
        sessions.create("t1", sandbox_root / "t1")


def test_operations_on_missing_session_raise_session_not_found(sessions) -> None:
    with pytest.raises(SessionNotFound) as excinfo:
        sessions.send_text("missing-worker", "hello")
    assert excinfo.value.session_name == "codex-demo-missing-worker"

    with pytest.raises(SessionNotFound):
        sessions.capture("missing-worker")
    with pytest.raises(SessionNotFound):
        sessions.interrupt("missing-worker")


@pytest.mark.parametrize("lines", [0, -3, True, "5"])
def test_capture_rejects_invalid_line_counts(sessions, sandbox_root, lines) -> None:
    sessions.create("t1", sandbox_root / "t1")

    with pytest.raises(InvalidArgument):
        sessions.capture("t1", lines)


def test_capture_trims_to_last_lines(sessions, fake_tools, sandbox_root) -> None:
    sessions.create("t1", sandbox_root / "t1")
    fake_tools.panes["codex-demo-t1"] = "a\nb\nc\n\n\n"

    assert sessions.capture("t1", 2) == "b\nc\n"
    assert sessions.capture("t1") == "a\nb\nc\n\n\n"
    assert ("tmux", "capture-pane", "-p", "-t", "=codex-demo-t1:", "-S", "-2") in fake_tools.calls


def test_kill_is_idempotent(sessions, sandbox_root) -> None:
    sessions.create("t1", sandbox_root / "t1")

    assert sessions.kill("t1") is True
    assert sessions.kill("t1") is False
    assert sessions.exists("t1") is False


def test_list_managed_without_tmux_server_is_empty(sessions) -> None:
    assert sessions.list_managed() == []


def test_kill_all_leaves_foreign_sessions_alone(
    sessions,
    fake_tools,
    sandbox_root,
    tmp_path,
) -> None:
    sessions.create("t1", sandbox_root / "t1")
    sessions.create("t2", sandbox_root / "t2")
    fake_tools.add_session("codex-other-t1", tmp_path / "other" / ".codex-agent" / "worktrees")
    fake_tools.add_session("scratch", tmp_path)

    result = sessions.kill_all()

    assert sorted(result.killed) == ["codex-demo-t1", "codex-demo-t2"]
    assert result.failures == []
    assert set(fake_tools.sessions) == {"codex-other-t1", "scratch"}


def test_kill_all_spares_a_repository_sharing_the_name_prefix(fake_tools, tmp_path) -> None:
    demo_root = tmp_path / "demo" / ".codex-agent" / "worktrees"
    api_root = tmp_path / "demo-api" / ".codex-agent" / "worktrees"
    demo = SessionAdapter("demo", fake_tools, sandbox_root=demo_root)
    api = SessionAdapter("demo-api", fake_tools, sandbox_root=api_root)
    demo.create("t1", demo_root / "t1")
    api.create("t1", api_root / "t1")

    assert demo.list_managed() == ["codex-demo-t1"]
    assert demo.kill_all().killed == ["codex-demo-t1"]
    assert set(fake_tools.sessions) == {"codex-demo-api-t1"}


def test_sessions_outside_the_sandbox_root_are_not_managed(sessions, fake_tools, repo_root) -> None:
    # a hand-made session with a managed-looking name, started in the repo itself
    fake_tools.add_session("codex-demo-manual", repo_root)

    assert sessions.list_managed() == []
