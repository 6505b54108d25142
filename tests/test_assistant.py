import json

import pytest

from cc_fork.sessions import AssistantProcessError, AssistantRunner, ClaudeAssistant, StaleIdentityError


class RecordingRunner:
    def __init__(self, returncode=0, stdout="", stderr=""):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.calls = []

    def run_captured(self, args):
        self.calls.append(("captured", list(args)))
        return self.returncode, self.stdout, self.stderr

    def run_inherited(self, args):
        self.calls.append(("inherited", list(args)))
        return self.returncode

    def run_with_stderr_tap(self, args):
        self.calls.append(("tap", list(args)))
        return self.returncode, self.stderr


def test_create_session_builds_headless_args_and_parses_json():
    runner = RecordingRunner(stdout=json.dumps({"session_id": "abc", "result": "done", "total_cost_usd": 0.01}))
    response = ClaudeAssistant(runner).create_session("abc", "hello", {"model": "haiku"})

    assert runner.calls == [
        ("captured", ["--session-id", "abc", "-p", "hello", "--output-format", "json", "--model", "haiku"])
    ]
    assert response.session_id == "abc"
    assert response.result == "done"
    assert response.cost_usd == pytest.approx(0.01)


def test_create_session_failure_carries_stderr():
    runner = RecordingRunner(returncode=1, stderr="bad model\n")
    with pytest.raises(AssistantProcessError) as excinfo:
        ClaudeAssistant(runner).create_session("abc", "hello", {})
    assert excinfo.value.returncode == 1
    assert excinfo.value.stderr == "bad model"


def test_create_session_rejects_non_json_output():
    runner = RecordingRunner(stdout="not json")
    with pytest.raises(AssistantProcessError, match="Failed to parse"):
        ClaudeAssistant(runner).create_session("abc", "hello", {})


def test_interactive_create_sends_prompt_positionally():
    runner = RecordingRunner()
    ClaudeAssistant(runner).create_session_interactive("abc", "hello", {"verbose": True})
    assert runner.calls == [("inherited", ["--session-id", "abc", "hello", "--verbose"])]


def test_fork_and_resume_args():
    runner = RecordingRunner()
    assistant = ClaudeAssistant(runner)
    assistant.fork_session("abc", "demo", {"model": "haiku", "verbose": False})
    assistant.resume_session("abc", "demo", {})
    assert runner.calls == [
        ("tap", ["--resume", "abc", "--fork-session", "--model", "haiku"]),
        ("tap", ["--resume", "abc"]),
    ]


def test_stale_identity_is_classified():
    runner = RecordingRunner(returncode=1, stderr="No conversation found with session ID: abc")
    with pytest.raises(StaleIdentityError) as excinfo:
        ClaudeAssistant(runner).fork_session("abc", "demo", {})
    assert "cc-fork refresh demo" in str(excinfo.value)


def test_other_failures_are_generic():
    runner = RecordingRunner(returncode=2, stderr="something else")
    with pytest.raises(AssistantProcessError) as excinfo:
        ClaudeAssistant(runner).resume_session("abc", "demo", {})
    assert not isinstance(excinfo.value, StaleIdentityError)
    assert excinfo.value.returncode == 2


def test_missing_executable_is_a_spawn_error(tmp_path):
    runner = AssistantRunner(str(tmp_path / "no-such-claude"))
    with pytest.raises(AssistantProcessError, match="Failed to spawn"):
        runner.run_inherited(["--version"])


def test_executable_env_override(monkeypatch):
    monkeypatch.setenv("CC_FORK_CLAUDE_BIN", "/opt/claude")
    assert AssistantRunner().executable == "/opt/claude"
