"""
Pytest configuration and fixtures for cc-fork tests.
"""
from pathlib import Path
from typing import List, Optional

import pytest

from cc_fork.sessions import (
    IdentityStore,
    ProjectConfig,
    ProjectContext,
    SessionService,
    SessionStore,
)
from cc_fork.sessions.errors import AssistantProcessError, StaleIdentityError
from cc_fork.sessions.types import AssistantResponse


class FakeAssistant:
    """Records every invocation instead of spawning claude."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.fail_with: Optional[Exception] = None
        self.result = "Session created"

    def _record(self, *call):
        self.calls.append(call)
        if self.fail_with is not None:
            raise self.fail_with

    def create_session(self, identity_id, prompt, flags):
        self._record("create", identity_id, prompt, dict(flags))
        return AssistantResponse(session_id=identity_id, result=self.result)

    def create_session_interactive(self, identity_id, prompt, flags):
        self._record("create-interactive", identity_id, prompt, dict(flags))

    def fork_session(self, identity_id, session_name, flags):
        self._record("fork", identity_id, session_name, dict(flags))

    def resume_session(self, identity_id, session_name, flags):
        self._record("resume", identity_id, session_name, dict(flags))

    def fail_stale(self, name):
        self.fail_with = StaleIdentityError(
            f"Session '{name}' has a stale session ID. Run 'cc-fork refresh {name}' to rebuild.",
            returncode=1,
            stderr="No conversation found with session ID",
        )

    def fail_generic(self):
        self.fail_with = AssistantProcessError("Claude CLI exited with code 2", returncode=2, stderr="boom")


class FakePrompter:
    """Scripted answers for prompts; captures echoed output."""

    def __init__(self):
        self.interactive = False
        self.answers: List[str] = []
        self.confirm_answer = True
        self.choice: Optional[str] = None
        self.messages: List[str] = []
        self.asked: List[str] = []

    def is_interactive(self):
        return self.interactive

    def echo(self, message="", *, err=False):
        self.messages.append(message)

    def ask(self, question):
        self.asked.append(question)
        return self.answers.pop(0) if self.answers else ""

    def confirm(self, message):
        self.asked.append(message)
        return self.confirm_answer

    def choose(self, message, options):
        self.asked.append(message)
        return self.choice

    @property
    def output(self):
        return "\n".join(self.messages)


class FakeEditor:
    """Stands in for $EDITOR; optionally rewrites the file body."""

    def __init__(self):
        self.opened: List[Path] = []
        self.replacement: Optional[str] = None

    def __call__(self, path):
        self.opened.append(Path(path))
        if self.replacement is not None:
            Path(path).write_text(self.replacement, encoding="utf-8")


@pytest.fixture
def project_dir(tmp_path):
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def storage_root(tmp_path):
    return tmp_path / "user-store"


@pytest.fixture
def config():
    return ProjectConfig(project_id="demo-project")


@pytest.fixture
def context(project_dir, storage_root, config):
    return ProjectContext(project_dir, storage_root=storage_root, config=config, remote_lookup=lambda _: None)


@pytest.fixture
def store(project_dir):
    return SessionStore(project_dir)


@pytest.fixture
def identities(context):
    return IdentityStore(context)


@pytest.fixture
def assistant():
    return FakeAssistant()


@pytest.fixture
def prompter():
    return FakePrompter()


@pytest.fixture
def editor():
    return FakeEditor()


@pytest.fixture
def service(store, identities, assistant, prompter, editor, config):
    ids = iter(f"uuid-{index}" for index in range(1, 100))
    return SessionService(
        store,
        identities,
        assistant,
        prompter=prompter,
        editor=editor,
        config=config,
        clock=lambda: "2024-01-01T00:00:00.000Z",
        id_factory=lambda: next(ids),
    )
