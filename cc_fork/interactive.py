"""Terminal prompts and editor launching used by the session commands."""
from __future__ import annotations

import os
import shlex
import subprocess
import sys
from pathlib import Path
from typing import Optional, Sequence, Tuple

from prompt_toolkit import prompt
from prompt_toolkit.validation import Validator

from .sessions.errors import EditorError, EditorNotFoundError

Option = Tuple[str, str]


def get_editor_command() -> str:
    for variable in ("EDITOR", "VISUAL"):
        value = os.getenv(variable)
        if value and value.strip():
            return value.strip()
    return "vi"


def open_editor(path: Path) -> None:
    """Open ``path`` in the user's editor and block until it exits."""
    editor = get_editor_command()
    command = [*shlex.split(editor), str(path)]
    try:
        completed = subprocess.run(command, check=False)
    except FileNotFoundError as exc:
        raise EditorNotFoundError(
            f"Editor '{editor}' not found. Edit the file manually at:\n  {path}"
        ) from exc
    except OSError as exc:
        raise EditorError(f"Failed to open editor: {exc}") from exc
    if completed.returncode != 0:
        raise EditorError(f"Editor exited with code {completed.returncode}")


class TerminalPrompter:
    """Interactive question/confirm/choose prompts backed by prompt_toolkit."""

    def is_interactive(self) -> bool:
        return sys.stdin.isatty() and sys.stdout.isatty()

    def echo(self, message: str = "", *, err: bool = False) -> None:
        print(message, file=sys.stderr if err else sys.stdout)

    def ask(self, question: str) -> str:
        try:
            return prompt(question).strip()
        except (KeyboardInterrupt, EOFError):
            return ""

    def confirm(self, message: str) -> bool:
        answer = self.ask(f"{message} (y/N): ")
        return answer.lower() in {"y", "yes"}

    def choose(self, message: str, options: Sequence[Option]) -> Optional[str]:
        """Show a numbered menu of ``(label, value)`` pairs and return the chosen value."""
        self.echo(message)
        for index, (label, _) in enumerate(options, start=1):
            self.echo(f"  {index}) {label}")

        def is_valid(text: str) -> bool:
            text = text.strip()
            return not text or (text.isdigit() and 1 <= int(text) <= len(options))

        validator = Validator.from_callable(
            is_valid,
            error_message=f"Enter a number between 1 and {len(options)}",
            move_cursor_to_end=True,
        )
        try:
            answer = prompt("Choose: ", validator=validator).strip()
        except (KeyboardInterrupt, EOFError):
            return None
        if not answer:
            return None
        return options[int(answer) - 1][1]
