"""Exception hierarchy shared by the session store, identity store and commands."""
from __future__ import annotations

from pathlib import Path
from typing import Optional


class CcForkError(RuntimeError):
    """Base error for every failure the CLI reports to the user."""


class InvalidSessionNameError(CcForkError, ValueError):
    """Raised when a session name is empty or contains unsafe characters."""


class SessionNotFoundError(CcForkError):
    """Raised when a session file does not exist."""

    def __init__(self, message: str, path: Optional[Path] = None) -> None:
        super().__init__(message)
        self.path = path


class SessionCorruptedError(CcForkError):
    """Raised when a session file's front matter cannot be parsed."""

    def __init__(self, message: str, path: Optional[Path] = None) -> None:
        super().__init__(message)
        self.path = path


class SessionExistsError(CcForkError):
    """Raised when create targets a ready session without a terminal to ask."""


class EmptyContentError(CcForkError, ValueError):
    """Raised when a session prompt body is blank."""


class ConfigError(CcForkError):
    """Raised when the project config file cannot be parsed."""


class AssistantProcessError(CcForkError):
    """Raised when the assistant process fails to spawn or exits non-zero."""

    def __init__(
        self,
        message: str,
        *,
        returncode: Optional[int] = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class StaleIdentityError(AssistantProcessError):
    """Raised when the assistant no longer knows the referenced conversation."""


class EditorError(CcForkError):
    """Raised when the editor exits with a non-zero status."""


class EditorNotFoundError(EditorError):
    """Raised when the configured editor executable cannot be found."""
