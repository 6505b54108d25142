"""Thin wrapper around the ``claude`` CLI used to build, fork and resume sessions."""
from __future__ import annotations

import json
import logging
import os
import subprocess
from typing import List, Mapping, Optional, Sequence, Tuple

from ..flags import FlagValue, flags_to_args
from .errors import AssistantProcessError, StaleIdentityError
from .types import AssistantResponse

logger = logging.getLogger(__name__)

STALE_IDENTITY_MARKER = "No conversation found"


def get_default_executable() -> str:
    override = os.getenv("CC_FORK_CLAUDE_BIN")
    if override and override.strip():
        return override.strip()
    return "claude"


class AssistantRunner:
    """Spawns the assistant with one of three stdio wirings.

    ``run_captured`` captures stdout and stderr, ``run_inherited`` hands the
    terminal to the child, and ``run_with_stderr_tap`` inherits stdin/stdout
    while capturing stderr so failures can be classified afterwards.
    """

    def __init__(self, executable: Optional[str] = None, *, timeout: Optional[float] = None) -> None:
        self.executable = executable or get_default_executable()
        self.timeout = timeout

    def run_captured(self, args: Sequence[str]) -> Tuple[int, str, str]:
        try:
            completed = subprocess.run(
                [self.executable, *args],
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise AssistantProcessError(
                f"{self.executable} did not finish within {self.timeout:g}s",
                stderr=_decode(exc.stderr),
            ) from exc
        except OSError as exc:
            raise self._spawn_error(exc) from exc
        return completed.returncode, completed.stdout, completed.stderr

    def run_inherited(self, args: Sequence[str]) -> int:
        try:
            completed = subprocess.run([self.executable, *args], check=False)
        except OSError as exc:
            raise self._spawn_error(exc) from exc
        return completed.returncode

    def run_with_stderr_tap(self, args: Sequence[str]) -> Tuple[int, str]:
        try:
            completed = subprocess.run(
                [self.executable, *args],
                stderr=subprocess.PIPE,
                text=True,
                check=False,
            )
        except OSError as exc:
            raise self._spawn_error(exc) from exc
        return completed.returncode, completed.stderr or ""

    def _spawn_error(self, exc: OSError) -> AssistantProcessError:
        return AssistantProcessError(f"Failed to spawn {self.executable}: {exc}")


def _decode(value: object) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value if isinstance(value, str) else ""


class ClaudeAssistant:
    """Co-ordinates the assistant invocations needed by the session commands."""

    def __init__(self, runner: Optional[AssistantRunner] = None) -> None:
        self.runner = runner or AssistantRunner()

    def create_session(
        self,
        identity_id: str,
        prompt: str,
        flags: Mapping[str, FlagValue],
    ) -> AssistantResponse:
        """Build a conversation headlessly and return the parsed JSON result."""
        args = [
            "--session-id",
            identity_id,
            "-p",
            prompt,
            "--output-format",
            "json",
            *flags_to_args(flags),
        ]
        self._log_debug("create", identity_id, args)
        returncode, stdout, stderr = self.runner.run_captured(args)
        if returncode != 0:
            raise AssistantProcessError(
                f"Claude CLI exited with code {returncode}: {stderr.strip()}",
                returncode=returncode,
                stderr=stderr.strip(),
            )
        return _parse_response(stdout)

    def create_session_interactive(
        self,
        identity_id: str,
        prompt: str,
        flags: Mapping[str, FlagValue],
    ) -> None:
        # Positional prompt: the REPL starts with the prompt already sent.
        args = ["--session-id", identity_id, prompt, *flags_to_args(flags)]
        self._log_debug("create-interactive", identity_id, args)
        returncode = self.runner.run_inherited(args)
        if returncode != 0:
            raise AssistantProcessError(
                f"Claude CLI exited with code {returncode}", returncode=returncode
            )

    def fork_session(self, identity_id: str, session_name: str, flags: Mapping[str, FlagValue]) -> None:
        args = ["--resume", identity_id, "--fork-session", *flags_to_args(flags)]
        self._log_debug("fork", identity_id, args)
        returncode, stderr = self.runner.run_with_stderr_tap(args)
        self._check_exit(returncode, stderr, session_name)

    def resume_session(self, identity_id: str, session_name: str, flags: Mapping[str, FlagValue]) -> None:
        args = ["--resume", identity_id, *flags_to_args(flags)]
        self._log_debug("resume", identity_id, args)
        returncode, stderr = self.runner.run_with_stderr_tap(args)
        self._check_exit(returncode, stderr, session_name)

    def _check_exit(self, returncode: int, stderr: str, session_name: str) -> None:
        if returncode == 0:
            return
        stderr = stderr.strip()
        if STALE_IDENTITY_MARKER in stderr:
            raise StaleIdentityError(
                f"Session '{session_name}' has a stale session ID. "
                f"Run 'cc-fork refresh {session_name}' to rebuild.",
                returncode=returncode,
                stderr=stderr,
            )
        raise AssistantProcessError(
            f"Claude CLI exited with code {returncode}",
            returncode=returncode,
            stderr=stderr,
        )

    def _log_debug(self, event: str, identity_id: str, args: List[str]) -> None:
        logger.debug(
            "assistant",
            extra={"assistant": {"event": event, "identity": identity_id, "args": list(args)}},
        )


def _parse_response(stdout: str) -> AssistantResponse:
    try:
        data = json.loads(stdout)
    except ValueError as exc:
        raise AssistantProcessError(f"Failed to parse Claude response: {stdout.strip()}") from exc
    if not isinstance(data, Mapping):
        raise AssistantProcessError("Claude response was not a JSON object")

    session_id = data.get("session_id")
    result = data.get("result")
    cost = data.get("cost_usd", data.get("total_cost_usd"))
    return AssistantResponse(
        session_id=session_id if isinstance(session_id, str) else None,
        result=result if isinstance(result, str) else None,
        cost_usd=float(cost) if isinstance(cost, (int, float)) and not isinstance(cost, bool) else None,
        raw=data,
    )
