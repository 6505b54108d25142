"""Filesystem helpers for reading and writing base session markdown files."""
from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from ..flags import normalize_flag_value
from .errors import InvalidSessionNameError, SessionCorruptedError, SessionNotFoundError
from .types import ListSessionsResult, Session, SessionListError

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = Path(".claude") / "cc-fork"
SESSION_SUFFIX = ".md"

_FRONT_MATTER_DELIMITER = "---"
_FRONT_MATTER_PATTERN = re.compile(
    r"\A---[ \t]*\r?\n(.*?)^---[ \t]*(?:\r?\n|\Z)",
    re.DOTALL | re.MULTILINE,
)
_SESSION_NAME_PATTERN = re.compile(r"[A-Za-z0-9_-]+")


def is_valid_session_name(name: Optional[str]) -> bool:
    return bool(name) and _SESSION_NAME_PATTERN.fullmatch(name) is not None


def validate_session_name(name: Optional[str]) -> None:
    if not name:
        raise InvalidSessionNameError("Session name is required")
    if not is_valid_session_name(name):
        raise InvalidSessionNameError(
            "Session name can only contain letters, numbers, hyphens, and underscores"
        )


def default_template(name: str) -> str:
    return f"""# {name}

## Files to Read

List the files Claude should read to understand the context:

1. `docs/README.md` - Project overview
2. `src/main.py` - Entry point

## Key Concepts

Describe what Claude should focus on understanding:

- How the authentication flow works
- The data model structure

## Summary Request

After reading, ask Claude to summarize:

- Main components and their responsibilities
- Key patterns used in the codebase
"""


def atomic_write_text(path: Path, text: str) -> None:
    """Write text to path atomically (temp file + rename)."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_path = tempfile.mkstemp(
        dir=str(target.parent),
        prefix=f".tmp_{target.stem}_",
        suffix=target.suffix,
        text=True,
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(text)
        os.replace(temp_path, target)
    except BaseException:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise


class SessionStore:
    """Owns the per-project directory of ``<name>.md`` session files."""

    def __init__(self, base_path: Optional[Path] = None) -> None:
        self.base_path = Path(base_path or Path.cwd()).expanduser().resolve()
        self.directory = self.base_path / CONFIG_DIR_NAME

    def path_for(self, name: str) -> Path:
        validate_session_name(name)
        return self.directory / f"{name}{SESSION_SUFFIX}"

    def ensure_directory(self) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        return self.directory

    def exists(self, name: str) -> bool:
        return self.path_for(name).is_file()

    def read(self, name: str) -> Session:
        path = self.path_for(name)
        try:
            raw_bytes = path.read_bytes()
        except FileNotFoundError as exc:
            raise SessionNotFoundError(f"Session '{name}' not found.", path) from exc
        try:
            frontmatter, content = split_front_matter(raw_bytes.decode("utf-8"))
        except ValueError as exc:
            raise SessionCorruptedError(
                f"Failed to read session '{name}': {exc}. Fix or delete: {path}", path
            ) from exc
        return Session(name=name, path=path, frontmatter=frontmatter, content=content)

    def write(self, name: str, frontmatter: Dict[str, Any], content: str) -> Session:
        path = self.path_for(name)
        atomic_write_text(path, render_session(frontmatter, content))
        logger.debug("session-store", extra={"session": {"event": "write", "name": name, "path": str(path)}})
        body = content if content.endswith("\n") else f"{content}\n"
        return Session(name=name, path=path, frontmatter=dict(frontmatter), content=body)

    def delete(self, name: str) -> None:
        path = self.path_for(name)
        try:
            path.unlink()
        except FileNotFoundError as exc:
            raise SessionNotFoundError(f"Session '{name}' not found.", path) from exc

    def list(self) -> ListSessionsResult:
        result = ListSessionsResult()
        if not self.directory.is_dir():
            return result

        for child in sorted(self.directory.iterdir(), key=lambda p: p.name):
            if child.suffix != SESSION_SUFFIX or not child.is_file():
                continue
            name = child.stem
            try:
                result.sessions.append(self.read(name))
            except (InvalidSessionNameError, SessionCorruptedError, SessionNotFoundError, OSError) as exc:
                result.errors.append(SessionListError(name=name, message=str(exc)))
        return result


def render_session(frontmatter: Dict[str, Any], content: str) -> str:
    """Serialize front matter and body into the on-disk representation."""
    front_matter = ""
    if frontmatter:
        front_matter = yaml.safe_dump(
            dict(frontmatter), sort_keys=False, allow_unicode=True, default_flow_style=False
        )
    body = content if content.endswith("\n") else f"{content}\n"
    return f"{_FRONT_MATTER_DELIMITER}\n{front_matter}{_FRONT_MATTER_DELIMITER}\n\n{body}"


def split_front_matter(content: str) -> Tuple[Dict[str, Any], str]:
    """Split raw file text into normalized front matter and the body.

    Raises ``ValueError`` when the header is not a mapping of supported values.
    """
    match = _FRONT_MATTER_PATTERN.match(content)
    if not match:
        return {}, content

    front_matter_text = match.group(1).strip()
    try:
        metadata = yaml.safe_load(front_matter_text) if front_matter_text else {}
    except yaml.YAMLError as exc:
        raise ValueError(f"invalid YAML front matter ({exc.__class__.__name__})") from exc
    if metadata is None:
        metadata = {}
    if not isinstance(metadata, dict):
        raise ValueError("front matter must deserialize to a mapping")

    normalized: Dict[str, Any] = {}
    for key, value in metadata.items():
        key = str(key)
        if value is None:
            continue
        normalized[key] = normalize_flag_value(key, value)

    body = content[match.end():]
    # Drop the single blank line written between the header and the body.
    if body.startswith("\r\n"):
        body = body[2:]
    elif body.startswith("\n"):
        body = body[1:]
    return normalized, body
