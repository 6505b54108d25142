"""Per-user store of conversation identities, scoped by project."""
from __future__ import annotations

import hashlib
import json
import logging
import os
import re
from pathlib import Path
from typing import Callable, List, Optional

from .config import read_project_config
from .git import extract_repo_name, get_remote_origin, normalize_git_url
from .storage import atomic_write_text, is_valid_session_name, validate_session_name
from .types import ProjectConfig, SessionIdentity

logger = logging.getLogger(__name__)

USER_STORAGE_DIR_NAME = ".cc-fork"
_FALLBACK_PROJECT_ID = "project"
_UNSAFE_CHARACTERS = re.compile(r'[<>:"|?*\x00-\x1f]')


def get_default_storage_root() -> Path:
    override = os.getenv("CC_FORK_HOME")
    if override and override.strip():
        return Path(override.strip()).expanduser()
    return Path("~").expanduser() / USER_STORAGE_DIR_NAME


def short_hash(value: str, length: int = 8) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:length]


def compute_prompt_hash(content: str) -> str:
    """Fingerprint prompt content for drift detection; trailing newlines are ignored."""
    return short_hash(content.rstrip("\n"), length=16)


def sanitize_project_id(value: str) -> str:
    """Make a project identity safe to use as a single directory name."""
    cleaned = value.replace("..", "")
    cleaned = re.sub(r"[/\\]", "-", cleaned)
    cleaned = _UNSAFE_CHARACTERS.sub("", cleaned)
    cleaned = re.sub(r"-+", "-", cleaned)
    cleaned = cleaned.strip(".-")
    return cleaned or _FALLBACK_PROJECT_ID


def project_id_from_remote(url: str) -> str:
    normalized = normalize_git_url(url)
    return f"{extract_repo_name(normalized)}-{short_hash(normalized)}"


def project_id_from_path(path: Path) -> str:
    resolved = str(Path(path).resolve())
    return f"{Path(resolved).name}-{short_hash(resolved)}"


class ProjectContext:
    """Resolves and caches the project identity for one base path.

    The identity comes from ``projectId`` in the project config, then the git
    remote ``origin``, then a hash of the absolute path.
    """

    def __init__(
        self,
        base_path: Optional[Path] = None,
        *,
        storage_root: Optional[Path] = None,
        config: Optional[ProjectConfig] = None,
        remote_lookup: Callable[[Path], Optional[str]] = get_remote_origin,
    ) -> None:
        self.base_path = Path(base_path or Path.cwd()).expanduser().resolve()
        self.storage_root = Path(storage_root or get_default_storage_root()).expanduser()
        self._config = config
        self._remote_lookup = remote_lookup
        self._project_id: Optional[str] = None

    @property
    def config(self) -> ProjectConfig:
        if self._config is None:
            self._config = read_project_config(self.base_path)
        return self._config

    @property
    def project_id(self) -> str:
        if self._project_id is None:
            self._project_id = self._resolve_project_id()
            logger.debug(
                "project-context",
                extra={"project": {"base_path": str(self.base_path), "project_id": self._project_id}},
            )
        return self._project_id

    @property
    def project_dir(self) -> Path:
        return self.storage_root / self.project_id

    def _resolve_project_id(self) -> str:
        if self.config.project_id:
            return sanitize_project_id(self.config.project_id)
        remote_url = self._remote_lookup(self.base_path)
        if remote_url:
            return sanitize_project_id(project_id_from_remote(remote_url))
        return sanitize_project_id(project_id_from_path(self.base_path))


class IdentityStore:
    """Reads and writes ``<storage_root>/<projectId>/<name>.json`` records."""

    def __init__(self, context: ProjectContext) -> None:
        self.context = context

    def path_for(self, name: str) -> Path:
        validate_session_name(name)
        return self.context.project_dir / f"{name}.json"

    def read(self, name: str) -> Optional[SessionIdentity]:
        path = self.path_for(name)
        try:
            raw_bytes = path.read_bytes()
        except FileNotFoundError:
            return None
        try:
            payload = json.loads(raw_bytes.decode("utf-8"))
            if not isinstance(payload, dict):
                raise ValueError("identity record must be a JSON object")
            return SessionIdentity.from_json(payload)
        except ValueError as exc:
            logger.warning(
                "Corrupted session data at %s (%s). Run 'cc-fork refresh %s' to fix.",
                path,
                exc,
                name,
            )
            return None

    def write(self, name: str, identity: SessionIdentity) -> Path:
        path = self.path_for(name)
        atomic_write_text(path, json.dumps(identity.to_json(), indent=2) + "\n")
        return path

    def delete(self, name: str) -> bool:
        path = self.path_for(name)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def names(self) -> List[str]:
        directory = self.context.project_dir
        if not directory.is_dir():
            return []
        return sorted(
            child.stem
            for child in directory.glob("*.json")
            if child.is_file() and is_valid_session_name(child.stem)
        )
