"""Dataclasses shared across the sessions feature."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from ..flags import RESERVED_KEYS, Flags, extract_flags


@dataclass
class Session:
    """A base session as stored in its markdown file."""

    name: str
    path: Path
    frontmatter: Dict[str, Any] = field(default_factory=dict)
    content: str = ""

    @property
    def flags(self) -> Flags:
        return extract_flags(self.frontmatter)

    @property
    def has_legacy_identity(self) -> bool:
        """True when identity keys still live in the frontmatter (older file layout)."""
        return any(key in self.frontmatter for key in RESERVED_KEYS)


@dataclass
class SessionIdentity:
    """Volatile conversation identity kept in the per-user metadata store."""

    id: str
    created: str
    updated: str
    prompt_hash: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "created": self.created,
            "updated": self.updated,
        }
        if self.prompt_hash is not None:
            payload["promptHash"] = self.prompt_hash
        return payload

    @classmethod
    def from_json(cls, payload: Mapping[str, Any]) -> "SessionIdentity":
        identity_id = payload.get("id")
        if not isinstance(identity_id, str) or not identity_id:
            raise ValueError("identity record is missing a string 'id'")
        prompt_hash = payload.get("promptHash")
        return cls(
            id=identity_id,
            created=str(payload.get("created") or ""),
            updated=str(payload.get("updated") or ""),
            prompt_hash=prompt_hash if isinstance(prompt_hash, str) else None,
        )


@dataclass(frozen=True)
class SessionListError:
    name: str
    message: str


@dataclass
class ListSessionsResult:
    sessions: List[Session] = field(default_factory=list)
    errors: List[SessionListError] = field(default_factory=list)


@dataclass
class ProjectConfig:
    """Settings read from ``.claude/cc-fork/config.yaml``."""

    interactive: Optional[bool] = None
    default_command: str = "fork"
    project_id: Optional[str] = None
    permissive: bool = False
    default_flags: Flags = field(default_factory=dict)


@dataclass(frozen=True)
class AssistantResponse:
    """Parsed JSON result of a non-interactive assistant run."""

    session_id: Optional[str]
    result: Optional[str] = None
    cost_usd: Optional[float] = None
    raw: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class SessionListEntry:
    name: str
    status: str
    created: Optional[str] = None
    updated: Optional[str] = None
    stale: bool = False


@dataclass
class SessionListing:
    entries: List[SessionListEntry] = field(default_factory=list)
    errors: List[SessionListError] = field(default_factory=list)


@dataclass
class DeletePlan:
    """Result of validating a delete request before anything is removed."""

    deletable: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
