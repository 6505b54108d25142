"""Shared exports for the base sessions feature."""
from __future__ import annotations

from .assistant import AssistantRunner, ClaudeAssistant
from .config import read_project_config
from .errors import (
    AssistantProcessError,
    CcForkError,
    ConfigError,
    EditorError,
    EditorNotFoundError,
    EmptyContentError,
    InvalidSessionNameError,
    SessionCorruptedError,
    SessionExistsError,
    SessionNotFoundError,
    StaleIdentityError,
)
from .identity import IdentityStore, ProjectContext, compute_prompt_hash
from .service import SessionService
from .storage import SessionStore, default_template, validate_session_name
from .types import (
    ListSessionsResult,
    ProjectConfig,
    Session,
    SessionIdentity,
    SessionListEntry,
    SessionListError,
    SessionListing,
)


__all__ = [
    "Session",
    "SessionIdentity",
    "ProjectConfig",
    "ListSessionsResult",
    "SessionListError",
    "SessionListEntry",
    "SessionListing",
    "SessionStore",
    "IdentityStore",
    "ProjectContext",
    "SessionService",
    "AssistantRunner",
    "ClaudeAssistant",
    "read_project_config",
    "compute_prompt_hash",
    "default_template",
    "validate_session_name",
    "CcForkError",
    "InvalidSessionNameError",
    "SessionNotFoundError",
    "SessionCorruptedError",
    "SessionExistsError",
    "EmptyContentError",
    "ConfigError",
    "AssistantProcessError",
    "StaleIdentityError",
    "EditorError",
    "EditorNotFoundError",
]
