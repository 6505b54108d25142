"""Orchestration layer that keeps session files and identity records consistent."""
from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Callable, List, Mapping, Optional, Sequence

from ..flags import FlagValue, Flags, layer_flags, merge_flags
from .assistant import ClaudeAssistant
from .errors import (
    CcForkError,
    EmptyContentError,
    SessionExistsError,
    SessionNotFoundError,
)
from .identity import IdentityStore, compute_prompt_hash
from .storage import SessionStore, default_template, validate_session_name
from .types import (
    AssistantResponse,
    DeletePlan,
    ProjectConfig,
    Session,
    SessionIdentity,
    SessionListEntry,
    SessionListing,
)

if TYPE_CHECKING:
    from ..interactive import TerminalPrompter

_RESPONSE_PREVIEW_LIMIT = 500

EXISTING_SESSION_OPTIONS = (
    ("Refresh - re-run prompt for new session ID", "refresh"),
    ("Edit - open session content in editor", "edit"),
    ("Delete - remove session and start over", "delete"),
    ("Exit", "exit"),
)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class SessionService:
    """Public facade used by the CLI commands.

    A session moves between three states: absent (no file), draft (file but no
    identity record) and ready (file plus an identity record with an ``id``).
    """

    def __init__(
        self,
        store: SessionStore,
        identities: IdentityStore,
        assistant: Optional[ClaudeAssistant] = None,
        *,
        prompter: "TerminalPrompter",
        editor: Callable[[Path], None],
        config: Optional[ProjectConfig] = None,
        clock: Callable[[], str] = utc_timestamp,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.store = store
        self.identities = identities
        self.assistant = assistant or ClaudeAssistant()
        self.prompter = prompter
        self.editor = editor
        self._config = config
        self._clock = clock
        self._id_factory = id_factory
        self._logger = logger or logging.getLogger(__name__)

    @property
    def config(self) -> ProjectConfig:
        if self._config is None:
            self._config = self.identities.context.config
        return self._config

    # ------------------------------
    # create / refresh
    # ------------------------------
    def create(
        self,
        name: Optional[str] = None,
        cli_flags: Optional[Mapping[str, FlagValue]] = None,
        *,
        prompt: Optional[str] = None,
        interactive: Optional[bool] = None,
        evaluate: bool = True,
    ) -> Optional[SessionIdentity]:
        """Write the session file and, unless ``evaluate`` is false, build its conversation."""
        cli_flags = dict(cli_flags or {})
        if not name:
            name = self.prompter.ask("Session name: ")
        validate_session_name(name)
        self.store.ensure_directory()

        existing = self._load(name) if self.store.exists(name) else None
        if existing is not None and self.identities.read(name) is not None:
            return self._resolve_existing(name, cli_flags, interactive)

        session_flags = merge_flags(existing.flags if existing else {}, cli_flags)
        if prompt:
            if not prompt.strip():
                raise EmptyContentError("Prompt is empty. Aborting.")
            session = self.store.write(name, session_flags, prompt)
            content = prompt
        else:
            if existing is None:
                session = self.store.write(name, session_flags, default_template(name))
                self.prompter.echo(f"Created {session.path}")
            elif session_flags != existing.flags:
                self.store.write(name, session_flags, existing.content)
            self.prompter.echo("Opening editor... Save and close when done.")
            self.editor(self.store.path_for(name))
            session = self._load(name)
            session_flags = session.flags
            content = session.content

        if not content.strip():
            raise EmptyContentError("Session file is empty. Aborting.")

        if not evaluate:
            self.prompter.echo(f"Created session file {session.path}")
            self.prompter.echo(f"Run 'cc-fork refresh {name}' to create the base session.")
            return None

        return self._materialize(
            name,
            session_flags,
            cli_flags,
            content,
            interactive=interactive,
            previous=None,
            verb="Created",
        )

    def refresh(
        self,
        name: str,
        cli_flags: Optional[Mapping[str, FlagValue]] = None,
        *,
        interactive: Optional[bool] = None,
    ) -> SessionIdentity:
        """Rebuild the conversation from the current prompt under a brand-new identity."""
        session = self._require_session(name)
        if not session.content.strip():
            raise EmptyContentError("Session file is empty. Aborting.")
        previous = self.identities.read(name)
        return self._materialize(
            name,
            session.flags,
            dict(cli_flags or {}),
            session.content,
            interactive=interactive,
            previous=previous,
            verb="Refreshed",
        )

    def _resolve_existing(
        self,
        name: str,
        cli_flags: Flags,
        interactive: Optional[bool],
    ) -> Optional[SessionIdentity]:
        if not self.prompter.is_interactive():
            raise SessionExistsError(
                f"Session '{name}' already exists. Use 'cc-fork refresh {name}' to recreate."
            )

        action = self.prompter.choose(f"Session '{name}' already exists.", EXISTING_SESSION_OPTIONS)
        if action == "refresh":
            return self.refresh(name, cli_flags, interactive=interactive)
        if action == "edit":
            self.edit(name)
            return None
        if action == "delete":
            self._remove(name)
            self.prompter.echo(f"Deleted session '{name}'")
            return None
        self.prompter.echo("Aborted.")
        return None

    def _materialize(
        self,
        name: str,
        session_flags: Flags,
        cli_flags: Flags,
        content: str,
        *,
        interactive: Optional[bool],
        previous: Optional[SessionIdentity],
        verb: str,
    ) -> SessionIdentity:
        identity_id = self._id_factory()
        effective_flags = layer_flags(self.config.default_flags, session_flags, cli_flags)
        now = self._clock()
        if interactive is None:
            interactive = self.config.interactive if self.config.interactive is not None else True

        self._log_debug(
            "materialize",
            name,
            {"identity": identity_id, "interactive": interactive, "flags": dict(effective_flags)},
        )
        started = time.monotonic()
        response: Optional[AssistantResponse] = None
        if interactive:
            self.prompter.echo("Entering Claude Code...")
            self.assistant.create_session_interactive(identity_id, content, effective_flags)
        else:
            self.prompter.echo(f"Building base session '{name}'...")
            response = self.assistant.create_session(identity_id, content, effective_flags)
        duration = time.monotonic() - started

        identity = SessionIdentity(
            id=identity_id,
            created=previous.created if previous and previous.created else now,
            updated=now,
            prompt_hash=compute_prompt_hash(content),
        )
        self.identities.write(name, identity)

        self.prompter.echo(f"{verb} base session '{name}'")
        id_label = "New session ID" if previous else "Session ID"
        self.prompter.echo(f"{id_label}: {identity_id}")
        self.prompter.echo(f"Duration: {duration:.1f}s")
        if response and response.result:
            preview = response.result
            if len(preview) > _RESPONSE_PREVIEW_LIMIT:
                preview = preview[:_RESPONSE_PREVIEW_LIMIT] + "..."
            self.prompter.echo("\nClaude's response:")
            self.prompter.echo(preview)
        return identity

    # ------------------------------
    # fork / use
    # ------------------------------
    def fork(self, name: str, cli_flags: Optional[Mapping[str, FlagValue]] = None) -> None:
        """Start a new conversation branched from the session's identity."""
        session = self._require_session(name)
        identity = self._require_identity(name)
        effective_flags = layer_flags(self.config.default_flags, session.flags, cli_flags)
        self.prompter.echo(f"Forking base session '{name}'...")
        self.assistant.fork_session(identity.id, name, effective_flags)
        self.prompter.echo()
        self.prompter.echo(f"Exited fork of '{name}'")

    def use(self, name: str, cli_flags: Optional[Mapping[str, FlagValue]] = None) -> None:
        """Resume the session's own conversation in place."""
        session = self._require_session(name)
        identity = self._require_identity(name)

        if identity.prompt_hash and compute_prompt_hash(session.content) != identity.prompt_hash:
            self._log_debug("drift", name, {"stored_hash": identity.prompt_hash})
            self.prompter.echo(
                "Warning: Prompt content has changed since last refresh. "
                f"Consider running 'cc-fork refresh {name}'."
            )

        effective_flags = layer_flags(self.config.default_flags, session.flags, cli_flags)
        self.prompter.echo(f"Resuming base session '{name}'...")
        self.assistant.resume_session(identity.id, name, effective_flags)
        self.prompter.echo()
        self.prompter.echo(f"Exited base session '{name}'")

    # ------------------------------
    # delete / edit / list / prune
    # ------------------------------
    def plan_delete(self, names: Sequence[str]) -> DeletePlan:
        """Validate every name and sort them into deletable and missing."""
        plan = DeletePlan()
        for name in dict.fromkeys(names):
            validate_session_name(name)
            if self.store.exists(name):
                plan.deletable.append(name)
            else:
                plan.missing.append(name)
        return plan

    def delete(self, names: Sequence[str], *, force: bool = False) -> List[str]:
        """Delete sessions only after every name has been checked."""
        plan = self.plan_delete(names)
        if plan.missing and not force:
            if plan.deletable:
                self.prompter.echo(f"Deletable: {', '.join(plan.deletable)}")
            raise SessionNotFoundError(
                f"Session(s) not found: {', '.join(plan.missing)}. Nothing was deleted."
            )

        if not plan.deletable:
            for name in plan.missing:
                self.identities.delete(name)
            self.prompter.echo("No sessions to delete.")
            return []

        if not force:
            if not self.prompter.is_interactive():
                raise CcForkError("Refusing to delete without confirmation. Pass --force to skip it.")
            label = ", ".join(f"'{name}'" for name in plan.deletable)
            noun = "session" if len(plan.deletable) == 1 else "sessions"
            if not self.prompter.confirm(f"Delete {noun} {label}?"):
                self.prompter.echo("Aborted.")
                return []

        for name in plan.deletable:
            self._remove(name)
            self.prompter.echo(f"Deleted session '{name}'")
        for name in plan.missing:
            self.identities.delete(name)
        return plan.deletable

    def edit(self, name: str) -> Path:
        validate_session_name(name)
        if not self.store.exists(name):
            raise SessionNotFoundError(f"Session '{name}' not found.", self.store.path_for(name))
        path = self.store.path_for(name)
        self.editor(path)
        self.prompter.echo("Editor closed.")
        self.prompter.echo(f"Run 'cc-fork refresh {name}' to rebuild with updated content.")
        return path

    def list(self) -> SessionListing:
        result = self.store.list()
        listing = SessionListing(errors=list(result.errors))
        for session in result.sessions:
            if session.has_legacy_identity:
                session = self._migrate_legacy(session)
            identity = self.identities.read(session.name)
            if identity is None:
                listing.entries.append(SessionListEntry(name=session.name, status="draft"))
                continue
            stale = bool(
                identity.prompt_hash and compute_prompt_hash(session.content) != identity.prompt_hash
            )
            listing.entries.append(
                SessionListEntry(
                    name=session.name,
                    status="ready",
                    created=identity.created or None,
                    updated=identity.updated or None,
                    stale=stale,
                )
            )
        return listing

    def prune(self) -> List[str]:
        """Delete identity records whose session file no longer exists."""
        orphans = [name for name in self.identities.names() if not self.store.exists(name)]
        for name in orphans:
            self.identities.delete(name)
            self._log_debug("prune", name, {})
        return orphans

    # ------------------------------
    # helpers
    # ------------------------------
    def _require_session(self, name: str) -> Session:
        validate_session_name(name)
        if not self.store.exists(name):
            raise SessionNotFoundError(
                f"Session '{name}' not found. Run 'cc-fork create {name}' first.",
                self.store.path_for(name),
            )
        return self._load(name)

    def _require_identity(self, name: str) -> SessionIdentity:
        identity = self.identities.read(name)
        if identity is None:
            raise SessionNotFoundError(
                f"Session '{name}' has no base session yet. Run 'cc-fork refresh {name}' to build it."
            )
        return identity

    def _load(self, name: str) -> Session:
        session = self.store.read(name)
        if session.has_legacy_identity:
            session = self._migrate_legacy(session)
        return session

    def _migrate_legacy(self, session: Session) -> Session:
        """Move ``id``/``created``/``updated`` out of the frontmatter into the identity store."""
        legacy_id = session.frontmatter.get("id")
        if isinstance(legacy_id, str) and legacy_id and self.identities.read(session.name) is None:
            now = self._clock()
            self.identities.write(
                session.name,
                SessionIdentity(
                    id=legacy_id,
                    created=str(session.frontmatter.get("created") or now),
                    updated=str(session.frontmatter.get("updated") or now),
                ),
            )
            self._logger.info("Migrated identity for session '%s' into the user store", session.name)
        return self.store.write(session.name, session.flags, session.content)

    def _remove(self, name: str) -> None:
        try:
            self.store.delete(name)
        except SessionNotFoundError:
            pass
        self.identities.delete(name)

    def _log_debug(self, event: str, name: str, extra: Mapping[str, object]) -> None:
        payload = {"event": event, "session": name}
        payload.update(dict(extra))
        self._logger.debug("session-service", extra={"session": payload})
