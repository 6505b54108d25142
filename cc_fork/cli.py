from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .flags import Flags, parse_cli_args
from .interactive import TerminalPrompter, open_editor
from .sessions import (
    AssistantProcessError,
    CcForkError,
    ClaudeAssistant,
    IdentityStore,
    ProjectConfig,
    ProjectContext,
    SessionListEntry,
    SessionService,
    SessionStore,
    read_project_config,
)

KNOWN_COMMANDS = {
    "create",
    "new",
    "fork",
    "use",
    "refresh",
    "rebuild",
    "list",
    "delete",
    "edit",
    "prune",
}
PASSTHROUGH_COMMANDS = {"create", "new", "fork", "use", "refresh", "rebuild"}


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )


def build_global_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(add_help=False)
    p.add_argument("--project-dir", type=Path)
    p.add_argument("-v", "--verbose", action="store_true")
    return p


def command_index(argv: Sequence[str]) -> int:
    """Index of the first token that is not a global option."""
    index = 0
    while index < len(argv):
        token = argv[index]
        if token == "--project-dir":
            index += 2
            continue
        if token.startswith("-"):
            index += 1
            continue
        break
    return index


def insert_default_command(argv: Sequence[str], default_command: str) -> List[str]:
    """Prepend ``default_command`` when the first positional token is not a command."""
    index = command_index(argv)
    if index < len(argv) and argv[index] not in KNOWN_COMMANDS:
        return [*argv[:index], default_command, *argv[index:]]
    return list(argv)


def build_service(base_path: Path, config: ProjectConfig) -> SessionService:
    context = ProjectContext(base_path, config=config)
    return SessionService(
        store=SessionStore(base_path),
        identities=IdentityStore(context),
        assistant=ClaudeAssistant(),
        prompter=TerminalPrompter(),
        editor=open_editor,
        config=config,
    )


def format_timestamp(value: Optional[str]) -> str:
    if not value:
        return "-"
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return value
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone()
    return parsed.strftime("%b %d, %Y, %I:%M %p")


def format_session_table(entries: Sequence[SessionListEntry]) -> Tuple[str, List[str]]:
    rows = []
    for entry in entries:
        status = entry.status
        if entry.stale:
            status += " (prompt changed)"
        rows.append((entry.name, format_timestamp(entry.created), format_timestamp(entry.updated), status))

    name_width = max([len("NAME")] + [len(row[0]) for row in rows])
    created_width = max([len("CREATED")] + [len(row[1]) for row in rows])
    updated_width = max([len("UPDATED")] + [len(row[2]) for row in rows])

    header = (
        f"{'NAME'.ljust(name_width)}  "
        f"{'CREATED'.ljust(created_width)}  "
        f"{'UPDATED'.ljust(updated_width)}  "
        "STATUS"
    )
    lines = [
        f"{name.ljust(name_width)}  {created.ljust(created_width)}  {updated.ljust(updated_width)}  {status}"
        for name, created, updated, status in rows
    ]
    return header, lines


def handle_list(service: SessionService) -> int:
    listing = service.list()

    if listing.errors:
        print(f"Warning: {len(listing.errors)} session(s) could not be read:", file=sys.stderr)
        for error in listing.errors:
            print(f"  - {error.name}: {error.message}", file=sys.stderr)
        print()

    if not listing.entries:
        print("No sessions found.")
        print("Run 'cc-fork create <name>' to create your first session.")
        return 0

    header, lines = format_session_table(listing.entries)
    print(header)
    for line in lines:
        print(line)
    return 0


def handle_prune(service: SessionService) -> int:
    removed = service.prune()
    if not removed:
        print("No orphaned session records found.")
        return 0
    for name in removed:
        print(f"Removed orphaned record '{name}'")
    return 0


def add_interactive_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-i",
        "--interactive",
        dest="interactive",
        action="store_const",
        const=True,
        default=None,
        help="Enter Claude Code after sending the prompt (default unless config says otherwise)",
    )
    parser.add_argument(
        "--no-interactive",
        dest="interactive",
        action="store_const",
        const=False,
        help="Build the session headlessly and print Claude's JSON result",
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="cc-fork",
        description=(
            "Claude Code kickstart session manager. Unrecognised --options after the session "
            "name are passed through to claude."
        ),
        allow_abbrev=False,
    )
    p.add_argument(
        "--project-dir",
        type=Path,
        help="Project root containing .claude/cc-fork (default: current directory)",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    sub = p.add_subparsers(dest="cmd", required=True)

    p_create = sub.add_parser("create", aliases=["new"], help="Create a new base session", allow_abbrev=False)
    p_create.add_argument("name", nargs="?", help="Session name (prompted for when omitted)")
    p_create.add_argument("-p", "--prompt", help="Provide the prompt inline instead of opening the editor")
    p_create.add_argument(
        "--no-eval",
        action="store_true",
        help="Only write the session file; run 'refresh' later to build it",
    )
    add_interactive_options(p_create)

    p_fork = sub.add_parser("fork", help="Fork from a base session for daily work", allow_abbrev=False)
    p_fork.add_argument("name", help="Session name")

    p_use = sub.add_parser("use", help="Resume a base session to add more context", allow_abbrev=False)
    p_use.add_argument("name", help="Session name")

    p_refresh = sub.add_parser(
        "refresh",
        aliases=["rebuild"],
        help="Recreate a base session with its current prompt",
        allow_abbrev=False,
    )
    p_refresh.add_argument("name", help="Session name")
    add_interactive_options(p_refresh)

    sub.add_parser("list", help="List all base sessions")

    p_delete = sub.add_parser("delete", help="Delete one or more sessions")
    p_delete.add_argument("names", nargs="+", help="Session names")
    p_delete.add_argument("-f", "--force", action="store_true", help="Skip confirmation and ignore missing names")

    p_edit = sub.add_parser("edit", help="Open a session file in your editor")
    p_edit.add_argument("name", help="Session name")

    sub.add_parser("prune", help="Remove stored session records whose session file is gone")

    return p


def dispatch(args: argparse.Namespace, service: SessionService, cli_flags: Flags) -> int:
    if args.cmd in ("create", "new"):
        service.create(
            args.name,
            cli_flags,
            prompt=args.prompt,
            interactive=args.interactive,
            evaluate=not args.no_eval,
        )
        return 0
    if args.cmd in ("refresh", "rebuild"):
        service.refresh(args.name, cli_flags, interactive=args.interactive)
        return 0
    if args.cmd == "fork":
        service.fork(args.name, cli_flags)
        return 0
    if args.cmd == "use":
        service.use(args.name, cli_flags)
        return 0
    if args.cmd == "list":
        return handle_list(service)
    if args.cmd == "delete":
        service.delete(args.names, force=args.force)
        return 0
    if args.cmd == "edit":
        service.edit(args.name)
        return 0
    if args.cmd == "prune":
        return handle_prune(service)
    raise CcForkError(f"Unknown command: {args.cmd}")


def usage_exit_code(exc: SystemExit) -> int:
    """Map argparse's usage exit status to 1; ``--help`` keeps 0."""
    return 0 if exc.code in (0, None) else 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    try:
        global_args, _ = build_global_parser().parse_known_args(argv[: command_index(argv)])
    except SystemExit as exc:
        return usage_exit_code(exc)
    configure_logging(global_args.verbose)
    base_path = (global_args.project_dir or Path.cwd()).expanduser()

    try:
        config = read_project_config(base_path)
    except CcForkError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    parser = build_parser()
    try:
        args, extras = parser.parse_known_args(insert_default_command(argv, config.default_command))
        if extras and args.cmd not in PASSTHROUGH_COMMANDS:
            parser.error(f"unrecognized arguments: {' '.join(extras)}")
    except SystemExit as exc:
        return usage_exit_code(exc)
    cli_flags = parse_cli_args(extras)

    service = build_service(base_path, config)
    try:
        return dispatch(args, service, cli_flags)
    except AssistantProcessError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        if exc.stderr and exc.stderr not in str(exc):
            print(exc.stderr, file=sys.stderr)
        return 1
    except (CcForkError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
