"""Layered assistant flags and their translation to and from argument vectors."""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

FlagValue = Union[str, bool, List[str]]
Flags = Dict[str, FlagValue]

RESERVED_KEYS = ("id", "created", "updated")


def normalize_flag_value(key: str, value: Any) -> FlagValue:
    """Coerce a YAML scalar into a string, boolean or list of strings."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (list, tuple)):
        items: List[str] = []
        for item in value:
            if isinstance(item, (list, tuple, dict)) or item is None:
                raise ValueError(f"Flag '{key}' must be a list of plain values")
            items.append(str(normalize_flag_value(key, item)))
        return items
    raise ValueError(
        f"Flag '{key}' has unsupported type {type(value).__name__}; expected string, boolean or list"
    )


def extract_flags(frontmatter: Mapping[str, Any]) -> Flags:
    """Return frontmatter entries that are assistant flags.

    Reserved identity keys are skipped, as are keys whose value is ``None``.
    """
    flags: Flags = {}
    for key, value in frontmatter.items():
        if key in RESERVED_KEYS or value is None:
            continue
        flags[key] = value
    return flags


def merge_flags(base: Mapping[str, FlagValue], overrides: Mapping[str, FlagValue]) -> Flags:
    """Shallow merge where every key in ``overrides`` wins, ``False`` included."""
    merged: Flags = dict(base)
    merged.update(overrides)
    return merged


def layer_flags(*layers: Optional[Mapping[str, FlagValue]]) -> Flags:
    """Merge flag layers in ascending precedence (project < session < CLI)."""
    result: Flags = {}
    for layer in layers:
        if layer:
            result = merge_flags(result, layer)
    return result


def flags_to_args(flags: Mapping[str, FlagValue]) -> List[str]:
    """Convert a flag mapping to an argument list.

    Examples::

        {"model": "haiku"}                      -> ["--model", "haiku"]
        {"dangerously-skip-permissions": True}  -> ["--dangerously-skip-permissions"]
        {"dangerously-skip-permissions": False} -> []
        {"allowedTools": ["Bash(git *)", "Read"]} -> ["--allowedTools", "Bash(git *)", "Read"]
    """
    args: List[str] = []
    for key, value in flags.items():
        if value is False:
            continue
        if value is True:
            args.append(f"--{key}")
        elif isinstance(value, (list, tuple)):
            if value:
                args.append(f"--{key}")
                args.extend(value)
        else:
            args.extend([f"--{key}", value])
    return args


def _coerce(raw: str) -> FlagValue:
    if raw == "true":
        return True
    if raw == "false":
        return False
    return raw


def parse_cli_args(args: Sequence[str]) -> Flags:
    """Parse ``--key value`` / ``--key=value`` / ``--key`` tokens into flags.

    Positional tokens that are not consumed as values are ignored. List-valued
    flags cannot be expressed here; they only come from frontmatter or config.
    """
    flags: Flags = {}
    index = 0
    while index < len(args):
        arg = args[index]
        index += 1
        if arg == "--" or not arg.startswith("--"):
            continue

        raw_key = arg[2:]
        if "=" in raw_key:
            key, _, raw_value = raw_key.partition("=")
            if key:
                flags[key] = _coerce(raw_value)
            continue

        if index < len(args) and not args[index].startswith("--"):
            flags[raw_key] = _coerce(args[index])
            index += 1
        else:
            flags[raw_key] = True
    return flags
