"""Git remote inspection used to derive a stable project identity."""
from __future__ import annotations

import re
import subprocess
from pathlib import Path
from typing import Optional

_SCP_STYLE = re.compile(r"^(?:[\w-]+@)?([^:/]+):(.+)$")
_PROTOCOL = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)
_USERINFO = re.compile(r"^[^@/]+@")


def get_remote_origin(cwd: Path) -> Optional[str]:
    """Return the ``origin`` remote URL, or ``None`` outside a repo or without git."""
    try:
        completed = subprocess.run(
            ["git", "remote", "get-url", "origin"],
            cwd=str(cwd),
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError:
        return None
    if completed.returncode != 0:
        return None
    return completed.stdout.strip() or None


def normalize_git_url(url: str) -> str:
    """Reduce a remote URL to ``host/path`` for hashing.

    ``git@github.com:org/repo.git``, ``https://token@github.com/org/repo.git`` and
    ``ssh://git@github.com/org/repo`` all become ``github.com/org/repo``.
    """
    normalized = url.strip()

    scp_match = _SCP_STYLE.match(normalized)
    if scp_match and "://" not in normalized:
        normalized = f"{scp_match.group(1)}/{scp_match.group(2)}"
    else:
        normalized = _PROTOCOL.sub("", normalized)
        normalized = _USERINFO.sub("", normalized)

    if normalized.endswith(".git"):
        normalized = normalized[: -len(".git")]
    normalized = normalized.rstrip("/")

    host, sep, path = normalized.partition("/")
    if sep and host:
        return f"{host.lower()}/{path}"
    return normalized.lower()


def extract_repo_name(normalized_url: str) -> str:
    return normalized_url.rsplit("/", 1)[-1] or "unknown"
