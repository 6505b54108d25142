"""Project-level settings stored next to the session files."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..flags import Flags, normalize_flag_value
from .errors import ConfigError
from .storage import CONFIG_DIR_NAME
from .types import ProjectConfig

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config.yaml"
SUPPORTED_DEFAULT_COMMANDS = ("fork", "use")
_KNOWN_KEYS = {"interactive", "defaultCommand", "projectId", "permissive"}


def get_config_path(base_path: Optional[Path] = None) -> Path:
    root = Path(base_path or Path.cwd()).expanduser()
    return root / CONFIG_DIR_NAME / CONFIG_FILE_NAME


def read_project_config(base_path: Optional[Path] = None) -> ProjectConfig:
    """Load ``config.yaml``; a missing file yields the defaults."""
    config_path = get_config_path(base_path)
    try:
        raw_text = config_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return ProjectConfig()
    except OSError as exc:
        raise ConfigError(f"Failed to read config {config_path}: {exc}") from exc

    try:
        data = yaml.safe_load(raw_text) if raw_text.strip() else {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config {config_path} is not valid YAML: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config {config_path} must be a mapping of settings")

    return parse_project_config(data, source=config_path)


def parse_project_config(data: Dict[str, Any], source: Optional[Path] = None) -> ProjectConfig:
    config = ProjectConfig()
    label = str(source) if source else "config"

    interactive = data.get("interactive")
    if interactive is not None:
        if isinstance(interactive, bool):
            config.interactive = interactive
        else:
            logger.warning("Ignoring non-boolean 'interactive' in %s", label)

    default_command = data.get("defaultCommand")
    if default_command is not None:
        if default_command in SUPPORTED_DEFAULT_COMMANDS:
            config.default_command = default_command
        else:
            logger.warning(
                "Ignoring unsupported defaultCommand %r in %s (expected one of: %s)",
                default_command,
                label,
                ", ".join(SUPPORTED_DEFAULT_COMMANDS),
            )

    project_id = data.get("projectId")
    if project_id is not None:
        if isinstance(project_id, (str, int)) and str(project_id).strip():
            config.project_id = str(project_id).strip()
        else:
            logger.warning("Ignoring empty or non-string projectId in %s", label)

    config.permissive = data.get("permissive") is True

    defaults: Flags = {}
    for key, value in data.items():
        key = str(key)
        if key in _KNOWN_KEYS or value is None:
            continue
        if not config.permissive:
            logger.debug("Ignoring unknown config key %r in %s", key, label)
            continue
        try:
            defaults[key] = normalize_flag_value(key, value)
        except ValueError as exc:
            logger.warning("Ignoring config key %r in %s: %s", key, label, exc)
    config.default_flags = defaults
    return config
