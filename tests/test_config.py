import logging

import pytest

from cc_fork.sessions import ConfigError, ProjectConfig, read_project_config
from cc_fork.sessions.config import get_config_path, parse_project_config


def write_config(project_dir, text):
    path = get_config_path(project_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_missing_file_gives_defaults(project_dir):
    assert read_project_config(project_dir) == ProjectConfig()


def test_known_keys(project_dir):
    write_config(project_dir, "interactive: false\ndefaultCommand: use\nprojectId: shared-id\n")
    config = read_project_config(project_dir)
    assert config.interactive is False
    assert config.default_command == "use"
    assert config.project_id == "shared-id"
    assert config.default_flags == {}


def test_unknown_keys_ignored_unless_permissive(project_dir):
    write_config(project_dir, "model: sonnet\n")
    assert read_project_config(project_dir).default_flags == {}

    write_config(project_dir, "permissive: true\nmodel: sonnet\nallowedTools:\n  - Read\n")
    config = read_project_config(project_dir)
    assert config.permissive is True
    assert config.default_flags == {"model": "sonnet", "allowedTools": ["Read"]}


def test_invalid_values_fall_back_with_warning(caplog):
    with caplog.at_level(logging.WARNING):
        config = parse_project_config({"defaultCommand": "create", "interactive": "yes"})
    assert config.default_command == "fork"
    assert config.interactive is None
    assert "defaultCommand" in caplog.text


def test_invalid_yaml_is_an_error(project_dir):
    write_config(project_dir, "interactive: [\n")
    with pytest.raises(ConfigError):
        read_project_config(project_dir)


def test_non_mapping_is_an_error(project_dir):
    write_config(project_dir, "- fork\n")
    with pytest.raises(ConfigError):
        read_project_config(project_dir)


def test_empty_file_gives_defaults(project_dir):
    write_config(project_dir, "\n")
    assert read_project_config(project_dir) == ProjectConfig()
