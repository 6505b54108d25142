import pytest

from cc_fork import cli
from cc_fork.sessions import SessionIdentity, SessionListEntry, storage


@pytest.fixture
def run(monkeypatch, project_dir, service):
    monkeypatch.setattr(cli, "build_service", lambda base_path, config: service)

    def _run(*argv):
        return cli.main(["--project-dir", str(project_dir), *argv])

    return _run


@pytest.mark.parametrize(
    "argv, expected",
    [
        (["demo"], ["fork", "demo"]),
        (["demo", "--model", "haiku"], ["fork", "demo", "--model", "haiku"]),
        (["-v", "demo"], ["-v", "fork", "demo"]),
        (["--project-dir", "/tmp/x", "demo"], ["--project-dir", "/tmp/x", "fork", "demo"]),
        (["list"], ["list"]),
        (["new", "demo"], ["new", "demo"]),
        ([], []),
    ],
)
def test_insert_default_command(argv, expected):
    assert cli.insert_default_command(argv, "fork") == expected


def test_create_passes_unknown_options_through(run, assistant, store):
    assert run("create", "demo", "-p", "hello", "--no-interactive", "--model", "haiku") == 0
    assert assistant.calls == [("create", "uuid-1", "hello", {"model": "haiku"})]
    assert store.read("demo").flags == {"model": "haiku"}


def test_bare_name_forks(run, assistant):
    run("create", "demo", "-p", "hello", "--no-interactive")
    assert run("demo", "--dangerously-skip-permissions") == 0
    assert assistant.calls[-1] == ("fork", "uuid-1", "demo", {"dangerously-skip-permissions": True})


def test_default_command_from_config(run, assistant, project_dir):
    run("create", "demo", "-p", "hello", "--no-interactive")
    (project_dir / ".claude" / "cc-fork" / "config.yaml").write_text("defaultCommand: use\n", encoding="utf-8")
    assert run("demo") == 0
    assert assistant.calls[-1][0] == "resume"


def test_stale_fork_exits_with_refresh_hint(run, assistant, capsys):
    run("create", "demo", "-p", "hello", "--no-interactive")
    assistant.fail_stale("demo")

    assert run("fork", "demo") == 1
    err = capsys.readouterr().err
    assert "Error: Session 'demo' has a stale session ID" in err
    assert "cc-fork refresh demo" in err


def test_generic_assistant_failure_prints_stderr(run, assistant, capsys):
    run("create", "demo", "-p", "hello", "--no-interactive")
    assistant.fail_generic()
    assert run("use", "demo") == 1
    assert "boom" in capsys.readouterr().err


def test_invalid_name_exits_1(run, capsys):
    assert run("fork", "bad name") == 1
    assert "Session name can only contain" in capsys.readouterr().err


def test_unknown_option_on_non_passthrough_command(run, capsys):
    assert run("list", "--bogus") == 1
    assert "unrecognized arguments: --bogus" in capsys.readouterr().err


def test_missing_positional_exits_1(run):
    assert run("edit") == 1


def test_help_exits_0(run, capsys):
    assert run("--help") == 0
    assert "cc-fork" in capsys.readouterr().out


def test_filesystem_error_is_reported(run, monkeypatch, store, capsys):
    def read_only(path, text):
        raise PermissionError(13, "Permission denied", str(path))

    monkeypatch.setattr(storage, "atomic_write_text", read_only)
    assert run("create", "demo", "-p", "hello", "--no-eval") == 1
    assert "Error: [Errno 13] Permission denied" in capsys.readouterr().err
    assert not store.exists("demo")


def test_delete_missing_exits_1(run, store, capsys):
    run("create", "demo", "-p", "hello", "--no-eval")
    assert run("delete", "demo", "ghost") == 1
    assert store.exists("demo")
    assert "Nothing was deleted" in capsys.readouterr().err


def test_delete_force(run, store):
    run("create", "demo", "-p", "hello", "--no-eval")
    assert run("delete", "demo", "-f") == 0
    assert not store.exists("demo")


def test_list_empty(run, capsys):
    assert run("list") == 0
    assert "No sessions found." in capsys.readouterr().out


def test_list_table(run, capsys):
    run("create", "demo", "-p", "hello", "--no-interactive")
    run("create", "draft", "-p", "later", "--no-eval")
    capsys.readouterr()

    assert run("list") == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines[0].split() == ["NAME", "CREATED", "UPDATED", "STATUS"]
    assert lines[1].startswith("demo ")
    assert lines[1].endswith("ready")
    assert lines[2].endswith("draft")


def test_prune(run, identities, capsys):
    identities.write("orphan", SessionIdentity(id="x", created="c", updated="u"))
    assert run("prune") == 0
    assert "Removed orphaned record 'orphan'" in capsys.readouterr().out


def test_invalid_config_exits_1(run, project_dir, capsys):
    config_dir = project_dir / ".claude" / "cc-fork"
    config_dir.mkdir(parents=True)
    (config_dir / "config.yaml").write_text("- not a mapping\n", encoding="utf-8")
    assert run("list") == 1
    assert "must be a mapping" in capsys.readouterr().err


def test_format_session_table_marks_stale_entries():
    header, lines = cli.format_session_table(
        [
            SessionListEntry(name="a-long-name", status="ready", stale=True),
            SessionListEntry(name="b", status="draft"),
        ]
    )
    assert header.startswith("NAME         CREATED")
    assert lines[0].endswith("ready (prompt changed)")
    assert lines[1].startswith("b            -")


def test_format_timestamp_passthrough_for_garbage():
    assert cli.format_timestamp(None) == "-"
    assert cli.format_timestamp("not a date") == "not a date"
