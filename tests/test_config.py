import tomllib

import pytest

from taskmaster.config import (
    Config,
    Program,
    ValidationError,
    load_config,
    parse_command,
    parse_config,
)


def test_program_defaults():
    prog = Program.from_table({"command": "ls"})
    assert prog.command == "ls"
    assert prog.autostart is True
    assert prog.numprocs == 1
    assert prog.umask == "0022"
    assert prog.startsecs == 1
    assert prog.startretries == 3
    assert prog.autorestart == "unexpected"
    assert prog.stopsignal == "TERM"
    assert prog.stopwaitsecs == 10
    assert prog.environment == []
    assert prog.exitcodes == []
    assert prog.directory == ""
    assert prog.stdout_logfile == ""
    assert prog.stderr_logfile == ""


def test_explicit_values_override_defaults():
    table = {
        "command": "sleep 5",
        "autostart": False,
        "numprocs": 2,
        "environment": ["A=1"],
        "umask": "077",
        "startsecs": 0,
        "startretries": 0,
        "autorestart": "false",
        "stopsignal": "USR1",
        "stopwaitsecs": 0,
        "exitcodes": [0, 2],
    }
    prog = Program.from_table(table)
    for key, value in table.items():
        assert getattr(prog, key) == value


def test_lists_are_copied():
    env = ["A=1"]
    prog = Program.from_table({"command": "ls", "environment": env})
    env.append("B=2")
    assert prog.environment == ["A=1"]


def test_command_is_required():
    with pytest.raises(ValidationError, match="command is required"):
        Program.from_table({"autostart": True})


@pytest.mark.parametrize(
    "key, value",
    [("numprocs", 0), ("startsecs", -1), ("startretries", -1), ("stopwaitsecs", -1)],
)
def test_minimums(key, value):
    with pytest.raises(ValidationError, match=key):
        Program.from_table({"command": "ls", key: value})


@pytest.mark.parametrize(
    "key, value",
    [("autorestart", "sometimes"), ("stopsignal", "STOP")],
)
def test_enums(key, value):
    with pytest.raises(ValidationError, match=key):
        Program.from_table({"command": "ls", key: value})


@pytest.mark.parametrize(
    "key, value",
    [
        ("command", 3),
        ("autostart", "yes"),
        ("numprocs", True),
        ("umask", 22),
        ("environment", "A=1"),
        ("exitcodes", ["0"]),
    ],
)
def test_wrong_types(key, value):
    table = {"command": "ls", key: value}
    with pytest.raises(ValidationError, match=key):
        Program.from_table(table)


def test_load_config_builds_programs():
    conf = load_config({"user": "nobody", "program": {"web": {"command": "serve"}}})
    assert conf.user == "nobody"
    assert list(conf.programs) == ["web"]
    assert conf.programs["web"].command == "serve"


def test_load_config_empty():
    assert load_config({}) == Config()


def test_load_config_propagates_program_errors():
    with pytest.raises(ValidationError):
        load_config({"program": {"web": {"autostart": True}}})


def test_load_config_rejects_non_table_program():
    with pytest.raises(ValidationError):
        load_config({"program": {"web": "serve"}})


def test_parse_config_reads_file(tmp_path):
    path = tmp_path / "taskmaster.toml"
    path.write_text(
        '[program.echo]\ncommand = "echo hi"\nautostart = false\nexitcodes = [0, 1]\n'
    )
    conf = parse_config(str(path))
    assert conf.programs["echo"] == Program(command="echo hi", autostart=False, exitcodes=[0, 1])


def test_parse_config_invalid_toml(tmp_path):
    path = tmp_path / "bad.toml"
    path.write_text("[program.echo\n")
    with pytest.raises(tomllib.TOMLDecodeError):
        parse_config(str(path))


def test_parse_config_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        parse_config(str(tmp_path / "absent.toml"))


def test_parse_command_splits_on_whitespace():
    assert parse_command("  ls \t -l\n\r/tmp ") == ["ls", "-l", "/tmp"]
    assert parse_command(" \t ") == []