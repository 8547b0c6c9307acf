"""Program configuration: TOML loading, defaults and validation."""

from __future__ import annotations

import re
import tomllib
from dataclasses import dataclass, field
from typing import Any

_WHITESPACE = re.compile(r"[ \t\n\v\f\r]+")
_MISSING = object()


class ValidationError(ValueError):
    """A configuration value is missing, of the wrong type or out of range."""


@dataclass(frozen=True)
class _Rule:
    key: str
    kind: type
    item: type | None = None
    default: Any = _MISSING
    minimum: int | None = None
    choices: tuple[str, ...] | None = None
    required: bool = False


_PROGRAM_RULES = (
    _Rule("command", str, required=True),
    _Rule("autostart", bool, default=True),
    _Rule("numprocs", int, default=1, minimum=1),
    _Rule("environment", list, item=str),
    _Rule("directory", str),
    _Rule("stdout_logfile", str),
    _Rule("stderr_logfile", str),
    _Rule("umask", str, default="0022"),
    _Rule("startsecs", int, default=1, minimum=0),
    _Rule("startretries", int, default=3, minimum=0),
    _Rule("autorestart", str, default="unexpected", choices=("false", "unexpected", "true")),
    _Rule(
        "stopsignal",
        str,
        default="TERM",
        choices=("TERM", "HUP", "INT", "QUIT", "KILL", "USR1", "USR2"),
    ),
    _Rule("stopwaitsecs", int, default=10, minimum=0),
    _Rule("exitcodes", list, item=int),
)


def _is_instance(value: Any, kind: type) -> bool:
    if kind is int:
        return isinstance(value, int) and not isinstance(value, bool)
    return isinstance(value, kind)


def check_type(key: str, value: Any, kind: type, item: type | None = None) -> None:
    """Raise ValidationError unless ``value`` has the expected TOML type."""
    if not _is_instance(value, kind):
        raise ValidationError(f"{key} must be of type {kind.__name__}")
    if item is not None and not all(_is_instance(element, item) for element in value):
        raise ValidationError(f"{key} must hold values of type {item.__name__}")


def _apply_rule(rule: _Rule, data: dict[str, Any]) -> Any:
    if rule.key in data:
        value = data[rule.key]
        check_type(rule.key, value, rule.kind, rule.item)
    elif rule.required:
        raise ValidationError(f"{rule.key} is required")
    elif rule.default is _MISSING:
        value = rule.kind()
    else:
        value = rule.default

    if rule.minimum is not None and value < rule.minimum:
        raise ValidationError(f"{rule.key} must be at least {rule.minimum}")
    if rule.choices is not None and value not in rule.choices:
        raise ValidationError(f"{rule.key} must be in [{' '.join(rule.choices)}]")
    return list(value) if isinstance(value, list) else value


@dataclass
class Program:
    """One supervised program as described in the configuration file."""

    command: str
    autostart: bool = True
    numprocs: int = 1
    environment: list[str] = field(default_factory=list)
    directory: str = ""
    stdout_logfile: str = ""
    stderr_logfile: str = ""
    umask: str = "0022"
    startsecs: int = 1
    startretries: int = 3
    autorestart: str = "unexpected"
    stopsignal: str = "TERM"
    stopwaitsecs: int = 10
    exitcodes: list[int] = field(default_factory=list)

    @classmethod
    def from_table(cls, data: dict[str, Any]) -> Program:
        """Build a program from a TOML table, applying defaults and checks."""
        if not isinstance(data, dict):
            raise ValidationError("program entry must be a table")
        return cls(**{rule.key: _apply_rule(rule, data) for rule in _PROGRAM_RULES})


@dataclass
class Config:
    """The whole daemon configuration."""

    programs: dict[str, Program] = field(default_factory=dict)
    user: str = ""


def parse_command(cmd: str) -> list[str]:
    """Split a command line on ASCII whitespace, dropping empty fields."""
    return [part for part in _WHITESPACE.split(cmd) if part]


def load_config(data: dict[str, Any]) -> Config:
    """Build a validated Config from already-decoded TOML data."""
    user = data.get("user", "")
    check_type("user", user, str)
    tables = data.get("program", {})
    check_type("program", tables, dict)
    programs = {name: Program.from_table(table) for name, table in tables.items()}
    return Config(programs=programs, user=user)


def parse_config(path: str) -> Config:
    """Read and validate the TOML configuration file at ``path``."""
    with open(path, "rb") as handle:
        data = tomllib.load(handle)
    return load_config(data)