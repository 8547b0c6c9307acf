"""Parsing of commands typed at the client prompt."""

from __future__ import annotations

RELOAD = "reload"
RESTART = "restart"
START = "start"
STATUS = "status"
STOP = "stop"
QUIT = "quit"
EXIT = "exit"

_WITH_ARGUMENTS = frozenset({RESTART, START, STATUS, STOP})
_WITHOUT_ARGUMENTS = frozenset({RELOAD, QUIT, EXIT})


class SyntaxProblem(ValueError):
    """The typed line is not a valid command."""


def parse(line: str) -> list[str]:
    """Split a prompt line on single spaces and check the command word."""
    args = line.split(" ")
    command = args[0]
    if command in _WITH_ARGUMENTS:
        return args
    if command in _WITHOUT_ARGUMENTS:
        if len(args) != 1:
            raise SyntaxProblem(f"{command} must not take arguments")
        return args
    raise SyntaxProblem(f"*** Unknown syntax: {command}")