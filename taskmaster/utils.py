"""Small helpers: console output, log files, signals and the setup file."""

from __future__ import annotations

import os
import pwd
import signal
import sys
import threading
import tomllib
from dataclasses import dataclass
from typing import Any, BinaryIO

from taskmaster.config import check_type

CONF = "setup.toml"
DEFAULT_SOCKET = "/tmp/taskmaster.sock"
DEFAULT_CONFIG = "taskmaster.toml"

_SIGNALS = {
    "TERM": signal.SIGTERM,
    "HUP": signal.SIGHUP,
    "INT": signal.SIGINT,
    "QUIT": signal.SIGQUIT,
    "KILL": signal.SIGKILL,
    "USR1": signal.SIGUSR1,
    "USR2": signal.SIGUSR2,
}


class DynamicWriter:
    """A thread-safe writer whose destination can be swapped at any time."""

    def __init__(self, writer: BinaryIO | None = None) -> None:
        self._lock = threading.Lock()
        self._writer = writer

    @property
    def writer(self) -> BinaryIO | None:
        with self._lock:
            return self._writer

    def write(self, data: bytes) -> int:
        """Write to the current destination; fail if none is set."""
        with self._lock:
            if self._writer is None:
                raise BrokenPipeError("write on closed pipe")
            written = self._writer.write(data)
            self._writer.flush()
            return written

    def set_writer(self, writer: BinaryIO | None) -> None:
        with self._lock:
            self._writer = writer


@dataclass
class Setup:
    """Settings shared by the daemon and the client."""

    prompt: str = ""
    socket: str = DEFAULT_SOCKET
    config: str = DEFAULT_CONFIG


def hello(name: str) -> str:
    return f"Hello {name}"


def print_log(message: str) -> None:
    """Print a line to standard output."""
    print(message, file=sys.stdout, flush=True)


def print_error(message: str) -> None:
    """Print an error line to standard error."""
    print(f"[ERROR] {message}", file=sys.stderr, flush=True)


def open_log_file(path: str) -> BinaryIO:
    """Open ``path`` for appending, creating it if needed."""
    fd = os.open(path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o666)
    return os.fdopen(fd, "ab")


def parse_signal(name: str) -> signal.Signals:
    """Map a signal name such as ``TERM`` to a signal; unknown names give SIGTERM."""
    return _SIGNALS.get(name, signal.SIGTERM)


def _setup_from_table(data: dict[str, Any]) -> Setup:
    defaults = Setup()
    values = {}
    for key in ("prompt", "socket", "config"):
        value = data.get(key, getattr(defaults, key))
        check_type(key, value, str)
        values[key] = value
    return Setup(**values)


def parse_setup_file(path: str = CONF) -> Setup:
    """Read the setup file, filling in defaults for missing keys."""
    with open(path, "rb") as handle:
        data = tomllib.load(handle)
    return _setup_from_table(data)


def de_escalate_privilege(username: str) -> None:
    """Switch the process user id to that of ``username``."""
    try:
        entry = pwd.getpwnam(username)
    except KeyError:
        raise LookupError(f"unknown user {username}") from None
    os.setuid(entry.pw_uid)