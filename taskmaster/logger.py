"""Levelled, timestamped logging to standard output."""

from __future__ import annotations

import sys
import threading
from datetime import datetime
from enum import IntEnum
from typing import TextIO


class LogLevel(IntEnum):
    """Severity of a log message; higher is more severe."""

    INFO = 0
    WARN = 1
    ERROR = 2
    CRITICAL = 3

    def __str__(self) -> str:
        return _LEVEL_NAMES[self]


_LEVEL_NAMES = {
    LogLevel.INFO: "INFO",
    LogLevel.WARN: "WARN",
    LogLevel.ERROR: "ERRO",
    LogLevel.CRITICAL: "CRIT",
}


def _timestamp() -> str:
    now = datetime.now()
    return f"{now:%Y-%m-%d %H:%M:%S},{now.microsecond // 1000:03d}"


class Logger:
    """Writes one line per message, dropping messages below its level."""

    def __init__(self, level: LogLevel = LogLevel.INFO, stream: TextIO | None = None) -> None:
        self.level = level
        self._stream = stream
        self._lock = threading.Lock()

    def log(self, level: LogLevel, message: object) -> None:
        """Write ``message`` at ``level`` if the level is enabled."""
        if level < self.level:
            return
        line = f"{_timestamp()} {level} {message}"
        stream = self._stream if self._stream is not None else sys.stdout
        with self._lock:
            print(line, file=stream, flush=True)


_default = Logger()


def set_level(level: LogLevel) -> None:
    """Set the minimum level of the shared logger."""
    _default.level = level


def info(message: object) -> None:
    _default.log(LogLevel.INFO, message)


def warn(message: object) -> None:
    _default.log(LogLevel.WARN, message)


def error(message: object) -> None:
    _default.log(LogLevel.ERROR, message)


def critical(message: object) -> None:
    _default.log(LogLevel.CRITICAL, message)