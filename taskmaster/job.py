"""A supervised program: spawning, restart policy, stopping and reloading."""

from __future__ import annotations

import os
import signal
import subprocess
import sys
import threading
import time
from collections import Counter
from enum import Enum
from typing import BinaryIO

from taskmaster import logger
from taskmaster.config import Program
from taskmaster.utils import DynamicWriter, open_log_file, parse_signal

_RETRY_DELAY = 1.0
_CHUNK = 65536


class JobState(str, Enum):
    """Life-cycle state of a job."""

    STOPPED = "STOPPED"
    STARTING = "STARTING"
    RUNNING = "RUNNING"
    BACKOFF = "BACKOFF"
    STOPPING = "STOPPING"
    EXITED = "EXITED"
    FATAL = "FATAL"
    UNKNOWN = "UNKNOWN"

    def __str__(self) -> str:
        return self.value


class Autorestart(str, Enum):
    """When a program that exited is started again."""

    FALSE = "false"
    UNEXPECTED = "unexpected"
    TRUE = "true"


def _default_stream(stream: object) -> BinaryIO | None:
    return getattr(stream, "buffer", None)


class Job:
    """One program run under ``sh -c`` in its own process group."""

    def __init__(self, name: str, program: Program) -> None:
        self.name = name
        self.command = program.command
        self.environment = list(program.environment)
        self.directory = program.directory
        self.autostart = program.autostart
        self.stdout_logfile = program.stdout_logfile
        self.stderr_logfile = program.stderr_logfile
        self.umask = program.umask
        self.state = JobState.STOPPED
        self.startsecs = program.startsecs
        self.startretries = program.startretries
        self.autorestart = Autorestart(program.autorestart)
        self.exitcodes = list(program.exitcodes) or [0]
        self.stopsignal = parse_signal(program.stopsignal)
        self.stopwaitsecs = program.stopwaitsecs
        self.stdout_writer = DynamicWriter()
        self.stderr_writer = DynamicWriter()

        self._lock = threading.Lock()
        self._running = False
        self._restarting = False
        self._process: subprocess.Popen[bytes] | None = None
        self._finished = threading.Event()
        self._finished.set()
        self._log_files: dict[str, BinaryIO] = {}

    @property
    def pid(self) -> int | None:
        """Process id of the current or last child, if any."""
        process = self._process
        return process.pid if process is not None else None

    @property
    def running(self) -> bool:
        """Whether a supervising worker is active."""
        return self._running

    def set_state(self, state: JobState | str) -> None:
        """Move to ``state``; unknown state names raise ValueError."""
        try:
            new_state = JobState(state)
        except ValueError:
            raise ValueError(f"invalid state: {state}") from None
        with self._lock:
            self.state = new_state

    def is_state(self, state: JobState | str) -> bool:
        return self.state == state

    def start(self) -> None:
        """Start the job and block until it is running or has given up."""
        with self._lock:
            if self.state is JobState.STOPPING or self._running:
                return
            self._running = True
            self._finished.clear()
        started = threading.Event()
        worker = threading.Thread(
            target=self._supervise, args=(started,), name=f"job-{self.name}", daemon=True
        )
        worker.start()
        started.wait()

    def stop(self) -> None:
        """Kill the job's process group and wait for the worker to finish."""
        if self.is_state(JobState.STOPPING):
            return
        if not self.is_state(JobState.RUNNING):
            return
        self.set_state(JobState.STOPPING)
        self._signal_group(signal.SIGKILL)
        self._finished.wait(self.stopwaitsecs)
        if self._running:
            self._signal_group(self.stopsignal)

    def restart(self) -> None:
        """Stop the job and start it again."""
        with self._lock:
            if self.state is JobState.STOPPING or self._restarting:
                return
            self._restarting = True
        try:
            self.stop()
            self.start()
        finally:
            self._restarting = False

    def reload(self, program: Program) -> bool:
        """Take over new settings; restart a running job whose launch settings changed.

        Returns whether the launch settings changed.
        """
        stdout_changed = self.stdout_logfile != program.stdout_logfile
        stderr_changed = self.stderr_logfile != program.stderr_logfile
        should_restart = self._reread(program)
        if should_restart and self._running:
            self.restart()
            return True
        try:
            if stdout_changed:
                self._set_log("stdout", self.stdout_logfile, self.stdout_writer, sys.stdout)
            if stderr_changed:
                self._set_log("stderr", self.stderr_logfile, self.stderr_writer, sys.stderr)
        except OSError as exc:
            logger.error(exc)
        return should_restart

    def wait(self, timeout: float | None = None) -> bool:
        """Wait for the supervising worker to finish; return whether it did."""
        return self._finished.wait(timeout)

    def _supervise(self, started: threading.Event) -> None:
        retries = 0
        try:
            while True:
                self.set_state(JobState.STARTING)
                try:
                    process, pumps = self._spawn()
                except OSError as exc:
                    logger.error(exc)
                    self.set_state(JobState.BACKOFF)
                    retries += 1
                    if retries == self.startretries:
                        break
                    time.sleep(_RETRY_DELAY)
                    continue

                began = time.monotonic()
                self.set_state(JobState.RUNNING)
                started.set()
                process.wait()
                for pump in pumps:
                    pump.join()

                if self.is_state(JobState.STOPPING):
                    break
                if time.monotonic() - began < self.startsecs:
                    self.set_state(JobState.BACKOFF)
                    retries += 1
                    if retries == self.startretries:
                        break
                    time.sleep(_RETRY_DELAY)
                    continue

                self.set_state(JobState.EXITED)
                retries = 0
                if self.autorestart is Autorestart.FALSE:
                    break
        finally:
            with self._lock:
                if self.state is JobState.BACKOFF:
                    self.state = JobState.FATAL
                elif self.state is JobState.STOPPING:
                    self.state = JobState.STOPPED
                self._running = False
            self._finished.set()
            started.set()

    def _spawn(self) -> tuple[subprocess.Popen[bytes], list[threading.Thread]]:
        self._set_log("stdout", self.stdout_logfile, self.stdout_writer, sys.stdout)
        self._set_log("stderr", self.stderr_logfile, self.stderr_writer, sys.stderr)

        env: dict[str, str] = {}
        for entry in self.environment:
            key, sep, value = entry.partition("=")
            if sep:
                env[key] = value
        env.update(os.environ)

        process = subprocess.Popen(
            ["sh", "-c", f"umask {self.umask} && {self.command}"],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=env,
            cwd=self.directory or None,
            process_group=0,
            bufsize=0,
        )
        self._process = process
        pumps = [
            threading.Thread(target=self._pump, args=(process.stdout, self.stdout_writer), daemon=True),
            threading.Thread(target=self._pump, args=(process.stderr, self.stderr_writer), daemon=True),
        ]
        for pump in pumps:
            pump.start()
        return process, pumps

    @staticmethod
    def _pump(source: BinaryIO, writer: DynamicWriter) -> None:
        with source:
            while chunk := source.read(_CHUNK):
                try:
                    writer.write(chunk)
                except OSError:
                    pass

    def _set_log(self, key: str, path: str, writer: DynamicWriter, default: object) -> None:
        if path:
            handle = open_log_file(path)
            writer.set_writer(handle)
        else:
            stream = _default_stream(default)
            if stream is None:
                return
            handle = None
            writer.set_writer(stream)
        previous = self._log_files.pop(key, None)
        if handle is not None:
            self._log_files[key] = handle
        if previous is not None and previous is not handle:
            previous.close()

    def _signal_group(self, signum: int) -> None:
        process = self._process
        if process is None:
            return
        try:
            os.killpg(process.pid, signum)
        except ProcessLookupError:
            pass

    def _reread(self, program: Program) -> bool:
        should_restart = False

        if program.command != self.command:
            self.command = program.command
            should_restart = True

        if program.directory != self.directory:
            self.directory = program.directory
            should_restart = True

        counts = Counter(self.environment) + Counter(program.environment)
        if any(count != 2 for count in counts.values()):
            self.environment = list(program.environment)
            should_restart = True

        if program.umask != self.umask:
            self.umask = program.umask
            should_restart = True

        self.stderr_logfile = program.stderr_logfile
        self.stdout_logfile = program.stdout_logfile
        self.autostart = program.autostart
        self.exitcodes = list(program.exitcodes)
        self.stopwaitsecs = program.stopwaitsecs
        self.stopsignal = parse_signal(program.stopsignal)
        self.autorestart = Autorestart(program.autorestart)
        self.startsecs = program.startsecs
        self.startretries = program.startretries

        return should_restart