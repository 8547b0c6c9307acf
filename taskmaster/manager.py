"""The job manager: owns every job and serialises commands against them."""

from __future__ import annotations

import os
import queue
import signal
import threading
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass, field
from types import FrameType
from typing import Any

from taskmaster import logger
from taskmaster.config import parse_config
from taskmaster.job import Job
from taskmaster.utils import de_escalate_privilege

QUIT = "quit"
RELOAD = "reload"
START = "start"
STOP = "stop"
RESTART = "restart"
STATUS = "status"
ALL = "all"

_COMMANDS = frozenset({QUIT, RELOAD, START, STOP, RESTART, STATUS})
_HANDLED_SIGNALS = (signal.SIGQUIT, signal.SIGHUP, signal.SIGTERM, signal.SIGINT)
_POLL_INTERVAL = 0.5

Worker = Callable[[Job], Any]


@dataclass
class Response:
    """The outcome of a command: a body on success, an error otherwise."""

    data: str = ""
    error: Exception | None = None

    @classmethod
    def ok(cls) -> Response:
        return cls()

    @classmethod
    def with_body(cls, data: str) -> Response:
        return cls(data=data)

    @classmethod
    def bad_request(cls, error: Exception) -> Response:
        return cls(error=error)

    def has_content(self) -> bool:
        return self.data != ""


@dataclass
class Action:
    """A command queued for the manager loop, with an optional reply slot."""

    type: str
    args: tuple[str, ...] = ()
    reply: Future[Response] | None = field(default=None, repr=False)

    def respond(self, response: Response) -> None:
        if self.reply is not None and not self.reply.done():
            self.reply.set_result(response)

    def fail(self, message: str) -> None:
        self.respond(Response.bad_request(ValueError(message)))


def _status_line(job: Job) -> str:
    return f"[{job.name}]: {job.state}"


class JobManager:
    """Holds the jobs described by a configuration file and runs commands on them."""

    def __init__(self, config: str) -> None:
        self.config = config
        self.jobs: dict[str, Job] = {}
        self._actions: queue.SimpleQueue[Action] = queue.SimpleQueue()
        self._closed = False
        self._submit_lock = threading.Lock()
        self._previous_handlers: dict[int, Any] = {}

    def init(self) -> None:
        """Load the configuration and create the jobs; raises on invalid settings."""
        conf = parse_config(self.config)
        if conf.user:
            logger.info(f"De-escalating privilege to user {conf.user}")
            de_escalate_privilege(conf.user)
            logger.info("Privilege de-escalation successful")

        logger.info(f"taskmasterd started with pid {os.getpid()}")

        jobs: dict[str, Job] = {}
        for name, program in conf.programs.items():
            if name == ALL:
                raise ValueError("all is a special name, please use another name")
            jobs[name] = Job(name, program)
        self.jobs = jobs

    def execute(self, action: str, *args: str) -> Response:
        """Queue a command for the manager loop and wait for its response."""
        if action not in _COMMANDS:
            return Response.bad_request(ValueError(f"{action} Unknown command"))
        reply: Future[Response] = Future()
        with self._submit_lock:
            if self._closed:
                return Response.bad_request(RuntimeError("job manager is not running"))
            self._actions.put(Action(action, tuple(args), reply))
        return reply.result()

    def run(self) -> None:
        """Start autostart jobs, then process commands until told to quit."""
        self._start_autostart()
        while True:
            try:
                action = self._actions.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                continue

            if action.type == QUIT:
                self._stop_all()
                logger.info("Quitting...")
                self._finish()
                action.respond(Response.ok())
                return
            if action.type == RELOAD:
                logger.warn("Reloading...")
                try:
                    self._reload()
                except Exception as exc:  # noqa: BLE001 - a bad reload must not kill the loop
                    logger.error(exc)
                action.respond(Response.ok())
            elif action.type == START:
                self._set_jobs("STARTING", Job.start, action)
            elif action.type == STOP:
                self._set_jobs("STOPPING", Job.stop, action)
            elif action.type == RESTART:
                self._set_jobs("RESTARTING", Job.restart, action)
            elif action.type == STATUS:
                self._status(action)
            else:
                action.fail(f"unknown command {action.type}")

    def install_signal_handlers(self) -> None:
        """Turn SIGHUP into a reload and SIGQUIT, SIGTERM and SIGINT into a quit."""
        for signum in _HANDLED_SIGNALS:
            previous = signal.signal(signum, self._on_signal)
            self._previous_handlers.setdefault(signum, previous)

    def restore_signal_handlers(self) -> None:
        """Put back the handlers that were in place before installation."""
        for signum, previous in self._previous_handlers.items():
            signal.signal(signum, previous)
        self._previous_handlers.clear()

    def _on_signal(self, signum: int, frame: FrameType | None) -> None:
        if self._closed:
            return
        logger.warn(f"Caught signal: {signal.Signals(signum).name}")
        if signum == signal.SIGHUP:
            self._actions.put(Action(RELOAD))
        else:
            self._actions.put(Action(QUIT))

    def _start_autostart(self) -> None:
        for job in list(self.jobs.values()):
            if not job.autostart:
                continue
            logger.info(f"[STARTING] Program(name={job.name})")
            try:
                job.start()
            except Exception as exc:  # noqa: BLE001
                logger.error(exc)

    def _stop_all(self) -> None:
        for job in list(self.jobs.values()):
            logger.info(f"Exiting program {job.name}")
            logger.info(f"[STOPPING] Program(name={job.name})")
            try:
                job.stop()
            except Exception as exc:  # noqa: BLE001
                logger.error(exc)

    def _finish(self) -> None:
        with self._submit_lock:
            self._closed = True
        while True:
            try:
                pending = self._actions.get_nowait()
            except queue.Empty:
                return
            pending.respond(Response.bad_request(RuntimeError("job manager is not running")))

    @staticmethod
    def _spawn(target: Callable[[], Any], name: str) -> threading.Thread:
        def guarded() -> None:
            try:
                target()
            except Exception as exc:  # noqa: BLE001
                logger.error(exc)

        thread = threading.Thread(target=guarded, name=name, daemon=True)
        thread.start()
        return thread

    def _reload(self) -> None:
        conf = parse_config(self.config)
        if conf.user:
            logger.info(f"De-escalating privilege to user {conf.user}")
            de_escalate_privilege(conf.user)
            logger.info("De-escalation successful")

        workers: list[threading.Thread] = []
        for name in [name for name in self.jobs if name not in conf.programs]:
            job = self.jobs.pop(name)
            workers.append(self._spawn(job.stop, f"stop-{name}"))

        for name, program in conf.programs.items():
            existing = self.jobs.get(name)
            if existing is not None:
                workers.append(
                    self._spawn(lambda job=existing, prog=program: job.reload(prog), f"reload-{name}")
                )
            else:
                job = Job(name, program)
                self.jobs[name] = job
                workers.append(self._spawn(job.start, f"start-{name}"))

        for worker in workers:
            worker.join()

    def _run_worker(
        self,
        job: Job,
        worker: Worker,
        label: str,
        on_done: Callable[[], None] | None = None,
    ) -> threading.Thread:
        logger.info(f"[{label}] Program(name={job.name})")

        def target() -> None:
            try:
                worker(job)
            finally:
                if on_done is not None:
                    on_done()

        return self._spawn(target, f"{label.lower()}-{job.name}")

    def _set_jobs(self, label: str, worker: Worker, action: Action) -> None:
        if len(action.args) != 1:
            action.fail("command accepts 1 argument only")
            return
        name = action.args[0]
        if name != ALL:
            job = self.jobs.get(name)
            if job is None:
                action.fail("job is not recognized")
                return
            self._run_worker(job, worker, label, lambda: action.respond(Response.ok()))
            return
        threads = [self._run_worker(job, worker, label) for job in list(self.jobs.values())]
        for thread in threads:
            thread.join()
        action.respond(Response.ok())

    def _status(self, action: Action) -> None:
        if len(action.args) != 1:
            action.fail("command accepts 1 argument only")
            return
        name = action.args[0]
        if name != ALL:
            job = self.jobs.get(name)
            if job is None:
                action.fail("job is not recognized")
                return
            action.respond(Response.with_body(_status_line(job)))
            return
        body = "\n".join(_status_line(job) for job in self.jobs.values())
        action.respond(Response.with_body(body))