"""Entry point of the supervisor daemon."""

from __future__ import annotations

import argparse
import sys
import threading

from taskmaster import logger
from taskmaster.manager import JobManager
from taskmaster.server import Server
from taskmaster.utils import CONF, parse_setup_file

_SHUTDOWN_TIMEOUT = 5.0


def main(argv: list[str] | None = None) -> int:
    """Load the setup, start jobs and the control socket, and run until quit."""
    parser = argparse.ArgumentParser(prog="taskmasterd", description="Supervise programs.")
    parser.add_argument("--setup", default=CONF, help="path of the setup file")
    options = parser.parse_args(argv)

    try:
        setup = parse_setup_file(options.setup)
    except (OSError, ValueError) as exc:
        logger.critical(exc)
        return 1

    manager = JobManager(setup.config)
    try:
        manager.init()
    except (OSError, ValueError, LookupError) as exc:
        logger.critical(exc)
        return 1

    server = Server(setup.socket, manager)
    try:
        server.init()
    except OSError as exc:
        logger.critical(exc)
        return 1

    manager.install_signal_handlers()
    server_thread = threading.Thread(target=server.start, name="taskmaster-server", daemon=True)
    server_thread.start()
    try:
        manager.run()
    finally:
        manager.restore_signal_handlers()
        server.stop()
        server_thread.join(_SHUTDOWN_TIMEOUT)
    return 0


if __name__ == "__main__":
    sys.exit(main())