"""Interactive control client talking to the daemon over its Unix socket."""

from __future__ import annotations

import argparse
import socket
import sys

from taskmaster.interpreter import EXIT, SyntaxProblem, parse
from taskmaster.manager import Response
from taskmaster.server import DEL
from taskmaster.utils import CONF, parse_setup_file, print_error, print_log

_CHUNK = 4096


class Client:
    """A connection to the daemon exchanging delimiter-terminated messages."""

    def __init__(self, path: str) -> None:
        self.path = path
        self._sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            self._sock.connect(path)
        except OSError:
            self._sock.close()
            raise
        self._buffer = b""

    def __enter__(self) -> Client:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._sock.close()

    def send(self, line: str) -> None:
        """Send one request, terminated by the delimiter."""
        self._sock.sendall(line.encode() + DEL)

    def read(self, delimiter: bytes | str = DEL) -> Response:
        """Read one reply; an empty response on end of stream."""
        if isinstance(delimiter, str):
            delimiter = delimiter.encode()
        while True:
            head, sep, tail = self._buffer.partition(delimiter)
            if sep:
                self._buffer = tail
                return Response.with_body(head.decode(errors="replace"))
            try:
                chunk = self._sock.recv(_CHUNK)
            except OSError as exc:
                return Response.bad_request(exc)
            if not chunk:
                return Response.ok()
            self._buffer += chunk


def _enable_line_editing() -> None:
    try:
        import readline  # noqa: F401
    except ImportError:
        pass


def main(argv: list[str] | None = None) -> int:
    """Run the interactive prompt until end of input or ``exit``."""
    parser = argparse.ArgumentParser(prog="taskmasterctl", description="Control taskmasterd.")
    parser.add_argument("--setup", default=CONF, help="path of the setup file")
    options = parser.parse_args(argv)

    try:
        setup = parse_setup_file(options.setup)
    except (OSError, ValueError) as exc:
        print_error(str(exc))
        return 1

    try:
        client = Client(setup.socket)
    except OSError as exc:
        print_error(str(exc))
        return 1

    _enable_line_editing()
    with client:
        while True:
            try:
                line = input(setup.prompt)
            except EOFError:
                return 0
            except KeyboardInterrupt:
                print()
                continue

            if not line:
                continue
            try:
                args = parse(line)
            except SyntaxProblem as exc:
                print(exc, file=sys.stderr)
                continue
            if args[0] == EXIT:
                return 0

            try:
                client.send(" ".join(args))
            except OSError as exc:
                print_error(str(exc))
                continue

            response = client.read()
            if response.error is not None:
                print_error(str(response.error))
            elif response.has_content():
                print_log(response.data)


if __name__ == "__main__":
    sys.exit(main())