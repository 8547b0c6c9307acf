"""Unix-socket front end that hands client requests to the job manager."""

from __future__ import annotations

import os
import socket
import threading
import time
from typing import Any

from taskmaster import logger
from taskmaster.config import parse_command

DEL = b"\r"

_ACCEPT_TIMEOUT = 0.1
_RETRY_DELAY = 0.1
_CHUNK = 4096


def parse_request(text: str) -> tuple[str, list[str]]:
    """Split a request into its command word and arguments."""
    fields = parse_command(text)
    if not fields:
        raise ValueError("empty request")
    return fields[0], fields[1:]


class Server:
    """Listens on a Unix socket and answers one response per request."""

    def __init__(self, address: str, manager: Any) -> None:
        self.address = address
        self.manager = manager
        self._listener: socket.socket | None = None
        self._done = threading.Event()
        self._lock = threading.Lock()
        self._connections: set[socket.socket] = set()

    def init(self) -> None:
        """Create and bind the listening socket."""
        listener = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            listener.bind(self.address)
            listener.listen()
        except OSError:
            listener.close()
            raise
        listener.settimeout(_ACCEPT_TIMEOUT)
        self._listener = listener

    def start(self) -> None:
        """Accept connections until the server is stopped."""
        listener = self._listener
        if listener is None:
            raise RuntimeError("server is not initialised")
        logger.info("Starting server...")
        while not self._done.is_set():
            try:
                conn, _ = listener.accept()
            except socket.timeout:
                continue
            except OSError as exc:
                if self._done.is_set():
                    return
                logger.error(exc)
                time.sleep(_RETRY_DELAY)
                continue

            conn.settimeout(None)
            with self._lock:
                if self._done.is_set():
                    conn.close()
                    return
                self._connections.add(conn)
            threading.Thread(
                target=self._handle, args=(conn,), name="taskmaster-conn", daemon=True
            ).start()

    def stop(self) -> None:
        """Close the listener, remove the socket file and drop every client."""
        logger.info("Closing server...")
        self._done.set()
        if self._listener is not None:
            self._listener.close()
        try:
            os.remove(self.address)
        except FileNotFoundError:
            pass
        with self._lock:
            connections = list(self._connections)
            self._connections.clear()
        for conn in connections:
            try:
                conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            conn.close()

    def _answer(self, text: str) -> str:
        try:
            command, args = parse_request(text)
        except ValueError as exc:
            return str(exc)
        response = self.manager.execute(command, *args)
        if response.error is not None:
            return str(response.error)
        return response.data

    def _handle(self, conn: socket.socket) -> None:
        buffer = b""
        try:
            with conn:
                while not self._done.is_set():
                    try:
                        chunk = conn.recv(_CHUNK)
                    except OSError:
                        return
                    if not chunk:
                        return
                    buffer += chunk
                    *requests, buffer = buffer.split(DEL)
                    for raw in requests:
                        reply = self._answer(raw.decode(errors="replace"))
                        try:
                            conn.sendall(reply.encode() + DEL)
                        except OSError as exc:
                            logger.error(exc)
                            return
        finally:
            with self._lock:
                self._connections.discard(conn)