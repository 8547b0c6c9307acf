import os
import shutil
import socket
import tempfile
import threading
from contextlib import contextmanager

import pytest

from taskmaster.manager import Response
from taskmaster.server import DEL, Server, parse_request


class RecordingManager:
    def __init__(self, response=None):
        self.calls = []
        self.response = response if response is not None else Response.with_body("body")
        self._lock = threading.Lock()

    def execute(self, action, *args):
        with self._lock:
            self.calls.append((action, args))
        return self.response


@pytest.fixture
def sock_path():
    directory = tempfile.mkdtemp(prefix="tm-")
    yield os.path.join(directory, "s.sock")
    shutil.rmtree(directory, ignore_errors=True)


@contextmanager
def running_server(path, manager):
    server = Server(path, manager)
    server.init()
    thread = threading.Thread(target=server.start, daemon=True)
    thread.start()
    try:
        yield server
    finally:
        server.stop()
        thread.join(5)


def connect(path):
    conn = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    conn.settimeout(5)
    conn.connect(path)
    return conn


def read_reply(conn, buffer=b""):
    while DEL not in buffer:
        chunk = conn.recv(4096)
        if not chunk:
            break
        buffer += chunk
    head, _, tail = buffer.partition(DEL)
    return head.decode(), tail


def test_parse_request_splits_command_and_arguments():
    assert parse_request("status all") == ("status", ["all"])


def test_parse_request_ignores_surrounding_whitespace():
    assert parse_request(" start\tweb\n") == ("start", ["web"])


def test_parse_request_without_arguments():
    assert parse_request("quit") == ("quit", [])


def test_parse_request_rejects_blank_text():
    with pytest.raises(ValueError):
        parse_request("   ")


def test_delimiter_is_carriage_return(sock_path):
    manager = RecordingManager(Response.with_body("done"))
    with running_server(sock_path, manager):
        with connect(sock_path) as conn:
            conn.sendall(b"status web\r")
            data = b""
            while not data.endswith(b"\r"):
                chunk = conn.recv(4096)
                if not chunk:
                    break
                data += chunk
    assert data == b"done\r"
    assert manager.calls == [("status", ("web",))]


def test_request_reaches_manager_and_body_comes_back(sock_path):
    manager = RecordingManager(Response.with_body("[web]: RUNNING"))
    with running_server(sock_path, manager):
        with connect(sock_path) as conn:
            conn.sendall(b"status all" + DEL)
            reply, _ = read_reply(conn)
    assert reply == "[web]: RUNNING"
    assert manager.calls == [("status", ("all",))]


def test_error_response_text_is_sent(sock_path):
    manager = RecordingManager(Response.bad_request(ValueError("job is not recognized")))
    with running_server(sock_path, manager):
        with connect(sock_path) as conn:
            conn.sendall(b"start nope" + DEL)
            reply, _ = read_reply(conn)
    assert reply == "job is not recognized"


def test_empty_body_is_just_the_delimiter(sock_path):
    manager = RecordingManager(Response.ok())
    with running_server(sock_path, manager):
        with connect(sock_path) as conn:
            conn.sendall(b"reload" + DEL)
            data = conn.recv(4096)
    assert data == DEL
    assert manager.calls == [("reload", ())]


def test_request_split_over_writes_is_joined(sock_path):
    manager = RecordingManager()
    with running_server(sock_path, manager):
        with connect(sock_path) as conn:
            conn.sendall(b"sta")
            conn.sendall(b"rt web" + DEL)
            reply, _ = read_reply(conn)
    assert reply == "body"
    assert manager.calls == [("start", ("web",))]


def test_two_requests_in_one_write(sock_path):
    manager = RecordingManager()
    with running_server(sock_path, manager):
        with connect(sock_path) as conn:
            conn.sendall(b"stop a" + DEL + b"stop b" + DEL)
            first, rest = read_reply(conn)
            second, _ = read_reply(conn, rest)
    assert (first, second) == ("body", "body")
    assert manager.calls == [("stop", ("a",)), ("stop", ("b",))]


def test_blank_request_is_answered_without_calling_manager(sock_path):
    manager = RecordingManager()
    with running_server(sock_path, manager):
        with connect(sock_path) as conn:
            conn.sendall(b"  " + DEL)
            reply, _ = read_reply(conn)
    assert reply == "empty request"
    assert manager.calls == []


def test_stop_removes_socket_file(sock_path):
    manager = RecordingManager()
    with running_server(sock_path, manager):
        assert os.path.exists(sock_path)
        with connect(sock_path) as conn:
            conn.sendall(b"status all" + DEL)
            reply, _ = read_reply(conn)
        assert reply == "body"
    assert not os.path.exists(sock_path)
    with pytest.raises(OSError):
        connect(sock_path)


def test_stop_closes_open_connections(sock_path):
    with running_server(sock_path, RecordingManager()) as server:
        conn = connect(sock_path)
        conn.sendall(b"status all" + DEL)
        read_reply(conn)
        server.stop()
        assert conn.recv(4096) == b""
        conn.close()


def test_init_fails_when_path_is_taken(sock_path):
    with open(sock_path, "w") as handle:
        handle.write("x")
    with pytest.raises(OSError):
        Server(sock_path, RecordingManager()).init()


def test_start_without_init_raises(sock_path):
    with pytest.raises(RuntimeError):
        Server(sock_path, RecordingManager()).start()