"""
Unit tests for console glue and configuration helpers.
"""
import io
import socket

import pytest

from client.client import ChatClient, ClientState
from client.client import main as client_main
from common.config import DEFAULT_HOST, DEFAULT_PORT, parse_port
from common.console import ConsoleDisplay, read_lines
from server.server import ChatServer
from server.server import main as server_main


@pytest.mark.fast
@pytest.mark.parametrize("value, expected", [
    ("6000", 6000),
    (6000, 6000),
    ("0", 0),
    ("65535", 65535),
    ("65536", None),
    ("-1", None),
    ("port", None),
    ("", None),
    (None, None),
])
def test_parse_port(value, expected):
    assert parse_port(value) == expected


@pytest.mark.fast
def test_console_display_writes_lines():
    stream = io.StringIO()
    display = ConsoleDisplay(stream)
    display("alice > hi")
    display("SERVER MSG>bye")
    assert stream.getvalue() == "alice > hi\nSERVER MSG>bye\n"


@pytest.mark.fast
@pytest.mark.asyncio
async def test_read_lines_until_end_of_input():
    stream = io.StringIO("#login alice\r\nhello\n\nlast")
    lines = [line async for line in read_lines(stream)]
    assert lines == ["#login alice", "hello", "", "last"]


@pytest.mark.fast
def test_server_exits_nonzero_when_port_is_taken(capsys):
    with socket.socket() as taken:
        taken.bind(('127.0.0.1', 0))
        taken.listen()
        port = taken.getsockname()[1]
        assert server_main([str(port), '--host', '127.0.0.1']) == 1
    assert "ERROR - Could not listen for clients!" in capsys.readouterr().out


async def lines_from(items):
    for item in items:
        yield item


def free_port():
    with socket.socket() as probe:
        probe.bind(('127.0.0.1', 0))
        return probe.getsockname()[1]


@pytest.fixture
def recorded_servers(monkeypatch):
    """Servers built by server main(), which never bind and read only #quit."""
    created = []

    class RecordingServer(ChatServer):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            created.append(self)

        async def listen(self):
            pass

    monkeypatch.setattr("server.server.ChatServer", RecordingServer)
    monkeypatch.setattr("server.server.read_lines", lambda: lines_from(["#quit"]))
    return created


@pytest.fixture
def recorded_clients(monkeypatch):
    """Clients built by client main(), which never connect and read only #quit."""
    created = []

    class RecordingClient(ChatClient):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            self.opened = False
            created.append(self)

        async def open_connection(self):
            self.opened = True
            self.state = ClientState.CONNECTED
            return None

    monkeypatch.setattr("client.client.ChatClient", RecordingClient)
    monkeypatch.setattr("client.client.read_lines", lambda: lines_from(["#quit"]))
    return created


@pytest.mark.fast
@pytest.mark.parametrize("argv, port", [
    ([], DEFAULT_PORT),
    (["notaport"], DEFAULT_PORT),
    (["70000"], DEFAULT_PORT),
    (["6000"], 6000),
])
def test_server_main_quits_with_zero(recorded_servers, argv, port):
    assert server_main(argv + ['--host', '127.0.0.1']) == 0
    [server] = recorded_servers
    assert server.port == port
    assert server.host == '127.0.0.1'
    assert server.shutdown_requested.is_set()


@pytest.mark.fast
@pytest.mark.parametrize("argv, host, port", [
    (["alice"], DEFAULT_HOST, DEFAULT_PORT),
    (["alice", "127.0.0.1", "notaport"], '127.0.0.1', DEFAULT_PORT),
    (["alice", "example.org", "6000"], 'example.org', 6000),
])
def test_client_main_quits_with_zero(recorded_clients, argv, host, port):
    assert client_main(argv) == 0
    [client] = recorded_clients
    assert client.login_id == "alice"
    assert (client.host, client.port) == (host, port)
    assert client.opened
    assert client.quit_requested.is_set()


@pytest.mark.fast
def test_client_main_without_login_id(recorded_clients, capsys):
    assert client_main([]) == 0
    [client] = recorded_clients
    assert not client.opened
    assert "ERROR - No login ID specified.  Connection aborted." in capsys.readouterr().out


@pytest.mark.fast
def test_client_main_exits_nonzero_without_server(monkeypatch, capsys):
    monkeypatch.setattr("client.client.read_lines", lambda: lines_from(["hello"]))
    assert client_main(["alice", "127.0.0.1", str(free_port())]) == 1
    assert "Error: Can't setup connection! Terminating client." in capsys.readouterr().out
