from __future__ import annotations

import socket
import time

import pytest

from sdtd_runtime.console import ConsoleConnection, ServerConsole, connect, dial_server
from sdtd_runtime.constants import CONSOLE_READY_PROMPT
from sdtd_runtime.errors import (
    ConsoleClosedError,
    ConsoleConnectError,
    ConsoleStateError,
    ConsoleTimeoutError,
)
from sdtd_runtime.health import check_health


def make_pair():
    client, peer = socket.socketpair()
    return ConsoleConnection(client, ("test", 0)), peer


def test_read_until_pattern_returns_on_first_chunk():
    conn, peer = make_pair()
    try:
        peer.sendall(f"{CONSOLE_READY_PROMPT}\r\n".encode("utf-8"))
        start = time.monotonic()
        text = conn.read_until_pattern(CONSOLE_READY_PROMPT, timeout=5)
        assert time.monotonic() - start < 1
        assert CONSOLE_READY_PROMPT in text
    finally:
        conn.close()
        peer.close()


def test_read_until_pattern_times_out_when_pattern_never_arrives():
    conn, peer = make_pair()
    try:
        peer.sendall(b"loading world...\r\n")
        start = time.monotonic()
        with pytest.raises(ConsoleTimeoutError):
            conn.read_until_pattern(CONSOLE_READY_PROMPT, timeout=0.3)
        elapsed = time.monotonic() - start
        assert 0.3 <= elapsed < 2
    finally:
        conn.close()
        peer.close()


def test_closed_stream_is_reported_as_timeout_by_default():
    conn, peer = make_pair()
    peer.close()
    start = time.monotonic()
    with pytest.raises(ConsoleTimeoutError):
        conn.read_until_pattern(CONSOLE_READY_PROMPT, timeout=0.3)
    assert time.monotonic() - start >= 0.3
    conn.close()


def test_closed_stream_fails_fast_in_strict_mode():
    conn, peer = make_pair()
    peer.close()
    start = time.monotonic()
    with pytest.raises(ConsoleClosedError):
        conn.read_until_pattern(CONSOLE_READY_PROMPT, timeout=5, fail_on_close=True)
    assert time.monotonic() - start < 1
    conn.close()


def test_send_line_requires_prompt():
    conn, peer = make_pair()
    try:
        with pytest.raises(ConsoleStateError):
            conn.send_line("shutdown")
    finally:
        conn.close()
        peer.close()


def test_close_is_idempotent_and_blocks_reads():
    conn, peer = make_pair()
    conn.close()
    conn.close()
    assert conn.state == ConsoleConnection.CLOSED
    with pytest.raises(ConsoleStateError):
        conn.read_until_pattern("x", timeout=0.1)
    peer.close()


def test_connect_unreachable_port(unused_port):
    with pytest.raises(ConsoleConnectError):
        connect(("127.0.0.1", unused_port), timeout=1)


def test_dial_server_prompt_split_across_reads(console_server, logger):
    server = console_server(chunks=5)
    with dial_server(logger, ("127.0.0.1", server.port), timeout=2) as conn:
        assert conn.state == ConsoleConnection.READY
        conn.send_line("version")
    assert conn.state == ConsoleConnection.CLOSED
    server.join()
    assert server.received == "version\n"


def test_dial_server_closes_connection_when_body_fails(console_server, logger):
    server = console_server()
    captured = {}
    with pytest.raises(RuntimeError, match="boom"):
        with dial_server(logger, ("127.0.0.1", server.port), timeout=2) as conn:
            captured["conn"] = conn
            raise RuntimeError("boom")
    assert captured["conn"].state == ConsoleConnection.CLOSED


def test_dial_server_closes_connection_on_prompt_timeout(console_server, logger):
    server = console_server(greeting=None)
    with pytest.raises(ConsoleTimeoutError):
        with dial_server(logger, ("127.0.0.1", server.port), timeout=0.3):
            pytest.fail("body must not run without a prompt")
    # the server only finishes once the client has hung up
    server.join()
    assert server.received == ""


def test_server_console_shutdown_and_broadcast(console_server, logger):
    shutdown_server = console_server()
    console = ServerConsole(logger, host="127.0.0.1", port=shutdown_server.port, prompt_timeout=2)
    console.shutdown()
    shutdown_server.join()
    assert shutdown_server.received == "shutdown\n"

    chat_server = console_server()
    console = ServerConsole(logger, host="127.0.0.1", port=chat_server.port, prompt_timeout=2)
    console.broadcast('Restart in "1" minute\nsoon')
    chat_server.join()
    assert chat_server.received == "say \"Restart in '1' minute soon\"\n"


def test_health_check_healthy(console_server, logger, caplog):
    server = console_server(delay=0.2)
    console = ServerConsole(logger, host="127.0.0.1", port=server.port, prompt_timeout=1)
    caplog.set_level("INFO", logger="sdtd-test")

    check_health(logger, console)

    assert "healthy=True" in caplog.text


def test_health_check_unreachable(unused_port, logger):
    console = ServerConsole(logger, host="127.0.0.1", port=unused_port, prompt_timeout=1)
    start = time.monotonic()
    with pytest.raises(ConsoleConnectError):
        check_health(logger, console)
    assert time.monotonic() - start < 2


def test_health_check_times_out_on_silent_server(console_server, logger):
    server = console_server(greeting=None)
    console = ServerConsole(logger, host="127.0.0.1", port=server.port, prompt_timeout=0.3)
    start = time.monotonic()
    with pytest.raises(ConsoleTimeoutError):
        check_health(logger, console)
    assert time.monotonic() - start < 2
