"""Shared fixtures: a loopback console server and fake server processes."""

from __future__ import annotations

import logging
import os
import socket
import subprocess
import sys
import threading
import time
from typing import Optional

import pytest

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from sdtd_runtime.constants import CONSOLE_READY_PROMPT, RuntimeSettings


class FakeConsoleServer:
    """Accepts one connection, optionally writes the prompt, records what the client sends."""

    def __init__(
        self,
        greeting: Optional[str] = CONSOLE_READY_PROMPT,
        delay: float = 0.0,
        chunks: int = 1,
    ) -> None:
        self.greeting = greeting
        self.delay = delay
        self.chunks = max(chunks, 1)
        self.received = ""
        self.listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.listener.bind(("127.0.0.1", 0))
        self.listener.listen(5)
        self.listener.settimeout(5)
        self.port = self.listener.getsockname()[1]
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    def _serve(self) -> None:
        try:
            conn, _ = self.listener.accept()
        except OSError:
            return
        with conn:
            conn.settimeout(5)
            if self.delay:
                time.sleep(self.delay)
            if self.greeting:
                payload = f"*** Connected with 7DTD server.\r\n{self.greeting}\r\n".encode("utf-8")
                step = max(len(payload) // self.chunks, 1)
                for offset in range(0, len(payload), step):
                    conn.sendall(payload[offset:offset + step])
                    time.sleep(0.01)
            data = b""
            while True:
                try:
                    chunk = conn.recv(1024)
                except OSError:
                    break
                if not chunk:
                    break
                data += chunk
            self.received = data.decode("utf-8")

    def join(self, timeout: float = 5.0) -> None:
        self._thread.join(timeout)

    def stop(self) -> None:
        self.listener.close()
        self.join(2)


class FakeProcess:
    """Stand-in for subprocess.Popen that exits when told to."""

    def __init__(self, pid: int = 4242) -> None:
        self.pid = pid
        self.returncode: Optional[int] = None
        self.terminated = False
        self.killed = False
        self._exited = threading.Event()

    def exit(self, code: int) -> None:
        if self.returncode is None:
            self.returncode = code
        self._exited.set()

    def poll(self) -> Optional[int]:
        return self.returncode

    def wait(self, timeout: Optional[float] = None) -> int:
        if not self._exited.wait(timeout):
            raise subprocess.TimeoutExpired("fake-server", timeout)
        return self.returncode

    def terminate(self) -> None:
        self.terminated = True
        self.exit(-15)

    def kill(self) -> None:
        self.killed = True
        self.exit(-9)


class FakeConsole:
    """Records console operations; ``shutdown`` makes the attached process exit."""

    def __init__(self, process: Optional[FakeProcess] = None, fail: bool = False) -> None:
        self.process = process
        self.fail = fail
        self.commands: list[str] = []
        self.broadcasts: list[str] = []

    def shutdown(self) -> None:
        from sdtd_runtime.errors import ConsoleConnectError

        self.commands.append("shutdown")
        if self.fail:
            raise ConsoleConnectError("connection refused")
        if self.process is not None:
            threading.Timer(0.05, self.process.exit, args=(0,)).start()

    def broadcast(self, message: str) -> None:
        self.broadcasts.append(message)


@pytest.fixture
def console_server():
    servers: list[FakeConsoleServer] = []

    def factory(**kwargs) -> FakeConsoleServer:
        server = FakeConsoleServer(**kwargs)
        servers.append(server)
        return server

    yield factory
    for server in servers:
        server.stop()


@pytest.fixture
def unused_port() -> int:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


@pytest.fixture
def fake_process() -> FakeProcess:
    return FakeProcess()


@pytest.fixture
def fake_console_cls():
    return FakeConsole


@pytest.fixture
def runtime_settings() -> RuntimeSettings:
    return RuntimeSettings(shutdown_timeout=5, depot_downloader_bin="DepotDownloader")


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("sdtd-test")
