"""
Telnet console communication module for the 7 Days to Die entrypoint.

The dedicated server exposes a line oriented remote console. Once a client
connects, the server writes a fixed ready prompt; after that, newline
terminated commands are accepted. There is no authentication layer, the port
is only reachable from inside the container.
"""

import logging
import socket
import time
from contextlib import contextmanager
from typing import Iterator, Optional, Tuple

from .constants import (
    CONSOLE_HOST,
    CONSOLE_PORT,
    CONSOLE_PROMPT_TIMEOUT,
    CONSOLE_READY_PROMPT,
)
from .errors import (
    ConsoleClosedError,
    ConsoleConnectError,
    ConsoleStateError,
    ConsoleTimeoutError,
)

Address = Tuple[str, int]


class ConsoleConnection:
    """Single use connection to the server console."""

    AWAITING_PROMPT = "awaiting_prompt"
    READY = "ready"
    CLOSED = "closed"

    READ_CHUNK_SIZE = 128
    IDLE_BACKOFF = 0.05  # pause after an empty or failed read

    def __init__(self, sock: socket.socket, address: Address):
        self.socket = sock
        self.address = address
        self.state = self.AWAITING_PROMPT

    def read_until_pattern(self, pattern: str, timeout: float, fail_on_close: bool = False) -> str:
        """
        Read from the console until ``pattern`` appears in the accumulated text.

        Read errors and a cleanly closed stream count as "nothing received yet",
        so a dead connection ends in a timeout rather than an I/O error.

        Args:
            pattern: Substring to wait for
            timeout: Total time budget in seconds, measured from the call
            fail_on_close: Raise immediately when the peer closes the stream

        Returns:
            All text received during the call

        Raises:
            ConsoleTimeoutError: If the pattern is not seen within ``timeout``
            ConsoleClosedError: If ``fail_on_close`` is set and the peer closed the stream
            ConsoleStateError: If the connection is already closed
        """
        if self.state == self.CLOSED:
            raise ConsoleStateError("Console connection is closed")

        start = time.monotonic()
        data = b""
        while True:
            remaining = timeout - (time.monotonic() - start)
            if remaining <= 0:
                raise ConsoleTimeoutError(
                    f"Timed out after {timeout}s waiting for console pattern {pattern!r}"
                )

            try:
                self.socket.settimeout(remaining)
                chunk: Optional[bytes] = self.socket.recv(self.READ_CHUNK_SIZE)
            except OSError:
                chunk = None

            if chunk:
                data += chunk
                text = data.decode("utf-8", errors="replace")
                if pattern in text:
                    return text
                continue

            if chunk == b"" and fail_on_close:
                raise ConsoleClosedError(
                    f"Console at {self.address[0]}:{self.address[1]} closed the connection"
                )
            time.sleep(min(self.IDLE_BACKOFF, max(remaining, 0.0)))

    def await_prompt(self, pattern: str = CONSOLE_READY_PROMPT,
                     timeout: float = CONSOLE_PROMPT_TIMEOUT, fail_on_close: bool = False) -> None:
        """Wait for the ready prompt and mark the connection ready for commands."""
        if self.state != self.AWAITING_PROMPT:
            raise ConsoleStateError(f"Cannot await prompt in state {self.state!r}")
        self.read_until_pattern(pattern, timeout, fail_on_close=fail_on_close)
        self.state = self.READY

    def send_line(self, text: str) -> None:
        """
        Write a single command line.

        Raises:
            ConsoleStateError: If the prompt has not been observed yet
            ConsoleConnectError: If the write fails
        """
        if self.state != self.READY:
            raise ConsoleStateError(f"Cannot send console command in state {self.state!r}")
        try:
            self.socket.settimeout(CONSOLE_PROMPT_TIMEOUT)
            self.socket.sendall(f"{text}\n".encode("utf-8"))
        except OSError as exc:
            raise ConsoleConnectError(f"Failed writing to console: {exc}") from exc

    def read_available(self, wait: float) -> str:
        """Collect whatever output arrives until the console stays quiet for ``wait`` seconds."""
        if self.state == self.CLOSED or wait <= 0:
            return ""
        data = b""
        while True:
            try:
                self.socket.settimeout(wait)
                chunk = self.socket.recv(4096)
            except OSError:
                break
            if not chunk:
                break
            data += chunk
        return data.decode("utf-8", errors="replace")

    def close(self) -> None:
        """Close the connection; safe to call more than once."""
        if self.state == self.CLOSED:
            return
        self.state = self.CLOSED
        try:
            self.socket.close()
        except OSError:
            pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def connect(address: Address, timeout: Optional[float] = CONSOLE_PROMPT_TIMEOUT) -> ConsoleConnection:
    """
    Open a connection to the console. A single attempt is made.

    Raises:
        ConsoleConnectError: If the port is unreachable
    """
    try:
        sock = socket.create_connection(address, timeout=timeout)
    except OSError as exc:
        raise ConsoleConnectError(
            f"Failed to connect to server console at {address[0]}:{address[1]}: {exc}"
        ) from exc
    return ConsoleConnection(sock, address)


@contextmanager
def dial_server(
    logger: logging.Logger,
    address: Address = (CONSOLE_HOST, CONSOLE_PORT),
    pattern: str = CONSOLE_READY_PROMPT,
    timeout: float = CONSOLE_PROMPT_TIMEOUT,
    fail_on_close: bool = False,
) -> Iterator[ConsoleConnection]:
    """
    Connect to the console, wait until it accepts commands and yield the connection.

    The connection is closed when the block exits, whether it succeeded or not.
    """
    logger.info("Dialing server console at %s:%s", address[0], address[1])
    conn = connect(address, timeout=timeout)
    try:
        conn.await_prompt(pattern, timeout, fail_on_close=fail_on_close)
        yield conn
    finally:
        conn.close()


def _quote_chat(message: str) -> str:
    flattened = " ".join(message.split())
    return flattened.replace('"', "'")


class ServerConsole:
    """High level console operations used by the supervisor, restarts and health checks."""

    def __init__(
        self,
        logger: logging.Logger,
        host: str = CONSOLE_HOST,
        port: int = CONSOLE_PORT,
        prompt: str = CONSOLE_READY_PROMPT,
        prompt_timeout: float = CONSOLE_PROMPT_TIMEOUT,
        fail_on_close: bool = False,
    ) -> None:
        self.logger = logger
        self.address: Address = (host, port)
        self.prompt = prompt
        self.prompt_timeout = prompt_timeout
        self.fail_on_close = fail_on_close

    def session(self):
        return dial_server(
            self.logger,
            self.address,
            self.prompt,
            self.prompt_timeout,
            fail_on_close=self.fail_on_close,
        )

    def execute(self, command: str, response_wait: float = 0.0) -> str:
        with self.session() as conn:
            conn.send_line(command)
            return conn.read_available(response_wait)

    def shutdown(self) -> None:
        self.logger.info("Requesting server shutdown via console.")
        self.execute("shutdown")

    def broadcast(self, message: str) -> None:
        self.logger.info("Broadcasting message: %s", message)
        self.execute(f'say "{_quote_chat(message)}"')
