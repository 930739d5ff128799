"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket: buffered request reading, response
writing and the two ways a connection ends.

=============================================================================
TCP IS A BYTE STREAM
=============================================================================

recv() returns whatever has arrived, not one request. The Connection
buffers until it sees the end of the headers (\r\n\r\n), then reads
exactly Content-Length more bytes. Anything after that stays in the
buffer for the next request on the same connection.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──────► READING ──────► PROCESSING ──────► WRITING ────────┐
     │             │                                    │           │
     │             │                                    │           ▼
     │             │                                    │      KEEP_ALIVE
     │             ▼                                    │           │
     └──────────► CLOSING ◄─────────────────────────────┴───────────┘
                    │
                    ▼
                  CLOSED

A connection is IDLE while it waits for the first byte of a request.
Idle connections are what a stopping listener closes right away; busy
ones get until the shutdown timeout to finish.

=============================================================================
ENDING A CONNECTION
=============================================================================

    close()   orderly: FIN, drain what the client still sends, close.
              Used by the worker that owns the connection.

    abort()   immediate: shutdown both directions and close. Safe to call
              from another thread; a worker blocked in recv() wakes up
              with an error and unwinds.
=============================================================================
"""

import socket
import threading
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSING = "closing"
    CLOSED = "closed"


class RequestTooLarge(ValueError):
    """The client sent more than max_request_size bytes for one request."""


@dataclass(eq=False)
class Connection:
    """
    A client connection.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short identifier for debug logs.
        state: Current connection state.
        requests_handled: Requests read on this connection so far.
    """

    socket: socket.socket
    address: tuple[str, int]

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    last_activity: float = field(default_factory=time.monotonic)
    requests_handled: int = 0

    buffer_size: int = 8192
    timeout: float = 5.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)
    _idle: bool = field(default=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    @property
    def is_idle(self) -> bool:
        """Waiting for a request that has not started arriving."""
        return self._idle and self.state != ConnectionState.CLOSED

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete HTTP request.

        Each request gets one deadline, `timeout` seconds, for all of its
        bytes; a client trickling one byte at a time still runs out. On a
        kept-alive connection the deadline starts with the first byte of
        the next request, and waiting for that byte is bounded by
        `keep_alive_timeout` instead.

        Returns:
            The request bytes, or None if the client closed the connection,
            the connection was aborted, or a keep-alive wait ran out.

        Raises:
            TimeoutError: The request did not complete before its deadline.
            RequestTooLarge: The request exceeds max_request_size.
        """
        if self.is_closed:
            return None

        self.state = ConnectionState.READING
        self.last_activity = time.monotonic()

        waiting = self.requests_handled > 0 and not self._buffer
        deadline = None if waiting else time.monotonic() + self.timeout
        self._idle = not self._buffer

        try:
            while b"\r\n\r\n" not in self._buffer:
                if waiting:
                    chunk = self._recv(timeout=self.keep_alive_timeout)
                else:
                    chunk = self._recv(deadline=deadline)
                if not chunk:
                    return None
                if waiting:
                    waiting = False
                    deadline = time.monotonic() + self.timeout
                self._idle = False
                self._buffer += chunk

                if len(self._buffer) > self.max_request_size:
                    raise RequestTooLarge(f"Request too large: {len(self._buffer)} bytes")

            header_end = self._buffer.find(b"\r\n\r\n")
            body_start = header_end + 4
            content_length = self._parse_content_length(self._buffer[:header_end])

            if body_start + content_length > self.max_request_size:
                raise RequestTooLarge(
                    f"Request too large: {body_start + content_length} bytes"
                )

            while len(self._buffer) - body_start < content_length:
                chunk = self._recv(deadline=deadline)
                if not chunk:
                    break  # parser reports the short body
                self._buffer += chunk

            request_end = body_start + content_length
            request_data = self._buffer[:request_end]
            # Pipelined follow-up requests stay buffered
            self._buffer = self._buffer[request_end:]

            self.requests_handled += 1
            self.last_activity = time.monotonic()
            return request_data

        except socket.timeout:
            if waiting:
                logger.debug(f"[{self.id}] Keep-alive timeout")
                return None
            raise TimeoutError("Request read timeout")

        finally:
            self._idle = False
            if not self.is_closed:
                try:
                    self.socket.settimeout(self.timeout)
                except OSError:
                    pass  # aborted concurrently

    def _recv(self, deadline: Optional[float] = None, timeout: Optional[float] = None) -> bytes:
        """
        recv() bounded by an absolute deadline or a relative timeout.

        A dead or aborted socket reads as end-of-stream.
        """
        if deadline is not None:
            timeout = deadline - time.monotonic()
            if timeout <= 0:
                raise socket.timeout("read deadline passed")
        try:
            if timeout is not None:
                self.socket.settimeout(timeout)
            data = self.socket.recv(self.buffer_size)
        except socket.timeout:
            raise
        except OSError:
            return b""
        self.last_activity = time.monotonic()
        return data

    def _parse_content_length(self, headers: bytes) -> int:
        """
        Content-Length from raw header bytes, 0 when absent.

        Invalid values also count as 0 here; the request parser rejects
        them with 400.
        """
        for line in headers.decode("latin-1").lower().split("\r\n"):
            if line.startswith("content-length:"):
                try:
                    return max(0, int(line.split(":", 1)[1].strip()))
                except ValueError:
                    return 0
        return 0

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Send response bytes.

        Returns:
            True if everything was sent, False if the connection is gone.
        """
        self.state = ConnectionState.WRITING

        try:
            self.socket.sendall(data)
        except OSError as e:
            logger.debug(f"[{self.id}] Send failed: {e}")
            return False

        self.last_activity = time.monotonic()
        return True

    def set_keep_alive(self):
        self.state = ConnectionState.KEEP_ALIVE

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """Orderly close: FIN, drain briefly, release the descriptor."""
        with self._lock:
            if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
                return
            self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # peer already gone

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        self._release()
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def abort(self):
        """Close immediately. Callable from any thread."""
        with self._lock:
            if self.state == ConnectionState.CLOSED:
                return
            self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass

        self._release()
        logger.debug(f"[{self.id}] Connection aborted")

    def _release(self):
        try:
            self.socket.close()
        except OSError:
            pass
        self.state = ConnectionState.CLOSED

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
