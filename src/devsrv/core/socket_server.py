"""
=============================================================================
LISTENING SOCKET
=============================================================================

One SocketServer per service port. It owns the listening socket and the
accept loop, and nothing else: it does not install signal handlers (the
Coordinator owns signals for the whole process) and it does not process
requests (the Listener hands each Connection to its worker pool).

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      SocketServer lifecycle                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   bind()             create socket, bind, listen                     │
    │                      raises OSError (port in use, permission)        │
    │                                                                      │
    │   serve(callback)    accept loop, BLOCKS until stop()                │
    │        └──► while running:                                           │
    │                accept()      wakes every poll_interval               │
    │                Connection()  wrap the client socket                  │
    │                callback(conn)                                        │
    │                                                                      │
    │   stop()             ask the loop to exit; any thread                │
    │   close()            release the listening socket                    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
SOCKET OPTIONS
=============================================================================

    SO_REUSEADDR   restart right away despite TIME_WAIT sockets
    TCP_NODELAY    send responses without Nagle delay

SO_REUSEPORT is deliberately NOT set: two services configured on the
same port must fail to bind rather than silently share it.
=============================================================================
"""

import socket
import logging
from typing import Callable, Optional

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)


class SocketServer:
    """
    TCP listening socket with an interruptible accept loop.

    Usage:
        server = SocketServer(config, port=8080)
        server.bind()                 # raises OSError on failure
        server.serve(on_connection)   # blocks until stop()
        server.close()
    """

    def __init__(self, config: ServerConfig, port: int):
        self.config = config
        self.port = port

        self._socket: Optional[socket.socket] = None
        self._running = False

    def _create_socket(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.config.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)

        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # accept() wakes up this often to notice stop()
        sock.settimeout(self.config.poll_interval)

        return sock

    def bind(self):
        """
        Bind and listen.

        Raises:
            OSError: The address cannot be bound. The socket is released.
        """
        sock = self._create_socket()

        try:
            sock.bind((self.config.host, self.port))
            sock.listen(self.config.backlog)
        except OSError:
            sock.close()
            raise

        self._socket = sock
        self._running = True
        logger.debug(f"Listening on {self.config.host}:{self.port}")

    def serve(self, connection_handler: Callable[[Connection], None]):
        """
        Accept connections until stop() is called.

        Raises:
            RuntimeError: If bind() has not succeeded.
            OSError: If accept() fails while still running.
        """
        if self._socket is None:
            raise RuntimeError("serve() called before bind()")

        try:
            self._accept_loop(connection_handler)
        finally:
            self._running = False

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError:
                if not self._running:
                    break  # close() raced the accept
                raise

            if not self._running:
                # Arrived after stop(); refuse instead of serving
                client_socket.close()
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            conn = Connection(
                socket=client_socket,
                address=client_address[:2],
                buffer_size=self.config.buffer_size,
                timeout=self.config.read_timeout,
                keep_alive_timeout=self.config.keep_alive_timeout,
                max_request_size=self.config.max_request_size,
            )
            connection_handler(conn)

    def stop(self):
        """Ask the accept loop to exit within poll_interval. Idempotent."""
        self._running = False

    def close(self):
        """
        Release the listening socket. New connections are refused.

        Raises:
            OSError: If closing the socket fails.
        """
        self._running = False
        sock, self._socket = self._socket, None
        if sock is not None:
            sock.close()
