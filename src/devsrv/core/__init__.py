"""
=============================================================================
CORE NETWORKING
=============================================================================

The per-port plumbing every Listener is built from.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  • Listening socket for ONE port                                    │
    │  • Interruptible accept() loop                                      │
    │  • No signal handling (the Coordinator owns signals)                │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ each accepted Connection
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          THREAD POOL                                 │
    │  • Bounded queue, workers scale from min to max                     │
    │  • Counts in-flight connections so shutdown can drain them          │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ worker runs the keep-alive loop
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONNECTION                                  │
    │  • Buffered request reading, response writing                      │
    │  • Knows when it is idle between requests                          │
    │  • close() for the owner, abort() for a stopping listener          │
    └─────────────────────────────────────────────────────────────────────┘
=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState, RequestTooLarge
from .thread_pool import ThreadPool

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "RequestTooLarge",
    "ThreadPool",
]
