"""
=============================================================================
DEV-SRV: SEVERAL STATIC TREES, ONE PROCESS
=============================================================================

dev-srv serves a handful of local directories, each on its own port,
and stops all of them together on Ctrl+C.

    services file                      one process
    ─────────────                      ────────────────────────────────
    8080=/home/me/git/site      ──►    :8080  Listener ─► /home/me/git/site
    9090=../api-mocks/public    ──►    :9090  Listener ─► ../api-mocks/public
                                          ▲
                                          │ start / interrupt / collapse
                                       Coordinator

Every response carries "Access-Control-Allow-Origin: *", and a path
without an extension that does not exist is retried with ".html"
(/about → about.html), so sites and the mock APIs they call can be
developed side by side.

=============================================================================
PACKAGE LAYOUT
=============================================================================

    coordinator.py   Coordinator: lifecycle of all listeners, exit codes
    listener.py      Listener: one port, accept loop, graceful shutdown
    services.py      services file → ServiceDescriptor list
    config.py        ServerConfig, Verbosity, ConfigError
    colors.py        Palette for colored log lines
    core/            SocketServer, Connection, ThreadPool
    http/            request parsing, response building, MIME types
    handlers/        StaticFileHandler and the FileSystem it reads
    middleware/      CORS header, request logging

=============================================================================
QUICK START
=============================================================================

    from devsrv import Coordinator, ServerConfig, load_services

    exit_code = Coordinator(ServerConfig()).run(load_services("services"))

=============================================================================
"""

__version__ = "1.0.0"

# Submodules import __version__ from here, so it must be defined first
from .config import ServerConfig, Verbosity, ConfigError  # noqa: E402
from .services import ServiceDescriptor, load_services, parse_services  # noqa: E402
from .listener import Listener, ListenerState, ListenerStopped, ShutdownOutcome  # noqa: E402
from .coordinator import Coordinator, ExitCode, Interrupted  # noqa: E402

__all__ = [
    "Coordinator",
    "ExitCode",
    "Interrupted",
    "Listener",
    "ListenerState",
    "ListenerStopped",
    "ShutdownOutcome",
    "ServerConfig",
    "Verbosity",
    "ConfigError",
    "ServiceDescriptor",
    "load_services",
    "parse_services",
    "__version__",
]
