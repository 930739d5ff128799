"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Settings shared by every listener in the process.

What is served where comes from the services file (see services.py).
HOW each listener behaves (timeouts, pool size, logging verbosity) is
the same for all of them and lives here.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── dev-srv -v short --shutdown-timeout 5                      │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── DEVSRV_VERBOSITY=short dev-srv                             │
    │                                                                      │
    │   3. Default values (in this dataclass)                             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The resulting ServerConfig is handed to the Coordinator and each Listener
at construction time. Nothing reads verbosity or timeouts from module
globals.
=============================================================================
"""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from . import __version__


class ConfigError(ValueError):
    """
    A configuration problem that stops the process before any listener
    starts: missing services file, malformed line, invalid setting.

    Attributes:
        path: The offending file, when the error came from one.
        line: 1-based line number within that file, when known.
    """

    def __init__(self, message: str, path: Optional[str] = None, line: Optional[int] = None):
        self.path = path
        self.line = line
        location = ""
        if path is not None:
            location = f"{path}:{line}: " if line is not None else f"{path}: "
        super().__init__(f"{location}{message}")


class Verbosity(Enum):
    """
    How much of each request the request logger writes.

        NONE    entry line only
        STATUS  entry line + completion line with status code
        SHORT   STATUS + bounded prefix of the response body
        LONG    STATUS + full response body
    """

    NONE = "none"
    STATUS = "status"
    SHORT = "short"
    LONG = "long"

    @classmethod
    def parse(cls, value: str) -> "Verbosity":
        """Case-insensitive lookup; raises ConfigError on unknown values."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            choices = ", ".join(v.value for v in cls)
            raise ConfigError(f"Unknown verbosity {value!r} (expected one of: {choices})")

    @property
    def logs_completion(self) -> bool:
        return self is not Verbosity.NONE

    @property
    def logs_body(self) -> bool:
        return self in (Verbosity.SHORT, Verbosity.LONG)


@dataclass
class ServerConfig:
    """
    Configuration shared by all listeners.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK      host, backlog, buffer_size, poll_interval
    HTTP         read_timeout, keep_alive, keep_alive_timeout, max_request_size
    WORKERS      min_workers, max_workers (per listener)
    SHUTDOWN     shutdown_timeout (per listener, not global)
    STATIC FILES index_file, directory_listing, fallback_extension
    LOGGING      verbosity, body_preview_limit, color, log_level

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """Interface every listener binds to. "0.0.0.0" exposes them on the LAN."""

    backlog: int = 128
    """Accept queue length per listening socket."""

    buffer_size: int = 8192
    """recv() chunk size in bytes."""

    poll_interval: float = 0.5
    """
    How often blocking loops (accept, coordinator wait) wake up to check
    for shutdown. Bounds how long "stop accepting" takes to be observed.
    """

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    read_timeout: float = 5.0
    """
    Seconds a client gets to deliver a complete request. Bounds resource
    usage from slow or stalled clients.
    """

    keep_alive: bool = True
    """Honor HTTP/1.1 persistent connections."""

    keep_alive_timeout: float = 5.0
    """Idle time after which a kept-alive connection is closed."""

    max_request_size: int = 1024 * 1024
    """Upper bound on request head + body. Static GETs are tiny."""

    # ─────────────────────────────────────────────────────────────────────
    # WORKER SETTINGS (per listener)
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 2
    max_workers: int = 16
    queue_size: int = 64

    # ─────────────────────────────────────────────────────────────────────
    # SHUTDOWN
    # ─────────────────────────────────────────────────────────────────────

    shutdown_timeout: float = 2.0
    """
    How long each listener lets in-flight requests drain after shutdown
    is requested before it force-closes the remaining connections.
    """

    # ─────────────────────────────────────────────────────────────────────
    # STATIC FILES
    # ─────────────────────────────────────────────────────────────────────

    index_file: str = "index.html"
    directory_listing: bool = True
    fallback_extension: str = ".html"
    """Appended to extension-less paths that do not exist (/about → about.html)."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    verbosity: Verbosity = Verbosity.NONE
    body_preview_limit: int = 256
    """Bytes of response body shown per request at Verbosity.SHORT."""

    color: bool = False
    log_level: str = "INFO"

    server_name: str = f"dev-srv/{__version__}"

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "ServerConfig":
        """
        Create configuration from environment variables.

            DEVSRV_HOST              bind host (default: 127.0.0.1)
            DEVSRV_READ_TIMEOUT      seconds (default: 5)
            DEVSRV_SHUTDOWN_TIMEOUT  seconds (default: 2)
            DEVSRV_WORKERS           max workers per listener (default: 16)
            DEVSRV_VERBOSITY         none|status|short|long (default: none)
            DEVSRV_LOG_LEVEL         DEBUG|INFO|WARNING|ERROR (default: INFO)

        Raises:
            ConfigError: If a numeric variable does not parse.
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        def number(name: str, default, kind=float):
            raw = env.get(name)
            if raw is None or raw == "":
                return default
            try:
                return kind(raw)
            except ValueError:
                raise ConfigError(f"{name} must be a number, got {raw!r}")

        return cls(
            host=env.get("DEVSRV_HOST", defaults.host),
            read_timeout=number("DEVSRV_READ_TIMEOUT", defaults.read_timeout),
            keep_alive_timeout=number("DEVSRV_READ_TIMEOUT", defaults.keep_alive_timeout),
            shutdown_timeout=number("DEVSRV_SHUTDOWN_TIMEOUT", defaults.shutdown_timeout),
            max_workers=number("DEVSRV_WORKERS", defaults.max_workers, int),
            verbosity=Verbosity.parse(env.get("DEVSRV_VERBOSITY", defaults.verbosity.value)),
            log_level=env.get("DEVSRV_LOG_LEVEL", defaults.log_level).upper(),
        )

    def validate(self) -> None:
        """
        Validate configuration values. Fail fast, before any socket is bound.

        Raises:
            ConfigError: Describing the first invalid value found.
        """
        if self.backlog < 1:
            raise ConfigError("backlog must be >= 1")

        if self.buffer_size < 1024:
            raise ConfigError("buffer_size must be >= 1024")

        for name in ("read_timeout", "keep_alive_timeout", "shutdown_timeout", "poll_interval"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be > 0")

        if self.min_workers < 1:
            raise ConfigError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ConfigError("max_workers must be >= min_workers")

        if self.queue_size < 1:
            raise ConfigError("queue_size must be >= 1")

        if self.body_preview_limit < 0:
            raise ConfigError("body_preview_limit must be >= 0")

        if self.fallback_extension and not self.fallback_extension.startswith("."):
            raise ConfigError("fallback_extension must start with '.'")

        if self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigError(f"Unknown log level: {self.log_level}")
