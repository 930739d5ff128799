"""
=============================================================================
LISTENER
=============================================================================

One bound HTTP server for one ServiceDescriptor.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         Listener :8080                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   thread "listener-8080"                                             │
    │       SocketServer.serve() ──► _handle_connection(conn)              │
    │                                      │                               │
    │                                      ▼                               │
    │   ThreadPool "8080"            _process_connection(conn)             │
    │                                 read → parse → pipeline → send       │
    │                                 (keep-alive loop)                    │
    │                                                                      │
    │   pipeline = RequestLog ─► CORS ─► StaticFileHandler(fs)             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
LIFECYCLE
=============================================================================

                 start() ok                request_shutdown()
        NEW ─────────────────► RUNNING ─────────────────────► STOPPING
         │                        │                               │
         │ bind fails             │ accept loop dies              │ drained / forced
         ▼                        ▼                               ▼
       FAILED ◄──────────────── FAILED                         STOPPED

Whichever way a listener ends, on_stopped receives exactly one
ListenerStopped event. A bind failure, an accept loop that dies on its
own and a requested shutdown all report through the same callback; the
outcome field tells them apart.

=============================================================================
SHUTDOWN
=============================================================================

    1. stop accepting          accept loop exits within poll_interval,
                               listening socket is closed
    2. close idle connections  keep-alive connections waiting for their
                               next request are closed right away
    3. drain                   in-flight requests get until the timeout,
                               and answer with "Connection: close"
    4. force                   whatever is still open is aborted

request_shutdown() only starts this; it never blocks the caller. The
listener's own thread runs the steps and then fires on_stopped.
=============================================================================
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Set

from .colors import Palette, PLAIN
from .config import ServerConfig
from .core import Connection, ConnectionState, RequestTooLarge, SocketServer, ThreadPool
from .handlers import StaticFileHandler, service_filesystem
from .http import HTTPParseError, HTTPStatus, RequestParser, error_response, internal_error
from .middleware import CORSMiddleware, MiddlewarePipeline, RequestLogMiddleware, add_cors_header
from .services import ServiceDescriptor


logger = logging.getLogger(__name__)

# Granularity of the drain loop: how often idle connections are re-swept
DRAIN_SLICE = 0.05


class ListenerState(Enum):
    NEW = "new"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    FAILED = "failed"


class ShutdownOutcome(Enum):
    """How a listener ended."""

    GRACEFUL = "graceful"   # requested, every connection finished in time
    FORCED = "forced"       # requested, stragglers were aborted at the timeout
    ERROR = "error"         # requested, but releasing a resource failed
    FAILED = "failed"       # not requested: bind failure or dead accept loop


@dataclass(frozen=True)
class ListenerStopped:
    """Delivered exactly once per listener through its on_stopped callback."""

    port: int
    label: str
    outcome: ShutdownOutcome
    requested: bool
    error: Optional[str] = None
    listener: Optional["Listener"] = field(default=None, compare=False, repr=False)


StopCallback = Callable[[ListenerStopped], None]


class Listener:
    """
    Serves one static tree on one port.

    Usage:
        listener = Listener(descriptor, config, palette, on_stopped=events.put)
        if listener.start():          # binds now, logs "8080 → ./site"
            ...
        outcome = listener.shutdown(timeout=2.0)
    """

    def __init__(
        self,
        descriptor: ServiceDescriptor,
        config: Optional[ServerConfig] = None,
        palette: Optional[Palette] = None,
        on_stopped: Optional[StopCallback] = None,
    ):
        self.descriptor = descriptor
        self.config = config or ServerConfig()
        self.palette = palette or PLAIN
        self._on_stopped = on_stopped

        self.state = ListenerState.NEW
        self.outcome: Optional[ShutdownOutcome] = None

        self._server = SocketServer(self.config, descriptor.port)
        self._pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            queue_size=self.config.queue_size,
            name=str(descriptor.port),
        )
        self._parser = RequestParser(max_request_size=self.config.max_request_size)
        self._handler = self._build_handler()

        self._connections: Set[Connection] = set()
        self._connections_lock = threading.Lock()

        self._lock = threading.Lock()
        self._shutdown_requested = threading.Event()
        self._shutdown_timeout = self.config.shutdown_timeout
        self._thread: Optional[threading.Thread] = None
        self._notified = False
        self._done = threading.Event()

    def _build_handler(self):
        static = StaticFileHandler(
            service_filesystem(self.descriptor.root, self.config.fallback_extension),
            index_file=self.config.index_file,
            directory_listing=self.config.directory_listing,
        )
        pipeline = MiddlewarePipeline(
            RequestLogMiddleware(
                self.descriptor.label,
                self.config.verbosity,
                self.palette,
                self.config.body_preview_limit,
            ),
            CORSMiddleware(),
        )
        return pipeline.wrap(static)

    def __repr__(self) -> str:
        return f"<Listener {self.descriptor} {self.state.value}>"

    @property
    def port(self) -> int:
        return self.descriptor.port

    @property
    def stopping(self) -> bool:
        return self._shutdown_requested.is_set()

    def _tag(self) -> str:
        return self.palette.yellow(self.port)

    # =========================================================================
    # START
    # =========================================================================

    def start(self) -> bool:
        """
        Bind the port and start serving on a new thread.

        Returns:
            True if serving. False if the bind failed; in that case the
            failure is already logged and on_stopped already called.

        Raises:
            RuntimeError: If the listener was started before.
        """
        with self._lock:
            if self.state is not ListenerState.NEW:
                raise RuntimeError(f"Listener for port {self.port} already started")

        root = self.descriptor.root
        if not root.is_dir():
            logger.warning(f"{self._tag()} → {self.palette.red('missing')} directory {root}")

        try:
            self._server.bind()
        except OSError as e:
            reason = e.strerror or str(e)
            logger.error(f"{self._tag()} → {self.palette.red('Failed')}: {reason}")
            self._finish(ShutdownOutcome.FAILED, requested=False, error=reason)
            return False

        self._pool.start()

        with self._lock:
            self.state = ListenerState.RUNNING

        self._thread = threading.Thread(
            target=self._run,
            name=f"listener-{self.port}",
            daemon=True,
        )
        self._thread.start()

        logger.info(f"{self._tag()} → {self.palette.cyan(self.descriptor.label)}")
        return True

    # =========================================================================
    # SHUTDOWN
    # =========================================================================

    def request_shutdown(self, timeout: Optional[float] = None):
        """
        Ask the listener to stop. Returns immediately.

        Only the first call counts; later calls (and calls on a listener
        that already ended) do nothing. Safe from any thread.

        Args:
            timeout: Drain time for in-flight requests. Defaults to
                     config.shutdown_timeout.
        """
        with self._lock:
            if self._shutdown_requested.is_set():
                return
            if self.state is ListenerState.NEW:
                # Never started: nothing to drain
                self._shutdown_requested.set()
                finish_now = True
            elif self.state is ListenerState.RUNNING:
                self._shutdown_requested.set()
                if timeout is not None:
                    self._shutdown_timeout = timeout
                self.state = ListenerState.STOPPING
                finish_now = False
            else:
                return

        if finish_now:
            self._finish(ShutdownOutcome.GRACEFUL, requested=True)
        else:
            self._server.stop()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the listener has ended and on_stopped has run."""
        return self._done.wait(timeout)

    def shutdown(self, timeout: Optional[float] = None) -> Optional[ShutdownOutcome]:
        """request_shutdown() and wait for the outcome."""
        self.request_shutdown(timeout)
        self.wait()
        return self.outcome

    # =========================================================================
    # LISTENER THREAD
    # =========================================================================

    def _run(self):
        error: Optional[BaseException] = None

        try:
            self._server.serve(self._handle_connection)
        except Exception as e:
            error = e

        requested = self.stopping
        if not requested:
            if error is None:
                error = RuntimeError("accept loop exited")
            logger.error(f"{self._tag()} → {self.palette.red('Failed')}: {error}")
            with self._lock:
                self.state = ListenerState.STOPPING

        outcome = self._stop_serving(self._shutdown_timeout)

        if not requested:
            self._finish(ShutdownOutcome.FAILED, requested=False, error=str(error))
        else:
            self._finish(outcome, requested=True)

    def _stop_serving(self, timeout: float) -> ShutdownOutcome:
        """Close the socket, drain, force. Returns what happened."""
        outcome = ShutdownOutcome.GRACEFUL

        try:
            self._server.close()
        except OSError as e:
            logger.error(f"{self._tag()} → error closing socket: {e}")
            outcome = ShutdownOutcome.ERROR

        deadline = time.monotonic() + timeout
        drained = False
        while True:
            self._close_idle_connections()
            remaining = deadline - time.monotonic()
            if self._pool.drain(timeout=max(0.0, min(DRAIN_SLICE, remaining))):
                drained = True
                break
            if remaining <= 0:
                break

        if not drained:
            aborted = self._abort_connections()
            logger.warning(
                f"{self._tag()} → {self.palette.magenta('Forced')}: "
                f"{aborted} connection(s) still open after {timeout:g}s"
            )
            if outcome is ShutdownOutcome.GRACEFUL:
                outcome = ShutdownOutcome.FORCED

        # Aborted sockets wake their workers, so this join is short
        self._pool.shutdown(wait=True, timeout=max(1.0, self.config.poll_interval))
        return outcome

    def _close_idle_connections(self):
        with self._connections_lock:
            idle = [c for c in self._connections if c.is_idle]
        for conn in idle:
            conn.abort()

    def _abort_connections(self) -> int:
        with self._connections_lock:
            remaining = list(self._connections)
        for conn in remaining:
            conn.abort()
        return len(remaining)

    def _finish(self, outcome: ShutdownOutcome, requested: bool, error: Optional[str] = None):
        """Record the outcome and deliver the stop event, once."""
        with self._lock:
            if self._notified:
                return
            self._notified = True
            self.outcome = outcome
            if outcome is ShutdownOutcome.FAILED:
                self.state = ListenerState.FAILED
            else:
                self.state = ListenerState.STOPPED

        if outcome is ShutdownOutcome.ERROR:
            logger.info(f"{self._tag()} → {self.palette.cyan('Stopped')} with errors")
        elif outcome is not ShutdownOutcome.FAILED:
            logger.info(f"{self._tag()} → {self.palette.cyan('Stopped')}")

        event = ListenerStopped(
            port=self.port,
            label=self.descriptor.label,
            outcome=outcome,
            requested=requested,
            error=error,
            listener=self,
        )

        try:
            if self._on_stopped is not None:
                self._on_stopped(event)
        except Exception:
            logger.exception(f"{self._tag()} → stop callback failed")
        finally:
            self._done.set()

    # =========================================================================
    # CONNECTIONS
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """Runs on the listener thread for every accepted connection."""
        with self._connections_lock:
            self._connections.add(conn)

        try:
            submitted = self._pool.submit(self._process_connection, args=(conn,))
        except RuntimeError:
            submitted = False

        if not submitted:
            logger.warning(f"[{conn.id}] {self.port}: worker pool full, rejecting connection")
            self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE)
            self._release(conn)

    def _process_connection(self, conn: Connection):
        """Keep-alive loop for one connection (runs on a pool worker)."""
        try:
            while not conn.is_closed:
                try:
                    raw_request = conn.read_request()
                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT)
                    break
                except RequestTooLarge:
                    self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE)
                    break

                if raw_request is None:
                    break

                try:
                    request = self._parser.parse(raw_request, conn.address)
                except HTTPParseError as e:
                    logger.debug(f"[{conn.id}] {e}")
                    self._send_error(conn, HTTPStatus(e.status_code))
                    break

                conn.state = ConnectionState.PROCESSING

                try:
                    response = self._handler(request)
                except Exception as e:
                    logger.exception(f"[{conn.id}] Handler error: {e}")
                    response = add_cors_header(internal_error())

                keep_alive = (
                    self.config.keep_alive
                    and request.is_keep_alive
                    and not self.stopping
                )
                if keep_alive:
                    response.headers.setdefault("Connection", "keep-alive")
                    response.headers.setdefault(
                        "Keep-Alive", f"timeout={int(self.config.keep_alive_timeout)}"
                    )
                else:
                    response.headers["Connection"] = "close"

                data = response.to_bytes(
                    self.config.server_name,
                    include_body=request.method != "HEAD",
                )
                if not conn.send_response(data):
                    break

                if not keep_alive:
                    break

                conn.set_keep_alive()
        finally:
            self._release(conn)

    def _send_error(self, conn: Connection, status: HTTPStatus):
        """Error sent outside the pipeline; still carries the CORS header."""
        response = add_cors_header(error_response(status))
        response.headers["Connection"] = "close"
        conn.send_response(response.to_bytes(self.config.server_name))

    def _release(self, conn: Connection):
        conn.close()
        with self._connections_lock:
            self._connections.discard(conn)
