"""
=============================================================================
LIFECYCLE COORDINATOR
=============================================================================

Starts one Listener per service, waits for a reason to stop, stops them
all together and reports how it went as an exit code.

=============================================================================
EVENTS
=============================================================================

Everything the Coordinator reacts to arrives on one queue:

    signal handler / interrupt()  ──►  Interrupted(signum)
    listener on_stopped callback  ──►  ListenerStopped(port, outcome, ...)

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          run(services)                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   start every Listener            remaining = N                      │
    │          │                                                           │
    │          ▼                                                           │
    │   WAITING ── ListenerStopped ──► remaining -= 1                      │
    │      │                             remaining == 0 ──► COLLAPSED (1)  │
    │      │                                                               │
    │      └── Interrupted ──► request_shutdown() on a snapshot of the     │
    │                          active set (each listener drains on its     │
    │                          own thread, with its own timeout)           │
    │                                  │                                   │
    │                                  ▼                                   │
    │   DRAINING ── ListenerStopped ──► remaining -= 1                     │
    │      │                             remaining == 0 ──► OK (0)         │
    │      │                                                               │
    │      └── Interrupted again ─────────────────────────► INTERRUPTED    │
    │                                                       (130)          │
    └─────────────────────────────────────────────────────────────────────┘

A single consumer handles the events in arrival order, so a signal and
the last listener stopping can race without a missed wakeup or a
double shutdown: whichever is dequeued first decides.

queue.SimpleQueue is used because its put() is reentrant. A signal
handler runs between bytecodes of the main thread, possibly in the
middle of the Coordinator's own get(), and must not deadlock there.
=============================================================================
"""

import logging
import queue
import signal
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Dict, Iterable, List, Optional, Union

from .colors import Palette, PLAIN
from .config import ServerConfig
from .listener import Listener, ListenerStopped
from .services import ServiceDescriptor


logger = logging.getLogger(__name__)

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ExitCode(IntEnum):
    OK = 0
    COLLAPSED = 1
    CONFIG_ERROR = 2
    INTERRUPTED = 130


@dataclass(frozen=True)
class Interrupted:
    signum: int

    @property
    def name(self) -> str:
        try:
            return signal.Signals(self.signum).name
        except ValueError:
            return f"signal {self.signum}"


Event = Union[Interrupted, ListenerStopped]

ListenerFactory = Callable[..., Listener]


class Coordinator:
    """
    Runs a set of services until interrupted.

    Usage:
        coordinator = Coordinator(config, palette)
        exit_code = coordinator.run(load_services("services"))

    From tests (run() on a background thread, no signal handlers):
        coordinator.interrupt()
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        palette: Optional[Palette] = None,
        listener_factory: ListenerFactory = Listener,
    ):
        self.config = config or ServerConfig()
        self.palette = palette or PLAIN
        self._listener_factory = listener_factory

        self._events: "queue.SimpleQueue[Event]" = queue.SimpleQueue()

        # Active Listener Set: port → the listener that owns it
        self._active: Dict[int, Listener] = {}
        self._active_lock = threading.Lock()

        self._started = threading.Event()
        self._listeners: List[Listener] = []

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def interrupt(self, signum: int = signal.SIGINT):
        """Deliver an interrupt. Safe from signal handlers and any thread."""
        self._events.put(Interrupted(signum))

    @property
    def active_ports(self) -> List[int]:
        """Ports of listeners that have not stopped yet."""
        with self._active_lock:
            return sorted(self._active)

    @property
    def listeners(self) -> List[Listener]:
        """Every listener started by run(), including stopped ones."""
        return list(self._listeners)

    def wait_started(self, timeout: Optional[float] = None) -> bool:
        """Block until run() has started every listener."""
        return self._started.wait(timeout)

    def run(self, services: Iterable[ServiceDescriptor]) -> ExitCode:
        """
        Serve until interrupted or until every listener has stopped.

        Returns:
            ExitCode.OK           interrupted, every listener stopped
            ExitCode.COLLAPSED    every listener stopped on its own
            ExitCode.INTERRUPTED  interrupted twice, did not wait for drains
        """
        services = list(services)

        if not services:
            logger.warning("No services configured, nothing to serve")
            self._started.set()
            return ExitCode.OK

        with self._signal_handlers():
            return self._run(services)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _run(self, services: List[ServiceDescriptor]) -> ExitCode:
        remaining = len(services)

        for descriptor in services:
            listener = self._listener_factory(
                descriptor,
                self.config,
                self.palette,
                on_stopped=self._on_listener_stopped,
            )
            self._listeners.append(listener)

            # Registered before start(): a failed bind reports synchronously
            with self._active_lock:
                self._active.setdefault(descriptor.port, listener)

            listener.start()

        self._started.set()

        # ─────────────────────────────────────────────────────────────────
        # WAIT FOR INTERRUPT OR COLLAPSE
        # ─────────────────────────────────────────────────────────────────
        while True:
            event = self._next_event()
            if isinstance(event, Interrupted):
                logger.info(f"Received {event.name}, shutting down")
                break

            remaining -= 1
            if remaining == 0:
                logger.error("No services left running")
                return ExitCode.COLLAPSED

        # ─────────────────────────────────────────────────────────────────
        # SHUT DOWN WHAT IS LEFT
        # ─────────────────────────────────────────────────────────────────
        with self._active_lock:
            snapshot = list(self._active.values())

        for listener in snapshot:
            listener.request_shutdown(self.config.shutdown_timeout)

        while remaining > 0:
            event = self._next_event()
            if isinstance(event, Interrupted):
                logger.warning(
                    f"Received {event.name} again, exiting without waiting "
                    f"for {remaining} service(s)"
                )
                return ExitCode.INTERRUPTED
            remaining -= 1

        return ExitCode.OK

    def _on_listener_stopped(self, event: ListenerStopped):
        """Completion callback; runs on whichever thread ended the listener."""
        with self._active_lock:
            if self._active.get(event.port) is event.listener:
                del self._active[event.port]
        self._events.put(event)

    def _next_event(self) -> Event:
        # Timed get: a blocking wait must not keep signal handlers from running
        while True:
            try:
                return self._events.get(timeout=self.config.poll_interval)
            except queue.Empty:
                continue

    @contextmanager
    def _signal_handlers(self):
        """Route SIGINT/SIGTERM to interrupt() while run() is active."""
        if threading.current_thread() is not threading.main_thread():
            yield
            return

        def handler(signum, frame):
            self.interrupt(signum)

        previous = {}
        for signum in HANDLED_SIGNALS:
            previous[signum] = signal.signal(signum, handler)

        try:
            yield
        finally:
            for signum, original in previous.items():
                signal.signal(signum, original)
