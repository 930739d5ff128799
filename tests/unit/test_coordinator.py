"""
Unit tests for the Coordinator, with fake listeners instead of sockets.
"""

import logging
import signal
import threading
from pathlib import Path
from typing import List, Optional

import pytest

from devsrv import (
    Coordinator,
    ExitCode,
    Interrupted,
    ListenerStopped,
    ServerConfig,
    ServiceDescriptor,
    ShutdownOutcome,
)

from conftest import wait_until


class FakeListener:
    """Stands in for Listener; behavior is chosen per port by the test."""

    fail_ports: set = set()
    hang_ports: set = set()
    created: List["FakeListener"] = []

    def __init__(self, descriptor, config, palette, on_stopped):
        self.descriptor = descriptor
        self.on_stopped = on_stopped
        self.shutdown_timeouts: List[Optional[float]] = []
        self.started = False
        FakeListener.created.append(self)

    @property
    def port(self):
        return self.descriptor.port

    def _stopped(self, outcome, requested):
        self.on_stopped(ListenerStopped(
            port=self.port,
            label=self.descriptor.label,
            outcome=outcome,
            requested=requested,
            listener=self,
        ))

    def start(self) -> bool:
        if self.port in self.fail_ports:
            self._stopped(ShutdownOutcome.FAILED, requested=False)
            return False
        self.started = True
        return True

    def request_shutdown(self, timeout=None):
        self.shutdown_timeouts.append(timeout)
        if self.port in self.hang_ports:
            return
        threading.Thread(
            target=self._stopped, args=(ShutdownOutcome.GRACEFUL, True), daemon=True
        ).start()


@pytest.fixture(autouse=True)
def reset_fakes():
    FakeListener.fail_ports = set()
    FakeListener.hang_ports = set()
    FakeListener.created = []


def services(*ports) -> List[ServiceDescriptor]:
    return [ServiceDescriptor(port, Path(f"/srv/{port}"), f"site{port}") for port in ports]


def run_in_thread(coordinator: Coordinator, descriptors):
    result = {}
    thread = threading.Thread(
        target=lambda: result.setdefault("code", coordinator.run(descriptors)),
        daemon=True,
    )
    thread.start()
    assert coordinator.wait_started(timeout=5.0)
    return thread, result


@pytest.fixture
def coordinator() -> Coordinator:
    config = ServerConfig(poll_interval=0.02, shutdown_timeout=1.5)
    return Coordinator(config, listener_factory=FakeListener)


class TestCoordinator:
    """Lifecycle decisions, independent of networking."""

    def test_no_services(self, coordinator, caplog):
        assert coordinator.run([]) is ExitCode.OK
        assert "No services configured, nothing to serve" in caplog.messages

    def test_interrupt_stops_everything(self, coordinator):
        thread, result = run_in_thread(coordinator, services(8001, 8002))
        assert coordinator.active_ports == [8001, 8002]

        coordinator.interrupt()
        thread.join(5.0)

        assert result["code"] is ExitCode.OK
        assert coordinator.active_ports == []
        assert all(l.shutdown_timeouts == [1.5] for l in FakeListener.created)

    def test_all_failed_collapses(self, coordinator, caplog):
        FakeListener.fail_ports = {8001, 8002}

        thread, result = run_in_thread(coordinator, services(8001, 8002))
        thread.join(5.0)

        assert result["code"] is ExitCode.COLLAPSED
        assert "No services left running" in caplog.messages
        assert all(l.shutdown_timeouts == [] for l in FakeListener.created)

    def test_partial_failure_keeps_serving(self, coordinator):
        FakeListener.fail_ports = {8002}

        thread, result = run_in_thread(coordinator, services(8001, 8002, 8003))

        assert coordinator.active_ports == [8001, 8003]
        assert thread.is_alive()

        coordinator.interrupt()
        thread.join(5.0)

        assert result["code"] is ExitCode.OK
        failed = [l for l in FakeListener.created if l.port == 8002][0]
        assert failed.shutdown_timeouts == []

    def test_duplicate_port_keeps_first_owner(self, coordinator):
        """The failed second bind must not evict the listener serving the port."""
        first_started = []

        class DuplicateAware(FakeListener):
            def start(self):
                if first_started:
                    self._stopped(ShutdownOutcome.FAILED, requested=False)
                    return False
                first_started.append(self)
                return super().start()

        coordinator._listener_factory = DuplicateAware
        thread, result = run_in_thread(coordinator, services(8001, 8001))

        assert coordinator.active_ports == [8001]

        coordinator.interrupt()
        thread.join(5.0)

        assert result["code"] is ExitCode.OK
        assert first_started[0].shutdown_timeouts == [1.5]

    def test_second_interrupt_exits_without_waiting(self, coordinator, caplog):
        caplog.set_level(logging.INFO, logger="devsrv")
        FakeListener.hang_ports = {8002}

        thread, result = run_in_thread(coordinator, services(8001, 8002))
        coordinator.interrupt(signal.SIGTERM)

        hung = [l for l in FakeListener.created if l.port == 8002][0]
        assert wait_until(lambda: hung.shutdown_timeouts)

        coordinator.interrupt()
        thread.join(5.0)

        assert result["code"] is ExitCode.INTERRUPTED
        assert "Received SIGTERM, shutting down" in caplog.messages
        assert any("Received SIGINT again" in m for m in caplog.messages)

    def test_listeners_exposed(self, coordinator):
        thread, _ = run_in_thread(coordinator, services(8001))

        assert [l.port for l in coordinator.listeners] == [8001]

        coordinator.interrupt()
        thread.join(5.0)


class TestInterrupted:
    def test_name(self):
        assert Interrupted(signal.SIGINT).name == "SIGINT"
        assert Interrupted(signal.SIGTERM).name == "SIGTERM"

    def test_unknown_signal(self):
        assert Interrupted(9999).name == "signal 9999"

    def test_exit_codes(self):
        assert int(ExitCode.OK) == 0
        assert int(ExitCode.COLLAPSED) == 1
        assert int(ExitCode.CONFIG_ERROR) == 2
        assert int(ExitCode.INTERRUPTED) == 130
