"""
Integration tests for the Coordinator with real listeners and ports.
"""

import logging
import os
import signal
import socket
import sys
import threading
from pathlib import Path

import pytest

from devsrv import Coordinator, ExitCode, Listener, ServiceDescriptor

from conftest import wait_until


@pytest.fixture
def second_site(tmp_path: Path) -> Path:
    root = tmp_path / "mocks"
    root.mkdir()
    (root / "users.json").write_text('[{"id": 1}]\n')
    return root


class TestCoordinator:
    """Several listeners in one process."""

    def test_serves_every_service(self, site, second_site, free_ports, run_coordinator, http, caplog):
        caplog.set_level(logging.INFO, logger="devsrv")
        web, api = free_ports(2)

        runner = run_coordinator([
            ServiceDescriptor(web, site, "site"),
            ServiceDescriptor(api, second_site, "mocks"),
        ])

        assert runner.coordinator.active_ports == sorted([web, api])
        assert http(web, "/about").body == b"<h1>about</h1>\n"

        users = http(api, "/users.json")
        assert users.status == 200
        assert users.header("Access-Control-Allow-Origin") == "*"

        runner.coordinator.interrupt()

        assert runner.join() is ExitCode.OK
        assert "Received SIGINT, shutting down" in caplog.messages
        assert f"{web} → site" in caplog.messages
        assert f"{api} → mocks" in caplog.messages
        assert f"{web} → Stopped" in caplog.messages
        assert f"{api} → Stopped" in caplog.messages

    def test_all_binds_fail(self, site, free_ports, config, caplog):
        ports = free_ports(2)
        blockers = []
        for port in ports:
            s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            s.bind(("127.0.0.1", port))
            s.listen(1)
            blockers.append(s)

        try:
            coordinator = Coordinator(config)
            result = {}
            thread = threading.Thread(
                target=lambda: result.setdefault("code", coordinator.run(
                    [ServiceDescriptor(p, site, "site") for p in ports]
                )),
                daemon=True,
            )
            thread.start()
            thread.join(5.0)
        finally:
            for s in blockers:
                s.close()

        assert result["code"] is ExitCode.COLLAPSED
        assert "No services left running" in caplog.messages
        for port in ports:
            assert any(m.startswith(f"{port} → Failed") for m in caplog.messages)

    def test_dead_accept_loop_collapses(self, site, free_port, config, caplog):
        """A listener that bound fine and then died counts toward collapse."""
        caplog.set_level(logging.INFO, logger="devsrv")

        def listener_with_broken_accept(descriptor, cfg, palette, on_stopped):
            listener = Listener(descriptor, cfg, palette, on_stopped=on_stopped)

            def broken(handler):
                raise OSError("accept failed")

            listener._server.serve = broken
            return listener

        coordinator = Coordinator(config, listener_factory=listener_with_broken_accept)
        result = {}
        thread = threading.Thread(
            target=lambda: result.setdefault("code", coordinator.run(
                [ServiceDescriptor(free_port, site, "site")]
            )),
            daemon=True,
        )
        thread.start()
        thread.join(5.0)

        assert result["code"] is ExitCode.COLLAPSED
        assert f"{free_port} → site" in caplog.messages
        assert any(m.startswith(f"{free_port} → Failed") for m in caplog.messages)
        assert "No services left running" in caplog.messages

    def test_duplicate_port_sibling_keeps_serving(self, site, second_site, free_port,
                                                  run_coordinator, http):
        runner = run_coordinator([
            ServiceDescriptor(free_port, site, "site"),
            ServiceDescriptor(free_port, second_site, "mocks"),
        ])

        assert wait_until(lambda: runner.coordinator.listeners[1].outcome is not None)
        assert runner.coordinator.active_ports == [free_port]
        assert http(free_port, "/about").status == 200

        runner.coordinator.interrupt()
        assert runner.join() is ExitCode.OK

    def test_second_interrupt(self, site, free_port, config, run_coordinator):
        config.shutdown_timeout = 30.0
        runner = run_coordinator([ServiceDescriptor(free_port, site, "site")], config)
        listener = runner.coordinator.listeners[0]

        stalled = socket.create_connection(("127.0.0.1", free_port), timeout=5)
        try:
            stalled.sendall(b"GET /about HTTP/1.1\r\nHost: te")

            def started():
                with listener._connections_lock:
                    return any(c._buffer for c in listener._connections)

            assert wait_until(started)

            runner.coordinator.interrupt()
            assert wait_until(lambda: listener.stopping)

            runner.coordinator.interrupt()
            assert runner.join() is ExitCode.INTERRUPTED
        finally:
            stalled.close()
            listener.wait(timeout=5.0)

    def test_no_services(self, config):
        assert Coordinator(config).run([]) is ExitCode.OK

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
    def test_sigterm_on_main_thread(self, site, free_port, config, caplog):
        """A real signal is routed to the coordinator and handlers are restored."""
        caplog.set_level(logging.INFO, logger="devsrv")
        coordinator = Coordinator(config)
        previous = signal.getsignal(signal.SIGTERM)

        def send_signal():
            if coordinator.wait_started(timeout=5.0):
                os.kill(os.getpid(), signal.SIGTERM)

        sender = threading.Thread(target=send_signal, daemon=True)
        sender.start()

        code = coordinator.run([ServiceDescriptor(free_port, site, "site")])
        sender.join(5.0)

        assert code is ExitCode.OK
        assert "Received SIGTERM, shutting down" in caplog.messages
        assert signal.getsignal(signal.SIGTERM) == previous
