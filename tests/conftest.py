"""
pytest configuration and fixtures.
"""

import socket
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Generator, List, Optional
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from devsrv import Coordinator, ServerConfig, ServiceDescriptor
from devsrv.coordinator import ExitCode


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /docs/intro?lang=en&lang=fr HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: text/html\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def config() -> ServerConfig:
    """Quiet, fast-reacting configuration for tests."""
    return ServerConfig(
        host="127.0.0.1",
        poll_interval=0.05,
        read_timeout=2.0,
        keep_alive_timeout=2.0,
        shutdown_timeout=1.0,
        min_workers=1,
        max_workers=4,
        log_level="WARNING",
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


@pytest.fixture
def free_ports() -> Callable[[int], List[int]]:
    """Get several distinct free ports."""
    def allocate(count: int) -> List[int]:
        sockets = []
        try:
            for _ in range(count):
                s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
                s.bind(('127.0.0.1', 0))
                sockets.append(s)
            return [s.getsockname()[1] for s in sockets]
        finally:
            for s in sockets:
                s.close()
    return allocate


@pytest.fixture
def site(tmp_path: Path) -> Path:
    """
    A small static tree:

        site/
            index.html
            about.html
            data.json
            css/site.css
            docs/notes.txt        (no index → listing)
            blog/index.html
    """
    root = tmp_path / "site"
    (root / "css").mkdir(parents=True)
    (root / "docs").mkdir()
    (root / "blog").mkdir()

    (root / "index.html").write_text("<h1>home</h1>\n")
    (root / "about.html").write_text("<h1>about</h1>\n")
    (root / "data.json").write_text('{"ok": true}\n')
    (root / "css" / "site.css").write_text("body { color: red; }\n")
    (root / "docs" / "notes.txt").write_text("notes\n")
    (root / "blog" / "index.html").write_text("<h1>blog</h1>\n")
    return root


@dataclass
class RawResponse:
    status: int
    reason: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())


def parse_raw_response(data: bytes) -> RawResponse:
    head, _, body = data.partition(b"\r\n\r\n")
    lines = head.decode("latin-1").split("\r\n")
    _, status, reason = (lines[0].split(" ", 2) + [""])[:3]

    headers = {}
    for line in lines[1:]:
        name, _, value = line.partition(":")
        headers[name.strip().lower()] = value.strip()

    return RawResponse(status=int(status), reason=reason, headers=headers, body=body)


def http_request(
    port: int,
    path: str = "/",
    method: str = "GET",
    headers: Optional[Dict[str, str]] = None,
    timeout: float = 5.0,
) -> RawResponse:
    """One request on a fresh connection with Connection: close."""
    lines = [f"{method} {path} HTTP/1.1", f"Host: 127.0.0.1:{port}", "Connection: close"]
    for name, value in (headers or {}).items():
        lines.append(f"{name}: {value}")
    raw = ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")

    with socket.create_connection(("127.0.0.1", port), timeout=timeout) as s:
        s.sendall(raw)
        chunks = []
        while True:
            chunk = s.recv(65536)
            if not chunk:
                break
            chunks.append(chunk)

    return parse_raw_response(b"".join(chunks))


@pytest.fixture
def http() -> Callable[..., RawResponse]:
    """Raw-socket HTTP client: http(port, path, method=..., headers=...)."""
    return http_request


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.02) -> bool:
    """Poll predicate until it is true or the timeout passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


class CoordinatorRunner:
    """Runs Coordinator.run() on a background thread (no signal handlers there)."""

    def __init__(self, coordinator: Coordinator):
        self.coordinator = coordinator
        self.exit_code: Optional[ExitCode] = None
        self._thread: Optional[threading.Thread] = None

    def start(self, services: List[ServiceDescriptor]) -> "CoordinatorRunner":
        self._thread = threading.Thread(target=self._run, args=(services,), daemon=True)
        self._thread.start()
        if not self.coordinator.wait_started(timeout=5.0):
            raise RuntimeError("Coordinator failed to start its listeners")
        return self

    def _run(self, services):
        self.exit_code = self.coordinator.run(services)

    def join(self, timeout: float = 5.0) -> Optional[ExitCode]:
        self._thread.join(timeout)
        return self.exit_code

    @property
    def finished(self) -> bool:
        return self._thread is not None and not self._thread.is_alive()


@pytest.fixture
def run_coordinator(config: ServerConfig) -> Generator[Callable[..., CoordinatorRunner], None, None]:
    """Start a Coordinator on a thread; anything still running is interrupted at teardown."""
    runners: List[CoordinatorRunner] = []

    def start(services: List[ServiceDescriptor], cfg: Optional[ServerConfig] = None) -> CoordinatorRunner:
        runner = CoordinatorRunner(Coordinator(cfg or config)).start(services)
        runners.append(runner)
        return runner

    yield start

    for runner in runners:
        if not runner.finished:
            runner.coordinator.interrupt()
            runner.join(timeout=5.0)
