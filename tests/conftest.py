"""Pytest configuration and fixtures for http-replace tests.

This file provides:
- make_response / RecordingTransport: Unit-test doubles for the transport seam
- PortReservation: Race-free port allocation for the mock server
- MockServer: Subprocess management for the mock replace API
- Fixtures: Shared test infrastructure (sinks, executors, servers)
"""

from __future__ import annotations

import socket
import subprocess
import sys
import time
from pathlib import Path
from typing import Any, Generator

import pytest

from http_replace.diagnostics import MemorySink
from http_replace.executor import RuleExecutor
from http_replace.models import PreparedRequest, ReplaceResponse
from http_replace.transport import TransportError

# Project root for fixture paths
PROJECT_ROOT = Path(__file__).parent.parent
MOCK_SERVER_MODULE = "tests.integration.mock_server"


def make_response(
    status_code: int = 200,
    body: str | None = "",
    headers: dict[str, str] | None = None,
) -> ReplaceResponse:
    """Create a ReplaceResponse for testing the executor.

    Prefer this over constructing ReplaceResponse directly - it provides
    sensible defaults and documents which fields are typically varied in tests.
    """
    return ReplaceResponse(status_code=status_code, headers=headers or {}, body=body)


class RecordingTransport:
    """Transport double that records every request and replays canned outcomes.

    outcome is either a ReplaceResponse to return or an exception to raise.
    """

    def __init__(self, outcome: ReplaceResponse | BaseException | None = None) -> None:
        self.outcome = outcome if outcome is not None else make_response()
        self.requests: list[PreparedRequest] = []

    def send(self, request: PreparedRequest) -> ReplaceResponse:
        self.requests.append(request)
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return self.outcome

    @property
    def last_request(self) -> PreparedRequest:
        assert self.requests, "no request was sent"
        return self.requests[-1]


@pytest.fixture
def sink() -> MemorySink:
    return MemorySink()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def executor(transport: RecordingTransport, sink: MemorySink) -> RuleExecutor:
    counter = iter(range(1, 10_000))
    return RuleExecutor(
        transport, sink=sink, trace_id_factory=lambda: f"trace-{next(counter)}"
    )


@pytest.fixture
def failing_transport() -> RecordingTransport:
    return RecordingTransport(TransportError("Connection error: refused"))


class PortReservation:
    """Holds a reserved port with socket kept open to prevent races.

    WHY this exists: another process can grab a free port between when we
    find it and when our server binds. This class keeps the socket open until
    just before the server starts, eliminating the race.

    Usage:
        reservation = PortReservation()
        server = MockServer(reservation)
        server.start()  # calls release() internally, then binds
    """

    def __init__(self) -> None:
        self._socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._socket.bind(("127.0.0.1", 0))  # Port 0 = OS assigns ephemeral port
        self._port = self._socket.getsockname()[1]
        self._released = False

    @property
    def port(self) -> int:
        return self._port

    def release(self) -> int:
        """Release the socket and return the port for server use.

        Safe to call multiple times - subsequent calls are no-ops.
        """
        if not self._released:
            self._socket.close()
            self._released = True
        return self._port

    def __enter__(self) -> PortReservation:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.release()


def wait_for_server_ready(host: str, port: int, timeout: float = 10.0) -> bool:
    """Block until server accepts TCP connections, or timeout expires."""
    start = time.time()
    while time.time() - start < timeout:
        try:
            with socket.create_connection((host, port), timeout=1.0):
                return True
        except (ConnectionRefusedError, socket.timeout, OSError):
            time.sleep(0.1)
    return False


class MockServer:
    """Manages the mock replace API subprocess for integration tests."""

    def __init__(self, reservation: PortReservation) -> None:
        self._reservation = reservation
        self.port = reservation.port
        self.host = "127.0.0.1"
        self.base_url = f"http://{self.host}:{self.port}"
        self._process: subprocess.Popen | None = None

    def start(self) -> None:
        """Start the mock server subprocess.

        Raises:
            RuntimeError: If server fails to start within 10 seconds.
        """
        self._reservation.release()

        self._process = subprocess.Popen(
            [
                sys.executable, "-m", MOCK_SERVER_MODULE,
                "--host", self.host,
                "--port", str(self.port),
            ],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=PROJECT_ROOT,
        )

        if not wait_for_server_ready(self.host, self.port):
            stderr = ""
            if self._process and self._process.stderr:
                stderr = self._process.stderr.read().decode(errors="replace")
            self.stop()
            raise RuntimeError(
                f"MockServer failed to start on port {self.port}. "
                f"stderr: {stderr or '(empty)'}"
            )

    def stop(self) -> None:
        """Stop the mock server subprocess with graceful shutdown.

        Uses SIGTERM first, then SIGKILL after 5s if process doesn't exit.
        Safe to call multiple times or if server was never started.
        """
        if self._process:
            self._process.terminate()
            try:
                self._process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self._process.kill()
                try:
                    self._process.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    pass  # Process is unkillable (zombie?), nothing more we can do
            self._process = None

    def __enter__(self) -> MockServer:
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.stop()


@pytest.fixture(scope="session")
def mock_server() -> Generator[MockServer, None, None]:
    """Start the mock replace API once per test session."""
    with MockServer(PortReservation()) as server:
        yield server


# =============================================================================
# Pytest Hooks
# =============================================================================


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Automatically apply markers based on test location.

    Enables running subsets via:
        pytest -m integration  # only integration tests
        pytest -m unit         # only unit tests
    """
    for item in items:
        test_path = Path(item.fspath)
        if "integration" in test_path.parts:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
