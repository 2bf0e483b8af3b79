"""Pytest fixtures for testing.

All tests are network-isolated - socket connections are blocked by default.
"""

from __future__ import annotations

import socket

import pytest

from tests.fakes import FakeClock, FakeScopeDefaults, FakeTransport, RecordingSleeper
from tests.support.errors import NetworkIsolationError

# =============================================================================
# Network Isolation - Block all socket connections in tests
# =============================================================================


def _blocked_socket_connect(self, *args, **kwargs):
    """Raise an error if any test tries to make a real network connection."""
    raise NetworkIsolationError(str(args))


@pytest.fixture(autouse=True)
def block_network_access(monkeypatch):
    """Block all network access in tests."""
    monkeypatch.setattr(socket.socket, "connect", _blocked_socket_connect)
    yield


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep developer ASANA_* settings and .env files out of tests."""
    for name in (
        "ASANA_PAT",
        "ASANA_BASE_URL",
        "ASANA_WORKSPACE",
        "ASANA_PROJECT",
        "ASANA_ASSIGNEE",
        "ASANA_CLI_CACHE_DIR",
        "ASANA_OFFLINE",
        "ASANA_CACHE_TTL_SECONDS",
        "ASANA_SUBTASK_CONCURRENCY",
        "ASANA_MAX_RETRIES",
        "ASANA_TIMEOUT_SECONDS",
        "ASANA_CONNECT_TIMEOUT_SECONDS",
        "ASANA_BACKOFF_FACTOR",
        "ASANA_BACKOFF_MAX_SECONDS",
        "ASANA_BACKOFF_JITTER_SECONDS",
        "ASANA_CLI_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "xdg-cache"))
    monkeypatch.chdir(tmp_path)
    yield


@pytest.fixture
def fake_transport() -> FakeTransport:
    """Provide a fake transport for tests."""
    return FakeTransport()


@pytest.fixture
def recording_sleeper() -> RecordingSleeper:
    return RecordingSleeper()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def project_defaults() -> FakeScopeDefaults:
    """Scope defaults pointing at a single project."""
    return FakeScopeDefaults(default_project="1200")
