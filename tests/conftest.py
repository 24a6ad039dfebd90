"""Shared pytest fixtures for stunnel wrapper tests."""

import os
import socket
from unittest.mock import Mock

import pytest

from stunnel_wrapper.core.models import TunnelHandle


class FakeHelper:
    """Stand-in fork/exec helper that never starts a real process.

    When ``read_config`` is set it keeps a duplicate of the config pipe's read
    end open, as a live stunnel would, so the launcher's config write lands.
    """

    def __init__(self, read_config: bool = True, running_polls: int = 0):
        self.read_config = read_config
        self.running_polls = running_polls
        self.spawned: list[dict] = []
        self.waits: list[bool] = []
        self._readers: list[int] = []

    def spawn(self, path, args, stdin, stdout, stderr, pass_fds=()):
        process = Mock()
        process.pid = 4242
        if self.read_config:
            self._readers.extend(os.dup(fd) for fd in pass_fds)
        self.spawned.append(
            {
                "path": path,
                "args": list(args),
                "stdin": stdin,
                "stdout": stdout,
                "stderr": stderr,
                "pass_fds": list(pass_fds),
            }
        )
        return process

    def wait(self, process, nohang=False):
        self.waits.append(nohang)
        if nohang and self.running_polls:
            self.running_polls -= 1
            return 0, None
        return process.pid, 0

    def getpid(self, process):
        return process.pid

    def received_config(self) -> str:
        data = b""
        for fd in self._readers:
            data += os.read(fd, 65536)
        return data.decode()

    def close(self) -> None:
        for fd in self._readers:
            os.close(fd)
        self._readers = []


@pytest.fixture
def fake_helper():
    helper = FakeHelper()
    yield helper
    helper.close()


@pytest.fixture
def stunnel_env(monkeypatch):
    """Point the binary override variable at a fake stunnel path."""
    monkeypatch.setenv("XE_STUNNEL", "/usr/bin/stunnel-under-test")
    return "/usr/bin/stunnel-under-test"


class FakeClock:
    """Manually advanced clock for cache tests."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_handle(clock):
    """Factory for tunnel handles backed by a mock socket.

    Args:
        clock: Fake clock; handles are connected "now" unless told otherwise
    """

    def factory(host="host.example.com", port=443, connected_time=None, unique_id=None):
        return TunnelHandle(
            data_socket=Mock(spec=socket.socket),
            host=host,
            port=port,
            connected_time=clock.now if connected_time is None else connected_time,
            unique_id=unique_id,
        )

    return factory


@pytest.fixture
def make_helper():
    """Factory for FakeHelper instances with non-default behaviour."""
    helpers: list[FakeHelper] = []

    def factory(**kwargs) -> FakeHelper:
        helper = FakeHelper(**kwargs)
        helpers.append(helper)
        return helper

    yield factory
    for helper in helpers:
        helper.close()


@pytest.fixture
def open_fd_count():
    """Callable counting this process's open descriptors."""
    if not os.path.isdir("/proc/self/fd"):
        pytest.skip("needs /proc/self/fd")
    return lambda: len(os.listdir("/proc/self/fd"))
