"""End-to-end tests against a fake stunnel shell script.

The script reads its configuration from the ``-fd`` descriptor, saves it
next to itself and then echoes the data socket back, so a tunnel to it
behaves like a loopback TLS tunnel.
"""

import os
import threading
from pathlib import Path

import pytest

from stunnel_wrapper.api import CachedStunnelConnector
from stunnel_wrapper.cache.store import TunnelCache
from stunnel_wrapper.core.connector import StunnelConnector
from stunnel_wrapper.core.process import disconnect

pytestmark = pytest.mark.skipif(not os.path.exists("/bin/sh"), reason="needs /bin/sh")

FAKE_STUNNEL = """#!/bin/sh
cat <&"$2" > "$0.conf"
echo "LOG5[ui]: fake stunnel for $2" >&2
exec cat
"""


@pytest.fixture
def fake_stunnel(tmp_path, monkeypatch) -> Path:
    script = tmp_path / "stunnel"
    script.write_text(FAKE_STUNNEL)
    script.chmod(0o755)
    monkeypatch.setenv("XE_STUNNEL", str(script))
    return script


def echo(handle, payload: bytes) -> bytes:
    handle.data_socket.settimeout(10)
    handle.data_socket.sendall(payload)
    received = b""
    while len(received) < len(payload):
        chunk = handle.data_socket.recv(4096)
        if not chunk:
            break
        received += chunk
    return received


@pytest.mark.parametrize("use_fork_exec_helper", [True, False])
def test_connect_round_trip(fake_stunnel, use_fork_exec_helper):
    handle = StunnelConnector().connect(
        "pool.example.com",
        443,
        verify_cert=False,
        use_fork_exec_helper=use_fork_exec_helper,
    )
    try:
        assert echo(handle, b"GET / HTTP/1.0\r\n\r\n") == b"GET / HTTP/1.0\r\n\r\n"
    finally:
        disconnect(handle)

    config = Path(f"{fake_stunnel}.conf").read_text()
    assert "connect=pool.example.com:443\n" in config
    assert "verify=2" not in config


def test_extended_diagnosis_log(fake_stunnel):
    handle = StunnelConnector().connect("h", 443, verify_cert=False, extended_diagnosis=True)
    try:
        echo(handle, b"ping")
    finally:
        disconnect(handle)

    try:
        assert "fake stunnel" in Path(handle.log_file_path).read_text()
    finally:
        os.unlink(handle.log_file_path)


def test_cached_stunnel_is_reused(fake_stunnel):
    facade = CachedStunnelConnector(TunnelCache(), StunnelConnector())
    first = facade.connect("h", 443, verify_cert=False)
    try:
        echo(first, b"one")
        facade.donate(first)

        second = facade.connect("h", 443, verify_cert=False)
        assert second is first
        assert echo(second, b"two") == b"two"
        facade.donate(second)
    finally:
        facade.shutdown()

    assert len(facade.cache) == 0
    with pytest.raises(OSError):
        first.data_socket.send(b"x")


@pytest.mark.parametrize("use_fork_exec_helper", [True, False])
def test_failing_log_sink_does_not_hang(fake_stunnel, use_fork_exec_helper):
    """Stunnel blocked on its config is released and reaped when the caller's sink fails"""
    pids = []
    outcome = {}

    def sink(line):
        if line.startswith("stunnel has pidty"):
            pids.append(int(line.rstrip(")").split()[-1]))
            raise RuntimeError("log sink failed")

    def run():
        try:
            StunnelConnector().connect(
                "h",
                443,
                verify_cert=False,
                use_fork_exec_helper=use_fork_exec_helper,
                write_to_log=sink,
            )
        except RuntimeError as e:
            outcome["error"] = e

    worker = threading.Thread(target=run, daemon=True)
    worker.start()
    worker.join(timeout=10)

    assert not worker.is_alive()
    assert str(outcome["error"]) == "log sink failed"
    with pytest.raises(ChildProcessError):
        os.waitpid(pids[0], os.WNOHANG)
