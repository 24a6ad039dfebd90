"""Tearing down stunnel processes: close the data socket, then reap."""

import os
import signal

from ..common.exceptions import ProcessError
from ..common.logging import get_logger
from .models import ForkedProcess, HelperProcess, ProcessIdentity, TunnelHandle

logger = get_logger(__name__)


def _reap(process: ForkedProcess | HelperProcess, wait: bool) -> tuple[int, int | None]:
    """Wait for the stunnel process.

    Returns ``(pid, status)``. ``pid`` is 0 when a non-blocking wait finds the
    process still running. A process already reaped elsewhere (ECHILD) is
    reported with an unknown status of ``None``.
    """
    pid = process.pid
    try:
        if isinstance(process, HelperProcess):
            return process.helper.wait(process.process, nohang=not wait)
        waited_pid, status = os.waitpid(pid, 0 if wait else os.WNOHANG)
        if waited_pid == 0:
            return 0, None
        return waited_pid, os.waitstatus_to_exitcode(status)
    except ChildProcessError:
        logger.debug("Stunnel already reaped", pid=pid)
        return pid, None
    except OSError as e:
        raise ProcessError(f"Failed to wait for stunnel {pid}: {e}") from e


def _kill(pid: int) -> None:
    try:
        os.kill(pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    except OSError as e:
        raise ProcessError(f"Failed to kill stunnel {pid}: {e}") from e


def disconnect(handle: TunnelHandle, wait: bool = True, force: bool = False) -> None:
    """Close the tunnel's data socket and reap its stunnel process.

    Safe to call more than once on the same handle.

    Args:
        handle: Tunnel to tear down
        wait: Block until the process exits; otherwise poll once
        force: If a poll finds the process still running, SIGKILL it and
            wait again until it is gone
    """
    try:
        handle.data_socket.close()
    except OSError:
        pass

    process: ProcessIdentity = handle.process
    if process is None:
        return

    while True:
        pid, status = _reap(process, wait)
        if pid == 0 and force:
            logger.debug("Stunnel still running, killing", pid=process.pid)
            _kill(process.pid)
            continue
        if pid != 0:
            logger.debug("Stunnel exited", pid=pid, status=status, host=handle.host)
        return
