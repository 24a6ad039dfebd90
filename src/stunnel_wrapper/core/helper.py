"""Fork/exec helper used to start stunnel with pre-opened descriptors."""

import subprocess
from collections.abc import Sequence
from typing import Protocol

from ..common.logging import get_logger

logger = get_logger(__name__)


class ForkExecHelper(Protocol):
    """Something that can start a process with a given set of descriptors."""

    def spawn(
        self,
        path: str,
        args: Sequence[str],
        stdin: int | None,
        stdout: int | None,
        stderr: int | None,
        pass_fds: Sequence[int] = (),
    ) -> object: ...

    def wait(self, process: object, nohang: bool = False) -> tuple[int, int | None]:
        """Return ``(pid, status)``; pid is 0 if ``nohang`` and still running."""
        ...

    def getpid(self, process: object) -> int: ...


class SubprocessHelper:
    """Default helper on top of :class:`subprocess.Popen`.

    Descriptor inheritance is declarative: ``pass_fds`` keeps the listed
    descriptors open under the same numbers in the child, everything else is
    closed, and the child gets its own session.
    """

    def spawn(
        self,
        path: str,
        args: Sequence[str],
        stdin: int | None,
        stdout: int | None,
        stderr: int | None,
        pass_fds: Sequence[int] = (),
    ) -> subprocess.Popen[bytes]:
        logger.debug("Spawning via helper", path=path, args=list(args), pass_fds=list(pass_fds))
        return subprocess.Popen(
            [path, *args],
            stdin=stdin,
            stdout=stdout,
            stderr=stderr,
            pass_fds=tuple(pass_fds),
            close_fds=True,
            start_new_session=True,
        )

    def wait(
        self, process: subprocess.Popen[bytes], nohang: bool = False
    ) -> tuple[int, int | None]:
        if nohang:
            status = process.poll()
            if status is None:
                return 0, None
            return process.pid, status
        return process.pid, process.wait()

    def getpid(self, process: subprocess.Popen[bytes]) -> int:
        return process.pid
