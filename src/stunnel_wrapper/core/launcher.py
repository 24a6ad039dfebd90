"""Starting stunnel: binary lookup, fork/exec and configuration delivery."""

import os
import socket
import tempfile
from collections.abc import Sequence
from dataclasses import dataclass

from ..common.exceptions import BinaryMissingError, InitializationFailedError, ProcessError
from ..common.logging import LogSink, debug_sink, get_logger
from .config import StunnelSettings, TunnelRequest
from .helper import ForkExecHelper, SubprocessHelper
from .models import ForkedProcess, HelperProcess, TunnelHandle, describe_process
from .process import disconnect

logger = get_logger(__name__)


@dataclass(frozen=True)
class Dup2:
    """Duplicate ``source`` onto ``target`` in the child."""

    source: int
    target: int

    def apply(self) -> None:
        os.dup2(self.source, self.target)


@dataclass(frozen=True)
class Close:
    """Close ``fd`` in the child."""

    fd: int

    def apply(self) -> None:
        os.close(self.fd)


FdOperation = Dup2 | Close


def close_all_fds_except(keep: Sequence[int]) -> None:
    """Close every descriptor not listed in ``keep``."""
    max_fd = os.sysconf("SC_OPEN_MAX")
    low = 0
    for fd in sorted(set(keep)):
        os.closerange(low, fd)
        low = fd + 1
    os.closerange(low, max_fd)


def fork_and_exec(
    cmdline: Sequence[str],
    fd_operations: Sequence[FdOperation] = (),
    keep_fds: Sequence[int] = (0, 1, 2),
) -> int:
    """Fork, rearrange descriptors in the child and exec ``cmdline``.

    The child never returns into the caller: any failure between the fork and
    a successful exec ends it with ``os._exit(1)``.

    Args:
        cmdline: Binary path followed by its arguments
        fd_operations: Operations applied in order in the child before exec
        keep_fds: Descriptors that survive into the exec'ed binary

    Returns:
        Child pid
    """
    pid = os.fork()
    if pid == 0:
        try:
            for operation in fd_operations:
                operation.apply()
            close_all_fds_except(keep_fds)
            for fd in keep_fds:
                os.set_inheritable(fd, True)
            niceness = os.nice(0)
            if niceness < 0:
                os.nice(-niceness)
            os.setsid()
            os.execv(cmdline[0], list(cmdline))
        finally:
            os._exit(1)
    return pid


class StunnelLauncher:
    """Starts one stunnel process per call and hands back its handle."""

    def __init__(
        self,
        settings: StunnelSettings | None = None,
        helper: ForkExecHelper | None = None,
    ):
        self.settings = settings or StunnelSettings()
        self.helper = helper or SubprocessHelper()
        self._binary_path: str | None = None

    def _find_binary(self) -> str:
        override = os.environ.get(self.settings.binary_env_var)
        if override:
            return override
        if self.settings.use_new_stunnel:
            return self.settings.new_stunnel_path
        found = next(
            (path for path in self.settings.binary_candidates if os.access(path, os.X_OK)),
            None,
        )
        if found is None:
            raise BinaryMissingError(
                f"No stunnel binary among {', '.join(self.settings.binary_candidates)}"
            )
        return found

    def binary_path(self) -> str:
        """Path of the stunnel binary, looked up once per launcher.

        Raises:
            BinaryMissingError: If no candidate path is executable
        """
        if self._binary_path is None:
            self._binary_path = self._find_binary()
            logger.info("Using stunnel binary", path=self._binary_path)
        return self._binary_path

    def attempt_one_connect(
        self,
        request: TunnelRequest,
        *,
        unique_id: int | None = None,
        use_fork_exec_helper: bool = True,
        write_to_log: LogSink | None = None,
    ) -> TunnelHandle:
        """Start stunnel for ``request`` and deliver its configuration.

        Every descriptor opened here is closed again on all exits. On failure
        the child is reaped before the error propagates.

        Raises:
            BinaryMissingError: If no stunnel binary is available
            InitializationFailedError: If stunnel went away before reading
                its configuration
        """
        write = write_to_log or debug_sink(__name__)
        path = self.binary_path()

        config_read: int | None = None
        config_write: int | None = None
        data_out: socket.socket | None = None
        data_in: socket.socket | None = None
        log_fd: int | None = None
        log_path: str | None = None
        handle: TunnelHandle | None = None
        try:
            if self.settings.use_new_stunnel:
                args = request.to_command_line()
            else:
                config_read, config_write = os.pipe()
                args = ["-fd", str(config_read)]

            data_out, data_in = socket.socketpair(socket.AF_UNIX, socket.SOCK_STREAM)
            log_fd, log_path = tempfile.mkstemp(prefix=self.settings.log_prefix, suffix=".log")
            handle = TunnelHandle(
                data_socket=data_out,
                host=request.host,
                port=request.port,
                unique_id=unique_id,
                verified=request.verify_cert,
            )

            try:
                self._spawn(
                    handle, path, args, data_in.fileno(), log_fd, config_read,
                    use_fork_exec_helper, write,
                )
            finally:
                data_in.close()
                data_in = None
                config_read = _close_fd(config_read)

            write(f"stunnel has pidty: {describe_process(handle.process)}")
            if config_write is not None:
                try:
                    self._write_config(config_write, request.to_config_text(self.settings), write)
                finally:
                    config_write = _close_fd(config_write)

            if request.extended_diagnosis:
                write("stunnel start")
                handle.log_file_path = log_path
            else:
                write(f"stunnel start: Log from stunnel: [{_read_log(log_path)}]")
        except BaseException:
            # The child may still be blocked reading its config
            config_write = _close_fd(config_write)
            try:
                if log_path is not None:
                    write(f"stunnel abort: Log from stunnel: [{_read_log(log_path)}]")
            finally:
                _abandon(handle, data_out)
            raise
        finally:
            _close_fd(config_read)
            _close_fd(config_write)
            if data_in is not None:
                data_in.close()
            _close_fd(log_fd)
            if log_path is not None and not request.extended_diagnosis:
                os.unlink(log_path)

        logger.info(
            "Stunnel started",
            target=request.target,
            process=describe_process(handle.process),
            unique_id=unique_id,
            verified=request.verify_cert,
        )
        return handle

    def _spawn(
        self,
        handle: TunnelHandle,
        path: str,
        args: list[str],
        data_fd: int,
        log_fd: int,
        config_fd: int | None,
        use_fork_exec_helper: bool,
        write: LogSink,
    ) -> None:
        extra_fds = [] if config_fd is None else [config_fd]
        if use_fork_exec_helper:
            write(f"Using commandline: {' '.join([path, *args])}")
            process = self.helper.spawn(path, args, data_fd, data_fd, log_fd, extra_fds)
            handle.process = HelperProcess(self.helper, process)
        else:
            fd_operations = [Dup2(data_fd, 0), Dup2(data_fd, 1), Dup2(log_fd, 2)]
            pid = fork_and_exec([path, *args], fd_operations, [0, 1, 2, *extra_fds])
            handle.process = ForkedProcess(pid)

    @staticmethod
    def _write_config(fd: int, config: str, write: LogSink) -> None:
        data = config.encode()
        try:
            written = os.write(fd, data)
        except OSError as e:
            write(f"Caught {type(e).__name__}({e}); raising InitializationFailedError")
            raise InitializationFailedError(f"stunnel did not read its config: {e}") from e
        if written < len(data):
            raise InitializationFailedError(
                f"Short config write to stunnel ({written}/{len(data)} bytes)"
            )


def _read_log(path: str) -> str:
    try:
        with open(path, errors="replace") as f:
            return f.read()
    except OSError:
        return ""


def _close_fd(fd: int | None) -> None:
    if fd is not None:
        os.close(fd)


def _abandon(handle: TunnelHandle | None, data_out: socket.socket | None) -> None:
    if handle is None:
        if data_out is not None:
            data_out.close()
        return
    try:
        disconnect(handle)
    except ProcessError as e:
        logger.warning("Failed to reap aborted stunnel", error=str(e))
