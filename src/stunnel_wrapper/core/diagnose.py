"""Post-failure inspection of a preserved stunnel log."""

from ..common.exceptions import TunnelError, VerifyError
from ..common.logging import LogSink, get_logger
from .models import TunnelHandle

logger = get_logger(__name__)

VERIFY_MARKER = "VERIFY ERROR: "
ERROR_FIELD = "error="

# Checked in this order on every log line
FATAL_ERRORS = (
    "Connection refused",
    "No host resolved",
    "No route to host",
    "Invalid argument",
)


def check_verify_error(line: str) -> None:
    """Raise :class:`VerifyError` if ``line`` reports a verification failure.

    The detail is whatever follows ``error=`` up to the next comma, or the
    empty string if the line carries no error code.
    """
    if VERIFY_MARKER not in line:
        return
    start = line.find(ERROR_FIELD)
    if start == -1:
        raise VerifyError("")
    detail = line[start + len(ERROR_FIELD):].split(",", 1)[0]
    raise VerifyError(detail)


def check_fatal_error(line: str) -> None:
    for reason in FATAL_ERRORS:
        if reason in line:
            raise TunnelError(reason)


def diagnose_failure(handle: TunnelHandle, write_to_log: LogSink | None = None) -> None:
    """Replay a tunnel's log, raising the first recognised error.

    Only useful for tunnels started with extended diagnosis. Returns normally
    when nothing in the log is recognised.

    Raises:
        VerifyError: Certificate verification failed
        TunnelError: A known fatal connection error was logged
    """
    if not handle.log_file_path:
        logger.debug("No stunnel log to diagnose", host=handle.host, port=handle.port)
        return

    logger.debug("Diagnosing stunnel failure", log_file=handle.log_file_path)
    with open(handle.log_file_path, errors="replace") as f:
        for raw in f:
            line = raw.rstrip("\n")
            if write_to_log is not None:
                write_to_log(line)
            check_verify_error(line)
            check_fatal_error(line)
