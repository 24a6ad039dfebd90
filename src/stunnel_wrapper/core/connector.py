"""Establishing fresh stunnels, retrying stunnel's flaky startup."""

import os
import time

from ..common.exceptions import InitializationFailedError
from ..common.logging import LogSink, get_logger
from .config import StunnelSettings, TunnelRequest
from .diagnose import diagnose_failure
from .launcher import StunnelLauncher
from .models import TunnelHandle

logger = get_logger(__name__)


class StunnelConnector:
    """Connects to a host:port through a freshly started stunnel.

    Stunnel occasionally dies during startup before reading its
    configuration, so every connect retries the whole launch a bounded number
    of times with a fixed pause in between.
    """

    def __init__(
        self,
        settings: StunnelSettings | None = None,
        launcher: StunnelLauncher | None = None,
    ):
        self.settings = settings or (launcher.settings if launcher else StunnelSettings())
        self.launcher = launcher or StunnelLauncher(self.settings)
        self.write_to_log: LogSink | None = None

    def default_verify_cert(self) -> bool:
        return os.path.exists(self.settings.verify_certificates_ctrl)

    def connect(
        self,
        host: str,
        port: int,
        *,
        unique_id: int | None = None,
        use_fork_exec_helper: bool = True,
        write_to_log: LogSink | None = None,
        verify_cert: bool | None = None,
        extended_diagnosis: bool = False,
    ) -> TunnelHandle:
        """Establish a fresh stunnel to ``host:port``.

        Args:
            host: Remote host
            port: Remote port
            unique_id: Correlation id carried on the handle for logging
            use_fork_exec_helper: Start stunnel through the fork/exec helper
                rather than forking directly
            write_to_log: Sink for progress lines; also installed for
                :meth:`diagnose_failure`
            verify_cert: Verify the server certificate; defaults to whether
                the verification sentinel file exists
            extended_diagnosis: Keep the stunnel log file. Deleting it is then
                the caller's job, and it enables :meth:`diagnose_failure`

        Returns:
            Handle owning the new stunnel

        Raises:
            InitializationFailedError: Every attempt lost the startup race
            BinaryMissingError: No stunnel binary is installed
        """
        if verify_cert is None:
            verify_cert = self.default_verify_cert()
        if write_to_log is not None:
            self.write_to_log = write_to_log

        request = TunnelRequest(
            host=host,
            port=port,
            verify_cert=verify_cert,
            extended_diagnosis=extended_diagnosis,
        )

        for attempt in range(1, self.settings.max_attempts + 1):
            try:
                return self.launcher.attempt_one_connect(
                    request,
                    unique_id=unique_id,
                    use_fork_exec_helper=use_fork_exec_helper,
                    write_to_log=write_to_log,
                )
            except InitializationFailedError:
                logger.warning(
                    "Stunnel initialisation failed",
                    target=request.target,
                    attempt=attempt,
                    max_attempts=self.settings.max_attempts,
                )
                if attempt < self.settings.max_attempts:
                    time.sleep(self.settings.retry_delay)

        raise InitializationFailedError(
            f"stunnel to {request.target} failed to start after "
            f"{self.settings.max_attempts} attempts"
        )

    def diagnose_failure(self, handle: TunnelHandle) -> None:
        """Replay the tunnel's log through the last installed sink."""
        diagnose_failure(handle, self.write_to_log)
