"""High-level API for stunnel wrapper.

Callers normally go through :class:`CachedStunnelConnector`, which reuses a
cached stunnel where one exists and starts a fresh one otherwise.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from .cache.store import TunnelCache
from .common.exceptions import TunnelNotFoundError
from .common.logging import LogSink, get_logger
from .core.connector import StunnelConnector
from .core.models import TunnelHandle
from .core.process import disconnect

logger = get_logger(__name__)


class CachedStunnelConnector:
    """Cache-first front end to :class:`StunnelConnector`.

    Create one at startup and call :meth:`shutdown` on the way out so every
    cached stunnel is torn down.
    """

    def __init__(
        self,
        cache: TunnelCache | None = None,
        connector: StunnelConnector | None = None,
    ):
        self.cache = cache or TunnelCache()
        self.connector = connector or StunnelConnector()

    def connect(self, host: str, port: int, **options: Any) -> TunnelHandle:
        """Get a stunnel to ``host:port``, from the cache if possible.

        Args:
            host: Remote host
            port: Remote port
            **options: Passed to :meth:`StunnelConnector.connect` on a miss

        Returns:
            Handle now owned by the caller
        """
        try:
            return self.cache.remove(host, port)
        except TunnelNotFoundError:
            logger.info("No cached stunnel, connecting", host=host, port=port)
            return self.connector.connect(host, port, **options)

    def donate(self, handle: TunnelHandle) -> None:
        """Hand a still-connected stunnel back for reuse."""
        self.cache.add(handle)

    def shutdown(self) -> None:
        self.cache.flush()


@contextmanager
def managed_tunnel(
    connector: CachedStunnelConnector, host: str, port: int, **options: Any
) -> Iterator[TunnelHandle]:
    """Borrow a stunnel for the duration of a ``with`` block.

    On a clean exit the stunnel goes back into the cache; if the block raised,
    its state is unknown and it is disconnected instead.

    Example:
        >>> with managed_tunnel(connector, "pool-master", 443) as tunnel:
        ...     tunnel.data_socket.sendall(request)
    """
    handle = connector.connect(host, port, **options)
    try:
        yield handle
    except BaseException:
        disconnect(handle)
        raise
    connector.donate(handle)


def stress_test(
    host: str,
    port: int,
    iterations: int | None = None,
    *,
    connector: StunnelConnector | None = None,
    write_to_log: LogSink = print,
) -> int:
    """Repeatedly connect and disconnect a stunnel to shake out startup races.

    Runs forever when ``iterations`` is None, reporting every 100 runs.

    Returns:
        Number of completed runs
    """
    connector = connector or StunnelConnector()
    counter = 0
    while iterations is None or counter < iterations:
        handle = connector.connect(host, port, write_to_log=write_to_log)
        disconnect(handle)
        counter += 1
        if counter % 100 == 0:
            write_to_log(f"Ran stunnel {counter} times")
    return counter
