"""A small cache of connected stunnels so repeated calls can reuse them.

Donors should only hand over stunnels that are still connected to a
keep-alive HTTP/1.1 request loop on the far side.
"""

import itertools
import threading
import time
from collections.abc import Callable

from ..common.exceptions import ProcessError, TunnelNotFoundError
from ..common.logging import get_logger
from ..core.models import Endpoint, TunnelHandle
from ..core.process import disconnect
from .config import CacheSettings

logger = get_logger(__name__)


class TunnelCache:
    """Thread-safe pool of donated stunnels, indexed by endpoint.

    Three maps are kept consistent under one lock: endpoint to cache ids,
    cache id to donation time and cache id to handle. Every mutation runs a
    garbage collection pass evicting stunnels that are too old, idle for too
    long, or in excess of the capacity. ``add`` inserts before collecting, so
    the cache briefly holds one more than the maximum.
    """

    def __init__(
        self,
        settings: CacheSettings | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings or CacheSettings()
        self._clock = clock
        self._lock = threading.Lock()
        self._counter = itertools.count()
        self._index: dict[Endpoint, list[int]] = {}
        self._times: dict[int, float] = {}
        self._tunnels: dict[int, TunnelHandle] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._tunnels)

    def endpoints(self) -> dict[Endpoint, int]:
        """Number of cached stunnels per endpoint."""
        with self._lock:
            return {ep: len(ids) for ep, ids in self._index.items()}

    def _describe(self, now: float) -> str:
        parts = []
        for ep, ids in self._index.items():
            entries = "; ".join(
                f"(id {self._tunnels[i].display_id} / idle {now - self._times[i]:.2f} "
                f"age {now - self._tunnels[i].connected_time:.2f})"
                for i in ids
            )
            parts.append(f"[ {ep} {entries} ]")
        return " ".join(parts)

    def _unlocked_gc(self) -> None:
        now = self._clock()
        logger.debug("Cache contents", contents=self._describe(now))

        to_gc: list[int] = []
        for idx, stunnel in self._tunnels.items():
            idle = now - self._times[idx]
            age = now - stunnel.connected_time
            if age > self.settings.max_age:
                logger.debug(
                    "Expiring stunnel, too old",
                    id=stunnel.display_id, age=round(age, 2), limit=self.settings.max_age,
                )
                to_gc.append(idx)
            elif idle > self.settings.max_idle:
                logger.debug(
                    "Expiring stunnel, idle too long",
                    id=stunnel.display_id, idle=round(idle, 2), limit=self.settings.max_idle,
                )
                to_gc.append(idx)

        expired = set(to_gc)
        survivors = [(idx, t) for idx, t in self._times.items() if idx not in expired]
        if len(survivors) > self.settings.max_stunnel:
            # Youngest donation first
            survivors.sort(key=lambda item: (item[1], item[0]), reverse=True)
            for idx, _ in survivors[self.settings.max_stunnel:]:
                logger.debug(
                    "Expiring stunnel, too many cached",
                    id=self._tunnels[idx].display_id, limit=self.settings.max_stunnel,
                )
                to_gc.append(idx)

        if not to_gc:
            return

        evicted = set(to_gc)
        doomed = [self._tunnels.pop(idx) for idx in evicted]
        for idx in evicted:
            del self._times[idx]
        for ep in list(self._index):
            kept = [idx for idx in self._index[ep] if idx not in evicted]
            if kept:
                self._index[ep] = kept
            else:
                del self._index[ep]
        for stunnel in doomed:
            _disconnect_quietly(stunnel)

    def gc(self) -> None:
        """Evict expired and surplus stunnels."""
        with self._lock:
            self._unlocked_gc()

    def add(self, handle: TunnelHandle) -> None:
        """Donate a connected stunnel to the cache.

        The cache owns the handle from now on; it will either be handed out
        by :meth:`remove` or disconnected on eviction.
        """
        now = self._clock()
        with self._lock:
            idx = next(self._counter)
            self._times[idx] = now
            self._tunnels[idx] = handle
            self._index.setdefault(handle.endpoint, []).append(idx)
            logger.debug(
                "Adding stunnel to the cache",
                id=handle.display_id, endpoint=str(handle.endpoint),
            )
            self._unlocked_gc()

    def remove(self, host: str, port: int) -> TunnelHandle:
        """Check out the longest idle stunnel cached for ``host:port``.

        Raises:
            TunnelNotFoundError: Nothing is cached for the endpoint
        """
        ep = Endpoint(host=host, port=port)
        with self._lock:
            self._unlocked_gc()

            ids = self._index.get(ep, [])
            oldest = min(ids, key=lambda i: (self._times[i], i), default=None)
            if oldest is None:
                raise TunnelNotFoundError(host, port)

            stunnel = self._tunnels.pop(oldest)
            donated = self._times.pop(oldest)
            remaining = [i for i in ids if i != oldest]
            if remaining:
                self._index[ep] = remaining
            else:
                del self._index[ep]
            logger.debug(
                "Removing stunnel from the cache",
                id=stunnel.display_id, idle=round(self._clock() - donated, 2),
            )
            return stunnel

    def flush(self) -> None:
        """Disconnect every cached stunnel and empty the cache."""
        with self._lock:
            logger.info("Flushing stunnel cache", count=len(self._tunnels))
            for stunnel in self._tunnels.values():
                _disconnect_quietly(stunnel)
            self._tunnels.clear()
            self._times.clear()
            self._index.clear()
            logger.info("Flushed stunnel cache")


def _disconnect_quietly(stunnel: TunnelHandle) -> None:
    try:
        disconnect(stunnel)
    except ProcessError as e:
        logger.warning("Failed to reap evicted stunnel", id=stunnel.display_id, error=str(e))
