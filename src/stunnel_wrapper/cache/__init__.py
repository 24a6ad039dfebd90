"""Cache of connected stunnels."""

from .config import CacheSettings
from .store import TunnelCache

__all__ = ["CacheSettings", "TunnelCache"]
