"""Stunnel wrapper - TLS tunnels through an external stunnel process, with reuse."""

from . import (
    cache,  # For test access to cache components
    core,  # For test access to process components
)

# High-level API
from .api import CachedStunnelConnector, managed_tunnel, stress_test
from .cache import CacheSettings, TunnelCache

# Common utilities
from .common.exceptions import (
    BinaryMissingError,
    InitializationFailedError,
    ProcessError,
    StunnelWrapperError,
    TunnelError,
    TunnelNotFoundError,
    VerifyError,
)
from .common.logging import get_logger, setup_logging
from .common.utils import validate_host, validate_port

# Tunnel process lifecycle
from .core import (
    Endpoint,
    StunnelConnector,
    StunnelLauncher,
    StunnelSettings,
    SubprocessHelper,
    TunnelHandle,
    TunnelRequest,
    diagnose_failure,
    disconnect,
)

# Setup logging on package initialization
setup_logging(level="INFO")

# Package level logger
logger = get_logger(__name__)

__version__ = "0.1.0"


__all__ = [
    # High-level API
    "CachedStunnelConnector",
    "managed_tunnel",
    "stress_test",
    # Cache
    "TunnelCache",
    "CacheSettings",
    # Tunnel processes
    "StunnelConnector",
    "StunnelLauncher",
    "StunnelSettings",
    "SubprocessHelper",
    "TunnelRequest",
    "TunnelHandle",
    "Endpoint",
    "disconnect",
    "diagnose_failure",
    # Exceptions
    "StunnelWrapperError",
    "BinaryMissingError",
    "InitializationFailedError",
    "ProcessError",
    "TunnelError",
    "VerifyError",
    "TunnelNotFoundError",
    # Utilities
    "get_logger",
    "setup_logging",
    "validate_port",
    "validate_host",
    "cache",
    "core",
]
