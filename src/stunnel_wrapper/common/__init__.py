"""Common utilities and shared functionality."""

from .exceptions import (
    BinaryMissingError,
    InitializationFailedError,
    ProcessError,
    StunnelWrapperError,
    TunnelError,
    TunnelNotFoundError,
    VerifyError,
)
from .logging import LogSink, debug_sink, get_logger, setup_logging
from .utils import MAX_PORT, MIN_PORT, validate_host, validate_port

__all__ = [
    # Exceptions
    "StunnelWrapperError",
    "BinaryMissingError",
    "InitializationFailedError",
    "ProcessError",
    "TunnelError",
    "VerifyError",
    "TunnelNotFoundError",
    # Logging
    "get_logger",
    "setup_logging",
    "debug_sink",
    "LogSink",
    # Utils
    "validate_port",
    "validate_host",
    "MIN_PORT",
    "MAX_PORT",
]
