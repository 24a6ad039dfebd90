"""Custom exceptions for stunnel wrapper."""


class StunnelWrapperError(Exception):
    """Base exception for all stunnel wrapper errors."""
    pass


class BinaryMissingError(StunnelWrapperError):
    """Raised when no executable stunnel binary can be found."""
    pass


class InitializationFailedError(StunnelWrapperError):
    """Raised when stunnel dies before reading its configuration."""
    pass


class ProcessError(StunnelWrapperError):
    """Raised when waiting for or signalling a stunnel process fails."""
    pass


class TunnelError(StunnelWrapperError):
    """Raised when the stunnel log shows a known fatal condition."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class VerifyError(StunnelWrapperError):
    """Raised when stunnel reports a certificate verification failure."""

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class TunnelNotFoundError(StunnelWrapperError):
    """Raised when the cache holds no tunnel for an endpoint."""

    def __init__(self, host: str, port: int):
        super().__init__(f"No cached stunnel for {host}:{port}")
        self.host = host
        self.port = port
