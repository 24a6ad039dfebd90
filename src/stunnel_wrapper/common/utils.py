"""Utility functions for stunnel wrapper."""

# Port range constants
MIN_PORT = 1
MAX_PORT = 65535


def validate_port(port: int, port_name: str = "Port") -> None:
    """Validate port number range.

    Args:
        port: Port number to validate
        port_name: Name of the port for error messages

    Raises:
        ValueError: If port is not in valid range (1-65535)
    """
    if not isinstance(port, int) or not (MIN_PORT <= port <= MAX_PORT):
        raise ValueError(f"{port_name} must be between {MIN_PORT} and {MAX_PORT}")


def validate_host(host: str, field_name: str = "Host") -> str:
    """Validate a host name used as a cache key.

    Hosts are compared verbatim, so surrounding whitespace is an error rather
    than something to strip.

    Args:
        host: Host name to validate
        field_name: Name of the field for error messages

    Returns:
        The host, unchanged

    Raises:
        ValueError: If the host is empty, blank or padded with whitespace
    """
    if not host or not host.strip():
        raise ValueError(f"{field_name} cannot be empty")
    if host != host.strip():
        raise ValueError(f"{field_name} cannot have leading or trailing whitespace")
    return host
