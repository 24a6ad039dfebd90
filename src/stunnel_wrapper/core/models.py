"""Tunnel models: endpoints, process identities and live tunnel handles."""

import socket
import time
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Endpoint(BaseModel):
    """Remote TLS target; identity key of the tunnel cache."""

    model_config = ConfigDict(frozen=True)

    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class ForkedProcess:
    """A stunnel we forked and exec'ed ourselves."""

    pid: int


@dataclass(frozen=True)
class HelperProcess:
    """A stunnel started for us by a fork/exec helper."""

    helper: Any
    process: Any

    @property
    def pid(self) -> int:
        return self.helper.getpid(self.process)


ProcessIdentity = ForkedProcess | HelperProcess | None


def describe_process(process: ProcessIdentity) -> str:
    """Human readable process identity for log lines."""
    if isinstance(process, ForkedProcess):
        return f"(StdFork {process.pid})"
    if isinstance(process, HelperProcess):
        return f"(FEFork {process.pid})"
    return "None"


class TunnelHandle(BaseModel):
    """One live stunnel: the child process plus our end of its data socket.

    The process and the socket are released together by
    :func:`stunnel_wrapper.core.process.disconnect`. Ownership moves from the
    launcher to the caller, to the cache on donation and back on checkout.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    process: ProcessIdentity = Field(default=None, description="Owning stunnel process")
    data_socket: socket.socket = Field(description="Plaintext side of the tunnel")
    host: str
    port: int
    connected_time: float = Field(default_factory=time.time)
    unique_id: int | None = Field(default=None, description="Caller correlation id")
    log_file_path: str | None = Field(
        default=None, description="Preserved stunnel log, extended diagnosis only"
    )
    verified: bool = False

    @property
    def endpoint(self) -> Endpoint:
        return Endpoint(host=self.host, port=self.port)

    @property
    def display_id(self) -> str:
        return "unknown" if self.unique_id is None else str(self.unique_id)

    def fileno(self) -> int:
        return self.data_socket.fileno()
