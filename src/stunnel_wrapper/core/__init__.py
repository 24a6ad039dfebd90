"""Stunnel process lifecycle: launch, retry, diagnose and tear down."""

from .config import StunnelSettings, TunnelRequest
from .connector import StunnelConnector
from .diagnose import diagnose_failure
from .helper import ForkExecHelper, SubprocessHelper
from .launcher import StunnelLauncher
from .models import (
    Endpoint,
    ForkedProcess,
    HelperProcess,
    ProcessIdentity,
    TunnelHandle,
    describe_process,
)
from .process import disconnect

__all__ = [
    "StunnelSettings",
    "TunnelRequest",
    "StunnelConnector",
    "StunnelLauncher",
    "ForkExecHelper",
    "SubprocessHelper",
    "Endpoint",
    "ForkedProcess",
    "HelperProcess",
    "ProcessIdentity",
    "TunnelHandle",
    "describe_process",
    "diagnose_failure",
    "disconnect",
]
