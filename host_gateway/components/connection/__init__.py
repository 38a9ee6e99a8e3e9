"""
Connection components.

Live connection registry and ping failure bookkeeping.
"""

from host_gateway.components.connection.registry import (
    ConnectionHandle,
    ConnectionRegistry,
)
from host_gateway.components.connection.ping_failures import (
    PingFailureEntry,
    PingFailureReport,
    PingFailureTracker,
)

__all__ = [
    "ConnectionHandle",
    "ConnectionRegistry",
    "PingFailureEntry",
    "PingFailureReport",
    "PingFailureTracker",
]
