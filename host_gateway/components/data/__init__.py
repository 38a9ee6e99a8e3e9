"""
Data access components.
"""

from host_gateway.components.data.host_repository import HostRecord, HostStatusStore

__all__ = [
    "HostRecord",
    "HostStatusStore",
]
