"""
Core components: constants and protocols.
"""

from host_gateway.components.core.constants import MonitorConstants, HasStats

__all__ = [
    "MonitorConstants",
    "HasStats",
]
