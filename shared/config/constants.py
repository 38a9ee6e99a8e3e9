"""
Centralized constants for the host gateway.
Avoid magic strings for statuses and connection kinds.

Usage:
    from shared.config.constants import HostStatus, ConnectionKind

    if record.status == HostStatus.ONLINE:
        ...
"""

from typing import Final


# =============================================================================
# Entity Status Constants
# =============================================================================


class HostStatus:
    """
    Host status constants.

    Transitions: ONLINE -> UNREACHABLE -> OFFLINE (or deleted).
    Only a fresh connection brings a record back to ONLINE.
    """

    ONLINE: Final[str] = "ONLINE"
    UNREACHABLE: Final[str] = "UNREACHABLE"
    OFFLINE: Final[str] = "OFFLINE"

    ALL: Final[list[str]] = [ONLINE, UNREACHABLE, OFFLINE]
    # Records in these states are aged out after the retention window
    TERMINAL: Final[list[str]] = [UNREACHABLE, OFFLINE]


class ConnectionKind:
    """Kinds of remote parties holding a transport connection."""

    HOST: Final[str] = "host"
    CLIENT: Final[str] = "client"

    ALL: Final[list[str]] = [HOST, CLIENT]
