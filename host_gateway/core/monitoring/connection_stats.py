"""
Connection Statistics Monitor.

Plain counters fed by transport callbacks, reported periodically.
Makes no decisions.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, TYPE_CHECKING

from shared.config.constants import ConnectionKind
from shared.config.logging import get_logger

if TYPE_CHECKING:
    from host_gateway.components.connection.registry import ConnectionRegistry

logger = get_logger(__name__)


@dataclass
class ConnectionCounters:
    """Lifetime connection counters."""

    total_created: int = 0
    total_closed: int = 0
    total_host_connections: int = 0
    total_client_connections: int = 0

    @property
    def active(self) -> int:
        return self.total_created - self.total_closed


class ConnectionStatsMonitor:
    """
    Tracks opened/closed connections and reports totals.

    Usage:
        stats = ConnectionStatsMonitor(registry)
        stats.increment_created(ConnectionKind.HOST)
        stats.increment_closed(ConnectionKind.HOST)
        stats.flush()
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._registry = registry
        self._clock = clock
        self._counters = ConnectionCounters()
        self._last_logged_at = clock()

    @property
    def counters(self) -> ConnectionCounters:
        return self._counters

    def increment_created(self, kind: str) -> None:
        self._counters.total_created += 1
        if kind == ConnectionKind.HOST:
            self._counters.total_host_connections += 1
        else:
            self._counters.total_client_connections += 1

    def increment_closed(self, kind: str) -> None:
        self._counters.total_closed += 1

    def snapshot(self) -> dict[str, Any]:
        """Current totals plus live registry sizes."""
        return {
            "total_connections_created": self._counters.total_created,
            "total_connections_closed": self._counters.total_closed,
            "total_host_connections": self._counters.total_host_connections,
            "total_client_connections": self._counters.total_client_connections,
            "active_connections": self._counters.active,
            "active_host_connections": self._registry.host_count,
            "active_client_connections": self._registry.client_count,
        }

    async def flush(self) -> dict[str, Any]:
        """Log connection statistics and start a new reporting period."""
        now = self._clock()
        hours_since_last_log = (now - self._last_logged_at) / 3600
        data = self.snapshot()
        logger.info(
            "Connection statistics",
            **data,
            hours_since_last_log=f"{hours_since_last_log:.2f}",
        )
        self._last_logged_at = now
        return data
