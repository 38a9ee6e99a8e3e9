"""
Liveness Sweeper.

Reconciles persisted host status against elapsed time:
- ONLINE records without a heartbeat for liveness_timeout become UNREACHABLE.
- UNREACHABLE/OFFLINE records older than retention_window are deleted.

Both steps are single conditional bulk statements evaluated on the store's
clock, so two overlapping sweeps cannot lose an update.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from shared.config.constants import HostStatus
from shared.config.logging import get_logger
from host_gateway.components.core.constants import MonitorConstants

if TYPE_CHECKING:
    from host_gateway.components.data.host_repository import HostRecord, HostStatusStore

logger = get_logger(__name__)


@dataclass
class SweepResult:
    """Outcome of one sweep cycle."""

    transitioned: list["HostRecord"] = field(default_factory=list)
    deleted: list["HostRecord"] = field(default_factory=list)
    failed: bool = False


class LivenessSweeper:
    """
    Demotes stale ONLINE records and purges long-dead ones.

    run_cycle() never raises: a failed cycle is logged and does nothing,
    the next tick retries.
    """

    def __init__(
        self,
        store: "HostStatusStore",
        liveness_timeout: float = MonitorConstants.LIVENESS_TIMEOUT,
        retention_window: float = MonitorConstants.RETENTION_WINDOW,
    ) -> None:
        """
        Initialize sweeper.

        Args:
            store: Persisted host status store.
            liveness_timeout: Seconds without heartbeat before ONLINE -> UNREACHABLE.
            retention_window: Seconds before UNREACHABLE/OFFLINE records are deleted.
        """
        self._store = store
        self._liveness_timeout = liveness_timeout
        self._retention_window = retention_window
        self._total_transitioned = 0
        self._total_deleted = 0
        self._failures = 0

    async def run_cycle(self) -> SweepResult:
        """Run one sweep."""
        result = SweepResult()
        try:
            logger.debug("Checking for unreachable hosts")

            before_counts = await self._store.count_by_status()
            result.transitioned = await self._store.bulk_conditional_update(
                HostStatus.ONLINE,
                HostStatus.UNREACHABLE,
                older_than=self._liveness_timeout,
            )

            if result.transitioned:
                after_counts = await self._store.count_by_status()
                self._total_transitioned += len(result.transitioned)
                logger.info(
                    "Hosts marked as unreachable",
                    count=len(result.transitioned),
                    hosts=[record.to_log() for record in result.transitioned],
                    before_counts=before_counts,
                    after_counts=after_counts,
                    timestamp=datetime.now(timezone.utc).isoformat(),
                )

            result.deleted = await self._store.bulk_delete(
                HostStatus.TERMINAL,
                older_than=self._retention_window,
            )

            if result.deleted:
                self._total_deleted += len(result.deleted)
                logger.info(
                    "Old host instances deleted",
                    count=len(result.deleted),
                    hosts=[record.to_log() for record in result.deleted],
                    timestamp=datetime.now(timezone.utc).isoformat(),
                )
        except Exception as e:
            self._failures += 1
            result.failed = True
            logger.error(
                "Failed checking for unreachable hosts",
                error=str(e),
                timestamp=datetime.now(timezone.utc).isoformat(),
            )
        return result

    def get_stats(self) -> dict[str, float | int]:
        return {
            "liveness_timeout_seconds": self._liveness_timeout,
            "retention_window_seconds": self._retention_window,
            "total_transitioned": self._total_transitioned,
            "total_deleted": self._total_deleted,
            "failed_cycles": self._failures,
        }
