"""
Reconnect Reconciler.

Resolves hosts that have been UNREACHABLE for longer than the unreachable
threshold:
- superseded (another live host connected with the same API key):
  the stale record is deleted, the new connection already represents it;
- otherwise: the record is demoted to OFFLINE, keeping its history.

Only records that already went through the liveness sweep are eligible,
and every write is conditional on the record still being UNREACHABLE, so
resolving the same record twice is a no-op.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from shared.config.constants import HostStatus
from shared.config.logging import get_logger
from host_gateway.components.core.constants import MonitorConstants

if TYPE_CHECKING:
    from host_gateway.components.connection.registry import ConnectionRegistry
    from host_gateway.components.data.host_repository import HostStatusStore

logger = get_logger(__name__)


@dataclass
class ReconcileResult:
    """Outcome of one reconciliation run."""

    deleted: list[str] = field(default_factory=list)
    demoted: list[str] = field(default_factory=list)
    failed: bool = False

    @property
    def resolved_count(self) -> int:
        return len(self.deleted) + len(self.demoted)


class ReconnectReconciler:
    """
    Distinguishes superseded hosts from genuinely gone ones.

    A failed run may leave part of the batch unresolved; the next run picks
    up the leftovers.
    """

    def __init__(
        self,
        store: "HostStatusStore",
        registry: "ConnectionRegistry",
        unreachable_threshold: float = MonitorConstants.UNREACHABLE_THRESHOLD,
    ) -> None:
        """
        Initialize reconciler.

        Args:
            store: Persisted host status store.
            registry: Live connection registry.
            unreachable_threshold: Seconds a record must have been UNREACHABLE.
        """
        self._store = store
        self._registry = registry
        self._unreachable_threshold = unreachable_threshold
        self._total_deleted = 0
        self._total_demoted = 0
        self._failures = 0

    async def run_cycle(self) -> ReconcileResult:
        """Resolve every eligible UNREACHABLE record."""
        result = ReconcileResult()
        try:
            unreachable = await self._store.find_by_status(
                HostStatus.UNREACHABLE,
                older_than=self._unreachable_threshold,
            )
            if not unreachable:
                return result

            logger.info(
                "Found unreachable hosts to check",
                count=len(unreachable),
                timestamp=datetime.now(timezone.utc).isoformat(),
            )

            for record in unreachable:
                if self._registry.has_superseding_host(record.api_key_id, record.id):
                    logger.info(
                        "API key has a new connection, cleaning up old unreachable host",
                        host_id=record.id,
                        api_key_id=record.api_key_id,
                        organization_id=record.organization_id,
                    )
                    if await self._store.delete_by_id(
                        record.id, expected_status=HostStatus.UNREACHABLE
                    ):
                        result.deleted.append(record.id)
                elif await self._store.update_status(
                    record.id,
                    HostStatus.OFFLINE,
                    expected_status=HostStatus.UNREACHABLE,
                ):
                    result.demoted.append(record.id)
                    if self._registry.get(record.id) is not None:
                        logger.warning(
                            "Record demoted while its connection is registered",
                            host_id=record.id,
                            api_key_id=record.api_key_id,
                            organization_id=record.organization_id,
                        )
        except Exception as e:
            self._failures += 1
            result.failed = True
            logger.error(
                "Error checking for unreachable hosts to reset",
                error=str(e),
                timestamp=datetime.now(timezone.utc).isoformat(),
            )
        finally:
            self._total_deleted += len(result.deleted)
            self._total_demoted += len(result.demoted)

        if result.resolved_count > 0:
            logger.info(
                "Reset unreachable hosts",
                count=result.resolved_count,
                deleted=result.deleted,
                demoted=result.demoted,
                timestamp=datetime.now(timezone.utc).isoformat(),
            )
        return result

    def get_stats(self) -> dict[str, float | int]:
        return {
            "unreachable_threshold_seconds": self._unreachable_threshold,
            "total_deleted": self._total_deleted,
            "total_demoted": self._total_demoted,
            "failed_cycles": self._failures,
        }
