"""
Connection Health Check.

Advisory audit of the live connections themselves:
- hosts whose persisted record is missing or has not been refreshed
  within host_stale_threshold;
- clients whose last heartbeat is older than client_stale_threshold.

Findings are logged as warnings; nothing is closed or mutated.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, TYPE_CHECKING

from shared.config.constants import ConnectionKind
from shared.config.logging import get_logger
from host_gateway.components.core.constants import MonitorConstants

if TYPE_CHECKING:
    from host_gateway.components.connection.registry import ConnectionRegistry
    from host_gateway.components.data.host_repository import HostStatusStore

logger = get_logger(__name__)


@dataclass
class ConnectionHealthReport:
    stale_hosts: list[dict[str, Any]] = field(default_factory=list)
    stale_clients: list[dict[str, Any]] = field(default_factory=list)


class ConnectionHealthCheck:
    """Finds registered connections that look stale."""

    def __init__(
        self,
        store: "HostStatusStore",
        registry: "ConnectionRegistry",
        host_stale_threshold: float = MonitorConstants.HOST_STALE_THRESHOLD,
        client_stale_threshold: float = MonitorConstants.CLIENT_STALE_THRESHOLD,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._registry = registry
        self._host_stale_threshold = host_stale_threshold
        self._client_stale_threshold = client_stale_threshold
        self._clock = clock

    async def run_cycle(self) -> ConnectionHealthReport:
        report = ConnectionHealthReport()
        logger.debug(
            "Performing connection health check",
            connected_hosts_count=self._registry.host_count,
            connected_clients_count=self._registry.client_count,
        )

        for handle in self._registry.iterate(ConnectionKind.HOST):
            try:
                record = await self._store.find_by_id(handle.connection_id)
                if record is None:
                    report.stale_hosts.append({
                        "id": handle.connection_id,
                        "reason": "Host instance not found in database",
                        "organization_id": handle.organization_id,
                    })
                    continue

                age = await self._store.seconds_since_update(record)
                if age is not None and age > self._host_stale_threshold:
                    report.stale_hosts.append({
                        "id": handle.connection_id,
                        "reason": "Host instance not updated recently",
                        "last_updated": record.updated_at.isoformat(),
                        "time_since_update_seconds": round(age, 1),
                        "organization_id": handle.organization_id,
                    })
            except Exception as e:
                logger.error(
                    "Error checking host instance health",
                    host_id=handle.connection_id,
                    error=str(e),
                )

        now = self._clock()
        for handle in self._registry.iterate(ConnectionKind.CLIENT):
            silence = handle.seconds_since_seen(now)
            if silence > self._client_stale_threshold:
                report.stale_clients.append({
                    "id": handle.connection_id,
                    "reason": "No heartbeat received recently",
                    "seconds_since_heartbeat": round(silence, 1),
                    "organization_id": handle.organization_id,
                    "user_id": handle.user_id,
                })

        if report.stale_hosts:
            logger.warning(
                "Stale host connections detected",
                count=len(report.stale_hosts),
                stale_hosts=report.stale_hosts,
            )

        if report.stale_clients:
            logger.warning(
                "Stale client connections detected",
                count=len(report.stale_clients),
                stale_clients=report.stale_clients,
            )

        return report
