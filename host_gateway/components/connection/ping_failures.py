"""
Ping Failure Tracker.

Passive bookkeeping of missed pings per connection, reported to the logs
at a bounded rate. Takes no action on connections.

An identifier is in the map iff it has at least one ping failure since its
last successful ping. Entries never expire on their own; only
clear_failure() removes one.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from shared.config.constants import ConnectionKind
from shared.config.logging import get_logger
from host_gateway.components.core.constants import MonitorConstants

logger = get_logger(__name__)


@dataclass
class PingFailureEntry:
    """Consecutive ping failures for one connection."""

    instance_id: str
    kind: str
    organization_id: str | None = None
    user_id: str | None = None
    failure_count: int = 0
    first_failure_at: float = 0.0
    last_failure_at: float = 0.0

    @property
    def duration_minutes(self) -> int:
        """Minutes between the first and the latest failure."""
        return round((self.last_failure_at - self.first_failure_at) / 60)

    def to_dict(self) -> dict[str, Any]:
        return {
            "instance_id": self.instance_id,
            "type": self.kind,
            "organization_id": self.organization_id,
            "user_id": self.user_id,
            "failure_count": self.failure_count,
            "first_failure_time": datetime.fromtimestamp(
                self.first_failure_at, tz=timezone.utc
            ).isoformat(),
            "last_failure_time": datetime.fromtimestamp(
                self.last_failure_at, tz=timezone.utc
            ).isoformat(),
            "duration_minutes": self.duration_minutes,
        }


@dataclass
class PingFailureReport:
    """Snapshot of current ping failures, partitioned by kind."""

    total_failures: int = 0
    host_failures: int = 0
    client_failures: int = 0
    critical: list[PingFailureEntry] = field(default_factory=list)


class PingFailureTracker:
    """
    Tracks consecutive ping failures per connection.

    Usage:
        tracker = PingFailureTracker()
        tracker.record_failure("h-1", ConnectionKind.HOST, organization_id="org-1")
        tracker.clear_failure("h-1")  # ping succeeded
        report = tracker.build_report()
    """

    def __init__(
        self,
        log_interval: float = MonitorConstants.PING_FAILURE_LOG_INTERVAL,
        critical_count: int = MonitorConstants.PING_FAILURE_CRITICAL_COUNT,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize ping failure tracker.

        Args:
            log_interval: Minimum seconds between two reports.
            critical_count: Entries with more failures than this are critical.
            clock: Time source.
        """
        self._log_interval = log_interval
        self._critical_count = critical_count
        self._clock = clock
        self._failures: dict[str, PingFailureEntry] = {}
        self._last_flush_at = clock()
        self._flush_count = 0

    @property
    def tracked_count(self) -> int:
        """Number of connections with outstanding failures."""
        return len(self._failures)

    def get(self, instance_id: str) -> PingFailureEntry | None:
        return self._failures.get(instance_id)

    def __contains__(self, instance_id: str) -> bool:
        return instance_id in self._failures

    def record_failure(
        self,
        instance_id: str,
        kind: str,
        organization_id: str | None = None,
        user_id: str | None = None,
    ) -> PingFailureEntry:
        """
        Record a missed ping, creating the entry on the first failure.

        Also triggers a rate-limited report.

        Returns:
            The updated entry.
        """
        now = self._clock()
        entry = self._failures.get(instance_id)
        if entry is None:
            entry = PingFailureEntry(
                instance_id=instance_id,
                kind=kind,
                organization_id=organization_id,
                user_id=user_id,
                first_failure_at=now,
            )
            self._failures[instance_id] = entry
        entry.failure_count += 1
        entry.last_failure_at = now

        self.maybe_flush()
        return entry

    def clear_failure(self, instance_id: str) -> bool:
        """
        Forget all failures for a connection (its ping just succeeded).

        Returns:
            True if an entry was removed.
        """
        return self._failures.pop(instance_id, None) is not None

    def build_report(self) -> PingFailureReport:
        """Partition current entries by kind and collect the critical ones."""
        report = PingFailureReport(total_failures=len(self._failures))
        for entry in list(self._failures.values()):
            if entry.kind == ConnectionKind.HOST:
                report.host_failures += 1
            else:
                report.client_failures += 1
            if entry.failure_count > self._critical_count:
                report.critical.append(entry)
        return report

    def maybe_flush(self) -> PingFailureReport | None:
        """
        Log the current report if the log interval has elapsed.

        Returns:
            The logged report, or None when rate limited or nothing to report.
        """
        now = self._clock()
        if now - self._last_flush_at <= self._log_interval:
            return None
        self._last_flush_at = now
        return self.flush()

    def flush(self) -> PingFailureReport | None:
        """
        Log the current report unconditionally.

        Returns:
            The logged report, or None if there are no failures.
        """
        if not self._failures:
            return None

        report = self.build_report()
        self._flush_count += 1

        logger.warning(
            "Ping failure statistics",
            total_failures=report.total_failures,
            host_failures=report.host_failures,
            client_failures=report.client_failures,
        )

        if report.critical:
            logger.error(
                "Critical ping failures detected",
                count=len(report.critical),
                failures=[entry.to_dict() for entry in report.critical],
            )

        return report

    def get_stats(self) -> dict[str, Any]:
        """Get ping failure tracker statistics."""
        report = self.build_report()
        return {
            "tracked_connections": report.total_failures,
            "host_failures": report.host_failures,
            "client_failures": report.client_failures,
            "critical_failures": len(report.critical),
            "log_interval_seconds": self._log_interval,
            "reports_logged": self._flush_count,
        }
