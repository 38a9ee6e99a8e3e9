"""
Server Health Monitor.

Audits global consistency between the live connection registry and the
persisted host status records. After a run of consecutive failed checks
the process demotes every ONLINE record and exits, relying on the external
supervisor (container orchestrator) to start a fresh one. The monitor never
restarts anything in-process.

State machine over HealthCheckState:

    Healthy --check fails--> Unhealthy(n=1) --fails--> ... Unhealthy(n>=threshold)
       ^                                                        |
       +------------------- check succeeds ---------------------+
                                                (escalate unless cooling down)
"""

from __future__ import annotations

import asyncio
import os
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, TYPE_CHECKING

from shared.config.constants import HostStatus
from shared.config.logging import flush_logging, get_logger
from host_gateway.components.core.constants import MonitorConstants

if TYPE_CHECKING:
    from host_gateway.components.connection.registry import ConnectionRegistry
    from host_gateway.components.data.host_repository import HostStatusStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class HealthPolicy:
    """
    Tunable thresholds of the server health state machine.

    Attributes:
        restart_threshold: Consecutive failed checks that trigger escalation.
        restart_cooldown: Minimum seconds between two escalations.
        disconnected_host_threshold: ONLINE records missing from the registry
            tolerated in one check; more than this fails the check.
        empty_registry_strikes: Consecutive "store has ONLINE records but the
            registry is empty" signals, including the current one, needed to
            fail a check. 2 means one transient signal is ignored.
        exit_delay: Seconds between scheduling the exit and exiting.
        exit_code: Process exit code used for the self-restart.
    """

    restart_threshold: int = MonitorConstants.RESTART_THRESHOLD
    restart_cooldown: float = MonitorConstants.RESTART_COOLDOWN
    disconnected_host_threshold: int = MonitorConstants.DISCONNECTED_HOST_THRESHOLD
    empty_registry_strikes: int = MonitorConstants.EMPTY_REGISTRY_STRIKES
    exit_delay: float = MonitorConstants.RESTART_EXIT_DELAY
    exit_code: int = MonitorConstants.RESTART_EXIT_CODE


class HealthCheckState:
    """
    Process-wide health state, constructed once at startup and shared by
    reference with the monitor and the health endpoints.
    """

    def __init__(self) -> None:
        self.consecutive_failures = 0
        self.last_restart_at: float | None = None
        self.is_healthy = True
        self.last_check_at: float | None = None

    def record_success(self, now: float) -> int:
        """
        Reset the failure counter.

        Returns:
            The number of failures before the reset.
        """
        previous = self.consecutive_failures
        self.consecutive_failures = 0
        self.is_healthy = True
        self.last_check_at = now
        return previous

    def record_failure(self, now: float) -> int:
        """
        Count one more failed check.

        Returns:
            The new consecutive failure count.
        """
        self.consecutive_failures += 1
        self.is_healthy = False
        self.last_check_at = now
        return self.consecutive_failures

    def in_cooldown(self, now: float, cooldown: float) -> bool:
        """Whether a restart happened less than cooldown seconds ago."""
        if self.last_restart_at is None:
            return False
        return now - self.last_restart_at < cooldown

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_healthy": self.is_healthy,
            "consecutive_failures": self.consecutive_failures,
            "last_restart_at": self.last_restart_at,
            "last_check_at": self.last_check_at,
        }


class ProcessTerminator:
    """
    Ends the process with a non-zero exit code after a short delay.

    The delay lets buffered log handlers flush. Exits with os._exit so no
    shutdown hook of the ASGI server runs.
    """

    def __init__(self) -> None:
        self._handle: asyncio.TimerHandle | None = None

    @property
    def scheduled(self) -> bool:
        return self._handle is not None

    def schedule(self, exit_code: int, delay: float) -> None:
        """Schedule process exit on the running event loop."""
        if self._handle is not None:
            return
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(delay, self._exit, exit_code)

    def _exit(self, exit_code: int) -> None:
        flush_logging()
        os._exit(exit_code)


class ServerHealthMonitor:
    """
    Periodic registry/store consistency audit with last-resort self-restart.

    Usage:
        monitor = ServerHealthMonitor(store, registry, HealthCheckState())
        await monitor.run_cycle()
    """

    def __init__(
        self,
        store: "HostStatusStore",
        registry: "ConnectionRegistry",
        state: HealthCheckState,
        policy: HealthPolicy | None = None,
        terminator: ProcessTerminator | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize health monitor.

        Args:
            store: Persisted host status store.
            registry: Live connection registry.
            state: Shared health state.
            policy: Thresholds; defaults to MonitorConstants values.
            terminator: Process terminator; injectable for tests.
            clock: Time source for cooldown bookkeeping.
        """
        self._store = store
        self._registry = registry
        self._state = state
        self._policy = policy or HealthPolicy()
        self._terminator = terminator or ProcessTerminator()
        self._clock = clock
        self._escalations = 0

    @property
    def state(self) -> HealthCheckState:
        return self._state

    @property
    def policy(self) -> HealthPolicy:
        return self._policy

    # =========================================================================
    # Checks
    # =========================================================================

    async def check_server_health(self) -> bool:
        """
        Run all consistency checks once.

        Returns:
            True if the server looks healthy.
        """
        try:
            logger.info(
                "Performing server health check",
                connected_hosts_count=self._registry.host_count,
                connected_clients_count=self._registry.client_count,
            )

            # Check 1: database connectivity
            try:
                await self._store.raw_liveness_probe()
            except Exception as e:
                logger.error("Database connectivity check failed", error=str(e))
                return False

            online = await self._store.find_by_status(HostStatus.ONLINE)
            connected_ids = self._registry.host_ids()

            # Check 2: ONLINE records while no host is connected at all
            if online and not connected_ids:
                logger.warning(
                    "Potential server state inconsistency detected",
                    database_host_instances_count=len(online),
                    connected_hosts_count=0,
                )
                strikes = self._state.consecutive_failures + 1
                if strikes >= self._policy.empty_registry_strikes:
                    return False

            # Check 3: ONLINE records whose host is not connected
            disconnected = [record.id for record in online if record.id not in connected_ids]
            if disconnected:
                logger.warning(
                    "Found hosts marked as online in database but not connected",
                    count=len(disconnected),
                    host_ids=disconnected,
                )
                if len(disconnected) > self._policy.disconnected_host_threshold:
                    return False

            return True
        except Exception as e:
            logger.error("Error during server health check", error=str(e))
            return False

    async def run_cycle(self) -> bool:
        """
        Check health and advance the state machine.

        Returns:
            The result of the health check.
        """
        healthy = await self.check_server_health()
        now = self._clock()

        if healthy:
            previous = self._state.record_success(now)
            if previous > 0:
                logger.info("Server health restored", previous_failures=previous)
            return True

        failures = self._state.record_failure(now)
        logger.warning("Server health check failed", consecutive_failures=failures)

        if failures >= self._policy.restart_threshold:
            await self.handle_unhealthy_server()
        return False

    # =========================================================================
    # Escalation
    # =========================================================================

    async def handle_unhealthy_server(self) -> bool:
        """
        Demote ONLINE records and schedule a process exit, unless cooling down.

        Returns:
            True if the exit was scheduled.
        """
        now = self._clock()

        if self._state.in_cooldown(now, self._policy.restart_cooldown):
            logger.warning(
                "Server is unhealthy but in restart cooldown period",
                minutes_since_last_restart=int((now - self._state.last_restart_at) // 60),
                cooldown_minutes=self._policy.restart_cooldown / 60,
                consecutive_failures=self._state.consecutive_failures,
            )
            return False

        logger.error(
            "Server is unhealthy, initiating self-restart",
            consecutive_failures=self._state.consecutive_failures,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

        # Best effort: the database may be the reason the check is failing
        try:
            demoted = await self._store.mark_all_unreachable()
            logger.info("Marked online hosts unreachable before restart", count=demoted)
        except Exception as e:
            logger.error("Failed to prepare for server restart", error=str(e))

        self._state.last_restart_at = now
        self._escalations += 1

        logger.info(
            "Exiting process to trigger container restart",
            exit_code=self._policy.exit_code,
            delay_seconds=self._policy.exit_delay,
        )
        self._terminator.schedule(self._policy.exit_code, self._policy.exit_delay)
        return True

    def get_stats(self) -> dict[str, Any]:
        return {
            **self._state.to_dict(),
            "restart_threshold": self._policy.restart_threshold,
            "restart_cooldown_seconds": self._policy.restart_cooldown,
            "escalations": self._escalations,
        }
