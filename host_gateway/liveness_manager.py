"""
Liveness Manager.

Thin orchestrator that owns the shared liveness state and composes the
monitors around it:
- ConnectionRegistry: live host/client connections
- PingFailureTracker: missed pings per connection
- ConnectionStatsMonitor: opened/closed counters
- HealthCheckState: server health state machine
- HostStatusStore: persisted host status

Each monitor runs on its own PeriodicTask. Every start_* call is idempotent
and meant to be called once at boot by the application lifespan. The
transport layer reports events through the on_* callbacks.
"""

from __future__ import annotations

import time
from typing import Any, Callable

from shared.config.constants import ConnectionKind
from shared.config.logging import get_logger
from shared.config.settings import Settings, settings as default_settings
from host_gateway.components.connection.ping_failures import PingFailureTracker
from host_gateway.components.connection.registry import (
    ConnectionHandle,
    ConnectionRegistry,
)
from host_gateway.components.core.constants import HasStats
from host_gateway.components.data.host_repository import HostStatusStore
from host_gateway.core.scheduler import PeriodicTask
from host_gateway.core.monitoring import (
    ConnectionHealthCheck,
    ConnectionStatsMonitor,
    HealthCheckState,
    HealthPolicy,
    LivenessSweeper,
    ProcessTerminator,
    ReconnectReconciler,
    ServerHealthMonitor,
)

logger = get_logger(__name__)


class LivenessManager:
    """
    Composes the liveness monitors over explicitly owned state.

    Configuration from settings:
    - liveness_sweep_interval / liveness_timeout / retention_window
    - reconnect_check_interval / unreachable_threshold
    - health_check_interval / restart_threshold / restart_cooldown
    - ping_failure_log_interval / ping_failure_critical_count
    - connection_stats_log_interval
    - connection_health_check_interval / host_stale_threshold / client_stale_threshold
    """

    def __init__(
        self,
        store: HostStatusStore | None = None,
        registry: ConnectionRegistry | None = None,
        config: Settings | None = None,
        terminator: ProcessTerminator | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the manager with composed components.

        Args:
            store: Host status store; defaults to one on the shared database.
            registry: Connection registry; a fresh one by default.
            config: Settings; defaults to the process settings.
            terminator: Process terminator used by the health monitor.
            clock: Time source for in-memory bookkeeping.
        """
        self._config = config or default_settings
        self._clock = clock

        # Owned state
        self._store = store or HostStatusStore()
        self._registry = registry or ConnectionRegistry(clock=clock)
        self._ping_failures = PingFailureTracker(
            log_interval=self._config.ping_failure_log_interval,
            critical_count=self._config.ping_failure_critical_count,
            clock=clock,
        )
        self._health_state = HealthCheckState()

        # Monitors
        self._sweeper = LivenessSweeper(
            self._store,
            liveness_timeout=self._config.liveness_timeout,
            retention_window=self._config.retention_window,
        )
        self._reconciler = ReconnectReconciler(
            self._store,
            self._registry,
            unreachable_threshold=self._config.unreachable_threshold,
        )
        self._health_monitor = ServerHealthMonitor(
            self._store,
            self._registry,
            self._health_state,
            policy=HealthPolicy(
                restart_threshold=self._config.restart_threshold,
                restart_cooldown=self._config.restart_cooldown,
                disconnected_host_threshold=self._config.disconnected_host_threshold,
                empty_registry_strikes=self._config.empty_registry_strikes,
                exit_delay=self._config.restart_exit_delay,
            ),
            terminator=terminator,
            clock=clock,
        )
        self._connection_stats = ConnectionStatsMonitor(self._registry, clock=clock)
        self._connection_health = ConnectionHealthCheck(
            self._store,
            self._registry,
            host_stale_threshold=self._config.host_stale_threshold,
            client_stale_threshold=self._config.client_stale_threshold,
            clock=clock,
        )

        # One ticker per monitor
        self._tasks: dict[str, PeriodicTask] = {
            "liveness_sweep": PeriodicTask(
                "liveness_sweep",
                self._config.liveness_sweep_interval,
                self._sweeper.run_cycle,
            ),
            "reconnect_reconciler": PeriodicTask(
                "reconnect_reconciler",
                self._config.reconnect_check_interval,
                self._reconciler.run_cycle,
            ),
            "server_health": PeriodicTask(
                "server_health",
                self._config.health_check_interval,
                self._health_monitor.run_cycle,
                run_immediately=True,
            ),
            "connection_stats": PeriodicTask(
                "connection_stats",
                self._config.connection_stats_log_interval,
                self._connection_stats.flush,
            ),
            "ping_failure_report": PeriodicTask(
                "ping_failure_report",
                self._config.ping_failure_log_interval,
                self._flush_ping_failures,
            ),
            "connection_health": PeriodicTask(
                "connection_health",
                self._config.connection_health_check_interval,
                self._connection_health.run_cycle,
            ),
        }

    # =========================================================================
    # Owned state (read-only access)
    # =========================================================================

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    @property
    def store(self) -> HostStatusStore:
        return self._store

    @property
    def ping_failures(self) -> PingFailureTracker:
        return self._ping_failures

    @property
    def health_state(self) -> HealthCheckState:
        return self._health_state

    @property
    def sweeper(self) -> LivenessSweeper:
        return self._sweeper

    @property
    def reconciler(self) -> ReconnectReconciler:
        return self._reconciler

    @property
    def health_monitor(self) -> ServerHealthMonitor:
        return self._health_monitor

    @property
    def connection_stats(self) -> ConnectionStatsMonitor:
        return self._connection_stats

    @property
    def connection_health(self) -> ConnectionHealthCheck:
        return self._connection_health

    def task(self, name: str) -> PeriodicTask:
        return self._tasks[name]

    # =========================================================================
    # Start / stop
    # =========================================================================

    def _start(self, name: str, message: str) -> bool:
        task = self._tasks[name]
        started = task.start()
        if started:
            logger.info(message, check_interval_seconds=task.interval)
        return started

    def start_liveness_sweep(self) -> bool:
        return self._start("liveness_sweep", "Liveness sweep started")

    def start_reconnect_reconciler(self) -> bool:
        return self._start("reconnect_reconciler", "Auto-reconnect service started")

    def start_server_health_monitoring(self) -> bool:
        policy = self._health_monitor.policy
        logger.info(
            "Starting server health monitoring service",
            restart_threshold=policy.restart_threshold,
            restart_cooldown_seconds=policy.restart_cooldown,
        )
        return self._start("server_health", "Server health monitoring started")

    def start_connection_stats_monitor(self) -> bool:
        started = self._start("connection_stats", "Connection monitoring started")
        self._start("ping_failure_report", "Ping failure reporting started")
        return started

    def start_connection_health_checks(self) -> bool:
        return self._start("connection_health", "Connection health checks started")

    def start_all(self) -> None:
        """Start every monitor."""
        self.start_liveness_sweep()
        self.start_reconnect_reconciler()
        self.start_server_health_monitoring()
        self.start_connection_stats_monitor()
        self.start_connection_health_checks()

    async def stop(self) -> None:
        """Stop every monitor. Each task is stopped even if another fails."""
        for task in self._tasks.values():
            try:
                await task.stop()
            except Exception as e:
                logger.warning("Error stopping periodic task", task=task.name, error=str(e))

    # =========================================================================
    # Transport callbacks
    # =========================================================================

    async def on_connection_opened(self, handle: ConnectionHandle) -> None:
        """
        A connection was accepted.

        Hosts are registered first, then their record is (re)marked ONLINE;
        a host never appears ONLINE in the store without being in the registry
        for longer than the store round-trip.
        """
        self._registry.insert(handle)
        self._connection_stats.increment_created(handle.kind)
        if handle.kind == ConnectionKind.HOST:
            await self._store.mark_online(
                handle.connection_id,
                organization_id=handle.organization_id,
                api_key_id=handle.api_key_id,
            )

    def on_connection_closed(
        self,
        kind: str,
        connection_id: str,
        handle: ConnectionHandle | None = None,
    ) -> bool:
        """
        A connection was torn down.

        The transport should pass the handle it registered. A close that
        arrives after the same identifier reconnected then leaves the new
        handle and its ping failures alone. The socket is counted as closed
        either way, since its open was counted too.

        Returns:
            True if a registered handle was removed.
        """
        removed = self._registry.remove(kind, connection_id, handle) is not None
        if removed:
            self._ping_failures.clear_failure(connection_id)
        self._connection_stats.increment_closed(kind)
        return removed

    async def on_heartbeat(self, connection_id: str) -> bool:
        """
        A heartbeat arrived.

        Bumps the registry handle and, for hosts, the persisted record.

        Returns:
            True if the connection is registered.
        """
        handle = self._registry.get(connection_id)
        if handle is None:
            return False
        self._registry.touch(connection_id)
        if handle.kind == ConnectionKind.HOST:
            await self._store.touch(connection_id)
        return True

    def on_ping_result(
        self,
        connection_id: str,
        kind: str,
        organization_id: str | None = None,
        user_id: str | None = None,
        success: bool = True,
    ) -> None:
        """Route a ping outcome to the failure tracker."""
        if success:
            self.clear_ping_failure(connection_id)
        else:
            self.record_ping_failure(connection_id, kind, organization_id, user_id)

    def record_ping_failure(
        self,
        connection_id: str,
        kind: str,
        organization_id: str | None = None,
        user_id: str | None = None,
    ) -> None:
        self._ping_failures.record_failure(connection_id, kind, organization_id, user_id)

    def clear_ping_failure(self, connection_id: str) -> None:
        self._ping_failures.clear_failure(connection_id)

    async def _flush_ping_failures(self) -> None:
        self._ping_failures.maybe_flush()

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_stats(self) -> dict[str, Any]:
        """Get liveness statistics for health endpoints."""
        sources: dict[str, HasStats] = {
            "ping_failures": self._ping_failures,
            "server_health": self._health_monitor,
            "liveness_sweep": self._sweeper,
            "reconnect_reconciler": self._reconciler,
        }
        return {
            "connections": self._connection_stats.snapshot(),
            **{key: source.get_stats() for key, source in sources.items()},
            "tasks": {name: task.get_stats() for name, task in self._tasks.items()},
        }
