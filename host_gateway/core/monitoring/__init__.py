"""
Liveness Monitors.

Periodic monitors over the connection registry and the host status store:
- liveness_sweeper.py: ONLINE -> UNREACHABLE, purge of old records
- reconnect_reconciler.py: UNREACHABLE -> OFFLINE or deleted
- server_health.py: registry/store consistency, self-restart
- connection_stats.py: opened/closed counters
- connection_health.py: stale connection audit
"""

from host_gateway.core.monitoring.liveness_sweeper import LivenessSweeper, SweepResult
from host_gateway.core.monitoring.reconnect_reconciler import (
    ReconnectReconciler,
    ReconcileResult,
)
from host_gateway.core.monitoring.server_health import (
    HealthCheckState,
    HealthPolicy,
    ProcessTerminator,
    ServerHealthMonitor,
)
from host_gateway.core.monitoring.connection_stats import (
    ConnectionCounters,
    ConnectionStatsMonitor,
)
from host_gateway.core.monitoring.connection_health import (
    ConnectionHealthCheck,
    ConnectionHealthReport,
)

__all__ = [
    "LivenessSweeper",
    "SweepResult",
    "ReconnectReconciler",
    "ReconcileResult",
    "HealthCheckState",
    "HealthPolicy",
    "ProcessTerminator",
    "ServerHealthMonitor",
    "ConnectionCounters",
    "ConnectionStatsMonitor",
    "ConnectionHealthCheck",
    "ConnectionHealthReport",
]
