"""
Host Gateway Core Module.

- scheduler.py: PeriodicTask, the ticker every monitor runs on
- monitoring/: liveness monitors
"""

from host_gateway.core.scheduler import PeriodicTask
from host_gateway.core.monitoring import (
    LivenessSweeper,
    ReconnectReconciler,
    ServerHealthMonitor,
    HealthCheckState,
    HealthPolicy,
    ProcessTerminator,
    ConnectionStatsMonitor,
    ConnectionHealthCheck,
)

__all__ = [
    "PeriodicTask",
    "LivenessSweeper",
    "ReconnectReconciler",
    "ServerHealthMonitor",
    "HealthCheckState",
    "HealthPolicy",
    "ProcessTerminator",
    "ConnectionStatsMonitor",
    "ConnectionHealthCheck",
]
