"""
Host Gateway Monitor Constants.

Centralized timing and threshold defaults for the liveness monitors,
with the rationale for each value.
"""

from typing import Final, Protocol

__all__ = [
    "MonitorConstants",
    "HasStats",
]


class MonitorConstants:
    """
    Liveness monitor operational constants.

    Default Values vs Settings
    ==========================
    These are defaults used when settings are not available (tests,
    components constructed by hand). At RUNTIME the LivenessManager reads
    `shared.config.settings.settings`, which can override each value via
    environment variables.
    """

    # ==========================================================================
    # Liveness Sweep
    # ==========================================================================

    # LIVENESS_SWEEP_INTERVAL: 60 seconds
    # Rationale: Must not exceed LIVENESS_TIMEOUT, otherwise a record can sit
    # ONLINE for up to two timeouts before it is demoted.
    LIVENESS_SWEEP_INTERVAL: Final[float] = 60.0

    # LIVENESS_TIMEOUT: 1 minute
    # Rationale: Hosts bump their record with a periodic heartbeat well inside
    # this window while connected.
    LIVENESS_TIMEOUT: Final[float] = 60.0

    # RETENTION_WINDOW: 6 hours
    # Rationale: UNREACHABLE/OFFLINE rows are kept long enough for operators
    # to see recent history, then purged.
    RETENTION_WINDOW: Final[float] = 6 * 60 * 60

    # ==========================================================================
    # Reconnect Reconciler
    # ==========================================================================

    # RECONNECT_CHECK_INTERVAL: 15 minutes
    RECONNECT_CHECK_INTERVAL: Final[float] = 15 * 60

    # UNREACHABLE_THRESHOLD: 30 minutes
    # Rationale: Gives a flapping host time to come back on its own before its
    # record is resolved to OFFLINE or deleted.
    UNREACHABLE_THRESHOLD: Final[float] = 30 * 60

    # ==========================================================================
    # Server Health
    # ==========================================================================

    # HEALTH_CHECK_INTERVAL: 5 minutes
    HEALTH_CHECK_INTERVAL: Final[float] = 5 * 60

    # RESTART_THRESHOLD: 3 consecutive failed checks
    # Rationale: At a 5 minute interval the server must look broken for
    # 10-15 minutes before it restarts itself.
    RESTART_THRESHOLD: Final[int] = 3

    # RESTART_COOLDOWN: 1 hour
    # Rationale: Prevents a restart loop when the inconsistency survives
    # the restart (e.g. a database-side problem).
    RESTART_COOLDOWN: Final[float] = 60 * 60

    # RESTART_EXIT_DELAY: 1 second
    # Rationale: Lets buffered log handlers flush before the process exits.
    RESTART_EXIT_DELAY: Final[float] = 1.0

    # RESTART_EXIT_CODE: non-zero so the supervisor treats the exit as a crash
    RESTART_EXIT_CODE: Final[int] = 1

    # DISCONNECTED_HOST_THRESHOLD: 3 hosts
    # Rationale: A handful of ONLINE-but-not-connected rows is normal between
    # sweeps; more than this points at a server-side problem.
    DISCONNECTED_HOST_THRESHOLD: Final[int] = 3

    # EMPTY_REGISTRY_STRIKES: 2 consecutive signals
    # Rationale: The registry is empty for a moment after startup while the
    # store still holds ONLINE rows. One signal alone is not a failure.
    EMPTY_REGISTRY_STRIKES: Final[int] = 2

    # ==========================================================================
    # Ping Failures
    # ==========================================================================

    # PING_FAILURE_LOG_INTERVAL: 5 minutes
    PING_FAILURE_LOG_INTERVAL: Final[float] = 5 * 60

    # PING_FAILURE_CRITICAL_COUNT: entries with more failures are critical
    PING_FAILURE_CRITICAL_COUNT: Final[int] = 3

    # ==========================================================================
    # Connection Statistics and Health
    # ==========================================================================

    # CONNECTION_STATS_LOG_INTERVAL: 1 hour
    CONNECTION_STATS_LOG_INTERVAL: Final[float] = 60 * 60

    # CONNECTION_HEALTH_CHECK_INTERVAL: 5 minutes
    CONNECTION_HEALTH_CHECK_INTERVAL: Final[float] = 5 * 60

    # HOST_STALE_THRESHOLD: 10 minutes without a record update
    HOST_STALE_THRESHOLD: Final[float] = 10 * 60

    # CLIENT_STALE_THRESHOLD: 5 minutes without a heartbeat
    CLIENT_STALE_THRESHOLD: Final[float] = 5 * 60


class HasStats(Protocol):
    """Protocol for components that expose statistics."""

    def get_stats(self) -> dict: ...
