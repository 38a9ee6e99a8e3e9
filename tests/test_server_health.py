"""
Tests for the server health monitor state machine.
"""

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from shared.config.constants import HostStatus
from host_gateway.core.monitoring.server_health import (
    HealthCheckState,
    HealthPolicy,
    ProcessTerminator,
    ServerHealthMonitor,
)


@pytest.fixture
def terminator():
    return MagicMock(spec=ProcessTerminator)


@pytest.fixture
def monitor(store, registry, terminator, clock):
    return ServerHealthMonitor(
        store,
        registry,
        HealthCheckState(),
        terminator=terminator,
        clock=clock.timestamp,
    )


def failing_store(probe_error: Exception | None = None) -> MagicMock:
    """Store whose liveness probe always fails."""
    store = MagicMock()
    store.raw_liveness_probe = AsyncMock(side_effect=probe_error or ConnectionError("refused"))
    store.find_by_status = AsyncMock(return_value=[])
    store.mark_all_unreachable = AsyncMock(return_value=0)
    return store


class TestHealthCheckState:

    def test_failure_and_success_bookkeeping(self):
        state = HealthCheckState()

        assert state.record_failure(10.0) == 1
        assert state.record_failure(20.0) == 2
        assert state.is_healthy is False
        assert state.record_success(30.0) == 2
        assert state.consecutive_failures == 0
        assert state.is_healthy is True
        assert state.last_check_at == 30.0

    def test_cooldown_window(self):
        state = HealthCheckState()
        assert state.in_cooldown(100.0, 3600) is False

        state.last_restart_at = 100.0
        assert state.in_cooldown(100.0 + 3599, 3600) is True
        assert state.in_cooldown(100.0 + 3600, 3600) is False


class TestChecks:

    @pytest.mark.asyncio
    async def test_consistent_state_is_healthy(self, monitor, seed_host, connect_host):
        seed_host("h-1")
        connect_host("h-1")

        assert await monitor.check_server_health() is True

    @pytest.mark.asyncio
    async def test_empty_store_and_registry_is_healthy(self, monitor):
        assert await monitor.check_server_health() is True

    @pytest.mark.asyncio
    async def test_probe_failure_fails_check(self, registry, terminator):
        monitor = ServerHealthMonitor(
            failing_store(), registry, HealthCheckState(), terminator=terminator
        )

        assert await monitor.check_server_health() is False

    @pytest.mark.asyncio
    async def test_single_empty_registry_signal_is_tolerated(self, monitor, seed_host):
        seed_host("h-1")

        assert await monitor.check_server_health() is True

    @pytest.mark.asyncio
    async def test_empty_registry_fails_when_already_failing(self, monitor, seed_host, clock):
        seed_host("h-1")
        monitor.state.record_failure(clock.timestamp())

        assert await monitor.check_server_health() is False

    @pytest.mark.asyncio
    async def test_empty_registry_strikes_is_configurable(
        self, store, registry, terminator, seed_host
    ):
        seed_host("h-1")
        monitor = ServerHealthMonitor(
            store,
            registry,
            HealthCheckState(),
            policy=HealthPolicy(empty_registry_strikes=1),
            terminator=terminator,
        )

        assert await monitor.check_server_health() is False

    @pytest.mark.asyncio
    async def test_disconnected_hosts_up_to_threshold_are_tolerated(
        self, monitor, seed_host, connect_host
    ):
        connect_host("live")
        seed_host("live")
        for host_id in ("a", "b", "c"):
            seed_host(host_id)

        assert await monitor.check_server_health() is True

    @pytest.mark.asyncio
    async def test_disconnected_hosts_above_threshold_fail_check(
        self, monitor, seed_host, connect_host
    ):
        connect_host("live")
        seed_host("live")
        for host_id in ("a", "b", "c", "d"):
            seed_host(host_id)

        assert await monitor.check_server_health() is False

    @pytest.mark.asyncio
    async def test_terminal_records_are_ignored(self, monitor, seed_host, connect_host):
        connect_host("live")
        seed_host("live")
        for host_id in ("a", "b", "c", "d"):
            seed_host(host_id, status=HostStatus.UNREACHABLE)

        assert await monitor.check_server_health() is True

    @pytest.mark.asyncio
    async def test_unexpected_error_fails_check(self, registry, terminator, caplog):
        store = MagicMock()
        store.raw_liveness_probe = AsyncMock(return_value=None)
        store.find_by_status = AsyncMock(side_effect=RuntimeError("boom"))
        monitor = ServerHealthMonitor(store, registry, HealthCheckState(), terminator=terminator)

        with caplog.at_level(logging.ERROR):
            assert await monitor.check_server_health() is False

        assert "Error during server health check" in caplog.text


class TestEscalation:

    @pytest.mark.asyncio
    async def test_escalates_after_exactly_threshold_failures(self, registry, terminator):
        store = failing_store()
        monitor = ServerHealthMonitor(store, registry, HealthCheckState(), terminator=terminator)

        await monitor.run_cycle()
        await monitor.run_cycle()
        terminator.schedule.assert_not_called()

        await monitor.run_cycle()

        terminator.schedule.assert_called_once_with(1, 1.0)
        store.mark_all_unreachable.assert_awaited_once()
        assert monitor.state.consecutive_failures == 3

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self, monitor, caplog, clock):
        monitor.state.record_failure(clock.timestamp())
        monitor.state.record_failure(clock.timestamp())

        with caplog.at_level(logging.INFO):
            assert await monitor.run_cycle() is True

        assert monitor.state.consecutive_failures == 0
        assert monitor.state.is_healthy is True
        assert "Server health restored" in caplog.text

    @pytest.mark.asyncio
    async def test_fail_then_success_never_escalates(self, registry, terminator):
        store = failing_store()
        monitor = ServerHealthMonitor(store, registry, HealthCheckState(), terminator=terminator)

        await monitor.run_cycle()
        await monitor.run_cycle()
        store.raw_liveness_probe.side_effect = None
        await monitor.run_cycle()
        store.raw_liveness_probe.side_effect = ConnectionError("refused")
        await monitor.run_cycle()
        await monitor.run_cycle()

        terminator.schedule.assert_not_called()
        assert monitor.state.consecutive_failures == 2

    @pytest.mark.asyncio
    async def test_cooldown_prevents_second_restart(self, registry, terminator, clock, caplog):
        store = failing_store()
        monitor = ServerHealthMonitor(
            store, registry, HealthCheckState(), terminator=terminator, clock=clock.timestamp
        )

        for _ in range(3):
            await monitor.run_cycle()
        assert terminator.schedule.call_count == 1

        clock.advance(minutes=30)
        with caplog.at_level(logging.WARNING):
            await monitor.run_cycle()

        assert terminator.schedule.call_count == 1
        assert "Server is unhealthy but in restart cooldown period" in caplog.text

    @pytest.mark.asyncio
    async def test_escalates_again_after_cooldown_expires(self, registry, terminator, clock):
        store = failing_store()
        monitor = ServerHealthMonitor(
            store, registry, HealthCheckState(), terminator=terminator, clock=clock.timestamp
        )

        for _ in range(3):
            await monitor.run_cycle()
        clock.advance(hours=1, seconds=1)
        await monitor.run_cycle()

        assert terminator.schedule.call_count == 2
        assert monitor.get_stats()["escalations"] == 2

    @pytest.mark.asyncio
    async def test_demotion_failure_still_escalates(self, registry, terminator, caplog):
        store = failing_store()
        store.mark_all_unreachable = AsyncMock(side_effect=ConnectionError("refused"))
        monitor = ServerHealthMonitor(store, registry, HealthCheckState(), terminator=terminator)
        monitor.state.consecutive_failures = 2

        with caplog.at_level(logging.ERROR):
            await monitor.run_cycle()

        terminator.schedule.assert_called_once()
        assert "Failed to prepare for server restart" in caplog.text

    @pytest.mark.asyncio
    async def test_escalation_demotes_online_records(
        self, monitor, terminator, seed_host, host_status
    ):
        seed_host("h-1")
        seed_host("h-2", status=HostStatus.OFFLINE)

        assert await monitor.handle_unhealthy_server() is True

        assert host_status("h-1") == HostStatus.UNREACHABLE
        assert host_status("h-2") == HostStatus.OFFLINE
        terminator.schedule.assert_called_once()
        assert monitor.state.last_restart_at is not None


class TestProcessTerminator:

    @pytest.mark.asyncio
    async def test_schedule_is_once_only(self, monkeypatch):
        exits = []
        terminator = ProcessTerminator()
        monkeypatch.setattr(terminator, "_exit", exits.append)

        terminator.schedule(1, 3600)
        terminator.schedule(1, 3600)

        assert terminator.scheduled is True
        terminator._handle.cancel()
        assert exits == []
