"""
Tests for the liveness sweeper.
"""

import logging
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from shared.config.constants import HostStatus
from host_gateway.core.monitoring.liveness_sweeper import LivenessSweeper


@pytest.fixture
def sweeper(store):
    return LivenessSweeper(store, liveness_timeout=60, retention_window=6 * 3600)


class TestStaleOnlineHosts:

    @pytest.mark.asyncio
    async def test_online_host_past_timeout_becomes_unreachable(
        self, sweeper, seed_host, host_status
    ):
        seed_host("h-1", age=timedelta(seconds=61))

        result = await sweeper.run_cycle()

        assert [record.id for record in result.transitioned] == ["h-1"]
        assert host_status("h-1") == HostStatus.UNREACHABLE

    @pytest.mark.asyncio
    async def test_recent_heartbeat_keeps_host_online(self, sweeper, seed_host, host_status):
        seed_host("h-1", age=timedelta(seconds=59))

        result = await sweeper.run_cycle()

        assert result.transitioned == []
        assert host_status("h-1") == HostStatus.ONLINE

    @pytest.mark.asyncio
    async def test_sweep_never_touches_terminal_records_inside_retention(
        self, sweeper, seed_host, host_status
    ):
        seed_host("u-1", status=HostStatus.UNREACHABLE, age=timedelta(hours=2))
        seed_host("o-1", status=HostStatus.OFFLINE, age=timedelta(hours=5, minutes=59))

        result = await sweeper.run_cycle()

        assert result.transitioned == []
        assert result.deleted == []
        assert host_status("u-1") == HostStatus.UNREACHABLE
        assert host_status("o-1") == HostStatus.OFFLINE

    @pytest.mark.asyncio
    async def test_transition_is_logged_with_counts(self, sweeper, seed_host, caplog):
        seed_host("h-1", age=timedelta(minutes=5))

        with caplog.at_level(logging.INFO):
            await sweeper.run_cycle()

        records = [r for r in caplog.records if r.getMessage() == "Hosts marked as unreachable"]
        assert len(records) == 1
        data = records[0].extra_data
        assert data["count"] == 1
        assert data["before_counts"] == {HostStatus.ONLINE: 1}
        assert data["after_counts"] == {HostStatus.UNREACHABLE: 1}


class TestRetention:

    @pytest.mark.asyncio
    async def test_terminal_records_past_retention_are_deleted(
        self, sweeper, seed_host, host_status
    ):
        seed_host("u-old", status=HostStatus.UNREACHABLE, age=timedelta(hours=6, minutes=1))
        seed_host("o-old", status=HostStatus.OFFLINE, age=timedelta(hours=7))

        result = await sweeper.run_cycle()

        assert sorted(record.id for record in result.deleted) == ["o-old", "u-old"]
        assert host_status("u-old") is None
        assert host_status("o-old") is None

    @pytest.mark.asyncio
    async def test_freshly_transitioned_host_is_not_deleted_in_same_cycle(
        self, store, seed_host, host_status
    ):
        sweeper = LivenessSweeper(store, liveness_timeout=60, retention_window=6 * 3600)
        seed_host("h-1", age=timedelta(minutes=10))

        result = await sweeper.run_cycle()

        assert [record.id for record in result.transitioned] == ["h-1"]
        assert result.deleted == []
        assert host_status("h-1") == HostStatus.UNREACHABLE

    @pytest.mark.asyncio
    async def test_records_age_out_as_clock_advances(
        self, sweeper, seed_host, host_status, clock
    ):
        seed_host("o-1", status=HostStatus.OFFLINE)

        await sweeper.run_cycle()
        assert host_status("o-1") == HostStatus.OFFLINE

        clock.advance(hours=6, seconds=1)
        await sweeper.run_cycle()
        assert host_status("o-1") is None


class TestFailures:

    @pytest.mark.asyncio
    async def test_store_error_is_logged_and_swallowed(self, caplog):
        store = MagicMock()
        store.count_by_status = AsyncMock(side_effect=RuntimeError("db down"))
        sweeper = LivenessSweeper(store)

        with caplog.at_level(logging.ERROR):
            result = await sweeper.run_cycle()

        assert result.failed is True
        assert "Failed checking for unreachable hosts" in caplog.text
        assert sweeper.get_stats()["failed_cycles"] == 1

    @pytest.mark.asyncio
    async def test_failed_delete_keeps_transitions(self):
        store = MagicMock()
        store.count_by_status = AsyncMock(return_value={})
        store.bulk_conditional_update = AsyncMock(return_value=[])
        store.bulk_delete = AsyncMock(side_effect=RuntimeError("db down"))
        sweeper = LivenessSweeper(store)

        result = await sweeper.run_cycle()

        assert result.failed is True
        store.bulk_conditional_update.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stats_accumulate(self, sweeper, seed_host):
        seed_host("h-1", age=timedelta(minutes=2))
        seed_host("o-1", status=HostStatus.OFFLINE, age=timedelta(hours=8))

        await sweeper.run_cycle()
        stats = sweeper.get_stats()

        assert stats["total_transitioned"] == 1
        assert stats["total_deleted"] == 1
        assert stats["failed_cycles"] == 0
