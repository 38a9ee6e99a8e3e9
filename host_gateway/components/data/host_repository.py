"""
Repository for Host Status Records.

Abstracts database access for the persisted host status table.
Every mutation the monitors depend on is a single conditional statement
(UPDATE/DELETE ... WHERE ... RETURNING), so concurrent sweeps are
idempotent and never lose updates.

Time windows are evaluated against the store's clock (the database's
now() by default), never the monitor's local clock.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, TYPE_CHECKING

from sqlalchemy import delete, func, select, text, update

from shared.config.constants import HostStatus
from shared.config.logging import get_logger
from shared.infrastructure.db import get_db_context, safe_commit
from shared.models import HostInstance

if TYPE_CHECKING:
    from sqlalchemy.orm import Session, sessionmaker

logger = get_logger(__name__)


@dataclass(frozen=True)
class HostRecord:
    """Detached snapshot of a host status row."""

    id: str
    organization_id: str | None
    api_key_id: str | None
    status: str
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, host: HostInstance) -> "HostRecord":
        return cls(
            id=host.id,
            organization_id=host.organization_id,
            api_key_id=host.api_key_id,
            status=host.status,
            updated_at=host.updated_at,
        )

    def to_log(self) -> dict[str, Any]:
        return {"id": self.id, "organization_id": self.organization_id}


def _as_window(seconds_or_delta: float | timedelta) -> timedelta:
    if isinstance(seconds_or_delta, timedelta):
        return seconds_or_delta
    return timedelta(seconds=seconds_or_delta)


class HostStatusStore:
    """
    Async-safe access to host status records.

    Sync SQLAlchemy sessions run in worker threads so a slow database never
    blocks the event loop.

    Usage:
        store = HostStatusStore()
        stale = await store.bulk_conditional_update(
            HostStatus.ONLINE, HostStatus.UNREACHABLE, older_than=60
        )
    """

    def __init__(
        self,
        session_factory: "sessionmaker | None" = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """
        Initialize the repository.

        Args:
            session_factory: Session factory; defaults to the shared SessionLocal.
            clock: Override for the store's clock. When None the database's
                   now() is queried inside each transaction.
        """
        self._session_factory = session_factory
        self._clock = clock

    # =========================================================================
    # Helpers
    # =========================================================================

    def _store_now(self, db: "Session") -> datetime:
        """Current time according to the store."""
        if self._clock is not None:
            return self._clock()
        return db.execute(select(func.now())).scalar_one()

    async def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        return await asyncio.to_thread(fn, *args)

    # =========================================================================
    # Reads
    # =========================================================================

    async def find_by_status(
        self,
        status: str,
        older_than: float | timedelta | None = None,
    ) -> list[HostRecord]:
        """
        Get all records with a status.

        Args:
            status: Status to select.
            older_than: If set, only records whose updated_at is further in
                        the past than this window (seconds or timedelta).
        """
        return await self._run(self._find_by_status_sync, status, older_than)

    def _find_by_status_sync(
        self, status: str, older_than: float | timedelta | None
    ) -> list[HostRecord]:
        with get_db_context(self._session_factory) as db:
            query = select(HostInstance).where(HostInstance.status == status)
            if older_than is not None:
                cutoff = self._store_now(db) - _as_window(older_than)
                query = query.where(HostInstance.updated_at < cutoff)
            hosts = db.execute(query.order_by(HostInstance.updated_at)).scalars().all()
            return [HostRecord.from_model(host) for host in hosts]

    async def find_by_id(self, host_id: str) -> HostRecord | None:
        """Get one record, or None if absent."""
        return await self._run(self._find_by_id_sync, host_id)

    def _find_by_id_sync(self, host_id: str) -> HostRecord | None:
        with get_db_context(self._session_factory) as db:
            host = db.get(HostInstance, host_id)
            return HostRecord.from_model(host) if host is not None else None

    async def count_by_status(self) -> dict[str, int]:
        """Record counts grouped by status (diagnostic snapshot)."""
        return await self._run(self._count_by_status_sync)

    def _count_by_status_sync(self) -> dict[str, int]:
        with get_db_context(self._session_factory) as db:
            rows = db.execute(
                select(HostInstance.status, func.count()).group_by(HostInstance.status)
            ).all()
            return {status: count for status, count in rows}

    async def seconds_since_update(self, record: HostRecord) -> float | None:
        """Age of a record's updated_at according to the store's clock."""
        if record.updated_at is None:
            return None
        return await self._run(self._seconds_since_update_sync, record.updated_at)

    def _seconds_since_update_sync(self, updated_at: datetime) -> float:
        with get_db_context(self._session_factory) as db:
            now = self._store_now(db)
        if (now.tzinfo is None) != (updated_at.tzinfo is None):
            # SQLite drops tzinfo; both sides are UTC
            now = now.replace(tzinfo=None)
            updated_at = updated_at.replace(tzinfo=None)
        return (now - updated_at).total_seconds()

    async def raw_liveness_probe(self) -> None:
        """
        Trivial round-trip to the database.

        Raises:
            Exception: Whatever the driver raises when the database is unreachable.
        """
        await self._run(self._raw_liveness_probe_sync)

    def _raw_liveness_probe_sync(self) -> None:
        with get_db_context(self._session_factory) as db:
            db.execute(text("SELECT 1"))

    # =========================================================================
    # Bulk conditional mutations
    # =========================================================================

    async def bulk_conditional_update(
        self,
        from_status: str,
        to_status: str,
        older_than: float | timedelta,
    ) -> list[HostRecord]:
        """
        Move every record in from_status not updated within older_than to to_status.

        One UPDATE ... RETURNING statement. updated_at is preserved so it
        keeps pointing at the last heartbeat.

        Returns:
            The transitioned records.
        """
        return await self._run(
            self._bulk_conditional_update_sync, from_status, to_status, older_than
        )

    def _bulk_conditional_update_sync(
        self, from_status: str, to_status: str, older_than: float | timedelta
    ) -> list[HostRecord]:
        with get_db_context(self._session_factory) as db:
            cutoff = self._store_now(db) - _as_window(older_than)
            rows = db.execute(
                update(HostInstance)
                .where(
                    HostInstance.status == from_status,
                    HostInstance.updated_at < cutoff,
                )
                .values(status=to_status)
                .returning(
                    HostInstance.id,
                    HostInstance.organization_id,
                    HostInstance.api_key_id,
                    HostInstance.updated_at,
                )
                .execution_options(synchronize_session=False)
            ).all()
            safe_commit(db)
            return [
                HostRecord(
                    id=row.id,
                    organization_id=row.organization_id,
                    api_key_id=row.api_key_id,
                    status=to_status,
                    updated_at=row.updated_at,
                )
                for row in rows
            ]

    async def bulk_delete(
        self,
        statuses: Iterable[str],
        older_than: float | timedelta,
    ) -> list[HostRecord]:
        """
        Delete every record in one of statuses not updated within older_than.

        Returns:
            The deleted records.
        """
        return await self._run(self._bulk_delete_sync, list(statuses), older_than)

    def _bulk_delete_sync(
        self, statuses: list[str], older_than: float | timedelta
    ) -> list[HostRecord]:
        with get_db_context(self._session_factory) as db:
            cutoff = self._store_now(db) - _as_window(older_than)
            rows = db.execute(
                delete(HostInstance)
                .where(
                    HostInstance.status.in_(statuses),
                    HostInstance.updated_at < cutoff,
                )
                .returning(
                    HostInstance.id,
                    HostInstance.organization_id,
                    HostInstance.api_key_id,
                    HostInstance.status,
                    HostInstance.updated_at,
                )
                .execution_options(synchronize_session=False)
            ).all()
            safe_commit(db)
            return [
                HostRecord(
                    id=row.id,
                    organization_id=row.organization_id,
                    api_key_id=row.api_key_id,
                    status=row.status,
                    updated_at=row.updated_at,
                )
                for row in rows
            ]

    async def mark_all_unreachable(self) -> int:
        """
        Demote every ONLINE record to UNREACHABLE.

        Used right before a self-restart so no ONLINE row survives a
        process that is about to drop all its connections.

        Returns:
            Number of records demoted.
        """
        return await self._run(self._mark_all_unreachable_sync)

    def _mark_all_unreachable_sync(self) -> int:
        with get_db_context(self._session_factory) as db:
            now = self._store_now(db)
            result = db.execute(
                update(HostInstance)
                .where(HostInstance.status == HostStatus.ONLINE)
                .values(status=HostStatus.UNREACHABLE, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            safe_commit(db)
            return result.rowcount or 0

    # =========================================================================
    # Single record mutations
    # =========================================================================

    async def update_status(
        self,
        host_id: str,
        new_status: str,
        expected_status: str | None = None,
    ) -> bool:
        """
        Set a record's status and bump updated_at.

        Args:
            host_id: Record to update.
            new_status: Status to set.
            expected_status: If set, only update while the record still has
                             this status. Makes repeated resolution a no-op.

        Returns:
            True if a record was updated.
        """
        return await self._run(
            self._update_status_sync, host_id, new_status, expected_status
        )

    def _update_status_sync(
        self, host_id: str, new_status: str, expected_status: str | None
    ) -> bool:
        with get_db_context(self._session_factory) as db:
            query = update(HostInstance).where(HostInstance.id == host_id)
            if expected_status is not None:
                query = query.where(HostInstance.status == expected_status)
            result = db.execute(
                query.values(status=new_status, updated_at=self._store_now(db))
                .execution_options(synchronize_session=False)
            )
            safe_commit(db)
            return (result.rowcount or 0) > 0

    async def delete_by_id(
        self,
        host_id: str,
        expected_status: str | None = None,
    ) -> bool:
        """
        Delete a record.

        Args:
            host_id: Record to delete.
            expected_status: If set, only delete while the record still has
                             this status.

        Returns:
            True if a record was deleted.
        """
        return await self._run(self._delete_by_id_sync, host_id, expected_status)

    def _delete_by_id_sync(self, host_id: str, expected_status: str | None) -> bool:
        with get_db_context(self._session_factory) as db:
            query = delete(HostInstance).where(HostInstance.id == host_id)
            if expected_status is not None:
                query = query.where(HostInstance.status == expected_status)
            result = db.execute(query.execution_options(synchronize_session=False))
            safe_commit(db)
            return (result.rowcount or 0) > 0

    async def mark_online(
        self,
        host_id: str,
        organization_id: str | None = None,
        api_key_id: str | None = None,
    ) -> HostRecord:
        """
        Create or revive a record as ONLINE (fresh connection event).

        The only path back to ONLINE from UNREACHABLE or OFFLINE.
        """
        return await self._run(
            self._mark_online_sync, host_id, organization_id, api_key_id
        )

    def _mark_online_sync(
        self, host_id: str, organization_id: str | None, api_key_id: str | None
    ) -> HostRecord:
        with get_db_context(self._session_factory) as db:
            now = self._store_now(db)
            host = db.get(HostInstance, host_id)
            if host is None:
                host = HostInstance(
                    id=host_id,
                    organization_id=organization_id,
                    api_key_id=api_key_id,
                    created_at=now,
                )
                db.add(host)
            else:
                if organization_id is not None:
                    host.organization_id = organization_id
                if api_key_id is not None:
                    host.api_key_id = api_key_id
            host.status = HostStatus.ONLINE
            host.updated_at = now
            safe_commit(db)
            db.refresh(host)
            return HostRecord.from_model(host)

    async def touch(self, host_id: str) -> bool:
        """
        Heartbeat: bump updated_at of an ONLINE record.

        Returns:
            True if an ONLINE record was bumped.
        """
        return await self._run(self._touch_sync, host_id)

    def _touch_sync(self, host_id: str) -> bool:
        with get_db_context(self._session_factory) as db:
            result = db.execute(
                update(HostInstance)
                .where(
                    HostInstance.id == host_id,
                    HostInstance.status == HostStatus.ONLINE,
                )
                .values(updated_at=self._store_now(db))
                .execution_options(synchronize_session=False)
            )
            safe_commit(db)
            return (result.rowcount or 0) > 0
