"""
Connection Registry - live host and client connections.

Ground truth for "is a socket open right now". The transport layer inserts
a handle when a connection is accepted and removes it on disconnect; the
liveness monitors only read it.

All mutations happen on the event loop thread by single key insert/delete,
so no locks are needed. Readers iterate over snapshots.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Iterator

from shared.config.constants import ConnectionKind
from shared.config.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ConnectionHandle:
    """
    One live transport connection.

    last_seen is bumped by the transport on every heartbeat (pong) and is
    what client staleness is measured against.
    """

    connection_id: str
    kind: str
    organization_id: str | None = None
    api_key_id: str | None = None
    user_id: str | None = None
    transport: Any = None
    connected_at: float = field(default_factory=time.time)
    last_seen: float = field(default_factory=time.time)

    def seconds_since_seen(self, now: float) -> float:
        """Seconds elapsed since the last heartbeat."""
        return now - self.last_seen


class ConnectionRegistry:
    """
    In-memory mapping of live connection identifiers to handles.

    Indices maintained:
    - hosts: connection_id -> ConnectionHandle (kind == host)
    - clients: connection_id -> ConnectionHandle (kind == client)

    Usage:
        registry = ConnectionRegistry()
        registry.insert(ConnectionHandle("h-1", ConnectionKind.HOST, api_key_id="k-1"))
        registry.has_superseding_host("k-1", "h-0")  # True
        registry.remove(ConnectionKind.HOST, "h-1")
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        """
        Initialize empty registry.

        Args:
            clock: Time source used for heartbeat timestamps.
        """
        self._clock = clock
        self._hosts: dict[str, ConnectionHandle] = {}
        self._clients: dict[str, ConnectionHandle] = {}

    # =========================================================================
    # Immutable views
    # =========================================================================

    @property
    def hosts(self) -> MappingProxyType[str, ConnectionHandle]:
        """Host connections by identifier (immutable view)."""
        return MappingProxyType(self._hosts)

    @property
    def clients(self) -> MappingProxyType[str, ConnectionHandle]:
        """Client connections by identifier (immutable view)."""
        return MappingProxyType(self._clients)

    @property
    def host_count(self) -> int:
        return len(self._hosts)

    @property
    def client_count(self) -> int:
        return len(self._clients)

    # =========================================================================
    # Mutations (transport layer)
    # =========================================================================

    def _index_for(self, kind: str) -> dict[str, ConnectionHandle]:
        if kind == ConnectionKind.HOST:
            return self._hosts
        if kind == ConnectionKind.CLIENT:
            return self._clients
        raise ValueError(f"Unknown connection kind: {kind!r}")

    def insert(self, handle: ConnectionHandle) -> None:
        """
        Register a live connection.

        A second insert for the same identifier replaces the previous handle.

        Raises:
            ValueError: If the handle's kind is not host or client.
        """
        index = self._index_for(handle.kind)
        now = self._clock()
        handle.connected_at = now
        handle.last_seen = now
        if handle.connection_id in index:
            logger.debug(
                "Replacing existing connection handle",
                connection_id=handle.connection_id,
                kind=handle.kind,
            )
        index[handle.connection_id] = handle

    def remove(
        self,
        kind: str,
        connection_id: str,
        handle: ConnectionHandle | None = None,
    ) -> ConnectionHandle | None:
        """
        Unregister a connection.

        Args:
            kind: Connection kind.
            connection_id: Connection identifier.
            handle: The handle being closed. When given, the entry is only
                    removed while it is still this handle, so a late close of
                    a replaced connection leaves the newer one registered.

        Returns:
            The removed handle, or None if nothing was removed.
        """
        index = self._index_for(kind)
        if handle is not None and index.get(connection_id) is not handle:
            logger.debug(
                "Ignoring close of a replaced connection handle",
                connection_id=connection_id,
                kind=kind,
            )
            return None
        return index.pop(connection_id, None)

    def touch(self, connection_id: str) -> bool:
        """
        Record a heartbeat for a connection of either kind.

        Returns:
            True if the connection is registered.
        """
        handle = self._hosts.get(connection_id) or self._clients.get(connection_id)
        if handle is None:
            return False
        handle.last_seen = self._clock()
        return True

    # =========================================================================
    # Queries (monitors)
    # =========================================================================

    def get(self, connection_id: str) -> ConnectionHandle | None:
        """Look up a connection of either kind."""
        return self._hosts.get(connection_id) or self._clients.get(connection_id)

    def iterate(self, kind: str) -> Iterator[ConnectionHandle]:
        """Iterate over a snapshot of the connections of one kind."""
        return iter(list(self._index_for(kind).values()))

    def host_ids(self) -> frozenset[str]:
        """Snapshot of connected host identifiers."""
        return frozenset(self._hosts)

    def has_superseding_host(self, api_key_id: str | None, host_id: str) -> bool:
        """
        Check whether a different live host shares the same API key.

        Such a host already represents the logical host behind host_id.

        Args:
            api_key_id: API key of the (stale) host record.
            host_id: Identifier of the stale record itself; never counts.

        Returns:
            True if another connected host uses api_key_id.
        """
        if api_key_id is None:
            return False
        return any(
            handle.api_key_id == api_key_id and handle.connection_id != host_id
            for handle in list(self._hosts.values())
        )

    def get_stats(self) -> dict[str, int]:
        """Get registry statistics."""
        return {
            "host_connections": len(self._hosts),
            "client_connections": len(self._clients),
            "total_connections": len(self._hosts) + len(self._clients),
        }
