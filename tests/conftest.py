"""
Pytest configuration and fixtures for host gateway tests.
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shared.config.constants import ConnectionKind, HostStatus
from shared.models import Base, HostInstance
from host_gateway.components.connection.registry import ConnectionHandle, ConnectionRegistry
from host_gateway.components.data.host_repository import HostStatusStore


# SQLite in-memory database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeClock:
    """
    Logical clock shared by the store and the monitors.

    Calling the clock returns a naive UTC datetime (store clock);
    timestamp() returns the same instant as epoch seconds (monitor clock).
    """

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def timestamp(self) -> float:
        return (self.now - datetime(1970, 1, 1)).total_seconds()

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    Uses SQLite in-memory for isolation.
    """
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(db_session, clock):
    """Host status store on the test database, driven by the fake clock."""
    return HostStatusStore(session_factory=TestingSessionLocal, clock=clock)


@pytest.fixture
def registry(clock):
    return ConnectionRegistry(clock=clock.timestamp)


@pytest.fixture
def seed_host(db_session, clock):
    """Insert a host record whose updated_at lies `age` in the past."""

    def _seed(
        host_id: str,
        status: str = HostStatus.ONLINE,
        age: timedelta = timedelta(0),
        api_key_id: str | None = None,
        organization_id: str | None = "org-1",
    ) -> HostInstance:
        updated_at = clock.now - age
        host = HostInstance(
            id=host_id,
            organization_id=organization_id,
            api_key_id=api_key_id or f"key-{host_id}",
            status=status,
            created_at=updated_at,
            updated_at=updated_at,
        )
        db_session.add(host)
        db_session.commit()
        return host

    return _seed


@pytest.fixture
def host_status(db_session):
    """Read a host's current status straight from the database (None if deleted)."""

    def _status(host_id: str) -> str | None:
        db_session.expire_all()
        host = db_session.get(HostInstance, host_id)
        return host.status if host is not None else None

    return _status


@pytest.fixture
def connect_host(registry):
    """Register a live host connection in the registry."""

    def _connect(host_id: str, api_key_id: str | None = None, organization_id: str = "org-1"):
        handle = ConnectionHandle(
            connection_id=host_id,
            kind=ConnectionKind.HOST,
            organization_id=organization_id,
            api_key_id=api_key_id or f"key-{host_id}",
        )
        registry.insert(handle)
        return handle

    return _connect
