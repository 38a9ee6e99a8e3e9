"""
Database engine and session helpers.

The liveness monitors use short-lived sync sessions; async callers run
them in worker threads (see HostStatusStore).
"""

import os
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from shared.config.settings import DATABASE_URL


def _pool_size() -> int:
    # Worker threads for to_thread default to min(32, cpus + 4)
    return min((os.cpu_count() or 4) + 4, 20)


def create_db_engine(url: str = DATABASE_URL) -> Engine:
    """
    Build the engine used by the gateway.

    Connections are pinged before use so a database restart surfaces as a
    fresh connection rather than a failed monitor cycle.
    """
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=_pool_size(),
        max_overflow=5,
        pool_timeout=10,
        pool_recycle=1800,
        connect_args={"connect_timeout": 5},
    )


engine = create_db_engine()

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


@contextmanager
def get_db_context(session_factory: sessionmaker | None = None) -> Iterator[Session]:
    """
    Open a session and always close it.

    Args:
        session_factory: Factory to use instead of SessionLocal.

    Usage:
        with get_db_context() as db:
            db.execute(select(HostInstance)).scalars().all()
    """
    session = (session_factory or SessionLocal)()
    try:
        yield session
    finally:
        session.close()


def safe_commit(db: Session) -> None:
    """Commit, rolling back and re-raising if the commit fails."""
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
