"""
Infrastructure module: Database.

Provides:
- Database sessions and transactions (db.py)
"""

from shared.infrastructure.db import (
    engine,
    SessionLocal,
    get_db_context,
    safe_commit,
)

__all__ = [
    "engine",
    "SessionLocal",
    "get_db_context",
    "safe_commit",
]
