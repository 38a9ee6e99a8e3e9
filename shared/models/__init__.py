"""
SQLAlchemy ORM Models Package.

- base: Declarative base
- host: HostInstance (persisted host status record)
"""

from .base import Base
from .host import HostInstance

__all__ = [
    "Base",
    "HostInstance",
]
