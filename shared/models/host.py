"""
Host Instance Model: persisted liveness status of a connected host.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from shared.config.constants import HostStatus

from .base import Base


class HostInstance(Base):
    """
    Represents one connected host process.

    updated_at is written from the database clock (or the store's injected
    clock), never from the host, so staleness checks are immune to client
    clock skew.
    """

    __tablename__ = "host_instance"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    organization_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    api_key_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    status: Mapped[str] = mapped_column(
        Text, default=HostStatus.ONLINE, nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )

    def __repr__(self) -> str:
        return f"<HostInstance(id={self.id}, status={self.status})>"
