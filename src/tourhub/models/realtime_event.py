# src/tourhub/models/realtime_event.py
"""Relay rows shared by every realtime process."""

from datetime import datetime

from sqlalchemy import VARCHAR, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from tourhub.db.session import Base
from tourhub.db.time import utcnow


class RealtimeEvent(Base):
    """Socket.IO manager message published for the other server processes."""

    __tablename__ = "realtime_event"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    channel: Mapped[str] = mapped_column(VARCHAR(64), nullable=False, index=True)
    host_id: Mapped[str] = mapped_column(VARCHAR(32), nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)  # JSON-encoded manager message
    created_at: Mapped[datetime] = mapped_column(default=utcnow, index=True)
