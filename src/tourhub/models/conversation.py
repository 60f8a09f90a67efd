# src/tourhub/models/conversation.py
"""Two-party conversation threads."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tourhub.db.session import Base
from tourhub.db.time import utcnow

if TYPE_CHECKING:
    from .message import Message


def _new_conversation_id() -> str:
    return uuid.uuid4().hex


def pair_key_for(first_user_id: str, second_user_id: str) -> str:
    """Return the canonical key of an unordered participant pair."""
    low, high = sorted((first_user_id, second_user_id))
    return f"{low}:{high}"


class Conversation(Base):
    """Persisted message thread between exactly two users.

    ``pair_key`` is the sorted participant pair; its unique constraint keeps
    one conversation per pair even when both users write first at once.
    """

    __tablename__ = "conversation"
    __table_args__ = (UniqueConstraint("pair_key", name="uq_conversation_pair_key"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_conversation_id)
    participant_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    pair_key: Mapped[str] = mapped_column(String(160), nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow)

    messages: Mapped[list[Message]] = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="[Message.created_at, Message.id]",
    )

    def has_participant(self, user_id: str) -> bool:
        """Return True if ``user_id`` takes part in this conversation."""
        return user_id in self.participant_ids
