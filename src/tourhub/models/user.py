# src/tourhub/models/user.py
"""User accounts as seen by the messaging core."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from tourhub.db.session import Base
from tourhub.db.time import utcnow


def _new_user_id() -> str:
    return uuid.uuid4().hex


class User(Base):
    """Registered platform user.

    Accounts are created by the authentication flows; messaging only reads
    the identifier and the summary fields shown next to a message.
    """

    __tablename__ = "user_account"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_user_id)
    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(Text, nullable=False)
    profile_pic: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow)
