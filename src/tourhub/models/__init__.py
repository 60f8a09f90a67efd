# src/tourhub/models/__init__.py
"""SQLAlchemy models for the tourhub messaging core."""

from .conversation import Conversation, pair_key_for
from .message import Attachment, AttachmentKind, Message
from .realtime_event import RealtimeEvent
from .user import User

__all__ = [
    "Attachment", "AttachmentKind",
    "Conversation", "pair_key_for",
    "Message",
    "RealtimeEvent",
    "User",
]
