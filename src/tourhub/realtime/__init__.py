# src/tourhub/realtime/__init__.py
"""Socket.IO presence tracking and event delivery."""

from .adapter import DatabaseClientManager, build_client_manager
from .gateway import (
    NEW_MESSAGE_EVENT,
    ONLINE_USERS_EVENT,
    RealtimeGateway,
    room_for_user,
)
from .presence import PLACEHOLDER_USER_ID, PresenceRegistry

__all__ = [
    "DatabaseClientManager",
    "build_client_manager",
    "NEW_MESSAGE_EVENT",
    "ONLINE_USERS_EVENT",
    "RealtimeGateway",
    "room_for_user",
    "PLACEHOLDER_USER_ID",
    "PresenceRegistry",
]
