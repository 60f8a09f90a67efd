"""Realtime gateway: Socket.IO connection lifecycle and event emission.

Clients connect with ``?userId=<id>`` in the handshake query. A connection
with a valid identity is registered for presence and joins the private room
``user:<id>``, which is what ``emit_to_user`` targets. Because delivery goes
through rooms, the configured client manager carries it to sockets held by
other server processes as well.

The identity is asserted by the client. Setting ``REALTIME_REQUIRE_TOKEN``
additionally requires a ``token`` whose JWT subject matches ``userId``.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import parse_qs

import socketio
from sqlalchemy.exc import SQLAlchemyError

from tourhub.core.security import decode_access_token
from tourhub.core.settings import settings

from .presence import PresenceRegistry, is_addressable

logger = logging.getLogger(__name__)

NEW_MESSAGE_EVENT = "newMessage"
ONLINE_USERS_EVENT = "getOnlineUsers"


def room_for_user(user_id: str) -> str:
    return f"user:{user_id}"


def _query_params(environ: dict[str, Any]) -> dict[str, list[str]]:
    """Parse the handshake query string.

    python-socketio passes an ASGI scope (``query_string: bytes``), a WSGI
    environ (``QUERY_STRING: str``), or an environ wrapping ``asgi.scope``.
    """
    scope: Any = environ
    if isinstance(environ, dict) and "asgi.scope" in environ:
        inner = environ.get("asgi.scope")
        if isinstance(inner, dict):
            scope = inner

    query_string: str | bytes = ""
    if isinstance(scope, dict) and "query_string" in scope:
        query_string = scope.get("query_string", b"")
    elif isinstance(scope, dict) and "QUERY_STRING" in scope:
        query_string = scope.get("QUERY_STRING", "")

    if isinstance(query_string, (bytes, bytearray)):
        query_string = query_string.decode(errors="ignore")

    return parse_qs(str(query_string))


def _handshake_value(environ: dict[str, Any], auth: Any | None, key: str) -> str | None:
    value = _query_params(environ).get(key, [None])[0]
    if isinstance(value, str) and value:
        return value

    # Allow `auth: { userId, token }` as fallback.
    if isinstance(auth, dict):
        auth_value = auth.get(key)
        if isinstance(auth_value, str) and auth_value:
            return auth_value

    return None


def extract_user_id(environ: dict[str, Any], auth: Any | None = None) -> str | None:
    """Return the user identity supplied with the handshake, if any."""
    user_id = _handshake_value(environ, auth, "userId")
    return user_id.strip() if user_id else None


class RealtimeGateway:
    """Owns presence for one process and the emit primitives used by the API."""

    def __init__(
        self,
        server: socketio.AsyncServer,
        registry: PresenceRegistry | None = None,
        require_token: bool | None = None,
    ) -> None:
        self.server = server
        self.registry = registry if registry is not None else PresenceRegistry()
        self.require_token = (
            settings.realtime_require_token if require_token is None else require_token
        )
        server.on("connect", self.handle_connect)
        server.on("disconnect", self.handle_disconnect)

    async def handle_connect(
        self, sid: str, environ: dict[str, Any], auth: Any | None = None
    ) -> bool:
        """Register presence for the connecting socket.

        Connections without a usable identity are accepted but stay
        unaddressable.
        """
        user_id = extract_user_id(environ, auth)

        if user_id is None or not is_addressable(user_id):
            logger.info("Socket %s connected with an invalid userId: %s", sid, user_id)
            return True

        if self.require_token:
            token = _handshake_value(environ, auth, "token")
            if token is None or decode_access_token(token) != user_id:
                logger.warning("Socket %s refused: token does not match userId %s", sid, user_id)
                return False

        self.registry.register(user_id, sid)
        await self.server.enter_room(sid, room_for_user(user_id))
        logger.info("User %s connected with socket %s", user_id, sid)

        await self.broadcast_online_users()
        return True

    async def handle_disconnect(self, sid: str, reason: Any | None = None) -> None:
        user_id = self.registry.unregister(sid)
        if user_id is None:
            logger.debug("Anonymous socket %s disconnected", sid)
            return

        logger.info("User %s disconnected (socket %s, reason %s)", user_id, sid, reason)
        await self.broadcast_online_users()

    def online_users(self) -> list[str]:
        return sorted(self.registry.list_all())

    async def broadcast_online_users(self) -> None:
        await self.emit_to_all(ONLINE_USERS_EVENT, self.online_users())

    async def emit_to_user(self, user_id: str, event: str, payload: Any) -> None:
        """Deliver ``event`` to every socket of ``user_id`` on any process.

        Offline users are skipped silently; the message itself stays
        available through the history endpoint.
        """
        if not is_addressable(user_id):
            return
        if user_id not in self.registry:
            logger.debug("User %s has no socket on this process; relaying %s", user_id, event)
        try:
            await self.server.emit(event, payload, room=room_for_user(user_id))
        except (OSError, SQLAlchemyError) as exc:
            logger.warning("Failed to emit %s to user %s: %s", event, user_id, exc)

    async def emit_to_all(self, event: str, payload: Any) -> None:
        """Broadcast ``event`` to every connected client on every process."""
        try:
            await self.server.emit(event, payload)
        except (OSError, SQLAlchemyError) as exc:
            logger.warning("Failed to broadcast %s: %s", event, exc)

    def shutdown(self) -> None:
        self.registry.clear()
