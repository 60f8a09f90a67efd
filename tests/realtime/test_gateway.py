"""Tests for the realtime gateway connection lifecycle and emit primitives."""

from unittest.mock import AsyncMock, call

import pytest
import socketio
from sqlalchemy.exc import OperationalError

from tourhub.core.security import create_access_token
from tourhub.realtime.gateway import (
    NEW_MESSAGE_EVENT,
    ONLINE_USERS_EVENT,
    RealtimeGateway,
    extract_user_id,
    room_for_user,
)


def _asgi_environ(query: str) -> dict:
    return {"type": "websocket", "query_string": query.encode()}


def _online_user_broadcasts(server: AsyncMock) -> list[list[str]]:
    return [
        c.args[1]
        for c in server.emit.await_args_list
        if c.args and c.args[0] == ONLINE_USERS_EVENT
    ]


class TestExtractUserId:
    """Handshake parsing across the environ shapes python-socketio produces."""

    def test_asgi_scope(self):
        assert extract_user_id(_asgi_environ("userId=u1&EIO=4")) == "u1"

    def test_wsgi_environ(self):
        assert extract_user_id({"QUERY_STRING": "userId=u2"}) == "u2"

    def test_nested_asgi_scope(self):
        environ = {"asgi.scope": {"query_string": b"userId=u3"}}
        assert extract_user_id(environ) == "u3"

    def test_auth_fallback(self):
        assert extract_user_id(_asgi_environ("EIO=4"), {"userId": "u4"}) == "u4"

    def test_missing(self):
        assert extract_user_id(_asgi_environ("EIO=4")) is None


@pytest.mark.asyncio
async def test_connect_registers_joins_room_and_broadcasts(gateway, sio_server):
    accepted = await gateway.handle_connect("sid-1", _asgi_environ("userId=u1"))

    assert accepted is True
    assert gateway.registry.lookup("u1") == "sid-1"
    sio_server.enter_room.assert_awaited_once_with("sid-1", room_for_user("u1"))
    sio_server.emit.assert_awaited_once_with(ONLINE_USERS_EVENT, ["u1"])


@pytest.mark.asyncio
async def test_online_users_scenario(gateway, sio_server):
    await gateway.handle_connect("sid-1", _asgi_environ("userId=u1"))
    assert gateway.registry.list_all() == {"u1"}

    await gateway.handle_connect("sid-2", _asgi_environ("userId=u2"))
    assert gateway.registry.list_all() == {"u1", "u2"}

    await gateway.handle_disconnect("sid-1")
    assert gateway.registry.list_all() == {"u2"}

    assert _online_user_broadcasts(sio_server) == [["u1"], ["u1", "u2"], ["u2"]]


@pytest.mark.asyncio
@pytest.mark.parametrize("query", ["userId=undefined", "userId=", "EIO=4"])
async def test_placeholder_identity_is_accepted_but_unaddressable(gateway, sio_server, query):
    accepted = await gateway.handle_connect("sid-anon", _asgi_environ(query))

    assert accepted is True
    assert gateway.online_users() == []
    sio_server.enter_room.assert_not_awaited()
    sio_server.emit.assert_not_awaited()


@pytest.mark.asyncio
async def test_anonymous_disconnect_does_not_broadcast(gateway, sio_server):
    await gateway.handle_connect("sid-anon", _asgi_environ("userId=undefined"))
    await gateway.handle_disconnect("sid-anon", "client disconnect")

    sio_server.emit.assert_not_awaited()


@pytest.mark.asyncio
async def test_emit_to_user_targets_only_that_users_room(gateway, sio_server):
    await gateway.handle_connect("sid-1", _asgi_environ("userId=u1"))
    await gateway.handle_connect("sid-2", _asgi_environ("userId=u2"))
    sio_server.emit.reset_mock()

    await gateway.emit_to_user("u2", NEW_MESSAGE_EVENT, {"body": "hello"})

    assert sio_server.emit.await_args_list == [
        call(NEW_MESSAGE_EVENT, {"body": "hello"}, room=room_for_user("u2")),
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        ConnectionError("relay down"),
        TimeoutError("relay slow"),
        OperationalError("INSERT", {}, Exception("database is locked")),
    ],
)
async def test_emit_to_user_swallows_transport_errors(gateway, sio_server, error):
    sio_server.emit.side_effect = error

    await gateway.emit_to_user("u2", NEW_MESSAGE_EVENT, {"body": "hello"})

    sio_server.emit.assert_awaited_once()


@pytest.mark.asyncio
async def test_emit_to_user_skips_placeholder_identity(gateway, sio_server):
    await gateway.emit_to_user("undefined", NEW_MESSAGE_EVENT, {})

    sio_server.emit.assert_not_awaited()


@pytest.mark.asyncio
async def test_emit_to_offline_user_on_real_server_is_silent():
    server = socketio.AsyncServer(async_mode="asgi")
    gateway = RealtimeGateway(server, require_token=False)

    await gateway.emit_to_user("ghost", NEW_MESSAGE_EVENT, {"body": "hello"})

    assert gateway.online_users() == []


@pytest.mark.asyncio
async def test_emit_to_all_broadcasts_without_room(gateway, sio_server):
    await gateway.emit_to_all("announcement", {"text": "maintenance"})

    sio_server.emit.assert_awaited_once_with("announcement", {"text": "maintenance"})


@pytest.mark.asyncio
async def test_token_mode_refuses_mismatched_identity(sio_server):
    gateway = RealtimeGateway(sio_server, require_token=True)
    token = create_access_token("someone-else")

    accepted = await gateway.handle_connect("sid-1", _asgi_environ(f"userId=u1&token={token}"))

    assert accepted is False
    assert gateway.online_users() == []
    sio_server.enter_room.assert_not_awaited()


@pytest.mark.asyncio
async def test_token_mode_accepts_matching_identity(sio_server):
    gateway = RealtimeGateway(sio_server, require_token=True)
    token = create_access_token("u1")

    accepted = await gateway.handle_connect("sid-1", _asgi_environ("userId=u1"), {"token": token})

    assert accepted is True
    assert gateway.online_users() == ["u1"]


def test_gateway_registers_lifecycle_handlers(sio_server):
    gateway = RealtimeGateway(sio_server)

    sio_server.on.assert_any_call("connect", gateway.handle_connect)
    sio_server.on.assert_any_call("disconnect", gateway.handle_disconnect)


@pytest.mark.asyncio
async def test_shutdown_clears_presence(gateway):
    await gateway.handle_connect("sid-1", _asgi_environ("userId=u1"))
    gateway.shutdown()

    assert gateway.online_users() == []
