import asyncio
import json

import pytest
import websockets

from support import wait_for


@pytest.mark.asyncio
async def test_round_trip_against_local_server():
    from client.config import ClientConfig
    from client.ws_client import ChatConnection
    from shared.message_types import MessageKind

    paths = []
    received = []

    async def handler(websocket):
        paths.append(websocket.request.path)
        await websocket.send(json.dumps({"user": 99, "event": "CONNECTED"}))
        async for raw in websocket:
            received.append(json.loads(raw))

    async with websockets.serve(handler, "127.0.0.1", 0) as server:
        port = server.sockets[0].getsockname()[1]
        conn = ChatConnection("lobby", 7, ClientConfig(host="127.0.0.1", port=port))
        messages = []
        conn.on_message(messages.append)

        assert await conn.connect() is True
        assert await wait_for(lambda: len(messages) == 1)
        assert await conn.send_message("hello server") is True
        assert await wait_for(lambda: len(received) == 1)
        await conn.disconnect()

    assert paths == ["/ws-chat-message?address=lobby&user=7"]
    assert messages[0].kind is MessageKind.USER_EVENT
    assert received[0]["message"] == "hello server"
    assert received[0]["sender"] == 7
    assert received[0]["room_address"] == "lobby"


@pytest.mark.asyncio
async def test_reconnects_after_server_error_close():
    from client.config import ClientConfig
    from client.ws_client import ChatConnection

    connections = []

    async def handler(websocket):
        connections.append(websocket)
        if len(connections) == 1:
            await websocket.close(1011, "restarting")
            return
        await websocket.wait_closed()

    async with websockets.serve(handler, "127.0.0.1", 0) as server:
        port = server.sockets[0].getsockname()[1]
        conn = ChatConnection("lobby", 7, ClientConfig(host="127.0.0.1", port=port, base_delay_ms=10))
        closes = []
        conn.on_close(lambda code, reason: closes.append((code, reason)))

        assert await conn.connect() is True
        assert await wait_for(lambda: len(connections) == 2 and conn.get_status())
        assert closes[0] == (1011, "restarting")
        assert conn.reconnect_attempts == 0

        await conn.disconnect()
        await asyncio.sleep(0)
