"""
tests.test_websocket
~~~~~~~~~~~~~~~~~~~~

The ``/ws`` endpoint loop driven by a fake socket: frames are decoded and
dispatched, bad frames produce errors without closing, and the loop ending
in a disconnect revokes the connection's state.
"""
from __future__ import annotations

import json

import pytest

from chatrelay.api.websocket import websocket_endpoint

from conftest import FakeWebSocket, join


@pytest.mark.asyncio
async def test_session_over_the_endpoint(relay) -> None:
    _, watcher_ws = await join(relay, "watcher", host="10.0.0.9")
    ws = FakeWebSocket(
        "10.0.0.5",
        incoming=[
            json.dumps({"action": "join", "username": "alice"}),
            "not json",
            json.dumps(["a", "list"]),
            json.dumps({"action": "dance"}),
            json.dumps({"action": "send_message", "content": "hi all"}),
            json.dumps({"action": "get_rooms"}),
        ],
    )

    await websocket_endpoint(ws)

    assert ws.accepted
    errors = [e["message"] for e in ws.frames("error")]
    assert errors == ["Invalid JSON", "Expected a JSON object", "Unknown action: dance"]
    assert [m["content"] for m in ws.messages("text")] == ["hi all"]
    assert [m["content"] for m in watcher_ws.messages("text")] == ["hi all"]
    assert len(ws.frames("room_list")) >= 2

    # receive loop ended with a disconnect
    assert len(relay.session_registry) == 1
    assert len(relay.connection_manager) == 1
    assert "alice (10.0.0.5) left the chat" in watcher_ws.messages("leave")[-1]["content"]


@pytest.mark.asyncio
async def test_unexpected_error_still_cleans_up(relay) -> None:
    class ExplodingSocket(FakeWebSocket):
        async def receive_text(self) -> str:
            if self.incoming:
                return self.incoming.popleft()
            raise RuntimeError("transport failure")

    ws = ExplodingSocket(incoming=[json.dumps({"action": "join", "username": "bob"})])

    await websocket_endpoint(ws)

    assert len(relay.session_registry) == 0
    assert len(relay.connection_manager) == 0
    assert relay.room_store.members("default") == []
