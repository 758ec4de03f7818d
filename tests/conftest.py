"""
tests.conftest
~~~~~~~~~~~~~~

Shared fixtures: a fresh set of stores per test and a fake WebSocket that
records every frame the relay sends, so the protocol can be exercised
without a network.
"""
from __future__ import annotations

import asyncio
from collections import deque
from types import SimpleNamespace
from typing import Any, Iterable, List, Optional

import pytest
from fastapi import WebSocketDisconnect

from chatrelay.core import state
from chatrelay.models.models import Message, User
from chatrelay.services.identity import generate_id, now_ms


class FakeWebSocket:
    """Stand-in for ``fastapi.WebSocket`` that records outgoing frames."""

    def __init__(self, host: str = "10.0.0.1", incoming: Optional[Iterable[str]] = None) -> None:
        self.client = SimpleNamespace(host=host, port=50000)
        self.sent: List[dict] = []
        self.accepted = False
        self.broken = False
        self.incoming = deque(incoming or [])

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, data: Any) -> None:
        if self.broken:
            raise RuntimeError("socket is closed")
        self.sent.append(data)

    async def receive_text(self) -> str:
        if not self.incoming:
            raise WebSocketDisconnect(code=1000)
        return self.incoming.popleft()

    def frames(self, event: str) -> List[Any]:
        """Payloads of every frame of the given type, in send order."""
        return [f["data"] for f in self.sent if f["type"] == event]

    def messages(self, kind: Optional[str] = None) -> List[dict]:
        return [m for m in self.frames("message") if kind is None or m["type"] == kind]

    def clear(self) -> None:
        self.sent.clear()


class YieldingWebSocket(FakeWebSocket):
    """
    A socket whose writes take a loop turn, like a real network send.

    Lets concurrently scheduled handlers interleave between frames, which
    is where ordering between history replays and live messages is decided.
    """

    async def send_json(self, data: Any) -> None:
        await asyncio.sleep(0)
        await super().send_json(data)

    def types(self) -> List[str]:
        return [f["type"] for f in self.sent]


@pytest.fixture(autouse=True)
def relay():
    """Rebuild the process-wide stores so every test starts from zero."""
    state.reset()
    return state


async def connect(relay, host: str = "10.0.0.1", socket_class=FakeWebSocket) -> tuple[str, FakeWebSocket]:
    ws = socket_class(host)
    connection_id = await relay.connection_manager.connect(ws)
    return connection_id, ws


async def join(
    relay, username: str, host: str = "10.0.0.1", room_id: Optional[str] = None, socket_class=FakeWebSocket
):
    """Connect and join in one step. Returns (connection_id, socket)."""
    connection_id, ws = await connect(relay, host, socket_class)
    result = await relay.connection_handler.join(connection_id, username, room_id)
    assert result.ok, result.error
    return connection_id, ws


def make_user(username: str = "alice", address: str = "10.0.0.1", connection_id: Optional[str] = None) -> User:
    return User(
        id=generate_id(),
        username=username,
        connection_id=connection_id or generate_id(),
        address=address,
        join_time=now_ms(),
    )


def make_message(content: str, room_id: str = "default", timestamp: Optional[int] = None) -> Message:
    return Message(
        id=generate_id(),
        type="text",
        username="alice",
        content=content,
        timestamp=now_ms() if timestamp is None else timestamp,
        room=room_id,
        user_ip="10.0.0.1",
    )
