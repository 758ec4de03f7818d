"""
tests.test_ordering
~~~~~~~~~~~~~~~~~~~

Frame ordering when handlers interleave. The sockets here yield on every
write, so a message sent by one connection can be scheduled while another
connection is still joining, switching or being relocated.
"""
from __future__ import annotations

import asyncio

import pytest

from conftest import YieldingWebSocket, connect, join


def contents(messages: list) -> list:
    return [m["content"] for m in messages]


def text_contents(ws) -> tuple:
    """(texts inside replayed histories, texts delivered live)."""
    replayed = [
        m["content"]
        for history in ws.frames("message_history")
        for m in history
        if m["type"] == "text"
    ]
    return replayed, contents(ws.messages("text"))


@pytest.mark.asyncio
async def test_join_replays_history_before_concurrent_message(relay) -> None:
    handler = relay.connection_handler
    bob_id, _ = await join(relay, "bob", host="10.0.0.2")
    alice_id, alice_ws = await connect(relay, "10.0.0.1", YieldingWebSocket)

    joined, sent = await asyncio.gather(
        handler.join(alice_id, "alice"),
        handler.send_message(bob_id, "hi"),
    )

    assert joined.ok and sent.ok
    assert alice_ws.types()[0] == "message_history"
    replayed, live = text_contents(alice_ws)
    assert replayed + live == ["hi"]
    # own join notice arrives once, inside the history
    assert alice_ws.messages("join") == []
    assert "alice (10.0.0.1) joined the chat" in contents(alice_ws.frames("message_history")[0])


@pytest.mark.asyncio
async def test_switch_replays_history_before_concurrent_message(relay) -> None:
    handler = relay.connection_handler
    relay.room_store.create("team")
    carol_id, _ = await join(relay, "carol", host="10.0.0.3", room_id="team")
    alice_id, alice_ws = await join(relay, "alice", socket_class=YieldingWebSocket)
    alice_ws.clear()

    switched, sent = await asyncio.gather(
        handler.join_room(alice_id, "team"),
        handler.send_message(carol_id, "welcome"),
    )

    assert switched.ok and sent.ok
    assert alice_ws.types()[:2] == ["message_history", "room_joined"]
    replayed, live = text_contents(alice_ws)
    assert replayed + live == ["welcome"]
    assert alice_ws.messages("join") == []


@pytest.mark.asyncio
async def test_room_joined_never_follows_room_deleted(relay) -> None:
    relay.room_store.create("team")
    bob_id, bob_ws = await join(relay, "bob", host="10.0.0.2", socket_class=YieldingWebSocket)
    bob_ws.clear()

    switched, deleted = await asyncio.gather(
        relay.connection_handler.join_room(bob_id, "team"),
        relay.admin_service.delete_room("team", force=True),
    )

    assert switched.ok
    assert deleted["kickedUsers"] == 1
    assert relay.session_registry.get(bob_id).current_room == "default"
    types = bob_ws.types()
    assert types.index("room_joined") < types.index("room_deleted")
    assert "room_joined" not in types[types.index("room_deleted"):]
    last_history = bob_ws.frames("message_history")[-1]
    assert all(m["room"] == "default" for m in last_history)


@pytest.mark.asyncio
async def test_relocation_to_a_newer_room_drops_stale_notice(relay) -> None:
    relay.room_store.create("team")
    relay.room_store.create("side")
    bob_id, bob_ws = await join(relay, "bob", host="10.0.0.2", room_id="team", socket_class=YieldingWebSocket)
    bob_ws.clear()

    deleted, switched = await asyncio.gather(
        relay.admin_service.delete_room("team", force=True),
        relay.connection_handler.join_room(bob_id, "side"),
    )

    assert switched.ok
    assert deleted["kickedUsers"] == 1
    assert relay.session_registry.get(bob_id).current_room == "side"
    assert bob_ws.frames("room_joined")[-1]["roomId"] == "side"
    assert "room_deleted" not in bob_ws.types()


@pytest.mark.asyncio
async def test_forced_delete_replays_history_before_concurrent_message(relay) -> None:
    relay.room_store.create("team")
    carol_id, carol_ws = await join(relay, "carol", host="10.0.0.3")
    bob_id, bob_ws = await join(relay, "bob", host="10.0.0.2", room_id="team", socket_class=YieldingWebSocket)
    bob_ws.clear()
    carol_ws.clear()

    deleted, sent = await asyncio.gather(
        relay.admin_service.delete_room("team", force=True),
        relay.connection_handler.send_message(carol_id, "hey"),
    )

    assert deleted["kickedUsers"] == 1 and sent.ok
    assert bob_ws.types()[:3] == ["message", "room_deleted", "message_history"]
    replayed, live = text_contents(bob_ws)
    assert replayed + live == ["hey"]
    # bob's arrival is in his replay, carol sees it live
    assert bob_ws.messages("join") == []
    assert contents(carol_ws.messages("join")) == ["bob was moved to the default room"]


@pytest.mark.asyncio
async def test_sequence_survives_a_broken_socket(relay) -> None:
    connection_id, ws = await connect(relay)
    ws.broken = True

    await relay.broadcaster.send_sequence(connection_id, [("a", 1), ("b", 2)])
    ws.broken = False
    await relay.broadcaster.to_connection(connection_id, "c", 3)

    assert [f["type"] for f in ws.sent] == ["c"]
