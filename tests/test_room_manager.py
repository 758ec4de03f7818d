"""
tests.test_room_manager
~~~~~~~~~~~~~~~~~~~~~~~

RoomStore lifecycle, membership and history.
"""
from __future__ import annotations

import pytest

from chatrelay.core.errors import Conflict, InvalidOperation, NotFound, RoomNotEmpty, ValidationError
from chatrelay.services.identity import generate_id
from chatrelay.services.room_manager import RoomStore

from conftest import make_message, make_user


def rooms_containing(store: RoomStore, user) -> list[str]:
    return [rid for rid, room in store.rooms.items() if user.connection_id in room.members]


class TestIdentity:

    def test_ids_are_unique_in_a_tight_loop(self) -> None:
        ids = [generate_id() for _ in range(5000)]
        assert len(set(ids)) == len(ids)

    def test_id_prefix(self) -> None:
        assert generate_id().startswith("id-")


class TestLifecycle:

    def test_default_room_exists_on_start(self) -> None:
        store = RoomStore(default_room_name="Lobby")
        assert store.exists("default")
        assert store.get("default").name == "Lobby"
        assert [r.id for r in store.list_rooms()] == ["default"]

    def test_get_or_create_is_idempotent(self) -> None:
        store = RoomStore()
        room, created = store.get_or_create("team")
        again, created_again = store.get_or_create("team", "Other name")
        assert created is True
        assert created_again is False
        assert again is room
        assert room.name == "team"

    def test_create_then_conflict(self) -> None:
        store = RoomStore()
        store.create("team", "Team")
        with pytest.raises(Conflict):
            store.create("team")
        assert len(store.list_rooms()) == 2

    @pytest.mark.parametrize("room_id", ["", "   ", "a", "x" * 21])
    def test_create_rejects_bad_ids(self, room_id: str) -> None:
        store = RoomStore()
        with pytest.raises(ValidationError):
            store.create(room_id)

    def test_create_uses_id_as_default_name(self) -> None:
        store = RoomStore()
        assert store.create("ops").name == "ops"

    def test_default_room_cannot_be_deleted(self) -> None:
        store = RoomStore()
        with pytest.raises(InvalidOperation):
            store.delete("default", force=True)

    def test_delete_missing_room(self) -> None:
        with pytest.raises(NotFound):
            RoomStore().delete("nope")

    def test_delete_empty_room_discards_history(self) -> None:
        store = RoomStore()
        store.create("team")
        store.append_message("team", make_message("hi", "team"))
        assert store.delete("team") == []
        assert not store.exists("team")
        assert store.recent_history("team") == []


class TestMembership:

    def test_move_member_keeps_user_in_exactly_one_room(self) -> None:
        store = RoomStore()
        store.create("team")
        user = make_user()
        store.add_member("default", user)

        old = store.move_member(user, "team")

        assert old == "default"
        assert user.current_room == "team"
        assert rooms_containing(store, user) == ["team"]

    def test_move_to_missing_room_changes_nothing(self) -> None:
        store = RoomStore()
        user = make_user()
        store.add_member("default", user)

        with pytest.raises(NotFound):
            store.move_member(user, "ghost")

        assert user.current_room == "default"
        assert rooms_containing(store, user) == ["default"]

    def test_non_forced_delete_of_populated_room_is_rejected(self) -> None:
        store = RoomStore()
        store.create("team")
        alice, bob = make_user("alice"), make_user("bob")
        store.add_member("team", alice)
        store.add_member("team", bob)

        with pytest.raises(RoomNotEmpty) as exc_info:
            store.delete("team")

        assert exc_info.value.details == {"userCount": 2, "users": ["alice", "bob"]}
        assert [u.username for u in store.members("team")] == ["alice", "bob"]
        assert alice.current_room == "team"

    def test_forced_delete_relocates_members_to_default(self) -> None:
        store = RoomStore()
        store.create("team")
        alice, bob = make_user("alice"), make_user("bob")
        store.add_member("team", alice)
        store.add_member("team", bob)

        moved = store.delete("team", force=True)

        assert moved == [alice, bob]
        assert not store.exists("team")
        for user in (alice, bob):
            assert user.current_room == "default"
            assert rooms_containing(store, user) == ["default"]

    def test_evict_all_keeps_the_room(self) -> None:
        store = RoomStore()
        store.create("team")
        alice = make_user()
        store.add_member("team", alice)

        assert store.evict_all("team") == [alice]
        assert store.exists("team")
        assert store.members("team") == []
        assert alice.current_room == "default"

    def test_evict_all_rejects_default_and_empty_rooms(self) -> None:
        store = RoomStore()
        store.create("team")
        with pytest.raises(InvalidOperation):
            store.evict_all("default")
        with pytest.raises(InvalidOperation):
            store.evict_all("team")
        with pytest.raises(NotFound):
            store.evict_all("ghost")

    def test_summary_counts_members(self) -> None:
        store = RoomStore()
        store.add_member("default", make_user())
        summary = store.list_rooms()[0].model_dump(by_alias=True)
        assert set(summary) == {"id", "name", "userCount", "created", "isPublic"}
        assert summary["userCount"] == 1


class TestHistory:

    def test_replay_returns_last_fifty_oldest_first(self) -> None:
        store = RoomStore(history_limit=50)
        for i in range(51):
            store.append_message("default", make_message(f"m{i}"))

        history = store.recent_history("default")

        assert len(history) == 50
        assert history[0].content == "m1"
        assert history[-1].content == "m50"

    def test_replay_is_idempotent(self) -> None:
        store = RoomStore()
        for i in range(5):
            store.append_message("default", make_message(f"m{i}"))
        assert store.recent_history("default") == store.recent_history("default")

    def test_retention_bounds_memory(self) -> None:
        store = RoomStore(history_limit=3, history_retention=5)
        for i in range(10):
            store.append_message("default", make_message(f"m{i}"))
        assert len(store.get("default").history) == 5
        assert [m.content for m in store.recent_history("default")] == ["m7", "m8", "m9"]
        assert store.messages_stored == 10

    def test_append_to_deleted_room_is_dropped(self) -> None:
        store = RoomStore()
        assert store.append_message("gone", make_message("hi", "gone")) is None
        assert store.messages_stored == 0

    def test_timestamps_never_go_backwards(self) -> None:
        store = RoomStore()
        store.append_message("default", make_message("first", timestamp=2000))
        stored = store.append_message("default", make_message("second", timestamp=1000))
        assert stored.timestamp == 2000
        stamps = [m.timestamp for m in store.recent_history("default")]
        assert stamps == sorted(stamps)
