# chatrelay/services/broadcast.py

from __future__ import annotations

from typing import Any, Callable, Collection, List, Optional, Sequence, Tuple, Union
import logging

from chatrelay.services.connection_manager import ConnectionManager
from chatrelay.services.room_manager import RoomStore

logger = logging.getLogger(__name__)


class BroadcastCoordinator:
    """
    Stateless relay from state changes to the right audience.

    Scopes:
        - one connection           -> to_connection, send_sequence
        - a chosen set             -> to_connections
        - every member of a room   -> to_room (optionally excluding the sender)
        - every open connection    -> to_all

    Room audiences are read from RoomStore membership at send time, and the
    room_list / user_list snapshots are rebuilt on every call, never cached.
    """

    def __init__(self, connections: ConnectionManager, room_store: RoomStore) -> None:
        self.connections = connections
        self.room_store = room_store

    async def to_connection(self, connection_id: str, event: str, data: Any) -> None:
        await self.connections.send(connection_id, event, data)

    async def to_room(
        self,
        room_id: str,
        event: str,
        data: Any,
        exclude: Union[str, Collection[str], None] = None,
    ) -> None:
        skipped = {exclude} if isinstance(exclude, str) else set(exclude or ())
        recipients = [
            u.connection_id
            for u in self.room_store.members(room_id)
            if u.connection_id not in skipped
        ]
        if not recipients:
            logger.debug("[routing] Skipped %s: room=%s has no recipients", event, room_id)
            return
        logger.debug("📨 %s to room %s: %d clients", event, room_id, len(recipients))
        await self.connections.send_many(recipients, event, data)

    async def to_connections(self, connection_ids: Collection[str], event: str, data: Any) -> None:
        await self.connections.send_many(connection_ids, event, data)

    async def to_all(self, event: str, data: Any) -> None:
        await self.connections.broadcast(event, data)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def room_list(self) -> List[dict]:
        """[{id, name, userCount, created, isPublic}] for every room."""
        return [r.model_dump(by_alias=True) for r in self.room_store.list_rooms()]

    def user_list(self, room_id: str) -> List[dict]:
        """[{id, username, joinTime, address, isMuted}] for one room, in join order."""
        return [u.summary() for u in self.room_store.members(room_id)]

    async def broadcast_room_list(self) -> None:
        await self.to_all("room_list", self.room_list())

    async def broadcast_user_list(self, room_id: str) -> None:
        await self.to_room(room_id, "user_list", self.user_list(room_id))

    async def send_room_list(self, connection_id: str) -> None:
        await self.to_connection(connection_id, "room_list", self.room_list())

    def history(self, room_id: str) -> List[dict]:
        """Wire form of the replayable history, read at call time."""
        return [m.to_wire() for m in self.room_store.recent_history(room_id)]

    async def send_sequence(
        self,
        connection_id: str,
        frames: Sequence[Tuple[str, Any]],
        when: Optional[Callable[[], bool]] = None,
    ) -> None:
        await self.connections.send_sequence(connection_id, frames, when)
