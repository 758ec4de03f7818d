# chatrelay/services/admin_service.py

from __future__ import annotations

import asyncio
from typing import List, Optional
import logging

from chatrelay.core.errors import Forbidden, NotFound, ValidationError
from chatrelay.models.models import User
from chatrelay.services.broadcast import BroadcastCoordinator
from chatrelay.services.connection_handler import system_message
from chatrelay.services.moderation import ModerationRegistry
from chatrelay.services.room_manager import RoomStore
from chatrelay.services.session_registry import SessionRegistry

logger = logging.getLogger(__name__)

ADMIN_AUTHOR = "Admin"


class AdminService:
    """
    Administrative operations behind the REST endpoints.

    Works on the same RoomStore / SessionRegistry / ModerationRegistry as the
    WebSocket handler and emits through the same BroadcastCoordinator, so a
    REST mutation looks exactly like its channel equivalent to every
    connected client. Mute checks are skipped for admin callers, and room
    deletion may force members out instead of refusing.
    """

    def __init__(
        self,
        sessions: SessionRegistry,
        room_store: RoomStore,
        moderation: ModerationRegistry,
        broadcaster: BroadcastCoordinator,
    ) -> None:
        self.sessions = sessions
        self.room_store = room_store
        self.moderation = moderation
        self.broadcaster = broadcaster

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def list_users(self) -> List[dict]:
        return [{**u.summary(), "room": u.current_room} for u in self.sessions.all()]

    def list_rooms(self) -> List[dict]:
        return self.broadcaster.room_list()

    def get_room(self, room_id: str) -> dict:
        room = self.room_store.get(room_id)
        if room is None:
            raise NotFound(f"Room '{room_id}' does not exist")
        return {
            **room.summary().model_dump(by_alias=True),
            "users": self.broadcaster.user_list(room_id),
        }

    def muted_addresses(self) -> List[str]:
        return self.moderation.list()

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    async def create_room(
        self,
        room_id: str,
        room_name: Optional[str],
        address: str,
        is_admin: bool = False,
    ) -> dict:
        """
        Create a room on behalf of a REST caller.

        Non-admin callers are refused when their address is muted, matching
        the channel's create_room rule.

        Raises:
            Forbidden: caller address muted (non-admin only)
            ValidationError / Conflict: from RoomStore.create
        """
        if not is_admin:
            muted_user = any(u.is_muted for u in self.sessions.list_by_address(address))
            if self.moderation.is_muted(address) or muted_user:
                raise Forbidden("Your address is muted and cannot create rooms")

        room = self.room_store.create(room_id, room_name)
        await self.broadcaster.broadcast_room_list()

        logger.info("Created room %s (%s) via API%s", room.name, room.id, " [admin]" if is_admin else "")
        return room.summary().model_dump(by_alias=True)

    async def delete_room(self, room_id: str, force: bool = False) -> dict:
        """
        Delete a room, relocating members to the default room when forced.

        Raises:
            InvalidOperation / NotFound / RoomNotEmpty: from RoomStore.delete
        """
        room = self.room_store.get(room_id)
        room_name = room.name if room else room_id
        moved = self.room_store.delete(room_id, force=force)

        await self._announce_relocation(
            room_id,
            room_name,
            moved,
            event="room_deleted",
            notice=f'Room "{room_name}" was deleted by an administrator, you were moved to the default room',
            reason="Room deleted by an administrator",
        )
        await self.broadcaster.broadcast_room_list()

        return {"roomId": room_id, "roomName": room_name, "force": force, "kickedUsers": len(moved)}

    async def kick_room(self, room_id: str) -> dict:
        """
        Move every member of a room to the default room. The room stays.

        Raises:
            NotFound / InvalidOperation: from RoomStore.evict_all
        """
        moved = self.room_store.evict_all(room_id)
        room_name = self.room_store.get(room_id).name

        await self._announce_relocation(
            room_id,
            room_name,
            moved,
            event="kicked_from_room",
            notice=f'You were removed from room "{room_name}" by an administrator',
            reason="Removed by an administrator",
        )
        await self.broadcaster.broadcast_user_list(room_id)
        await self.broadcaster.broadcast_room_list()

        return {"roomId": room_id, "roomName": room_name, "kickedCount": len(moved)}

    async def _announce_relocation(
        self,
        room_id: str,
        room_name: str,
        moved: List[User],
        event: str,
        notice: str,
        reason: str,
    ) -> None:
        """
        Tell relocated users what happened and show them arriving in default.

        Each user gets a private admin notice, the ``event`` frame and the
        default room's history, in that order and with nothing in between.
        The arrival notices are in that history, so only the users already
        in the default room get them live. No leave notices are written for
        the room they were moved out of.
        """
        if not moved:
            return
        default_id = self.room_store.default_room_id

        arrivals = []
        for user in moved:
            stored = self.room_store.append_message(
                default_id,
                system_message("join", default_id, f"{user.username} was moved to the default room"),
            )
            if stored is not None:
                arrivals.append(stored)

        history = self.broadcaster.history(default_id)
        details = {"roomId": room_id, "roomName": room_name, "reason": reason}
        await asyncio.gather(
            *(
                self.broadcaster.send_sequence(
                    user.connection_id,
                    [
                        ("message", system_message("admin", None, notice).to_wire()),
                        (event, details),
                        ("message_history", history),
                    ],
                    when=lambda user=user: user.current_room == default_id,
                )
                for user in moved
            )
        )

        moved_ids = {user.connection_id for user in moved}
        for message in arrivals:
            await self.broadcaster.to_room(default_id, "message", message.to_wire(), exclude=moved_ids)
        await self.broadcaster.broadcast_user_list(default_id)

        logger.info("Relocated %d users from %s to %s", len(moved), room_id, default_id)

    # ------------------------------------------------------------------
    # Moderation
    # ------------------------------------------------------------------

    async def mute(self, address: str) -> dict:
        address = (address or "").strip()
        if not address:
            raise ValidationError("IP address is required")

        affected = self.moderation.mute(address)
        await self._after_sweep(affected, "Your address was muted by an administrator")
        return {"ip": address, "muted": True, "affectedUsers": len(affected)}

    async def unmute(self, address: str) -> dict:
        address = (address or "").strip()
        if not address:
            raise ValidationError("IP address is required")

        affected = self.moderation.unmute(address)
        await self._after_sweep(affected, "Your address was unmuted")
        return {"ip": address, "muted": False, "affectedUsers": len(affected)}

    async def _after_sweep(self, affected: List[User], notice: str) -> None:
        rooms = []
        for user in affected:
            if user.current_room and user.current_room not in rooms:
                rooms.append(user.current_room)
            await self.broadcaster.to_connection(
                user.connection_id, "message", system_message("admin", None, notice).to_wire()
            )
        for room_id in rooms:
            await self.broadcaster.broadcast_user_list(room_id)

    # ------------------------------------------------------------------
    # Announcements
    # ------------------------------------------------------------------

    async def broadcast(self, text: str) -> dict:
        """Append an admin message to every room and deliver it to its members and to unjoined connections."""
        text = (text or "").strip()
        if not text:
            raise ValidationError("Message is required")

        stored = []
        for room_id in list(self.room_store.rooms):
            message = self.room_store.append_message(
                room_id, system_message("admin", room_id, text, author=ADMIN_AUTHOR)
            )
            if message is not None:
                stored.append(message)

        # connections that never joined still hear it, outside any room
        unjoined = [
            cid for cid in list(self.broadcaster.connections.connections)
            if self.sessions.get(cid) is None
        ]

        for message in stored:
            await self.broadcaster.to_room(message.room, "message", message.to_wire())
        if unjoined:
            await self.broadcaster.to_connections(
                unjoined, "message", system_message("admin", None, text, author=ADMIN_AUTHOR).to_wire()
            )

        logger.info("📢 Admin broadcast to %d rooms, %d unjoined connections", len(stored), len(unjoined))
        return {"rooms": len(stored), "unjoined": len(unjoined)}
