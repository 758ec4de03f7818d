# chatrelay/services/connection_handler.py

from __future__ import annotations

import functools
from typing import Any, Awaitable, Callable, Dict, Optional, Type, TypeVar
import logging

from pydantic import BaseModel
from pydantic import ValidationError as PayloadError

from chatrelay.core.errors import (
    ChatError,
    Forbidden,
    InvalidOperation,
    NotAuthenticated,
    NotFound,
    ValidationError,
)
from chatrelay.models.models import (
    NAME_MAX_LENGTH,
    NAME_MIN_LENGTH,
    CreateRoomEvent,
    DeleteRoomEvent,
    JoinEvent,
    JoinRoomEvent,
    Message,
    Result,
    SendMessageEvent,
    TypingEvent,
    User,
)
from chatrelay.services.broadcast import BroadcastCoordinator
from chatrelay.services.connection_manager import ConnectionManager
from chatrelay.services.identity import generate_id, now_ms
from chatrelay.services.moderation import ModerationRegistry
from chatrelay.services.renderer import ContentRenderer, render_content
from chatrelay.services.room_manager import RoomStore, validate_room_id
from chatrelay.services.session_registry import SessionRegistry

logger = logging.getLogger(__name__)

SYSTEM_AUTHOR = "System"

EventT = TypeVar("EventT", bound=BaseModel)


def system_message(kind: str, room_id: Optional[str], content: str, author: str = SYSTEM_AUTHOR) -> Message:
    """Build a system-authored message (no source address)."""
    return Message(
        id=generate_id(),
        type=kind,
        username=author,
        content=content,
        timestamp=now_ms(),
        room=room_id,
    )


def reports_errors(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Result]]:
    """
    Turn a handler that raises ChatError into one that returns a Result.

    Failures are also sent to the originating connection as an ``error``
    frame; the connection stays open.
    """

    @functools.wraps(func)
    async def wrapper(self: "ConnectionHandler", connection_id: str, *args: Any, **kwargs: Any) -> Result:
        try:
            value = await func(self, connection_id, *args, **kwargs)
        except ChatError as exc:
            return await self.fail(connection_id, exc)
        return Result.success(value)

    return wrapper


# ============================================================================
# CONNECTION HANDLER
# ============================================================================

class ConnectionHandler:
    """
    Protocol state machine for every WebSocket connection.

    States (derived, not stored):
        Connected  - socket open, no user bound in the SessionRegistry
        Joined     - user bound and sitting in exactly one room
        Closed     - disconnect() ran; the connection is gone from all stores

    Every operation mutates the stores synchronously before its first
    ``await`` and only then emits, so a concurrently scheduled handler
    never sees a half-applied change. History replayed to a joiner is read
    in that same step and goes out under the connection's send lock ahead
    of any live message, so it never repeats or trails one.

    Client -> Server actions:
        join          {"username": "alice", "roomId": "default"}
        join_room     {"roomId": "team"}
        create_room   {"roomId": "team", "roomName": "Team"}
        delete_room   {"roomId": "team"}
        send_message  {"content": "hello", "roomId": "team"}
        typing        {"isTyping": true}
        get_rooms     {}

    Server -> Client frames are ``{"type": <event>, "data": <payload>}``.
    """

    def __init__(
        self,
        connections: ConnectionManager,
        sessions: SessionRegistry,
        room_store: RoomStore,
        moderation: ModerationRegistry,
        broadcaster: BroadcastCoordinator,
        renderer: Optional[ContentRenderer] = None,
    ) -> None:
        self.connections = connections
        self.sessions = sessions
        self.room_store = room_store
        self.moderation = moderation
        self.broadcaster = broadcaster
        self.renderer = renderer

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch(self, connection_id: str, action: Optional[str], payload: Dict[str, Any]) -> Result:
        """Route one decoded client frame to its handler."""
        try:
            if action == "join":
                event = self._parse(JoinEvent, action, payload)
                return await self.join(connection_id, event.username, event.room_id)

            elif action == "join_room":
                event = self._parse(JoinRoomEvent, action, payload)
                return await self.join_room(connection_id, event.room_id)

            elif action == "send_message":
                event = self._parse(SendMessageEvent, action, payload)
                return await self.send_message(connection_id, event.content, event.room_id)

            elif action == "create_room":
                event = self._parse(CreateRoomEvent, action, payload)
                return await self.create_room(connection_id, event.room_id, event.room_name)

            elif action == "delete_room":
                event = self._parse(DeleteRoomEvent, action, payload)
                return await self.delete_room(connection_id, event.room_id)

            elif action == "typing":
                event = self._parse(TypingEvent, action, payload)
                return await self.typing(connection_id, event.is_typing, event.room_id)

            elif action == "get_rooms":
                return await self.get_rooms(connection_id)

            raise ValidationError(f"Unknown action: {action}")
        except ChatError as exc:
            return await self.fail(connection_id, exc)

    @staticmethod
    def _parse(model: Type[EventT], action: str, payload: Dict[str, Any]) -> EventT:
        try:
            return model.model_validate(payload)
        except PayloadError:
            raise ValidationError(f"Malformed '{action}' payload")

    async def fail(self, connection_id: str, error: ChatError) -> Result:
        logger.info("Rejected request on %s: [%s] %s", connection_id, error.code, error.message)
        await self.broadcaster.to_connection(
            connection_id, "error", {"message": error.message, "code": error.code}
        )
        return Result.failure(error)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_user(self, connection_id: str) -> User:
        user = self.sessions.get(connection_id)
        if user is None:
            raise NotAuthenticated("Join the chat first")
        return user

    def _is_muted(self, user: User) -> bool:
        return user.is_muted or self.moderation.is_muted(user.address)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    @reports_errors
    async def join(self, connection_id: str, username: str, room_id: Optional[str] = None) -> dict:
        """
        Bind a user to the connection and place it in a room.

        Valid only from the Connected state. The room is created on the fly
        when it does not exist yet (``default`` when omitted).
        """
        if self.sessions.get(connection_id) is not None:
            raise InvalidOperation("Already joined, use join_room to switch rooms")

        username = (username or "").strip()
        if not NAME_MIN_LENGTH <= len(username) <= NAME_MAX_LENGTH:
            raise ValidationError(
                f"Username must be {NAME_MIN_LENGTH}-{NAME_MAX_LENGTH} characters"
            )

        room_id = (room_id or "").strip() or self.room_store.default_room_id
        if not self.room_store.exists(room_id):
            room_id = validate_room_id(room_id)

        address = self.connections.address_of(connection_id)
        muted = self.moderation.is_muted(address)
        user = User(
            id=generate_id(),
            username=username,
            connection_id=connection_id,
            address=address,
            join_time=now_ms(),
            is_muted=muted,
        )

        room, _ = self.room_store.get_or_create(room_id)
        self.sessions.bind(connection_id, user)
        self.room_store.add_member(room.id, user)
        joined = self.room_store.append_message(
            room.id,
            system_message(
                "join",
                room.id,
                f"{username} ({address}) joined the chat" + (" [muted]" if muted else ""),
            ),
        )

        private = []
        if muted:
            notice = system_message(
                "admin", None, "Your address is muted: you cannot send messages or create rooms"
            )
            private.append(("message", notice.to_wire()))
        # the joiner sees its own join notice inside the history
        private.append(("message_history", self.broadcaster.history(room.id)))

        await self.broadcaster.send_sequence(connection_id, private)
        if joined is not None:
            await self.broadcaster.to_room(room.id, "message", joined.to_wire(), exclude=connection_id)
        await self.broadcaster.broadcast_user_list(room.id)
        await self.broadcaster.broadcast_room_list()

        logger.info("→ %s (%s) joined room %s%s", username, address, room.id, " [muted]" if muted else "")
        return {"user": user.summary(), "roomId": room.id}

    @reports_errors
    async def join_room(self, connection_id: str, room_id: str) -> dict:
        """
        Switch a joined user to another existing room.

        Leave and join notices are written to the two rooms' histories, the
        new room's history is replayed to the sender only, immediately
        followed by the ``room_joined`` acknowledgment.
        """
        user = self._require_user(connection_id)
        room_id = (room_id or "").strip()
        if not room_id:
            raise ValidationError("Room id is required")
        target = self.room_store.get(room_id)
        if target is None:
            raise NotFound(f"Room '{room_id}' does not exist")

        if user.current_room == room_id:
            ack = self._room_ack(room_id)
            await self.broadcaster.send_sequence(
                connection_id,
                [("message_history", self.broadcaster.history(room_id)), ("room_joined", ack)],
            )
            return ack

        old_room_id = user.current_room
        left = None
        if old_room_id is not None:
            left = self.room_store.append_message(
                old_room_id, system_message("leave", old_room_id, f"{user.username} left the room")
            )
        self.sessions.switch_room(connection_id, room_id)
        joined = self.room_store.append_message(
            room_id, system_message("join", room_id, f"{user.username} joined the room")
        )
        ack = self._room_ack(room_id)

        await self.broadcaster.send_sequence(
            connection_id,
            [("message_history", self.broadcaster.history(room_id)), ("room_joined", ack)],
            when=lambda: user.current_room == room_id,
        )
        if left is not None:
            await self.broadcaster.to_room(old_room_id, "message", left.to_wire())
        if joined is not None:
            await self.broadcaster.to_room(room_id, "message", joined.to_wire(), exclude=connection_id)
        if old_room_id is not None:
            await self.broadcaster.broadcast_user_list(old_room_id)
        await self.broadcaster.broadcast_user_list(room_id)
        await self.broadcaster.broadcast_room_list()

        logger.info("→ %s moved %s -> %s", user.username, old_room_id, room_id)
        return ack

    def _room_ack(self, room_id: str) -> dict:
        room = self.room_store.get(room_id)
        return {"roomId": room.id, "roomName": room.name, "userCount": len(room.members)}

    @reports_errors
    async def send_message(
        self, connection_id: str, content: str, room_id: Optional[str] = None
    ) -> Optional[Message]:
        """
        Append a text message to a room and deliver it to every member,
        sender included. Empty content is ignored without an error.
        """
        user = self._require_user(connection_id)
        content = (content or "").strip()
        if not content:
            return None
        if self._is_muted(user):
            raise Forbidden("You are muted and cannot send messages")

        room_id = (room_id or "").strip() or user.current_room
        processed, is_markdown = render_content(content, self.renderer)
        stored = self.room_store.append_message(
            room_id,
            Message(
                id=generate_id(),
                type="text",
                username=user.username,
                content=content,
                processed_content=processed,
                is_markdown=is_markdown,
                timestamp=now_ms(),
                room=room_id,
                user_ip=user.address,
            ),
        )
        if stored is None:
            return None

        await self.broadcaster.to_room(room_id, "message", stored.to_wire())
        logger.debug("Message [%s] %s (%s): %s", room_id, user.username, user.address, content)
        return stored

    @reports_errors
    async def create_room(
        self, connection_id: str, room_id: str, room_name: Optional[str] = None
    ) -> dict:
        """Create a room without joining it and announce the new room list."""
        user = self._require_user(connection_id)
        if self._is_muted(user):
            raise Forbidden("You are muted and cannot create rooms")

        room = self.room_store.create(room_id, room_name)
        payload = {"roomId": room.id, "roomName": room.name}

        await self.broadcaster.to_connection(connection_id, "room_created", payload)
        await self.broadcaster.broadcast_room_list()

        logger.info("%s created room %s (%s)", user.username, room.name, room.id)
        return payload

    @reports_errors
    async def delete_room(self, connection_id: str, room_id: str) -> dict:
        """Self-service deletion: only empty, non-default rooms. Never forces."""
        user = self._require_user(connection_id)
        room_id = (room_id or "").strip()
        if not room_id:
            raise ValidationError("Room id is required")

        room = self.room_store.get(room_id)
        self.room_store.delete(room_id, force=False)
        payload = {"roomId": room_id, "roomName": room.name}

        await self.broadcaster.to_connection(connection_id, "room_deleted", payload)
        await self.broadcaster.broadcast_room_list()

        logger.info("%s deleted room %s", user.username, room_id)
        return payload

    @reports_errors
    async def typing(
        self, connection_id: str, is_typing: bool, room_id: Optional[str] = None
    ) -> None:
        user = self.sessions.get(connection_id)
        if user is None or self._is_muted(user):
            return None
        room_id = (room_id or "").strip() or user.current_room
        await self.broadcaster.to_room(
            room_id,
            "user_typing",
            {"username": user.username, "isTyping": bool(is_typing)},
            exclude=connection_id,
        )

    @reports_errors
    async def get_rooms(self, connection_id: str) -> list:
        rooms = self.broadcaster.room_list()
        await self.broadcaster.to_connection(connection_id, "room_list", rooms)
        return rooms

    async def disconnect(self, connection_id: str) -> Optional[User]:
        """
        Terminal transition: revoke everything the connection owned.

        Only the user's current room receives a leave notice. Safe to call
        for connections that never joined or were already cleaned up.
        """
        self.connections.disconnect(connection_id)
        user = self.sessions.unbind(connection_id)
        if user is None:
            return None

        room_id = self.room_store.remove_member(user)
        left = None
        if room_id is not None:
            left = self.room_store.append_message(
                room_id,
                system_message("leave", room_id, f"{user.username} ({user.address}) left the chat"),
            )

        if left is not None:
            await self.broadcaster.to_room(room_id, "message", left.to_wire())
        if room_id is not None:
            await self.broadcaster.broadcast_user_list(room_id)
        await self.broadcaster.broadcast_room_list()

        logger.info("✗ %s (%s) disconnected", user.username, user.address)
        return user
