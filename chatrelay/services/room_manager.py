# chatrelay/services/room_manager.py

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Tuple
import logging

from chatrelay.core.config import settings
from chatrelay.core.errors import Conflict, InvalidOperation, NotFound, RoomNotEmpty, ValidationError
from chatrelay.models.models import NAME_MAX_LENGTH, NAME_MIN_LENGTH, Message, RoomSummary, User
from chatrelay.services.identity import now_ms

logger = logging.getLogger(__name__)


def validate_room_id(room_id: str) -> str:
    """Return the trimmed room id or raise ValidationError."""
    room_id = (room_id or "").strip()
    if not room_id:
        raise ValidationError("Room id is required")
    if not NAME_MIN_LENGTH <= len(room_id) <= NAME_MAX_LENGTH:
        raise ValidationError(
            f"Room id must be {NAME_MIN_LENGTH}-{NAME_MAX_LENGTH} characters"
        )
    return room_id


@dataclass
class Room:
    """
    A room with its live membership and bounded history.

    ``members`` maps connection_id -> User in join order and is the only
    authoritative membership record in the process.
    """

    id: str
    name: str
    created: int
    history: Deque[Message]
    members: Dict[str, User] = field(default_factory=dict)
    is_public: bool = True

    def summary(self) -> RoomSummary:
        return RoomSummary(
            id=self.id,
            name=self.name,
            user_count=len(self.members),
            created=self.created,
            is_public=self.is_public,
        )


# ============================================================================
# ROOM STORE
# ============================================================================
class RoomStore:
    """
    Owns rooms, their membership and their message history, in memory only.

    Nothing survives a restart: the default room is re-created on
    construction and every other room lives until it is explicitly deleted.

    Membership changes that touch two rooms (move_member, forced delete,
    evict_all) finish inside a single synchronous call, so on the asyncio
    loop no other handler can observe a user in zero or two rooms.

    Attributes:
        rooms: Dictionary mapping room_id -> Room, in creation order
        default_room_id: The immortal fallback room
        messages_stored: Count of messages ever appended (for /api/metrics)

    Usage:
        store = RoomStore()
        room, created = store.get_or_create("team")
        store.append_message("team", message)
        store.recent_history("team")
    """

    def __init__(
        self,
        default_room_id: str = settings.DEFAULT_ROOM_ID,
        default_room_name: str = settings.DEFAULT_ROOM_NAME,
        history_limit: int = settings.HISTORY_LIMIT,
        history_retention: int = settings.HISTORY_RETENTION,
    ) -> None:
        self.rooms: Dict[str, Room] = {}
        self.default_room_id = default_room_id
        self.history_limit = history_limit
        # Retention never drops below the replay window
        self.history_retention = max(history_retention, history_limit)
        self.messages_stored = 0
        self._create(default_room_id, default_room_name)

    def _create(self, room_id: str, name: Optional[str]) -> Room:
        room = Room(
            id=room_id,
            name=name or room_id,
            created=now_ms(),
            history=deque(maxlen=self.history_retention),
        )
        self.rooms[room_id] = room
        logger.info("✓ Created room: %s (%s)", room.name, room_id)
        return room

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def get(self, room_id: Optional[str]) -> Optional[Room]:
        if room_id is None:
            return None
        return self.rooms.get(room_id)

    def exists(self, room_id: Optional[str]) -> bool:
        return room_id is not None and room_id in self.rooms

    def get_or_create(self, room_id: str, name: Optional[str] = None) -> Tuple[Room, bool]:
        """
        Return the room, creating it with empty history if it is missing.

        Returns:
            (room, created). Callers broadcast the room list when created is True.
        """
        room = self.rooms.get(room_id)
        if room is not None:
            return room, False
        return self._create(room_id, name), True

    def create(self, room_id: str, name: Optional[str] = None) -> Room:
        """
        Create a user-requested room.

        Raises:
            ValidationError: empty id or length outside 2-20
            Conflict: id already taken
        """
        room_id = validate_room_id(room_id)
        if room_id in self.rooms:
            raise Conflict(f"Room '{room_id}' already exists")
        return self._create(room_id, (name or "").strip() or room_id)

    def delete(self, room_id: str, force: bool = False) -> List[User]:
        """
        Delete a room and discard its history.

        Args:
            room_id: Room to delete
            force: Relocate remaining members to the default room instead
                   of refusing

        Returns:
            Users moved to the default room (empty unless forced)

        Raises:
            InvalidOperation: room_id is the default room
            NotFound: no such room
            RoomNotEmpty: members remain and force is False
        """
        if room_id == self.default_room_id:
            raise InvalidOperation("The default room cannot be deleted")
        room = self.rooms.get(room_id)
        if room is None:
            raise NotFound(f"Room '{room_id}' does not exist")
        if room.members and not force:
            raise RoomNotEmpty(
                "Room still has members",
                details={
                    "userCount": len(room.members),
                    "users": [u.username for u in room.members.values()],
                },
            )

        moved = self._relocate_members(room)
        del self.rooms[room_id]
        logger.info("✓ Deleted room: %s (%s), relocated %d", room.name, room_id, len(moved))
        return moved

    def evict_all(self, room_id: str) -> List[User]:
        """
        Move every member of a room to the default room, keeping the room.

        Raises:
            NotFound: no such room
            InvalidOperation: room is the default room or already empty
        """
        room = self.rooms.get(room_id)
        if room is None:
            raise NotFound(f"Room '{room_id}' does not exist")
        if room_id == self.default_room_id:
            raise InvalidOperation("Members cannot be kicked from the default room")
        if not room.members:
            raise InvalidOperation("Room has no members")
        return self._relocate_members(room)

    def _relocate_members(self, room: Room) -> List[User]:
        moved = list(room.members.values())
        for user in moved:
            self.move_member(user, self.default_room_id)
        return moved

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def add_member(self, room_id: str, user: User) -> None:
        room = self.rooms.get(room_id)
        if room is None:
            raise NotFound(f"Room '{room_id}' does not exist")
        room.members[user.connection_id] = user
        user.current_room = room_id

    def remove_member(self, user: User) -> Optional[str]:
        """Drop the user from its current room. Returns that room id."""
        old_room_id = user.current_room
        room = self.rooms.get(old_room_id) if old_room_id else None
        if room is not None:
            room.members.pop(user.connection_id, None)
        user.current_room = None
        return old_room_id

    def move_member(self, user: User, new_room_id: str) -> Optional[str]:
        """
        Atomically move a user from its current room into new_room_id.

        Returns:
            The room the user left (None if it was in none)

        Raises:
            NotFound: target room does not exist (nothing is changed)
        """
        if new_room_id not in self.rooms:
            raise NotFound(f"Room '{new_room_id}' does not exist")
        old_room_id = self.remove_member(user)
        self.add_member(new_room_id, user)
        return old_room_id

    def members(self, room_id: str) -> List[User]:
        room = self.rooms.get(room_id)
        return list(room.members.values()) if room else []

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def append_message(self, room_id: str, message: Message) -> Optional[Message]:
        """
        Append a message to a room's history.

        Returns:
            The stored message, or None if the room no longer exists (the
            message is dropped, not buffered). A timestamp older than the
            room's newest entry is clamped so history stays ordered.
        """
        room = self.rooms.get(room_id)
        if room is None:
            logger.info("[history] Dropped message %s: room=%s is gone", message.id, room_id)
            return None

        if message.room != room_id:
            message = message.model_copy(update={"room": room_id})
        if room.history and message.timestamp < room.history[-1].timestamp:
            message = message.model_copy(update={"timestamp": room.history[-1].timestamp})

        room.history.append(message)
        self.messages_stored += 1
        return message

    def recent_history(self, room_id: str, limit: Optional[int] = None) -> List[Message]:
        """Return the newest ``limit`` messages of a room, oldest first."""
        room = self.rooms.get(room_id)
        if room is None:
            return []
        limit = self.history_limit if limit is None else limit
        if limit <= 0:
            return []
        return list(room.history)[-limit:]

    def list_rooms(self) -> List[RoomSummary]:
        """Snapshot of every room, in creation order."""
        return [room.summary() for room in self.rooms.values()]
