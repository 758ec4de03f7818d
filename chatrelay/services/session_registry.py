# chatrelay/services/session_registry.py

from __future__ import annotations

from typing import Dict, List, Optional, Tuple
import logging

from chatrelay.core.errors import NotAuthenticated
from chatrelay.models.models import User
from chatrelay.services.room_manager import RoomStore

logger = logging.getLogger(__name__)


class SessionRegistry:
    """
    Maps connection_id -> User for every joined connection.

    This is the single answer to "who is connected and where are they".
    It never edits room membership on its own: room switches go through
    RoomStore.move_member so the member map and ``user.current_room``
    change together.
    """

    def __init__(self, room_store: RoomStore) -> None:
        self.users: Dict[str, User] = {}
        self.room_store = room_store

    def bind(self, connection_id: str, user: User) -> None:
        self.users[connection_id] = user
        logger.info("→ Bound %s (%s) to connection %s", user.username, user.address, connection_id)

    def unbind(self, connection_id: str) -> Optional[User]:
        """Remove the mapping and return the user that was bound, if any."""
        return self.users.pop(connection_id, None)

    def get(self, connection_id: str) -> Optional[User]:
        return self.users.get(connection_id)

    def all(self) -> List[User]:
        return list(self.users.values())

    def list_by_address(self, address: str) -> List[User]:
        return [u for u in self.users.values() if u.address == address]

    def switch_room(self, connection_id: str, new_room_id: str) -> Tuple[User, Optional[str]]:
        """
        Move the connection's user into new_room_id.

        Returns:
            (user, old_room_id)

        Raises:
            NotAuthenticated: connection has no bound user
            NotFound: target room does not exist
        """
        user = self.users.get(connection_id)
        if user is None:
            raise NotAuthenticated("Join the chat first")
        old_room_id = self.room_store.move_member(user, new_room_id)
        return user, old_room_id

    def __len__(self) -> int:
        return len(self.users)
