# chatrelay/core/state.py
from __future__ import annotations

from datetime import datetime, timezone

from chatrelay.services.admin_service import AdminService
from chatrelay.services.broadcast import BroadcastCoordinator
from chatrelay.services.connection_handler import ConnectionHandler
from chatrelay.services.connection_manager import ConnectionManager
from chatrelay.services.moderation import ModerationRegistry
from chatrelay.services.room_manager import RoomStore
from chatrelay.services.session_registry import SessionRegistry

# Process-wide instances, one set per running server
room_store: RoomStore
session_registry: SessionRegistry
moderation: ModerationRegistry
connection_manager: ConnectionManager
broadcaster: BroadcastCoordinator
connection_handler: ConnectionHandler
admin_service: AdminService

app_start_time: datetime = datetime.now(timezone.utc)


def reset() -> None:
    """(Re)build every store from scratch: default room only, nobody muted."""
    global room_store, session_registry, moderation, connection_manager
    global broadcaster, connection_handler, admin_service

    room_store = RoomStore()
    session_registry = SessionRegistry(room_store)
    moderation = ModerationRegistry(session_registry)
    connection_manager = ConnectionManager()
    broadcaster = BroadcastCoordinator(connection_manager, room_store)
    connection_handler = ConnectionHandler(
        connections=connection_manager,
        sessions=session_registry,
        room_store=room_store,
        moderation=moderation,
        broadcaster=broadcaster,
    )
    admin_service = AdminService(
        sessions=session_registry,
        room_store=room_store,
        moderation=moderation,
        broadcaster=broadcaster,
    )


reset()
