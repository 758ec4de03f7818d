# chatrelay/api/routes/health.py

from fastapi import APIRouter

from chatrelay.core import state
from chatrelay.services.identity import now_ms

router = APIRouter(prefix="/api")

@router.get("/health")
async def health():
    """
    Health check endpoint.

    Returns current status with user, room and muted-address counts.

    Returns:
        dict: status, users, connections, rooms, mutedIPs, timestamp
    """
    return {
        "status": "ok",
        "users": len(state.session_registry),
        "connections": len(state.connection_manager),
        "rooms": len(state.room_store.rooms),
        "mutedIPs": len(state.moderation.addresses),
        "timestamp": now_ms(),
    }
