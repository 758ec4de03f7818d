# chatrelay/api/routes/metrics.py
from fastapi import APIRouter
from datetime import datetime, timezone

from chatrelay.core import state

router = APIRouter(prefix="/api")

@router.get("/metrics")
async def get_metrics():
    """
    Usage metrics for the relay process.

    Returns:
        dict: Message statistics (stored since start, per second), capacity
              (connections, joined users, rooms, rooms with members) and
              moderation (muted addresses)

    Example Response:
        {
            "total_messages": 1200,
            "uptime_hours": 3.5,
            "messages_per_second": 0.1,
            "concurrent_connections": 14,
            "joined_users": 12,
            "total_rooms": 4,
            "active_rooms_with_members": 2,
            "muted_addresses": 1
        }
    """
    uptime_seconds = (datetime.now(timezone.utc) - state.app_start_time).total_seconds()
    total_messages = state.room_store.messages_stored

    if uptime_seconds > 0:
        messages_per_second = total_messages / uptime_seconds
    else:
        messages_per_second = 0

    rooms = state.room_store.rooms

    return {
        # Statistics
        "total_messages": total_messages,
        "uptime_hours": round(uptime_seconds / 3600, 2) if uptime_seconds > 0 else 0,
        "messages_per_second": round(messages_per_second, 2),

        # Capacity
        "concurrent_connections": len(state.connection_manager),
        "joined_users": len(state.session_registry),
        "total_rooms": len(rooms),
        "active_rooms_with_members": sum(1 for r in rooms.values() if r.members),

        # Moderation
        "muted_addresses": len(state.moderation.addresses),
    }
