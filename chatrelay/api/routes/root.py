# chatrelay/api/routes/root.py

from fastapi import APIRouter

from chatrelay.core.config import VERSION

router = APIRouter()


@router.get("/")
async def root():
    """
    Root endpoint - API information.

    Returns basic info about the relay and where its endpoints live.
    """
    return {
        "name": "LAN Chat Relay",
        "version": VERSION,
        "status": "running",
        "features": ["multi_room", "live_membership", "ip_mute", "admin_broadcast"],
        "endpoints": {
            "websocket": "/ws",
            "rooms": "/api/rooms",
            "users": "/api/users",
            "health": "/api/health",
            "metrics": "/api/metrics",
        },
    }
