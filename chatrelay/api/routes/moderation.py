# chatrelay/api/routes/moderation.py

from typing import List

from fastapi import APIRouter, Depends

from chatrelay.core import state
from chatrelay.models.models import AddressRequest, BroadcastRequest
from chatrelay.api.routes.utils import require_admin

router = APIRouter(prefix="/api", dependencies=[Depends(require_admin)])

# ============================================================================
# MODERATION ENDPOINTS
# ============================================================================

@router.get("/users")
async def list_users() -> List[dict]:
    """All connected users with their current room."""
    return state.admin_service.list_users()


@router.post("/mute-ip")
async def mute_ip(body: AddressRequest):
    """
    Mute a source address.

    Every connected user from that address is muted immediately and the
    user lists of their rooms are re-broadcast.
    """
    result = await state.admin_service.mute(body.ip)
    return {"success": True, "message": f"{result['ip']} muted", **result}


@router.post("/unmute-ip")
async def unmute_ip(body: AddressRequest):
    result = await state.admin_service.unmute(body.ip)
    return {"success": True, "message": f"{result['ip']} unmuted", **result}


@router.get("/muted-ips")
async def muted_ips() -> List[str]:
    return state.admin_service.muted_addresses()


@router.post("/broadcast")
async def broadcast(body: BroadcastRequest):
    """Post an admin message into every room and to connections outside any room."""
    result = await state.admin_service.broadcast(body.message)
    return {"success": True, "message": "Broadcast sent", **result}
