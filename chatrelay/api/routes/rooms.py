# chatrelay/api/routes/rooms.py

from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Request

from chatrelay.core import state
from chatrelay.models.models import CreateRoomRequest
from chatrelay.api.routes.utils import client_address, is_admin_token, require_admin

router = APIRouter(prefix="/api")

# ============================================================================
# ROOM ENDPOINTS
# ============================================================================

@router.get("/rooms")
async def list_rooms() -> List[dict]:
    """
    List all rooms.

    Returns:
        List of {id, name, userCount, created, isPublic}
    """
    return state.admin_service.list_rooms()


@router.get("/rooms/{room_id}")
async def get_room(room_id: str) -> dict:
    """
    Get one room with its current members.

    Raises:
        NotFound (404) if the room does not exist
    """
    return state.admin_service.get_room(room_id)


@router.post("/rooms")
async def create_room(
    body: CreateRoomRequest,
    request: Request,
    x_admin_token: Optional[str] = Header(default=None),
):
    """
    Create a new room.

    Callers whose address is muted are refused unless they present a valid
    ``X-Admin-Token``. The new room is announced to every connected client.

    Returns:
        dict: success flag and the room summary

    Raises:
        ValidationError (400): empty room id or length outside 2-20
        Forbidden (403): caller address muted
        Conflict (409): room id already taken
    """
    room = await state.admin_service.create_room(
        body.room_id,
        body.room_name,
        address=client_address(request),
        is_admin=is_admin_token(x_admin_token),
    )
    return {"success": True, "message": f'Room "{room["name"]}" created', "room": room}


@router.delete("/rooms/{room_id}", dependencies=[Depends(require_admin)])
async def delete_room(room_id: str, force: bool = False):
    """
    Delete a room.

    Without ``force`` a populated room is refused (409 room_not_empty, with
    the remaining members in ``details``). With ``force=true`` every member
    is moved to the default room and told why.

    Raises:
        InvalidOperation (400): default room
        NotFound (404): no such room
        RoomNotEmpty (409): members remain and force is false
    """
    result = await state.admin_service.delete_room(room_id, force=force)
    return {"success": True, **result}


@router.post("/rooms/{room_id}/kick-users", dependencies=[Depends(require_admin)])
async def kick_users(room_id: str):
    """
    Move every member of a room back to the default room.

    Raises:
        NotFound (404): no such room
        InvalidOperation (400): default room, or room already empty
    """
    result = await state.admin_service.kick_room(room_id)
    return {"success": True, **result}
