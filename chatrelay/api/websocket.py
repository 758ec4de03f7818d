# chatrelay/api/websocket.py

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from chatrelay.core import state

logger = logging.getLogger(__name__)

router = APIRouter()

# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for the chat relay.

    Protocol:
    =========

    Client -> Server Actions (flat JSON objects):
    ---------------------------------------------
    Join the chat:
        {"action": "join", "username": "alice", "roomId": "default"}
        Response: message (join notice), message_history, user_list, room_list

    Switch room:
        {"action": "join_room", "roomId": "team"}
        Response: message_history, user_list, room_list, room_joined

    Send a message:
        {"action": "send_message", "content": "hello", "roomId": "team"}
        Response: message (to every member of the room)

    Create / delete a room:
        {"action": "create_room", "roomId": "team", "roomName": "Team"}
        {"action": "delete_room", "roomId": "team"}
        Response: room_created / room_deleted, room_list to everyone

    Typing indicator:
        {"action": "typing", "isTyping": true}
        Response: user_typing to the other members

    Room list:
        {"action": "get_rooms"}
        Response: room_list

    Server -> Client Frames:
    ------------------------
        {"type": "<event>", "data": <payload>}
        Error: {"type": "error", "data": {"message": "...", "code": "not_found"}}

    Lifecycle:
    ==========
    1. Client connects, connection accepted and given a connection id
    2. Client sends "join" with a username
    3. Client switches rooms, chats, creates rooms
    4. On disconnect, the user leaves its room and is forgotten

    Error Handling:
        - Invalid JSON / unknown actions: error frame, connection stays open
        - Validation / moderation failures: error frame to the sender only
        - Transport errors: cleanup and log
    """
    connection_id = await state.connection_manager.connect(websocket)
    handler = state.connection_handler

    try:
        while True:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await state.broadcaster.to_connection(
                    connection_id, "error", {"message": "Invalid JSON", "code": "validation_error"}
                )
                continue

            if not isinstance(message, dict):
                await state.broadcaster.to_connection(
                    connection_id, "error", {"message": "Expected a JSON object", "code": "validation_error"}
                )
                continue

            action = message.pop("action", None)
            logger.debug("Websocket input on %s: action=%s", connection_id, action)
            await handler.dispatch(connection_id, action, message)

    except WebSocketDisconnect:
        await handler.disconnect(connection_id)
    except Exception as e:
        logger.error("WebSocket error on %s: %s", connection_id, e)
        await handler.disconnect(connection_id)
