# chatrelay/models/models.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from chatrelay.core.errors import ChatError

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 20

MessageType = Literal["text", "join", "leave", "admin"]


# ============================================================================
# DOMAIN MODELS
# ============================================================================

class Message(BaseModel):
    """An immutable chat message. Serialized with camelCase keys on the wire."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    type: MessageType
    username: str
    content: str
    processed_content: Optional[str] = Field(default=None, alias="processedContent")
    is_markdown: bool = Field(default=False, alias="isMarkdown")
    timestamp: int
    room: Optional[str] = None
    user_ip: str = Field(default="", alias="userIP")

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class User(BaseModel):
    """
    A joined connection's user record.

    ``current_room`` is a cached pointer; only RoomStore.move_member and
    add/remove_member write it, together with the room's member map.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    username: str
    connection_id: str = Field(exclude=True)
    address: str
    join_time: int = Field(alias="joinTime")
    current_room: Optional[str] = Field(default=None, exclude=True)
    is_muted: bool = Field(default=False, alias="isMuted")

    def summary(self) -> dict:
        return self.model_dump(by_alias=True)


class RoomSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    user_count: int = Field(alias="userCount")
    created: int
    is_public: bool = Field(default=True, alias="isPublic")


# ============================================================================
# INBOUND WEBSOCKET EVENTS
# ============================================================================

class _Event(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class JoinEvent(_Event):
    username: str = ""
    room_id: Optional[str] = Field(default=None, alias="roomId")


class JoinRoomEvent(_Event):
    room_id: str = Field(default="", alias="roomId")


class CreateRoomEvent(_Event):
    room_id: str = Field(default="", alias="roomId")
    room_name: Optional[str] = Field(default=None, alias="roomName")


class DeleteRoomEvent(_Event):
    room_id: str = Field(default="", alias="roomId")


class SendMessageEvent(_Event):
    content: str = ""
    room_id: Optional[str] = Field(default=None, alias="roomId")


class TypingEvent(_Event):
    is_typing: bool = Field(default=False, alias="isTyping")
    room_id: Optional[str] = Field(default=None, alias="roomId")


# ============================================================================
# REST REQUEST BODIES
# ============================================================================

class CreateRoomRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    room_id: str = Field(default="", alias="roomId")
    room_name: Optional[str] = Field(default=None, alias="roomName")


class AddressRequest(BaseModel):
    ip: str = ""


class BroadcastRequest(BaseModel):
    message: str = ""


# ============================================================================
# HANDLER OUTCOME
# ============================================================================

@dataclass(frozen=True)
class Result:
    """
    Outcome of a Connection Handler operation.

    Either ``ok`` with an optional ``value`` or a failure carrying the
    ChatError that explains it. Both entry points (WebSocket, REST) and
    the tests read this instead of watching emitted frames.
    """

    ok: bool
    value: Any = None
    error: Optional[ChatError] = None

    @classmethod
    def success(cls, value: Any = None) -> "Result":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: ChatError) -> "Result":
        return cls(ok=False, error=error)
