# chatrelay/core/errors.py

from __future__ import annotations

from typing import Any, Dict, Optional

# ============================================================================
# ERROR TAXONOMY
# ============================================================================

class ChatError(Exception):
    """
    Base class for every error the relay reports back to a client.

    Each subclass carries a stable ``code`` (sent on the WebSocket as
    ``error.code`` and in REST error bodies) and the HTTP status the REST
    layer maps it to. None of these are fatal: channel errors are sent to
    the originating connection only, REST errors become 4xx responses.

    Attributes:
        message: Human readable description
        details: Optional structured context (e.g. remaining room members)
    """

    code = "error"
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(ChatError):
    """Malformed input: bad username/room id length, empty room id."""

    code = "validation_error"
    status_code = 400


class NotAuthenticated(ChatError):
    """Action requires a joined user."""

    code = "not_authenticated"
    status_code = 401


class Forbidden(ChatError):
    """Muted user or address attempting a gated action."""

    code = "forbidden"
    status_code = 403


class NotFound(ChatError):
    code = "not_found"
    status_code = 404


class Conflict(ChatError):
    code = "conflict"
    status_code = 409


class RoomNotEmpty(ChatError):
    """Non-forced deletion of a populated room."""

    code = "room_not_empty"
    status_code = 409


class InvalidOperation(ChatError):
    code = "invalid_operation"
    status_code = 400
