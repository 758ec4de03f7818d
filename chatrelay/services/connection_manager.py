# chatrelay/services/connection_manager.py

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Optional, Sequence, Tuple
import logging

from fastapi import WebSocket

from chatrelay.services.identity import generate_id

logger = logging.getLogger(__name__)


@dataclass
class Connection:
    websocket: WebSocket
    address: str
    send_lock: asyncio.Lock = field(default_factory=asyncio.Lock)


# ============================================================================
# WEBSOCKET CONNECTION MANAGER
# ============================================================================

class ConnectionManager:
    """
    Owns the live WebSocket objects and delivers frames to them.

    This is the transport edge: it knows nothing about users or rooms.
    Everything above it addresses connections by connection_id, which is
    what lets the stores and tests run without real sockets.

    Data Structures:
        connections: Maps connection_id -> Connection(websocket, address)
                     Example: {"id-1733...-1-ab12": Connection(ws, "192.168.1.20")}

    Delivery:
        Fire-and-forget, at most once. A failed send is logged and never
        stops delivery to the other recipients of the same broadcast; the
        receive loop of the broken socket is what tears the connection down.

    Ordering:
        Every write to a socket holds that connection's send_lock, and the
        lock hands over in FIFO order. send_sequence() keeps the lock across
        several frames, so nothing queued later can land between them.
    """

    def __init__(self) -> None:
        self.connections: Dict[str, Connection] = {}

    async def connect(self, websocket: WebSocket) -> str:
        """
        Accept a new WebSocket connection.

        Returns:
            The connection_id assigned to it

        Note:
            No user is bound yet; the client must send a "join" action.
        """
        await websocket.accept()
        connection_id = generate_id()
        address = websocket.client.host if websocket.client else "unknown"
        self.connections[connection_id] = Connection(websocket=websocket, address=address)

        logger.info("✓ Connection %s from %s. Total: %d", connection_id, address, len(self.connections))
        return connection_id

    def disconnect(self, connection_id: str) -> None:
        if self.connections.pop(connection_id, None) is not None:
            logger.info("✗ Connection %s closed. Total: %d", connection_id, len(self.connections))

    def address_of(self, connection_id: str) -> str:
        connection = self.connections.get(connection_id)
        return connection.address if connection else "unknown"

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self.connections

    async def send(self, connection_id: str, event: str, data: Any) -> None:
        """Send one ``{"type": event, "data": data}`` frame to one connection."""
        await self.send_many([connection_id], event, data)

    async def send_many(self, connection_ids: Iterable[str], event: str, data: Any) -> None:
        """
        Send the same frame to several connections concurrently.

        Unknown connection ids (already closed) are skipped silently.
        """
        frame = {"type": event, "data": data}
        targets = [
            (cid, self.connections[cid])
            for cid in connection_ids
            if cid in self.connections
        ]
        if not targets:
            return

        results = await asyncio.gather(
            *(self._write(connection, frame) for _, connection in targets),
            return_exceptions=True,
        )
        for (cid, _), result in zip(targets, results):
            if isinstance(result, Exception):
                logger.warning("Send error on %s (%s): %s", cid, event, result)

    async def send_sequence(
        self,
        connection_id: str,
        frames: Sequence[Tuple[str, Any]],
        when: Optional[Callable[[], bool]] = None,
    ) -> None:
        """
        Send several frames to one connection back to back.

        The connection's send lock is taken before the first write and held
        until the last one, so a caller that invokes this right after a
        store mutation gets its frames out ahead of any broadcast scheduled
        after that mutation.

        ``when`` is checked once the lock is held; if it returns False the
        frames are dropped because the state they describe is gone.
        """
        connection = self.connections.get(connection_id)
        if connection is None:
            return

        async with connection.send_lock:
            if when is not None and not when():
                logger.debug("Dropped stale sequence for %s", connection_id)
                return
            for event, data in frames:
                try:
                    await connection.websocket.send_json({"type": event, "data": data})
                except Exception as exc:
                    logger.warning("Send error on %s (%s): %s", connection_id, event, exc)
                    return

    @staticmethod
    async def _write(connection: Connection, frame: dict) -> None:
        async with connection.send_lock:
            await connection.websocket.send_json(frame)

    async def broadcast(self, event: str, data: Any, exclude: Optional[str] = None) -> None:
        """Send a frame to every open connection."""
        await self.send_many(
            [cid for cid in list(self.connections) if cid != exclude],
            event,
            data,
        )

    def __len__(self) -> int:
        return len(self.connections)
