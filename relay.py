import asyncio
import json
from typing import Dict, List, Optional
from fastapi import WebSocket
from backend import RoomRegistry, registry
from events import USER_JOINED, USER_LEFT, SIGNAL, frame
from schemas.signals import SignalRelayed
from logging_config import get_logger

logger = get_logger(__name__)


class Connection:
    """One accepted WebSocket plus its outbound FIFO.

    deliver() never awaits, so a slow or dead recipient cannot stall whoever
    is sending to it. pump() is the single writer for the socket.
    """

    def __init__(self, connection_id: str, websocket: Optional[WebSocket] = None):
        self.connection_id = connection_id
        self.websocket = websocket
        self.closed = False
        self._outbox: asyncio.Queue = asyncio.Queue()

    def deliver(self, message: dict) -> bool:
        if self.closed:
            return False
        self._outbox.put_nowait(message)
        return True

    async def pump(self):
        while True:
            message = await self._outbox.get()
            if message is None:
                break
            try:
                await self.websocket.send_text(json.dumps(message))
            except Exception as e:
                logger.warning(f"Error sending to connection {self.connection_id}, dropping its outbox: {e}")
                self.closed = True
                break
        logger.debug(f"Writer for connection {self.connection_id} stopped")

    def close(self):
        """Stop accepting messages; already queued ones are still flushed."""
        if self.closed:
            return
        self.closed = True
        self._outbox.put_nowait(None)


class SignalingRelay:
    def __init__(self, room_registry: RoomRegistry):
        self.registry = room_registry
        self.connections: Dict[str, Connection] = {}

    def register(self, connection: Connection):
        self.connections[connection.connection_id] = connection
        logger.info(f"Connection {connection.connection_id} registered ({len(self.connections)} open)")

    def unregister(self, connection_id: str):
        """Channel closed: leave the room, then forget the connection."""
        self.leave(connection_id)
        connection = self.connections.pop(connection_id, None)
        if connection:
            connection.close()
        logger.info(f"Connection {connection_id} unregistered ({len(self.connections)} open)")

    def join(self, connection_id: str, room_id: str) -> List[str]:
        """Join a room and announce the newcomer to everybody already there.

        The joiner is not told about existing members; they call it once
        they receive user-joined.
        """
        others, departed = self.registry.join(connection_id, room_id)
        if departed:
            self._announce_left(connection_id, *departed)

        for member_id in others:
            self._deliver(member_id, frame(USER_JOINED, connection_id))
        logger.info(f"Connection {connection_id} joined room {room_id}, notified {len(others)} members")
        return others

    def relay(self, from_id: str, to_id: str, payload) -> bool:
        """Forward an opaque signal to one connection, room-agnostic.

        Unknown or closed targets are dropped silently; the sender is never
        told.
        """
        message = frame(SIGNAL, SignalRelayed(from_=from_id, signal=payload).model_dump(by_alias=True))
        if not self._deliver(to_id, message):
            logger.debug(f"Signal from {from_id} to {to_id} dropped: target not connected")
            return False
        logger.debug(f"Relayed signal from {from_id} to {to_id}")
        return True

    def leave(self, connection_id: str) -> List[str]:
        departed = self.registry.leave(connection_id)
        if departed is None:
            return []
        room_id, remaining = departed
        self._announce_left(connection_id, room_id, remaining)
        return remaining

    def _announce_left(self, connection_id: str, room_id: str, remaining: List[str]):
        for member_id in remaining:
            self._deliver(member_id, frame(USER_LEFT, connection_id))
        logger.info(f"Connection {connection_id} left room {room_id}, notified {len(remaining)} members")

    def _deliver(self, connection_id: str, message: dict) -> bool:
        connection = self.connections.get(connection_id)
        if connection is None:
            return False
        return connection.deliver(message)


relay = SignalingRelay(registry)
