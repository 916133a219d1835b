import asyncio
import json
from typing import Optional
import websockets
from pydantic import ValidationError
from pyee.asyncio import AsyncIOEventEmitter
from events import CONNECTED, JOIN_ROOM, SIGNAL, USER_JOINED, USER_LEFT, frame
from schemas.signals import Frame, SignalRelayed, SignalRequest
from logging_config import get_logger

logger = get_logger(__name__)


class SignalingChannel(AsyncIOEventEmitter):
    """Client side of the signaling WebSocket.

    Emits:
    - "user-joined" (connection_id)
    - "signal" (from_id, payload)
    - "user-left" (connection_id)
    - "disconnect" () when the server goes away without close() being called

    Outbound frames go through a FIFO so send() can be called from plain
    callbacks without awaiting.
    """

    def __init__(self, url: str):
        super().__init__()
        self.url = url
        self.connection_id: Optional[str] = None
        self._ws = None
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._tasks = []
        self._connected = asyncio.Event()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def connect(self, timeout: float = 10.0):
        logger.info(f"Connecting to signaling server {self.url}")
        self._ws = await websockets.connect(self.url)
        self._tasks = [
            asyncio.ensure_future(self._read()),
            asyncio.ensure_future(self._write()),
        ]
        await asyncio.wait_for(self._connected.wait(), timeout)
        logger.info(f"Signaling connected as {self.connection_id}")

    def send(self, event: str, data=None):
        if self._closed:
            logger.debug(f"Channel closed, dropping outbound {event}")
            return
        self._outbox.put_nowait(frame(event, data))

    def join_room(self, room_id: str):
        self.send(JOIN_ROOM, room_id)

    def send_signal(self, to: str, signal):
        self.send(SIGNAL, SignalRequest(to=to, signal=signal).model_dump())

    def dispatch(self, raw: str):
        try:
            message = Frame.model_validate_json(raw)
        except ValidationError:
            logger.warning(f"Malformed frame from server: {raw[:200]}")
            return

        if message.type == CONNECTED:
            self.connection_id = message.data
            self._connected.set()
        elif message.type == SIGNAL:
            try:
                relayed = SignalRelayed.model_validate(message.data)
            except ValidationError as e:
                logger.warning(f"Invalid signal frame from server: {e}")
                return
            self.emit(SIGNAL, relayed.from_, relayed.signal)
        elif message.type in (USER_JOINED, USER_LEFT) and isinstance(message.data, str):
            self.emit(message.type, message.data)
        else:
            logger.warning(f"Unexpected frame from server: {message.type}")

    async def _read(self):
        try:
            async for raw in self._ws:
                self.dispatch(raw)
        except websockets.ConnectionClosed as e:
            logger.info(f"Signaling connection closed: {e}")
        finally:
            if not self._closed:
                self.emit("disconnect")

    async def _write(self):
        while True:
            message = await self._outbox.get()
            if message is None:
                break
            try:
                await self._ws.send(json.dumps(message))
            except websockets.ConnectionClosed:
                logger.warning(f"Signaling connection lost, {message['type']} not sent")
                break

    async def close(self):
        if self._closed:
            return
        self._closed = True
        self._outbox.put_nowait(None)
        if self._tasks:
            # let queued frames (e.g. a final signal) go out before closing
            await asyncio.wait(self._tasks[1:], timeout=1.0)
        if self._ws is not None:
            await self._ws.close()
        for task in self._tasks:
            task.cancel()
        logger.info("Signaling channel closed")
