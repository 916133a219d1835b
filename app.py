from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError
from routers.rooms import rooms_router
from backend import registry
from relay import Connection, relay
from events import CONNECTED, JOIN_ROOM, SIGNAL, frame
from schemas.rooms import HealthResponse
from schemas.signals import Frame, JoinRoomRequest, SignalRequest
from constants import CORS_ORIGINS, LOG_FILE, LOG_LEVEL, STATIC_DIR
import uuid
import asyncio
import os
from logging_config import get_logger, setup_logging

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(rooms_router)

logger.info("FastAPI application initialized")


@app.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(status="ok", rooms=len(registry.rooms()), connections=len(relay.connections))


def handle_message(connection_id: str, raw: str):
    """Route one inbound frame. Malformed frames are logged and dropped."""
    try:
        message = Frame.model_validate_json(raw)
    except ValidationError as e:
        logger.warning(f"Malformed frame from connection {connection_id}: {raw[:200]} ({e.error_count()} errors)")
        return

    if message.type == JOIN_ROOM:
        try:
            request = JoinRoomRequest(room_id=message.data)
            relay.join(connection_id, request.room_id)
        except (ValidationError, ValueError) as e:
            logger.warning(f"Invalid {JOIN_ROOM} from connection {connection_id}: {e}")
    elif message.type == SIGNAL:
        try:
            request = SignalRequest.model_validate(message.data)
        except ValidationError as e:
            logger.warning(f"Invalid {SIGNAL} from connection {connection_id}: {e}")
            return
        relay.relay(connection_id, request.to, request.signal)
    else:
        logger.warning(f"Unknown event '{message.type}' from connection {connection_id}")


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Signaling channel. One connection id per socket, assigned here."""
    await websocket.accept()
    connection_id = str(uuid.uuid4())
    connection = Connection(connection_id, websocket)
    relay.register(connection)
    writer = asyncio.create_task(connection.pump())
    connection.deliver(frame(CONNECTED, connection_id))
    logger.info(f"WebSocket connection accepted: {connection_id}")

    try:
        message_count = 0
        while True:
            data = await websocket.receive_text()
            message_count += 1
            logger.debug(f"Received message #{message_count} from connection {connection_id}")
            handle_message(connection_id, data)
    except WebSocketDisconnect as e:
        logger.info(f"WebSocket disconnected for connection {connection_id}. Code: {e.code}")
    except Exception as e:
        logger.error(f"Unexpected WebSocket error for connection {connection_id}: {e}", exc_info=True)
    finally:
        relay.unregister(connection_id)
        writer.cancel()
        try:
            await writer
        except asyncio.CancelledError:
            pass
        logger.info(f"WebSocket connection cleaned up: {connection_id}")


# Mounted last so /ws, /rooms and /health take precedence
if STATIC_DIR and os.path.isdir(STATIC_DIR):
    app.mount("/", StaticFiles(directory=STATIC_DIR, html=True), name="static")
    logger.info(f"Serving static client from {STATIC_DIR}")
