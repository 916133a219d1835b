from fastapi import APIRouter, HTTPException, Request
from schemas.rooms import CreateRoomResponse, RoomDetailsResponse
import random
import string
from backend import registry
from constants import ROOM_SLUG_LENGTH
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])

def generate_random_slug(length: int = ROOM_SLUG_LENGTH) -> str:
    return ''.join(random.choices(string.ascii_lowercase + string.digits, k=length))

def build_ws_url(request: Request) -> str:
    base_url = str(request.base_url).rstrip('/')
    # Replace http/https with ws/wss
    ws_base = base_url.replace("http://", "ws://").replace("https://", "wss://")
    return f"{ws_base}/ws"


@rooms_router.post("/", response_model=CreateRoomResponse)
async def create_room(request: Request):
    # Rooms are implicit: this only hands out a fresh name to join with
    # Response 200: { "room_id": "k3j9x0qa", "ws_url": "ws://localhost:5000/ws" }
    room_id = generate_random_slug()
    while registry.members(room_id):
        room_id = generate_random_slug()

    client_host = request.client.host if request.client else 'unknown'
    logger.info(f"Room name {room_id} issued to {client_host}")
    return CreateRoomResponse(room_id=room_id, ws_url=build_ws_url(request))


@rooms_router.get("/{room_id}", response_model=RoomDetailsResponse)
async def get_room_details(room_id: str):
    """
    Get the connections currently in a room.

    Returns:
    - room_id: Room name
    - online_users_count: Number of connections in the room
    - online_users: Their connection ids
    """
    members = registry.members(room_id)
    if not members:
        logger.debug(f"Room details failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    logger.debug(f"Room details retrieved for {room_id}: {len(members)} users online")
    return RoomDetailsResponse(
        room_id=room_id,
        online_users_count=len(members),
        online_users=sorted(members),
    )
