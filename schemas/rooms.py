from pydantic import BaseModel


class CreateRoomResponse(BaseModel):
    room_id: str
    ws_url: str

class RoomDetailsResponse(BaseModel):
    room_id: str
    online_users_count: int
    online_users: list[str]

class HealthResponse(BaseModel):
    status: str
    rooms: int
    connections: int
