from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Optional


class Frame(BaseModel):
    type: str
    data: Optional[Any] = None

class JoinRoomRequest(BaseModel):
    room_id: str = Field(min_length=1)

class SignalRequest(BaseModel):
    to: str = Field(min_length=1)
    signal: Any

class SignalRelayed(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: str = Field(alias="from")
    signal: Any
