from pydantic import BaseModel, Field


class Room(BaseModel):
    id: str
    connected: list[str] = Field(default_factory=list)
    created_at: int

    @property
    def member_count(self) -> int:
        return len(self.connected)


class CreateRoomResponse(BaseModel):
    room_id: str
    ttl: int
    expires_at: str

class JoinRoomResponse(BaseModel):
    room_id: str
    ttl: int

class RoomTtlResponse(BaseModel):
    ttl: int

class RoomDetailsResponse(BaseModel):
    room_id: str
    created_at: int
    ttl: int
    member_count: int
    max_members: int
    is_full: bool
