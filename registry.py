import time
import uuid
from typing import Optional

from constants import ROOM_TTL_SECONDS
from logging_config import get_logger
from redis_keys import meta_key, room_scoped_keys
from schemas.rooms import Room

logger = get_logger(__name__)

CONNECTED_FIELD = "connected"
CREATED_AT_FIELD = "created_at"


def now_ms() -> int:
    return int(time.time() * 1000)


class RoomRegistry:
    """Owns room metadata. A room exists exactly as long as its meta key does."""

    def __init__(self, backend, room_ttl_seconds: int = ROOM_TTL_SECONDS):
        self.backend = backend
        self.room_ttl_seconds = room_ttl_seconds

    async def create_room(self) -> str:
        room_id = uuid.uuid4().hex
        await self.backend.hash_set(
            meta_key(room_id),
            {CONNECTED_FIELD: [], CREATED_AT_FIELD: now_ms()},
            ttl=self.room_ttl_seconds,
        )
        logger.info(f"Room {room_id} created with TTL {self.room_ttl_seconds} seconds")
        return room_id

    async def get_room(self, room_id: str) -> Optional[Room]:
        data = await self.backend.hash_get_all(meta_key(room_id))
        if not data:
            logger.debug(f"Room {room_id} not found")
            return None
        return Room(
            id=room_id,
            connected=data.get(CONNECTED_FIELD) or [],
            created_at=data.get(CREATED_AT_FIELD) or 0,
        )

    async def remaining_ttl(self, room_id: str) -> int:
        """Seconds left before the room expires, 0 once it is gone."""
        ttl = await self.backend.ttl(meta_key(room_id))
        return max(ttl, 0)

    async def delete_room(self, room_id: str) -> None:
        deleted = await self.backend.delete(*room_scoped_keys(room_id))
        logger.info(f"Room {room_id} deleted ({deleted} keys removed)")
