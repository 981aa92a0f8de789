from errors import RoomNotFoundError
from logging_config import get_logger
from redis_keys import auxiliary_keys, messages_key, meta_key
from schemas.messages import Message

logger = get_logger(__name__)


class MessageStore:
    def __init__(self, backend):
        self.backend = backend

    async def append(self, room_id: str, message: Message) -> None:
        # The room may have expired since the caller was validated
        if not await self.backend.exists(meta_key(room_id)):
            logger.warning(f"Append failed: Room {room_id} not found")
            raise RoomNotFoundError()
        count = await self.backend.list_append(messages_key(room_id), message.model_dump())
        logger.debug(f"Message {message.id} appended to room {room_id} ({count} total)")

    async def list_messages(self, room_id: str) -> list[Message]:
        items = await self.backend.list_range(messages_key(room_id), 0, -1)
        return [Message.model_validate(item) for item in items]

    async def sync_ttl(self, room_id: str) -> int:
        """Give every auxiliary room key the room's remaining TTL.

        If the room is already gone, the auxiliary keys are removed instead so
        that nothing outlives it.
        """
        remaining = await self.backend.ttl(meta_key(room_id))
        keys = auxiliary_keys(room_id)
        if remaining == -2 or remaining == 0:
            await self.backend.delete(*keys)
            logger.info(f"Room {room_id} expired during append, removed auxiliary keys")
            return 0
        if remaining > 0:
            for key in keys:
                await self.backend.expire(key, remaining)
            logger.debug(f"Synced TTL of room {room_id} auxiliary keys to {remaining}s")
        return max(remaining, 0)
