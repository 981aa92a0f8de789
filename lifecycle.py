import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, Optional

from constants import MAX_SENDER_LENGTH, MAX_TEXT_LENGTH
from errors import InvalidMessageError, RoomNotFoundError
from events import EventChannel, Subscription
from logging_config import get_logger, short_token
from message_store import MessageStore
from registry import RoomRegistry, now_ms
from schemas.events import MessagePosted, RoomDestroyed
from schemas.messages import Message
from schemas.rooms import Room
from tokens import AccessTokenIssuer

logger = get_logger(__name__)


def redact_messages(messages: Iterable[Message], token: Optional[str]) -> list[Message]:
    """Keep ``author_token`` only on the messages the caller wrote."""
    return [m if token and m.author_token == token else m.redacted() for m in messages]


def check_field(name: str, value, max_length: int) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidMessageError(f"{name} must be a non-empty string")
    if len(value) > max_length:
        raise InvalidMessageError(f"{name} must be at most {max_length} characters")
    return value


class RoomLifecycle:
    """Create, join, post to and destroy rooms.

    Passive expiry needs no action here: once the store drops the room key every
    read path reports the room as missing, and no event is published for it.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        issuer: AccessTokenIssuer,
        messages: MessageStore,
        events: EventChannel,
        max_sender_length: int = MAX_SENDER_LENGTH,
        max_text_length: int = MAX_TEXT_LENGTH,
    ):
        self.registry = registry
        self.issuer = issuer
        self.messages = messages
        self.events = events
        self.max_sender_length = max_sender_length
        self.max_text_length = max_text_length

    @property
    def max_members(self) -> int:
        return self.issuer.max_members

    async def create_room(self) -> str:
        return await self.registry.create_room()

    async def join_room(self, room_id: str, token: Optional[str] = None) -> str:
        return await self.issuer.admit(room_id, token)

    async def get_room(self, room_id: str) -> Room:
        room = await self.registry.get_room(room_id)
        if room is None:
            raise RoomNotFoundError()
        return room

    async def remaining_ttl(self, room_id: str) -> int:
        return await self.registry.remaining_ttl(room_id)

    async def post_message(self, room_id: str, token: Optional[str], sender: str, text: str) -> Message:
        await self.issuer.validate(room_id, token)
        message = Message(
            id=uuid.uuid4().hex,
            sender=check_field("sender", sender, self.max_sender_length),
            text=check_field("text", text, self.max_text_length),
            timestamp=now_ms(),
            room_id=room_id,
            author_token=token,
        )

        await self.messages.append(room_id, message)
        try:
            await self.events.publish(room_id, MessagePosted(message=message.redacted()))
        finally:
            # The list was just written; it must not outlive the room even if publish failed
            await self.messages.sync_ttl(room_id)

        logger.info(f"Message {message.id} posted to room {room_id} by {short_token(token)}")
        return message

    async def fetch_messages(self, room_id: str, token: Optional[str]) -> list[Message]:
        await self.issuer.validate(room_id, token)
        messages = await self.messages.list_messages(room_id)
        return redact_messages(messages, token)

    async def destroy_room(self, room_id: str, token: Optional[str]) -> None:
        await self.issuer.validate(room_id, token)
        # Subscribers hear about it while the room is still addressable
        await self.events.publish(room_id, RoomDestroyed())
        await self.registry.delete_room(room_id)
        logger.info(f"Room {room_id} destroyed by {short_token(token)}")

    @asynccontextmanager
    async def subscribe(self, room_id: str, token: Optional[str]) -> AsyncIterator[Subscription]:
        await self.issuer.validate(room_id, token)
        async with self.events.subscribe(room_id) as subscription:
            yield subscription
