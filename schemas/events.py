from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from schemas.messages import Message

MESSAGE_POSTED = "message-posted"
ROOM_DESTROYED = "room-destroyed"


class MessagePosted(BaseModel):
    type: Literal["message-posted"] = MESSAGE_POSTED
    message: Message


class RoomDestroyed(BaseModel):
    type: Literal["room-destroyed"] = ROOM_DESTROYED


DomainEvent = Annotated[Union[MessagePosted, RoomDestroyed], Field(discriminator="type")]

domain_event_adapter = TypeAdapter(DomainEvent)


def encode_event(event) -> str:
    return event.model_dump_json(exclude_none=True)


def decode_event(raw) -> Union[MessagePosted, RoomDestroyed]:
    return domain_event_adapter.validate_json(raw)
