from typing import Optional

from fastapi import APIRouter, Depends, status

from dependencies import get_auth_token, get_lifecycle
from lifecycle import RoomLifecycle
from schemas.messages import Message, MessageListResponse, PostMessageRequest

messages_router = APIRouter(prefix="/rooms/{room_id}/messages", tags=["messages"])


@messages_router.get("", response_model=MessageListResponse, response_model_exclude_none=True)
async def list_messages(
    room_id: str,
    token: Optional[str] = Depends(get_auth_token),
    lifecycle: RoomLifecycle = Depends(get_lifecycle),
):
    messages = await lifecycle.fetch_messages(room_id, token)
    return MessageListResponse(messages=messages)


@messages_router.post(
    "",
    response_model=Message,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
async def post_message(
    room_id: str,
    body: PostMessageRequest,
    token: Optional[str] = Depends(get_auth_token),
    lifecycle: RoomLifecycle = Depends(get_lifecycle),
):
    message = await lifecycle.post_message(room_id, token, body.sender, body.text)
    return message.redacted()
