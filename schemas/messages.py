from pydantic import BaseModel
from typing import Optional


class Message(BaseModel):
    id: str
    sender: str
    text: str
    timestamp: int
    room_id: str
    author_token: Optional[str] = None

    def redacted(self) -> "Message":
        return self.model_copy(update={"author_token": None})


class PostMessageRequest(BaseModel):
    sender: str
    text: str

class MessageListResponse(BaseModel):
    messages: list[Message]
