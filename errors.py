"""Failure taxonomy shared by the room engine and the HTTP layer."""


class ChatError(Exception):
    code = "error"
    status_code = 500
    default_message = "Chat error"

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message)


class RoomNotFoundError(ChatError):
    """Room is absent or its TTL elapsed; the two are indistinguishable."""

    code = "room-not-found"
    status_code = 404
    default_message = "Room not found"


class RoomFullError(ChatError):
    code = "room-full"
    status_code = 409
    default_message = "Room is full"


class UnauthorizedError(ChatError):
    code = "unauthorized"
    status_code = 401
    default_message = "Unauthorized"


class InvalidMessageError(ChatError):
    code = "invalid-message"
    status_code = 422
    default_message = "Invalid message"


class TransientStoreError(ChatError):
    """Store unreachable or timed out. Safe for the caller to retry."""

    code = "store-unavailable"
    status_code = 503
    default_message = "Storage backend unavailable"
