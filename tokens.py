import uuid
from typing import Optional

from backend import BOUNDED_ADDED, BOUNDED_FULL, BOUNDED_MISSING, BOUNDED_PRESENT
from constants import MAX_MEMBERS
from errors import RoomFullError, RoomNotFoundError, UnauthorizedError
from logging_config import get_logger, short_token
from redis_keys import meta_key
from registry import CONNECTED_FIELD

logger = get_logger(__name__)


def generate_token() -> str:
    return uuid.uuid4().hex


class AccessTokenIssuer:
    """Mints membership tokens and checks them against a room's connected list."""

    def __init__(self, backend, max_members: int = MAX_MEMBERS):
        self.backend = backend
        self.max_members = max_members

    async def admit(self, room_id: str, existing_token: Optional[str] = None) -> str:
        """Admit a participant, returning their token.

        A token that is already a member comes back unchanged, so retrying after
        a transient failure never consumes a second slot. The membership check and
        the insert happen in a single atomic store operation.
        """
        outcome, token = await self.backend.hash_bounded_append(
            meta_key(room_id),
            CONNECTED_FIELD,
            generate_token(),
            self.max_members,
            existing=existing_token,
        )

        if outcome == BOUNDED_PRESENT:
            logger.debug(f"Token {short_token(token)} re-entered room {room_id}")
            return token
        if outcome == BOUNDED_MISSING:
            logger.warning(f"Admission failed: Room {room_id} not found")
            raise RoomNotFoundError()
        if outcome == BOUNDED_FULL:
            logger.warning(f"Admission failed: Room {room_id} is full ({self.max_members} members)")
            raise RoomFullError()
        if outcome != BOUNDED_ADDED:
            raise RuntimeError(f"Unexpected admission outcome {outcome!r}")

        logger.info(f"Token {short_token(token)} admitted to room {room_id}")
        return token

    async def validate(self, room_id: Optional[str], token: Optional[str]) -> list[str]:
        """Return the room's connected tokens if ``token`` is one of them."""
        if not room_id or not token:
            raise UnauthorizedError("Missing room id or token")

        connected = await self.backend.hash_get(meta_key(room_id), CONNECTED_FIELD)
        if not connected or token not in connected:
            logger.warning(f"Invalid token {short_token(token)} for room {room_id}")
            raise UnauthorizedError("Invalid token for the specified room")
        return connected
