from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status

from dependencies import get_auth_token, get_lifecycle, set_auth_cookie
from lifecycle import RoomLifecycle
from logging_config import get_logger
from schemas.rooms import CreateRoomResponse, JoinRoomResponse, RoomDetailsResponse, RoomTtlResponse

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])


@rooms_router.post("/", response_model=CreateRoomResponse, status_code=status.HTTP_201_CREATED)
async def create_room(request: Request, lifecycle: RoomLifecycle = Depends(get_lifecycle)):
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"Room creation request from {client_host}")

    room_id = await lifecycle.create_room()
    ttl = await lifecycle.remaining_ttl(room_id)
    expires_at = (datetime.now(timezone.utc) + timedelta(seconds=ttl)).isoformat()

    return CreateRoomResponse(room_id=room_id, ttl=ttl, expires_at=expires_at)


@rooms_router.post("/{room_id}/join", response_model=JoinRoomResponse)
async def join_room(
    room_id: str,
    response: Response,
    token: Optional[str] = Depends(get_auth_token),
    lifecycle: RoomLifecycle = Depends(get_lifecycle),
):
    # A cookie from another room is simply not a member here, so a fresh token is minted
    admitted = await lifecycle.join_room(room_id, token)
    set_auth_cookie(response, admitted)
    ttl = await lifecycle.remaining_ttl(room_id)
    return JoinRoomResponse(room_id=room_id, ttl=ttl)


@rooms_router.get("/{room_id}", response_model=RoomDetailsResponse)
async def get_room_details(room_id: str, lifecycle: RoomLifecycle = Depends(get_lifecycle)):
    """
    Get room details. Membership tokens are never included.

    Returns:
    - room_id: Unique room identifier
    - created_at: Creation time in epoch milliseconds
    - ttl: Seconds until the room self-destructs
    - member_count: Number of admitted participants
    - max_members: Capacity of the room
    - is_full: Whether new participants will be rejected
    """
    room = await lifecycle.get_room(room_id)
    ttl = await lifecycle.remaining_ttl(room_id)
    return RoomDetailsResponse(
        room_id=room_id,
        created_at=room.created_at,
        ttl=ttl,
        member_count=room.member_count,
        max_members=lifecycle.max_members,
        is_full=room.member_count >= lifecycle.max_members,
    )


@rooms_router.get("/{room_id}/ttl", response_model=RoomTtlResponse)
async def get_room_ttl(room_id: str, lifecycle: RoomLifecycle = Depends(get_lifecycle)):
    return RoomTtlResponse(ttl=await lifecycle.remaining_ttl(room_id))


@rooms_router.delete("/{room_id}")
async def destroy_room(
    room_id: str,
    token: Optional[str] = Depends(get_auth_token),
    lifecycle: RoomLifecycle = Depends(get_lifecycle),
):
    await lifecycle.destroy_room(room_id, token)
    return {"message": "Room destroyed"}
