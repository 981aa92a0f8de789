from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.websockets import WebSocketState
from contextlib import asynccontextmanager
from typing import Optional
import asyncio
import json
import os

from backend import RedisBackend, create_redis_backend
from constants import (
    AUTH_COOKIE_NAME,
    EVENT_BACKEND,
    EVENT_QUEUE_SIZE,
    MAX_MEMBERS,
    MAX_SENDER_LENGTH,
    MAX_TEXT_LENGTH,
    ROOM_TTL_SECONDS,
    STORE_BACKEND,
)
from errors import ChatError
from events import EventChannel, RedisEventChannel
from lifecycle import RoomLifecycle
from logging_config import get_logger, setup_logging, short_token
from memory_backend import MemoryBackend
from message_store import MessageStore
from registry import RoomRegistry
from routers.messages import messages_router
from routers.rooms import rooms_router
from schemas.events import encode_event
from tokens import AccessTokenIssuer

# Setup logging
log_level = os.getenv("LOG_LEVEL", "INFO")
log_file = os.getenv("LOG_FILE", None)
setup_logging(log_level=log_level, log_file=log_file)
logger = get_logger(__name__)


def create_backend():
    if STORE_BACKEND == "memory":
        logger.warning("Using in-process MemoryBackend; state is lost on restart and not shared")
        return MemoryBackend()
    return create_redis_backend()


def create_event_channel(backend) -> EventChannel:
    if EVENT_BACKEND == "redis" and isinstance(backend, RedisBackend):
        return RedisEventChannel(backend, queue_size=EVENT_QUEUE_SIZE)
    if EVENT_BACKEND == "redis":
        logger.warning("Redis event relay needs the Redis store, falling back to in-process events")
    return EventChannel(queue_size=EVENT_QUEUE_SIZE)


def build_lifecycle(backend, events: EventChannel) -> RoomLifecycle:
    return RoomLifecycle(
        registry=RoomRegistry(backend, room_ttl_seconds=ROOM_TTL_SECONDS),
        issuer=AccessTokenIssuer(backend, max_members=MAX_MEMBERS),
        messages=MessageStore(backend),
        events=events,
        max_sender_length=MAX_SENDER_LENGTH,
        max_text_length=MAX_TEXT_LENGTH,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    backend = create_backend()
    try:
        await backend.ping()
        logger.info("Storage backend connected successfully")
    except ChatError as e:
        logger.error(f"Failed to connect to storage backend: {e}", exc_info=True)
        raise
    events = create_event_channel(backend)
    app.state.lifecycle = build_lifecycle(backend, events)
    logger.info(
        f"Room engine ready: max_members={MAX_MEMBERS}, room_ttl={ROOM_TTL_SECONDS}s, "
        f"events={type(events).__name__}"
    )
    try:
        yield
    finally:
        await events.aclose()
        await backend.aclose()
        logger.info("Room engine shut down")


app = FastAPI(lifespan=lifespan)

# Configure CORS to allow all origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins
    allow_credentials=True,
    allow_methods=["*"],  # Allow all HTTP methods
    allow_headers=["*"],  # Allow all headers
)

app.include_router(rooms_router)
app.include_router(messages_router)

logger.info("FastAPI application initialized")


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError):
    logger.info(f"{request.method} {request.url.path} failed: {exc.code} ({exc})")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.code, "detail": str(exc)})


@app.get("/health")
async def health(request: Request):
    lifecycle: RoomLifecycle = request.app.state.lifecycle
    await lifecycle.registry.backend.ping()
    return {"status": "ok"}


async def forward_events(websocket: WebSocket, subscription) -> None:
    """Relay room events to the socket, then close it once the room is destroyed or the subscription ends."""
    async for event in subscription:
        await websocket.send_text(encode_event(event))
    await websocket.close(code=status.WS_1000_NORMAL_CLOSURE)


async def handle_frame(websocket: WebSocket, lifecycle: RoomLifecycle, room_id: str, token: str, data: str) -> None:
    """Post an incoming ``{"sender": ..., "text": ...}`` frame to the room."""
    try:
        payload = json.loads(data)
        sender, text = payload.get("sender"), payload.get("text")
    except (json.JSONDecodeError, AttributeError):
        await websocket.send_json({"type": "error", "error": "invalid-message", "detail": "Expected a JSON object"})
        return

    try:
        await lifecycle.post_message(room_id, token, sender, text)
    except ChatError as e:
        await websocket.send_json({"type": "error", "error": e.code, "detail": str(e)})


@app.websocket("/rooms/{room_id}/ws")
async def websocket_endpoint(room_id: str, websocket: WebSocket, token: Optional[str] = None):
    """Push room events to an admitted participant.

    The membership token comes from the auth cookie, or the ``token`` query
    parameter for clients without cookies.
    """
    lifecycle: RoomLifecycle = websocket.app.state.lifecycle
    token = websocket.cookies.get(AUTH_COOKIE_NAME) or token
    logger.info(f"WebSocket connection attempt for room {room_id} by {short_token(token)}")

    try:
        # Attach before accepting so no event published after the handshake is missed
        async with lifecycle.subscribe(room_id, token) as subscription:
            await websocket.accept()
            logger.info(f"WebSocket connection accepted for room {room_id}")

            forwarder = asyncio.create_task(forward_events(websocket, subscription))
            try:
                while websocket.application_state == WebSocketState.CONNECTED:
                    data = await websocket.receive_text()
                    await handle_frame(websocket, lifecycle, room_id, token, data)
            except WebSocketDisconnect:
                logger.info(f"WebSocket disconnected for room {room_id}")
            finally:
                forwarder.cancel()
                results = await asyncio.gather(forwarder, return_exceptions=True)
                if isinstance(results[0], Exception) and not isinstance(results[0], WebSocketDisconnect):
                    logger.error(f"WebSocket error in room {room_id}: {results[0]!r}")
            logger.info(f"WebSocket session for room {room_id} ended")
    except ChatError as e:
        logger.warning(f"WebSocket connection rejected for room {room_id}: {e.code}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=str(e))
