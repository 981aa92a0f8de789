import asyncio
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Set, Tuple

from pydantic import ValidationError
from redis.exceptions import RedisError

from constants import EVENT_QUEUE_SIZE
from errors import TransientStoreError
from logging_config import get_logger
from redis_keys import channel_name
from schemas.events import RoomDestroyed, decode_event, encode_event

logger = get_logger(__name__)

_CLOSED = object()


class Subscription:
    """One listener's view of a room channel.

    Events are buffered in a bounded queue. When the listener falls behind, the
    oldest buffered event is dropped so publishers never wait on it. Iteration
    ends after ``room-destroyed`` or once the subscription is closed.
    """

    def __init__(self, room_id: str, maxsize: int = EVENT_QUEUE_SIZE):
        self.room_id = room_id
        self.subscription_id = uuid.uuid4().hex[:12]
        self.dropped = 0
        self.closed = False
        self.maxsize = maxsize
        self._finished = False
        self._queue: asyncio.Queue = asyncio.Queue()

    def deliver(self, event) -> bool:
        if self.closed:
            return False
        if self._queue.qsize() >= self.maxsize:
            self._queue.get_nowait()
            self.dropped += 1
            logger.warning(
                f"Subscriber {self.subscription_id} in room {self.room_id} is lagging, dropped oldest event"
            )
        self._queue.put_nowait(event)
        return True

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        # The end marker is not subject to the bound
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self._finished:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._finished = True
            raise StopAsyncIteration
        if isinstance(item, RoomDestroyed):
            self._finished = True
        return item


class EventChannel:
    """In-process per-room fan-out of domain events."""

    def __init__(self, queue_size: int = EVENT_QUEUE_SIZE):
        self.queue_size = queue_size
        self._rooms: Dict[str, Set[Subscription]] = {}

    def subscriber_count(self, room_id: str) -> int:
        return len(self._rooms.get(room_id, ()))

    async def attach(self, room_id: str) -> Subscription:
        subscription = Subscription(room_id, self.queue_size)
        self._rooms.setdefault(room_id, set()).add(subscription)
        logger.info(
            f"Subscriber {subscription.subscription_id} attached to room {room_id} "
            f"({self.subscriber_count(room_id)} local)"
        )
        return subscription

    async def detach(self, subscription: Subscription) -> None:
        subscription.close()
        room_id = subscription.room_id
        subscribers = self._rooms.get(room_id)
        if subscribers is None:
            return
        subscribers.discard(subscription)
        if not subscribers:
            del self._rooms[room_id]
        logger.info(
            f"Subscriber {subscription.subscription_id} detached from room {room_id} "
            f"({self.subscriber_count(room_id)} local)"
        )

    @asynccontextmanager
    async def subscribe(self, room_id: str) -> AsyncIterator[Subscription]:
        subscription = await self.attach(room_id)
        try:
            yield subscription
        finally:
            await self.detach(subscription)

    async def publish(self, room_id: str, event) -> int:
        return self._fan_out(room_id, event)

    def _fan_out(self, room_id: str, event) -> int:
        delivered = 0
        for subscription in list(self._rooms.get(room_id, ())):
            if subscription.deliver(event):
                delivered += 1
        logger.debug(f"Event {event.type} delivered to {delivered} subscribers in room {room_id}")
        return delivered

    async def aclose(self) -> None:
        for subscribers in list(self._rooms.values()):
            for subscription in list(subscribers):
                subscription.close()
        self._rooms.clear()


class RedisEventChannel(EventChannel):
    """Relays events through Redis pub/sub so every instance reaches its own listeners.

    Each instance runs one listener task per room that has local subscribers. The
    task is started on the first attach and cancelled on the last detach. Attach
    and detach are serialised per room, so a slow subscribe only holds up its own
    room.
    """

    def __init__(self, backend, queue_size: int = EVENT_QUEUE_SIZE):
        super().__init__(queue_size)
        self.backend = backend
        self._listeners: Dict[str, Tuple[asyncio.Task, Any]] = {}
        self._locks: Dict[str, Tuple[asyncio.Lock, int]] = {}

    @asynccontextmanager
    async def _room_lock(self, room_id: str) -> AsyncIterator[None]:
        lock, users = self._locks.get(room_id, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[room_id] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[room_id]
            if users == 1:
                del self._locks[room_id]
            else:
                self._locks[room_id] = (lock, users - 1)

    async def attach(self, room_id: str) -> Subscription:
        async with self._room_lock(room_id):
            subscription = await super().attach(room_id)
            listener = self._listeners.get(room_id)
            if listener is None or listener[0].done():
                if listener is not None:
                    await self._stop_listener(room_id)
                try:
                    await self._start_listener(room_id)
                except TransientStoreError:
                    await super().detach(subscription)
                    raise
        return subscription

    async def detach(self, subscription: Subscription) -> None:
        room_id = subscription.room_id
        async with self._room_lock(room_id):
            await super().detach(subscription)
            if self.subscriber_count(room_id) == 0 and room_id in self._listeners:
                await self._stop_listener(room_id)

    async def publish(self, room_id: str, event) -> int:
        return await self.backend.publish(channel_name(room_id), encode_event(event))

    async def _start_listener(self, room_id: str) -> None:
        channel = channel_name(room_id)
        pubsub = self.backend.pubsub()
        try:
            # Subscribed before returning, so nothing published after attach is missed
            await pubsub.subscribe(channel)
        except RedisError as e:
            await pubsub.aclose()
            logger.error(f"Failed to subscribe to Redis channel {channel}: {e}")
            raise TransientStoreError(f"Storage backend unavailable: {e}") from e
        task = asyncio.create_task(self._listen(room_id, pubsub))
        self._listeners[room_id] = (task, pubsub)
        logger.info(f"Started Redis pub/sub listener for room {room_id}")

    async def _stop_listener(self, room_id: str) -> None:
        task, pubsub = self._listeners.pop(room_id)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        # Not closed by the task, which may be cancelled before its first step
        try:
            await pubsub.aclose()
        except RedisError as e:
            logger.debug(f"Error closing pub/sub for room {room_id}: {e}")
        logger.info(f"Stopped Redis pub/sub listener for room {room_id}")

    async def _listen(self, room_id: str, pubsub) -> None:
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    event = decode_event(message["data"])
                except ValidationError as e:
                    logger.error(f"Discarding malformed event on room {room_id}: {e}")
                    continue
                self._fan_out(room_id, event)
        except asyncio.CancelledError:
            logger.debug(f"Redis listener task cancelled for room {room_id}")
            raise
        except RedisError as e:
            # Without a listener these subscribers would never hear from the room again
            logger.error(f"Redis listener for room {room_id} failed: {e}", exc_info=True)
            for subscription in list(self._rooms.get(room_id, ())):
                subscription.close()

    async def aclose(self) -> None:
        for room_id in list(self._listeners):
            await self._stop_listener(room_id)
        await super().aclose()
