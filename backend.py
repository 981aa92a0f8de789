import functools
import json
from typing import Any, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from constants import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD, REDIS_SOCKET_TIMEOUT
from errors import TransientStoreError
from logging_config import get_logger

logger = get_logger(__name__)

# Outcomes of hash_bounded_append
BOUNDED_MISSING = "missing"
BOUNDED_PRESENT = "present"
BOUNDED_FULL = "full"
BOUNDED_ADDED = "added"

# KEYS[1] = hash key
# ARGV[1] = field holding a JSON array, ARGV[2] = value to append,
# ARGV[3] = value that may already be present ('' for none), ARGV[4] = size limit
BOUNDED_APPEND_SCRIPT = """
local raw = redis.call('HGET', KEYS[1], ARGV[1])
if not raw then
  if redis.call('EXISTS', KEYS[1]) == 0 then
    return {'missing', ''}
  end
  raw = '[]'
end
local members = cjson.decode(raw)
if ARGV[3] ~= '' then
  for _, member in ipairs(members) do
    if member == ARGV[3] then
      return {'present', ARGV[3]}
    end
  end
end
if #members >= tonumber(ARGV[4]) then
  return {'full', ''}
end
table.insert(members, ARGV[2])
redis.call('HSET', KEYS[1], ARGV[1], cjson.encode(members))
return {'added', ARGV[2]}
"""


def encode_value(value: Any) -> str:
    return json.dumps(value)


def decode_value(raw: Optional[str]) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return raw


def store_call(func):
    """Surface Redis connection and timeout failures as TransientStoreError."""

    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs):
        try:
            return await func(self, *args, **kwargs)
        except RedisError as e:
            logger.error(f"Redis call {func.__name__} failed: {e}")
            raise TransientStoreError(f"Storage backend unavailable: {e}") from e

    return wrapper


class RedisBackend:
    """Storage adapter over a Redis server.

    Values written to hashes and lists are JSON encoded. ``ttl`` keeps Redis
    semantics: -2 when the key is absent, -1 when it has no expiry.
    """

    def __init__(self, redis_client: redis.Redis):
        self.redis_client = redis_client
        self._bounded_append = self.redis_client.register_script(BOUNDED_APPEND_SCRIPT)

    @store_call
    async def ping(self) -> bool:
        return await self.redis_client.ping()

    @store_call
    async def hash_get(self, key: str, field: str) -> Any:
        raw = await self.redis_client.hget(key, field)
        return decode_value(raw)

    @store_call
    async def hash_get_all(self, key: str) -> Optional[dict]:
        data = await self.redis_client.hgetall(key)
        if not data:
            logger.debug(f"Key {key} not found in Redis")
            return None
        return {k: decode_value(v) for k, v in data.items()}

    @store_call
    async def hash_set(self, key: str, fields: dict, ttl: Optional[int] = None) -> None:
        mapping = {k: encode_value(v) for k, v in fields.items()}
        async with self.redis_client.pipeline(transaction=True) as pipe:
            pipe.hset(key, mapping=mapping)
            if ttl:
                pipe.expire(key, ttl)
            await pipe.execute()
        logger.debug(f"Stored {len(mapping)} fields in {key} (ttl={ttl})")

    @store_call
    async def hash_bounded_append(
        self, key: str, field: str, value: str, limit: int, existing: Optional[str] = None
    ) -> tuple[str, str]:
        """Append ``value`` to the JSON array in ``field`` unless it already holds ``limit`` items.

        Runs as one Lua script, so concurrent callers cannot both take the last slot.
        Returns ``(outcome, member)`` where outcome is one of the BOUNDED_* constants.
        """
        outcome, member = await self._bounded_append(
            keys=[key], args=[field, value, existing or "", limit]
        )
        logger.debug(f"Bounded append on {key}.{field}: {outcome}")
        return outcome, member

    @store_call
    async def exists(self, key: str) -> bool:
        return await self.redis_client.exists(key) > 0

    @store_call
    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        deleted = await self.redis_client.delete(*keys)
        logger.debug(f"Deleted {deleted} of {len(keys)} keys")
        return deleted

    @store_call
    async def ttl(self, key: str) -> int:
        return await self.redis_client.ttl(key)

    @store_call
    async def expire(self, key: str, seconds: int) -> bool:
        return bool(await self.redis_client.expire(key, seconds))

    @store_call
    async def list_append(self, key: str, value: Any) -> int:
        return await self.redis_client.rpush(key, encode_value(value))

    @store_call
    async def list_range(self, key: str, start: int = 0, end: int = -1) -> list:
        items = await self.redis_client.lrange(key, start, end)
        return [decode_value(item) for item in items]

    @store_call
    async def publish(self, channel: str, payload: str) -> int:
        subscribers = await self.redis_client.publish(channel, payload)
        logger.debug(f"Published to {channel}, {subscribers} subscribers")
        return subscribers

    def pubsub(self):
        return self.redis_client.pubsub(ignore_subscribe_messages=True)

    async def aclose(self) -> None:
        await self.redis_client.aclose()


def create_redis_backend() -> RedisBackend:
    logger.info(f"Initializing RedisBackend with connection to {REDIS_HOST}:{REDIS_PORT}")
    client = redis.Redis(
        host=REDIS_HOST,
        port=REDIS_PORT,
        password=REDIS_PASSWORD,
        decode_responses=True,
        socket_timeout=REDIS_SOCKET_TIMEOUT,
        socket_connect_timeout=REDIS_SOCKET_TIMEOUT,
    )
    return RedisBackend(client)
