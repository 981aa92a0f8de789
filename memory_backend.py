"""In-process storage adapter.

Single-process only. Mirrors the RedisBackend interface, including TTLs,
for local development and tests. Expired keys are dropped lazily on access.
"""
import copy
import math
import time
from typing import Any, Callable, Optional

from backend import BOUNDED_ADDED, BOUNDED_FULL, BOUNDED_MISSING, BOUNDED_PRESENT
from logging_config import get_logger

logger = get_logger(__name__)


class MemoryBackend:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: dict[str, Any] = {}
        self._deadlines: dict[str, float] = {}

    def _purge_if_expired(self, key: str) -> None:
        deadline = self._deadlines.get(key)
        if deadline is not None and deadline <= self._clock():
            self._data.pop(key, None)
            self._deadlines.pop(key, None)
            logger.debug(f"Key {key} expired")

    def _get(self, key: str) -> Any:
        self._purge_if_expired(key)
        return self._data.get(key)

    async def ping(self) -> bool:
        return True

    async def hash_get(self, key: str, field: str) -> Any:
        data = self._get(key)
        if data is None:
            return None
        return copy.deepcopy(data.get(field))

    async def hash_get_all(self, key: str) -> Optional[dict]:
        data = self._get(key)
        if not data:
            return None
        return copy.deepcopy(data)

    async def hash_set(self, key: str, fields: dict, ttl: Optional[int] = None) -> None:
        data = self._get(key)
        if data is None:
            data = self._data[key] = {}
        data.update(copy.deepcopy(fields))
        if ttl:
            self._deadlines[key] = self._clock() + ttl

    async def hash_bounded_append(
        self, key: str, field: str, value: str, limit: int, existing: Optional[str] = None
    ) -> tuple[str, str]:
        # No await between the check and the write, so this is atomic on the event loop
        data = self._get(key)
        if data is None:
            return BOUNDED_MISSING, ""
        members = data.setdefault(field, [])
        if existing and existing in members:
            return BOUNDED_PRESENT, existing
        if len(members) >= limit:
            return BOUNDED_FULL, ""
        members.append(value)
        return BOUNDED_ADDED, value

    async def exists(self, key: str) -> bool:
        return self._get(key) is not None

    async def delete(self, *keys: str) -> int:
        deleted = 0
        for key in keys:
            if self._get(key) is not None:
                deleted += 1
            self._data.pop(key, None)
            self._deadlines.pop(key, None)
        return deleted

    async def ttl(self, key: str) -> int:
        if self._get(key) is None:
            return -2
        deadline = self._deadlines.get(key)
        if deadline is None:
            return -1
        return max(0, math.ceil(deadline - self._clock()))

    async def expire(self, key: str, seconds: int) -> bool:
        if self._get(key) is None:
            return False
        if seconds <= 0:
            await self.delete(key)
            return True
        self._deadlines[key] = self._clock() + seconds
        return True

    async def list_append(self, key: str, value: Any) -> int:
        items = self._get(key)
        if items is None:
            items = self._data[key] = []
        items.append(copy.deepcopy(value))
        return len(items)

    async def list_range(self, key: str, start: int = 0, end: int = -1) -> list:
        items = self._get(key) or []
        stop = None if end == -1 else end + 1
        return copy.deepcopy(items[start:stop])

    async def aclose(self) -> None:
        self._data.clear()
        self._deadlines.clear()
