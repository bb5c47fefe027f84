from __future__ import annotations

import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional, Tuple

import redis.asyncio as redis
from loguru import logger

from pipay.errors import Conflict

_BUSY_MESSAGE = (
    "Another A2U payout is being created. Retry once it has been created."
)


class NullLock:
    """No-op lock: the Pi platform's one-incomplete-payment rule is the only guard."""

    async def connect(self) -> None:
        return None

    async def disconnect(self) -> None:
        return None

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        yield


class InMemoryLock:
    """In-process advisory lock with TTL expiration (single worker only).

    Note: holders in other processes are invisible to it.
    """

    def __init__(self, ttl: int = 30, wait: float = 5.0, poll_interval: float = 0.05):
        self.ttl = ttl
        self.wait = wait
        self.poll_interval = poll_interval
        self._lock = asyncio.Lock()
        # key -> (token, expires_at)
        self._held: Dict[str, Tuple[str, float]] = {}

    async def connect(self) -> None:
        logger.warning(
            "Using in-memory A2U advisory lock. It does not span processes."
        )

    async def disconnect(self) -> None:
        return None

    async def _try_acquire(self, key: str, token: str) -> bool:
        now = time.time()
        async with self._lock:
            current = self._held.get(key)
            if current is not None and current[1] > now:
                return False
            self._held[key] = (token, now + self.ttl)
            return True

    async def _release(self, key: str, token: str) -> None:
        async with self._lock:
            current = self._held.get(key)
            if current is not None and current[0] == token:
                del self._held[key]

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        token = uuid.uuid4().hex
        deadline = time.monotonic() + self.wait
        while not await self._try_acquire(key, token):
            if time.monotonic() >= deadline:
                raise Conflict(_BUSY_MESSAGE)
            await asyncio.sleep(self.poll_interval)
        try:
            yield
        finally:
            await self._release(key, token)


class RedisLock:
    """Advisory lock shared by all workers, using ``SET NX EX`` in Redis."""

    # Delete the key only if this holder still owns it.
    _RELEASE_SCRIPT = (
        "if redis.call('get', KEYS[1]) == ARGV[1] then "
        "return redis.call('del', KEYS[1]) else return 0 end"
    )

    def __init__(
        self,
        redis_url: str,
        ttl: int = 30,
        wait: float = 5.0,
        poll_interval: float = 0.1,
    ):
        self.redis_url = redis_url
        self.ttl = ttl
        self.wait = wait
        self.poll_interval = poll_interval
        self._client: Optional[redis.Redis] = None
        self._prefix = "pipay:lock:"

    async def connect(self) -> None:
        """Establish connection to Redis."""
        self._client = redis.from_url(
            self.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        await self._client.ping()
        logger.info("Connected to Redis for A2U advisory locks")

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.close()
            logger.info("Disconnected from Redis")

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        if not self._client:
            raise RuntimeError("Redis client not connected")

        redis_key = f"{self._prefix}{key}"
        token = uuid.uuid4().hex
        deadline = time.monotonic() + self.wait
        while not await self._client.set(redis_key, token, nx=True, ex=self.ttl):
            if time.monotonic() >= deadline:
                raise Conflict(_BUSY_MESSAGE)
            await asyncio.sleep(self.poll_interval)
        try:
            yield
        finally:
            await self._client.eval(self._RELEASE_SCRIPT, 1, redis_key, token)


def build_lock(backend: str, redis_url: str, ttl: int, wait: float = 5.0):
    if backend == "redis":
        return RedisLock(redis_url=redis_url, ttl=ttl, wait=wait)
    if backend == "memory":
        return InMemoryLock(ttl=ttl, wait=wait)
    return NullLock()
