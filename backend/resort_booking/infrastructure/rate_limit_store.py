from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque

import redis.asyncio as redis

from ..config import Settings
from ..domain.repositories import RateLimitStore

logger = logging.getLogger(__name__)


class InMemoryRateLimitStore(RateLimitStore):
    """Process-local sliding window. Each worker keeps its own counts.

    Keys whose newest hit has left the window are swept at most once per
    ``sweep_interval`` seconds, so one-off origins do not accumulate.
    """

    def __init__(self, *, sweep_interval: float = 60.0) -> None:
        self._hits: dict[str, deque[float]] = {}
        self._expires_at: dict[str, float] = {}
        self._sweep_interval = sweep_interval
        self._next_sweep = 0.0
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._hits)

    def _forget(self, key: str) -> None:
        self._hits.pop(key, None)
        self._expires_at.pop(key, None)

    def _sweep(self, now: float) -> None:
        for key in [k for k, expires_at in self._expires_at.items() if expires_at <= now]:
            self._forget(key)
        self._next_sweep = now + self._sweep_interval

    async def hit(self, key: str, *, limit: int, window_seconds: int, now: float) -> bool:
        async with self._lock:
            if now >= self._next_sweep:
                self._sweep(now)
            hits = self._hits.get(key, deque())
            while hits and hits[0] <= now - window_seconds:
                hits.popleft()
            if not hits:
                self._forget(key)
            if len(hits) >= limit:
                return False
            hits.append(now)
            self._hits[key] = hits
            self._expires_at[key] = now + window_seconds
            return True


class RedisRateLimitStore(RateLimitStore):
    """Sliding window shared by every worker, one sorted set per key scored by timestamp.

    Prune, record and count run in one MULTI block. An attempt that lands over
    the limit removes its own member afterwards, so concurrent callers can
    only be rejected too eagerly, never admitted past the limit.
    """

    def __init__(self, client: redis.Redis, *, prefix: str = "resort:ratelimit:") -> None:
        self.client = client
        self.prefix = prefix

    async def hit(self, key: str, *, limit: int, window_seconds: int, now: float) -> bool:
        redis_key = f"{self.prefix}{key}"
        member = f"{now}:{uuid.uuid4().hex}"
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.zremrangebyscore(redis_key, 0, now - window_seconds)
            pipe.zadd(redis_key, {member: now})
            pipe.zcard(redis_key)
            pipe.expire(redis_key, window_seconds)
            _, _, count, _ = await pipe.execute()
        if int(count) > limit:
            await self.client.zrem(redis_key, member)
            return False
        return True


def build_rate_limit_store(settings: Settings) -> RateLimitStore:
    if settings.redis_url:
        logger.info("using redis for rate limiting")
        return RedisRateLimitStore(redis.from_url(settings.redis_url, decode_responses=True))
    logger.info("using in-memory rate limiting; limits are per process")
    return InMemoryRateLimitStore()
