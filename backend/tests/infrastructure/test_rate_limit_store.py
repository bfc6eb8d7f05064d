import asyncio

import pytest
from resort_booking.config import Settings
from resort_booking.infrastructure.rate_limit_store import (
    InMemoryRateLimitStore,
    RedisRateLimitStore,
    build_rate_limit_store,
)


@pytest.mark.asyncio
async def test_in_memory_store_caps_hits_per_window() -> None:
    store = InMemoryRateLimitStore()
    results = [await store.hit("origin:a", limit=2, window_seconds=60, now=100.0 + i) for i in range(3)]
    assert results == [True, True, False]


@pytest.mark.asyncio
async def test_in_memory_window_slides() -> None:
    store = InMemoryRateLimitStore()
    assert await store.hit("origin:a", limit=1, window_seconds=60, now=0.0)
    assert not await store.hit("origin:a", limit=1, window_seconds=60, now=59.0)
    assert await store.hit("origin:a", limit=1, window_seconds=60, now=60.0)


@pytest.mark.asyncio
async def test_in_memory_keys_are_independent() -> None:
    store = InMemoryRateLimitStore()
    assert await store.hit("origin:a", limit=1, window_seconds=60, now=0.0)
    assert await store.hit("origin:b", limit=1, window_seconds=60, now=0.0)


@pytest.mark.asyncio
async def test_in_memory_store_evicts_idle_origins() -> None:
    store = InMemoryRateLimitStore()
    for i in range(5000):
        assert await store.hit(f"origin:{i}", limit=10, window_seconds=60, now=0.0)
    assert len(store) == 5000

    assert await store.hit("origin:late", limit=10, window_seconds=60, now=10_000.0)
    assert len(store) == 1


@pytest.mark.asyncio
async def test_in_memory_rejection_does_not_create_a_key() -> None:
    store = InMemoryRateLimitStore()
    assert not await store.hit("origin:a", limit=0, window_seconds=60, now=0.0)
    assert len(store) == 0


class FakePipeline:
    def __init__(self, client: "FakeRedis") -> None:
        self.client = client
        self.ops: list[tuple] = []

    async def __aenter__(self) -> "FakePipeline":
        return self

    async def __aexit__(self, *exc: object) -> None:
        return None

    def zremrangebyscore(self, key: str, low: float, high: float) -> None:
        self.ops.append(("zremrangebyscore", key, low, high))

    def zcard(self, key: str) -> None:
        self.ops.append(("zcard", key))

    def zadd(self, key: str, mapping: dict[str, float]) -> None:
        self.ops.append(("zadd", key, mapping))

    def expire(self, key: str, seconds: int) -> None:
        self.ops.append(("expire", key, seconds))

    async def execute(self) -> list:
        # Let other callers run between building and applying the block.
        await asyncio.sleep(0)
        results: list = []
        for op in self.ops:
            self.client.log.append(op[0])
            name, key = op[0], op[1]
            members = self.client.sets.setdefault(key, {})
            if name == "zremrangebyscore":
                for member, score in list(members.items()):
                    if op[2] <= score <= op[3]:
                        del members[member]
                results.append(None)
            elif name == "zcard":
                results.append(len(members))
            elif name == "zadd":
                members.update(op[2])
                results.append(len(op[2]))
            else:
                results.append(True)
        return results


class FakeRedis:
    def __init__(self) -> None:
        self.sets: dict[str, dict[str, float]] = {}
        self.log: list[str] = []

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)

    async def zrem(self, key: str, *members: str) -> int:
        await asyncio.sleep(0)
        self.log.append("zrem")
        removed = [m for m in members if self.sets.get(key, {}).pop(m, None) is not None]
        return len(removed)


@pytest.mark.asyncio
async def test_redis_store_keeps_a_sorted_set_per_key() -> None:
    client = FakeRedis()
    store = RedisRateLimitStore(client)  # type: ignore[arg-type]
    assert await store.hit("origin:a", limit=2, window_seconds=60, now=10.0)
    assert await store.hit("origin:a", limit=2, window_seconds=60, now=20.0)
    assert not await store.hit("origin:a", limit=2, window_seconds=60, now=30.0)
    # The rejected attempt takes its own entry back out.
    assert sorted(client.sets["resort:ratelimit:origin:a"].values()) == [10.0, 20.0]
    assert client.log[-5:] == ["zremrangebyscore", "zadd", "zcard", "expire", "zrem"]


@pytest.mark.asyncio
async def test_redis_store_drops_expired_entries() -> None:
    client = FakeRedis()
    store = RedisRateLimitStore(client, prefix="t:")  # type: ignore[arg-type]
    assert await store.hit("k", limit=1, window_seconds=60, now=0.0)
    assert await store.hit("k", limit=1, window_seconds=60, now=61.0)
    assert list(client.sets["t:k"].values()) == [61.0]


@pytest.mark.asyncio
async def test_redis_store_holds_the_limit_under_a_concurrent_burst() -> None:
    client = FakeRedis()
    store = RedisRateLimitStore(client)  # type: ignore[arg-type]
    results = await asyncio.gather(
        *(store.hit("origin:1.2.3.4", limit=10, window_seconds=3600, now=100.0) for _ in range(30))
    )
    assert results.count(True) == 10
    assert len(client.sets["resort:ratelimit:origin:1.2.3.4"]) == 10


def test_build_store_defaults_to_memory() -> None:
    store = build_rate_limit_store(Settings(redis_url=None))
    assert isinstance(store, InMemoryRateLimitStore)


def test_build_store_uses_redis_when_configured() -> None:
    store = build_rate_limit_store(Settings(redis_url="redis://localhost:6379/0"))
    assert isinstance(store, RedisRateLimitStore)
