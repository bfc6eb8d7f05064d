import logging
from datetime import date

import pytest
from resort_booking.domain.errors import RateLimitedError
from resort_booking.usecases.rate_limit import RateLimiter

TODAY = date(2026, 7, 1)


class FakeStore:
    def __init__(self, allowed: bool = True) -> None:
        self.allowed = allowed
        self.calls: list[tuple[str, int, int, float]] = []

    async def hit(self, key: str, *, limit: int, window_seconds: int, now: float) -> bool:
        self.calls.append((key, limit, window_seconds, now))
        return self.allowed


class FakePendingRepo:
    def __init__(self, pending: int) -> None:
        self.pending = pending
        self.calls: list[tuple[str, date]] = []

    async def count_pending_for_contact(self, phone: str, *, on_or_after: date) -> int:
        self.calls.append((phone, on_or_after))
        return self.pending


@pytest.mark.asyncio
async def test_origin_guard_uses_origin_key_and_clock() -> None:
    store = FakeStore()
    limiter = RateLimiter(store, origin_limit=10, origin_window=3600, clock=lambda: 42.0)
    await limiter.check_origin("192.0.2.10")
    assert store.calls == [("origin:192.0.2.10", 10, 3600, 42.0)]


@pytest.mark.asyncio
async def test_origin_guard_rejects_and_logs(caplog: pytest.LogCaptureFixture) -> None:
    limiter = RateLimiter(FakeStore(allowed=False), clock=lambda: 0.0)
    with caplog.at_level(logging.WARNING, logger="resort_booking.usecases.rate_limit"):
        with pytest.raises(RateLimitedError):
            await limiter.check_origin("192.0.2.10")
    assert "192.0.2.10" in caplog.text


@pytest.mark.asyncio
@pytest.mark.parametrize("pending,allowed", [(0, True), (2, True), (3, False), (5, False)])
async def test_contact_guard_threshold(pending: int, allowed: bool) -> None:
    limiter = RateLimiter(FakeStore(), pending_limit=3)
    repo = FakePendingRepo(pending)
    if allowed:
        await limiter.check_contact(repo, "+375291112233", today=TODAY)
    else:
        with pytest.raises(RateLimitedError):
            await limiter.check_contact(repo, "+375291112233", today=TODAY)
    assert repo.calls == [("+375291112233", TODAY)]


@pytest.mark.asyncio
async def test_contact_guard_does_not_touch_store() -> None:
    store = FakeStore()
    await RateLimiter(store).check_contact(FakePendingRepo(0), "+375291112233", today=TODAY)
    assert store.calls == []
