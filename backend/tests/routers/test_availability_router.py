from datetime import time, timedelta
from typing import AsyncIterator

import pytest
from resort_booking.deps import get_session
from resort_booking.domain.catalog import QUAD
from resort_booking.infrastructure.memory import InMemorySchedulingRepository
from resort_booking.routers import availability as router
from resort_booking.utils.time import resort_now
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

DAY = resort_now().date() + timedelta(days=7)


class DummySession:
    pass


@pytest.fixture
def repo(monkeypatch: pytest.MonkeyPatch) -> InMemorySchedulingRepository:
    memory = InMemorySchedulingRepository()
    monkeypatch.setattr(router, "SqlAlchemySchedulingRepository", lambda s: memory)  # type: ignore[assignment]
    return memory


def _client() -> AsyncClient:
    app = FastAPI()
    app.include_router(router.router)

    async def session_override() -> AsyncIterator[DummySession]:
        yield DummySession()

    app.dependency_overrides[get_session] = session_override
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_availability_lists_joinable_group(repo) -> None:
    repo.add_reservation(QUAD, DAY, time(10, 0), "short", units=2)
    repo.add_blackout_interval(DAY, time(15, 0), None, reason="instructor away")
    async with _client() as client:
        resp = await client.get("/availability", params={"date": DAY.isoformat(), "resource_type": "quad"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["blocked"] is False
    assert body["blackout_intervals"] == [{"start_time": "15:00", "end_time": None, "reason": "instructor away"}]
    slot = next(s for s in body["slots"] if s["start_time"] == "10:00" and s["variant"] == "short")
    assert slot["joinable"] is True
    assert slot["available_capacity"] == 2
    assert slot["status"] == "joinable"
    blocked = next(s for s in body["slots"] if s["start_time"] == "15:30")
    assert blocked["status"] == "blocked"


@pytest.mark.asyncio
async def test_blacked_out_date(repo) -> None:
    repo.add_blackout_date("quad", DAY, reason="private event")
    async with _client() as client:
        resp = await client.get("/availability", params={"date": DAY.isoformat(), "resource_type": "quad"})
    assert resp.status_code == 200
    assert resp.json()["blocked"] is True
    assert resp.json()["reason"] == "private event"
    assert resp.json()["slots"] == []


@pytest.mark.asyncio
async def test_unknown_resource_type_is_400(repo) -> None:
    async with _client() as client:
        resp = await client.get("/availability", params={"date": DAY.isoformat(), "resource_type": "yacht"})
    assert resp.status_code == 400
    assert resp.json()["detail"]["kind"] == "validation_error"


@pytest.mark.asyncio
async def test_date_is_required(repo) -> None:
    async with _client() as client:
        resp = await client.get("/availability", params={"resource_type": "quad"})
    assert resp.status_code == 422
