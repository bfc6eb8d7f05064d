from functools import lru_cache
from typing import AsyncIterator

from fastapi import Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from .config import get_settings
from .database import async_session
from .domain.repositories import ReservationNotifier
from .infrastructure.notifications import LoggingNotifier
from .infrastructure.rate_limit_store import build_rate_limit_store
from .usecases.rate_limit import RateLimiter


async def get_session() -> AsyncIterator[AsyncSession]:
    async with async_session() as session:
        yield session


async def get_staff_id(x_staff_id: str | None = Header(default=None)) -> int:
    if x_staff_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="X-Staff-Id header required")
    try:
        return int(x_staff_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid X-Staff-Id") from exc


async def get_client_origin(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@lru_cache
def get_rate_limiter() -> RateLimiter:
    settings = get_settings()
    return RateLimiter(
        build_rate_limit_store(settings),
        pending_limit=settings.pending_limit_per_contact,
        origin_limit=settings.origin_limit,
        origin_window=settings.origin_window_seconds,
    )


@lru_cache
def get_notifier() -> ReservationNotifier:
    return LoggingNotifier()
