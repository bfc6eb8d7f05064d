import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable

from fastapi import FastAPI, Request, Response

from .database import async_session, engine
from .domain.catalog import DEFAULT_CATALOG
from .infrastructure.repositories import seed_resource_units
from .routers import availability, reservations
from .utils.request_id import generate_request_id, sanitize_request_id, set_request_id

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    async with async_session() as session:
        added = await seed_resource_units(session, DEFAULT_CATALOG)
    if added:
        logger.info("seeded %d resource units", added)
    yield
    await engine.dispose()


app = FastAPI(title="Resort Booking API", lifespan=lifespan)


async def request_id_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    request_id = sanitize_request_id(request.headers.get("X-Request-ID")) or generate_request_id()
    set_request_id(request_id)
    try:
        response = await call_next(request)
    finally:
        set_request_id(None)
    response.headers["X-Request-ID"] = request_id
    return response


app.middleware("http")(request_id_middleware)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


app.include_router(availability.router)
app.include_router(reservations.router)
