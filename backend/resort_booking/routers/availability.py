from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..deps import get_session
from ..domain.catalog import DEFAULT_CATALOG
from ..domain.errors import BookingError
from ..domain.pricing import PricingResolver
from ..infrastructure.repositories import SqlAlchemySchedulingRepository
from ..schemas import AvailabilityRead
from ..usecases import availability as availability_usecase
from .errors import BACKEND_ERRORS, booking_http_error, internal_http_error

router = APIRouter(prefix="", tags=["availability"])


@router.get("/availability", response_model=AvailabilityRead)
async def read_availability(
    target_date: date = Query(..., alias="date", description="Resort-local date (YYYY-MM-DD)"),
    resource_type: str = Query(..., min_length=1),
    include_past: bool = Query(default=False, description="Also list slots before the same-day cutoff"),
    session: AsyncSession = Depends(get_session),
) -> AvailabilityRead:
    settings = get_settings()
    repo = SqlAlchemySchedulingRepository(session)
    try:
        resource = DEFAULT_CATALOG.get(resource_type)
        availability = await availability_usecase.get_availability(
            repo,
            PricingResolver(repo),
            resource=resource,
            target_date=target_date,
            now=datetime.now(timezone.utc),
            tz=ZoneInfo(settings.resort_timezone),
            discount_percent=settings.group_discount_percent,
            include_past_cutoff=include_past,
        )
    except BookingError as exc:
        raise booking_http_error(exc)
    except BACKEND_ERRORS as exc:
        raise internal_http_error(exc, context="availability query")
    return AvailabilityRead.from_domain(availability)
