from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import Iterable, Optional

from ..models import BlackoutDate, BlackoutInterval
from ..utils.time import MINUTES_PER_DAY, from_minutes, to_minutes
from .catalog import ResourceModel, ResourceTypeConfig
from .conflicts import ReservationWindow
from .errors import ClosedError, ValidationError
from .grid import SlotGrid


@dataclass(frozen=True)
class ReservationRequest:
    resource_type: str
    target_date: date
    start_time: time
    variant: str
    customer_name: str
    customer_phone: str
    units: int = 1
    unit_code: Optional[str] = None
    comment: Optional[str] = None


@dataclass(frozen=True)
class ReservationDraft:
    """A validated request that still has to pass the final check inside the repository."""

    resource_type: str
    resource_model: ResourceModel
    unit_code: str
    target_date: date
    start_minute: int
    duration_minutes: int
    variant: str
    units: int
    unit_price: Decimal
    group_discount_percent: Decimal
    customer_name: str
    customer_phone: str
    comment: Optional[str]
    created_at: datetime

    @property
    def start_time(self) -> time:
        return from_minutes(self.start_minute)

    @property
    def end_time(self) -> time:
        return from_minutes(self.start_minute + self.duration_minutes)

    @property
    def window(self) -> ReservationWindow:
        return ReservationWindow(
            unit_code=self.unit_code,
            start_minute=self.start_minute,
            duration_minutes=self.duration_minutes,
            variant=self.variant,
            units=self.units,
        )


@dataclass(frozen=True)
class ValidatedRequest:
    unit_code: str
    start_minute: int
    duration_minutes: int


def blackout_covers(interval: BlackoutInterval, start_minute: int) -> bool:
    """True when a slot starting at ``start_minute`` falls inside the blackout."""
    if interval.start_time is None:
        return True
    begin = to_minutes(interval.start_time)
    end = to_minutes(interval.end_time) if interval.end_time is not None else MINUTES_PER_DAY
    return begin <= start_minute < end


def validate_request(
    resource: ResourceTypeConfig,
    request: ReservationRequest,
    grid: SlotGrid,
) -> ValidatedRequest:
    """
    Pure validation of fields, opening hours and the same-day cutoff.
    Raises ValidationError or ClosedError; returns the resolved unit and interval.
    """
    if not request.customer_name.strip():
        raise ValidationError("customer name is required")
    if not request.customer_phone.strip():
        raise ValidationError("customer phone is required")
    if request.units < 1 or request.units > resource.capacity:
        raise ValidationError(f"units must be between 1 and {resource.capacity}")

    duration = resource.duration_of(request.variant)

    if resource.model == ResourceModel.SHARED_POOL:
        if request.unit_code not in (None, resource.pool_unit):
            raise ValidationError(f"unknown unit {request.unit_code!r} for {resource.key}")
        unit_code = resource.pool_unit
    else:
        if request.unit_code is None:
            raise ValidationError("unit_code is required for this resource")
        if request.unit_code not in resource.unit_codes:
            raise ValidationError(f"unknown unit {request.unit_code!r} for {resource.key}")
        unit_code = request.unit_code

    start_minute = to_minutes(request.start_time)
    if start_minute < to_minutes(resource.opens_at):
        raise ClosedError(f"{resource.key} opens at {resource.opens_at:%H:%M}")
    if start_minute + duration > to_minutes(resource.closes_at):
        raise ClosedError(f"{resource.key} closes at {resource.closes_at:%H:%M}")
    if grid.is_past_date:
        raise ClosedError("the date is in the past")
    if grid.is_past_cutoff(start_minute):
        raise ClosedError(
            f"same-day bookings need at least {resource.min_advance_minutes} minutes notice"
        )
    return ValidatedRequest(unit_code=unit_code, start_minute=start_minute, duration_minutes=duration)


def ensure_not_blacked_out(
    resource: ResourceTypeConfig,
    start_minute: int,
    blackout_date: Optional[BlackoutDate],
    intervals: Iterable[BlackoutInterval],
) -> None:
    if blackout_date is not None:
        raise ClosedError(blackout_date.reason or "closed on this date")
    if resource.model != ResourceModel.SHARED_POOL:
        return
    for interval in intervals:
        if blackout_covers(interval, start_minute):
            raise ClosedError(interval.reason or "not available at this time")
