from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from enum import StrEnum
from typing import Callable, Optional, Sequence
from zoneinfo import ZoneInfo

from ..domain.catalog import ResourceModel, ResourceTypeConfig
from ..domain.conflicts import (
    OutcomeKind,
    ReservationWindow,
    detect_conflict,
    intervals_overlap,
    window_of,
)
from ..domain.grid import generate_grid
from ..domain.lifecycle import is_active
from ..domain.pricing import DEFAULT_GROUP_DISCOUNT_PERCENT, PricingResolver, apply_group_discount
from ..domain.repositories import SchedulingRepository
from ..domain.services import blackout_covers
from ..models import BlackoutInterval
from ..utils.time import RESORT_TZ, from_minutes


class SlotStatus(StrEnum):
    OPEN = "open"
    JOINABLE = "joinable"
    FULL = "full"
    BLOCKED = "blocked"
    PAST_CUTOFF = "past-cutoff"


@dataclass(frozen=True)
class Slot:
    start_minute: int
    duration_minutes: int
    variant: str
    unit_code: str
    status: SlotStatus
    capacity: int
    reserved_units: int
    unit_price: Decimal
    discounted_unit_price: Optional[Decimal] = None
    off_grid: bool = False

    @property
    def start_time(self) -> time:
        return from_minutes(self.start_minute)

    @property
    def end_time(self) -> time:
        return from_minutes(self.start_minute + self.duration_minutes)

    @property
    def available_capacity(self) -> int:
        return self.capacity - self.reserved_units

    @property
    def joinable(self) -> bool:
        return self.status == SlotStatus.JOINABLE

    @property
    def sort_key(self) -> tuple[int, int, str]:
        return self.start_minute, self.duration_minutes, self.unit_code


@dataclass(frozen=True)
class Availability:
    resource_type: str
    target_date: date
    blocked: bool = False
    reason: Optional[str] = None
    slots: list[Slot] = field(default_factory=list)
    blackout_intervals: list[BlackoutInterval] = field(default_factory=list)


async def get_availability(
    repo: SchedulingRepository,
    pricing: PricingResolver,
    *,
    resource: ResourceTypeConfig,
    target_date: date,
    now: datetime,
    tz: ZoneInfo = RESORT_TZ,
    discount_percent: Decimal = DEFAULT_GROUP_DISCOUNT_PERCENT,
    include_past_cutoff: bool = False,
) -> Availability:
    """Per-slot view of one resource type on one date.

    Read-only: repeated calls without intervening writes return identical
    results. Slots before the same-day cutoff are left out unless
    ``include_past_cutoff`` is set, in which case they carry ``past-cutoff``.
    """
    blackout_date = await repo.get_blackout_date(resource.key, target_date)
    if blackout_date is not None:
        return Availability(
            resource_type=resource.key,
            target_date=target_date,
            blocked=True,
            reason=blackout_date.reason,
        )

    grid = generate_grid(resource, target_date, now=now, tz=tz)
    intervals = list(await repo.list_blackout_intervals(target_date))
    if grid.is_past_date:
        return Availability(resource.key, target_date, blackout_intervals=intervals)

    reservations = await repo.list_active_reservations(resource.key, target_date)
    windows = [window_of(r) for r in reservations if is_active(r.status)]

    prices: dict[str, Decimal] = {}
    for variant in resource.variants:
        prices[variant] = await pricing.resolve(resource, target_date, variant)

    def blocked_at(start_minute: int) -> bool:
        if resource.model != ResourceModel.SHARED_POOL:
            return False
        return any(blackout_covers(interval, start_minute) for interval in intervals)

    slots: list[Slot] = []
    for candidate in grid.candidates(include_past_cutoff=include_past_cutoff):
        units = resource.unit_codes if resource.model == ResourceModel.FIXED_UNIT else (resource.pool_unit,)
        for unit_code in units:
            target = ReservationWindow(unit_code, candidate.start_minute, candidate.duration_minutes, candidate.variant)
            slot = _project(resource, target, windows, prices[candidate.variant], discount_percent)
            if blocked_at(candidate.start_minute):
                slot = _restrict(slot, SlotStatus.BLOCKED)
            elif grid.is_past_cutoff(candidate.start_minute):
                slot = _restrict(slot, SlotStatus.PAST_CUTOFF)
            slots.append(slot)

    if resource.model == ResourceModel.SHARED_POOL:
        for group in _off_grid_groups(windows, resource, grid.contains):
            if not grid.fits(group.start_minute, group.duration_minutes):
                continue
            if blocked_at(group.start_minute) or grid.is_past_cutoff(group.start_minute):
                continue
            price = prices.get(group.variant)
            if price is None:
                continue
            target = ReservationWindow(resource.pool_unit, group.start_minute, group.duration_minutes, group.variant)
            slot = _project(resource, target, windows, price, discount_percent, off_grid=True)
            if slot.joinable:
                slots.append(slot)

    slots.sort(key=lambda s: s.sort_key)
    return Availability(
        resource_type=resource.key,
        target_date=target_date,
        slots=slots,
        blackout_intervals=intervals,
    )


def _project(
    resource: ResourceTypeConfig,
    target: ReservationWindow,
    windows: Sequence[ReservationWindow],
    unit_price: Decimal,
    discount_percent: Decimal,
    *,
    off_grid: bool = False,
) -> Slot:
    capacity = resource.capacity
    if resource.model == ResourceModel.FIXED_UNIT:
        taken = any(
            w.unit_code == target.unit_code
            and intervals_overlap(target.start_minute, target.end_minute, w.start_minute, w.end_minute)
            for w in windows
        )
        status = SlotStatus.FULL if taken else SlotStatus.OPEN
        return Slot(
            target.start_minute,
            target.duration_minutes,
            target.variant,
            target.unit_code,
            status,
            capacity,
            capacity if taken else 0,
            unit_price,
            off_grid=off_grid,
        )

    outcome = detect_conflict(
        target,
        windows,
        model=resource.model,
        capacity=capacity,
        buffer_minutes=resource.buffer_minutes,
    )
    discounted: Optional[Decimal] = None
    if outcome.kind == OutcomeKind.SLOT_CONFLICT:
        # Another group holds the instructor for this window.
        status, reserved = SlotStatus.FULL, capacity
    elif outcome.kind == OutcomeKind.CAPACITY_EXCEEDED:
        status, reserved = SlotStatus.FULL, min(outcome.group_units, capacity)
    elif outcome.kind == OutcomeKind.JOIN:
        status, reserved = SlotStatus.JOINABLE, outcome.group_units
        discounted = apply_group_discount(unit_price, True, discount_percent).per_unit
    else:
        status, reserved = SlotStatus.OPEN, 0
    return Slot(
        target.start_minute,
        target.duration_minutes,
        target.variant,
        target.unit_code,
        status,
        capacity,
        reserved,
        unit_price,
        discounted,
        off_grid,
    )


def _restrict(slot: Slot, status: SlotStatus) -> Slot:
    return Slot(
        slot.start_minute,
        slot.duration_minutes,
        slot.variant,
        slot.unit_code,
        status,
        slot.capacity,
        slot.reserved_units,
        slot.unit_price,
        off_grid=slot.off_grid,
    )


def _off_grid_groups(
    windows: Sequence[ReservationWindow],
    resource: ResourceTypeConfig,
    on_grid: Callable[[int, str], bool],
) -> list[ReservationWindow]:
    seen: dict[tuple[int, str], ReservationWindow] = {}
    for window in windows:
        if window.group_key in seen or on_grid(window.start_minute, window.variant):
            continue
        if window.variant not in resource.variants:
            continue
        seen[window.group_key] = window
    return list(seen.values())
