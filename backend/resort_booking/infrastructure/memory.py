from __future__ import annotations

import asyncio
import itertools
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Optional, Sequence

from ..domain.catalog import ResourceModel, ResourceTypeConfig
from ..domain.conflicts import detect_conflict, ensure_admitted, window_of
from ..domain.errors import NotFoundError
from ..domain.lifecycle import PENDING_STATUSES, is_active
from ..domain.pricing import PriceSnapshot, build_price_snapshot
from ..domain.repositories import SchedulingRepository
from ..domain.services import ReservationDraft
from ..models import BlackoutDate, BlackoutInterval, Reservation, ReservationStatus
from ..utils.time import from_minutes, to_minutes, utc_now_naive


class InMemorySchedulingRepository(SchedulingRepository):
    """Process-local repository.

    ``insert_reservation`` serializes writers per resource unit with an
    ``asyncio.Lock`` and re-runs the conflict check under it, so it is safe for
    concurrent tasks on one event loop.
    """

    def __init__(self) -> None:
        self.reservations: dict[int, Reservation] = {}
        self.blackout_intervals: list[BlackoutInterval] = []
        self.blackout_dates: dict[tuple[str, date], BlackoutDate] = {}
        self.price_overrides: dict[tuple[str, str, Optional[date]], Decimal] = {}
        self._ids = itertools.count(1)
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}

    # Seeding helpers

    def add_reservation(
        self,
        resource: ResourceTypeConfig,
        target_date: date,
        start: time,
        variant: str,
        *,
        units: int = 1,
        unit_code: Optional[str] = None,
        duration_minutes: Optional[int] = None,
        status: ReservationStatus = ReservationStatus.PENDING,
        customer_phone: str = "+375290000000",
        created_at: Optional[datetime] = None,
    ) -> Reservation:
        """Store a reservation as-is, without any checks, the way staff can."""
        start_minute = to_minutes(start)
        duration = duration_minutes if duration_minutes is not None else resource.duration_of(variant)
        price = resource.default_prices.get(variant, Decimal("0"))
        snapshot = build_price_snapshot(price, units, False)
        stamp = created_at or utc_now_naive()
        reservation = Reservation(
            id=next(self._ids),
            resource_type=resource.key,
            resource_model=resource.model,
            unit_code=unit_code or resource.pool_unit,
            date=target_date,
            start_time=from_minutes(start_minute),
            end_time=from_minutes(start_minute + duration),
            variant=variant,
            units=units,
            status=status,
            customer_name="Staff booking",
            customer_phone=customer_phone,
            comment=None,
            extra={},
            version=1,
            created_at=stamp,
            updated_at=stamp,
            **snapshot.columns(),
        )
        self.reservations[reservation.id] = reservation
        return reservation

    def add_blackout_interval(
        self,
        target_date: date,
        start: Optional[time] = None,
        end: Optional[time] = None,
        reason: Optional[str] = None,
    ) -> BlackoutInterval:
        interval = BlackoutInterval(
            id=len(self.blackout_intervals) + 1,
            date=target_date,
            start_time=start,
            end_time=end,
            reason=reason,
            created_at=utc_now_naive(),
        )
        self.blackout_intervals.append(interval)
        return interval

    def add_blackout_date(self, resource_type: str, target_date: date, reason: Optional[str] = None) -> BlackoutDate:
        blackout = BlackoutDate(
            id=len(self.blackout_dates) + 1,
            resource_type=resource_type,
            date=target_date,
            reason=reason,
            created_at=utc_now_naive(),
        )
        self.blackout_dates[(resource_type, target_date)] = blackout
        return blackout

    def set_price_override(
        self,
        resource_type: str,
        variant: str,
        price: Decimal,
        target_date: Optional[date] = None,
    ) -> None:
        self.price_overrides[(resource_type, variant, target_date)] = price

    # SchedulingRepository

    async def list_active_reservations(self, resource_type: str, target_date: date) -> Sequence[Reservation]:
        return self._active(resource_type, target_date)

    async def list_blackout_intervals(self, target_date: date) -> Sequence[BlackoutInterval]:
        return [i for i in self.blackout_intervals if i.date == target_date]

    async def get_blackout_date(self, resource_type: str, target_date: date) -> BlackoutDate | None:
        return self.blackout_dates.get((resource_type, target_date))

    async def get_price_override(
        self,
        resource_type: str,
        variant: str,
        target_date: Optional[date],
    ) -> Decimal | None:
        return self.price_overrides.get((resource_type, variant, target_date))

    async def insert_reservation(
        self,
        draft: ReservationDraft,
        *,
        capacity: int,
        buffer_minutes: int,
        model: ResourceModel,
    ) -> Reservation:
        async with self._lock_for(draft.resource_type, draft.unit_code):
            existing = [window_of(r) for r in self._active(draft.resource_type, draft.target_date)]
            outcome = detect_conflict(
                draft.window,
                existing,
                model=model,
                capacity=capacity,
                buffer_minutes=buffer_minutes,
            )
            ensure_admitted(outcome)
            snapshot = build_price_snapshot(
                draft.unit_price,
                draft.units,
                outcome.is_joining,
                draft.group_discount_percent,
            )
            reservation = Reservation(
                id=next(self._ids),
                resource_type=draft.resource_type,
                resource_model=draft.resource_model,
                unit_code=draft.unit_code,
                date=draft.target_date,
                start_time=draft.start_time,
                end_time=draft.end_time,
                variant=draft.variant,
                units=draft.units,
                status=ReservationStatus.PENDING,
                customer_name=draft.customer_name,
                customer_phone=draft.customer_phone,
                comment=draft.comment,
                extra={},
                version=1,
                created_at=draft.created_at,
                updated_at=draft.created_at,
                **snapshot.columns(),
            )
            self.reservations[reservation.id] = reservation
            return reservation

    async def update_reservation_status(
        self,
        reservation_id: int,
        new_status: ReservationStatus,
        extra: Optional[dict[str, Any]] = None,
    ) -> Reservation:
        reservation = self.reservations.get(reservation_id)
        if reservation is None:
            raise NotFoundError(f"reservation {reservation_id} not found")
        reservation.status = new_status
        if extra:
            reservation.extra = {**(reservation.extra or {}), **extra}
        reservation.version += 1
        reservation.updated_at = utc_now_naive()
        return reservation

    async def get_reservation(self, reservation_id: int, *, for_update: bool = False) -> Reservation | None:
        return self.reservations.get(reservation_id)

    async def count_pending_for_contact(self, phone: str, *, on_or_after: date) -> int:
        return sum(
            1
            for r in self.reservations.values()
            if r.customer_phone == phone and r.status in PENDING_STATUSES and r.date >= on_or_after
        )

    async def list_stale_pending(self, created_before: datetime) -> Sequence[Reservation]:
        stale = [
            r
            for r in self.reservations.values()
            if r.status == ReservationStatus.PENDING and r.created_at < created_before
        ]
        return sorted(stale, key=lambda r: (r.created_at, r.id))

    async def override_price(self, reservation_id: int, snapshot: PriceSnapshot) -> Reservation:
        reservation = self.reservations.get(reservation_id)
        if reservation is None:
            raise NotFoundError(f"reservation {reservation_id} not found")
        for column, value in snapshot.columns().items():
            setattr(reservation, column, value)
        reservation.version += 1
        reservation.updated_at = utc_now_naive()
        return reservation

    def _active(self, resource_type: str, target_date: date) -> list[Reservation]:
        found = [
            r
            for r in self.reservations.values()
            if r.resource_type == resource_type and r.date == target_date and is_active(r.status)
        ]
        return sorted(found, key=lambda r: (r.start_time, r.id))

    def _lock_for(self, resource_type: str, unit_code: str) -> asyncio.Lock:
        return self._locks.setdefault((resource_type, unit_code), asyncio.Lock())
