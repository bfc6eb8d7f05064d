from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.catalog import ResourceCatalog, ResourceModel
from ..domain.conflicts import detect_conflict, ensure_admitted, window_of
from ..domain.errors import NotFoundError, ValidationError
from ..domain.lifecycle import ACTIVE_STATUSES, PENDING_STATUSES
from ..domain.pricing import PriceSnapshot, build_price_snapshot
from ..domain.repositories import SchedulingRepository
from ..domain.services import ReservationDraft
from ..models import (
    BlackoutDate,
    BlackoutInterval,
    PriceOverride,
    Reservation,
    ReservationStatus,
    ResourceUnit,
)
from ..utils.time import utc_now_naive


class SqlAlchemySchedulingRepository(SchedulingRepository):
    """Runs inside the caller's transaction; never commits on its own."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_active_reservations(self, resource_type: str, target_date: date) -> List[Reservation]:
        stmt = (
            select(Reservation)
            .where(
                Reservation.resource_type == resource_type,
                Reservation.date == target_date,
                Reservation.status.in_(ACTIVE_STATUSES),
            )
            .order_by(Reservation.start_time, Reservation.id)
        )
        return list((await self.session.scalars(stmt)).all())

    async def list_blackout_intervals(self, target_date: date) -> List[BlackoutInterval]:
        stmt = (
            select(BlackoutInterval)
            .where(BlackoutInterval.date == target_date)
            .order_by(BlackoutInterval.start_time, BlackoutInterval.id)
        )
        return list((await self.session.scalars(stmt)).all())

    async def get_blackout_date(self, resource_type: str, target_date: date) -> BlackoutDate | None:
        stmt = select(BlackoutDate).where(
            BlackoutDate.resource_type == resource_type,
            BlackoutDate.date == target_date,
        )
        return await self.session.scalar(stmt)

    async def get_price_override(
        self,
        resource_type: str,
        variant: str,
        target_date: Optional[date],
    ) -> Decimal | None:
        stmt = select(PriceOverride.price).where(
            PriceOverride.resource_type == resource_type,
            PriceOverride.variant == variant,
        )
        if target_date is None:
            stmt = stmt.where(PriceOverride.date.is_(None))
        else:
            stmt = stmt.where(PriceOverride.date == target_date)
        return await self.session.scalar(stmt)

    async def insert_reservation(
        self,
        draft: ReservationDraft,
        *,
        capacity: int,
        buffer_minutes: int,
        model: ResourceModel,
    ) -> Reservation:
        # Row lock on the pool (shared) or the room (fixed) serializes writers
        # for that resource until the surrounding transaction ends.
        unit = await self.session.scalar(
            select(ResourceUnit)
            .where(
                ResourceUnit.resource_type == draft.resource_type,
                ResourceUnit.unit_code == draft.unit_code,
            )
            .with_for_update()
        )
        if unit is None:
            raise ValidationError(f"unknown unit {draft.unit_code!r} for {draft.resource_type}")

        existing = [window_of(r) for r in await self.list_active_reservations(draft.resource_type, draft.target_date)]
        outcome = detect_conflict(
            draft.window,
            existing,
            model=model,
            capacity=capacity,
            buffer_minutes=buffer_minutes,
        )
        ensure_admitted(outcome)
        snapshot = build_price_snapshot(draft.unit_price, draft.units, outcome.is_joining, draft.group_discount_percent)

        reservation = Reservation(
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
        self.session.add(reservation)
        await self.session.flush()
        return reservation

    async def update_reservation_status(
        self,
        reservation_id: int,
        new_status: ReservationStatus,
        extra: Optional[dict[str, Any]] = None,
    ) -> Reservation:
        reservation = await self.get_reservation(reservation_id, for_update=True)
        if reservation is None:
            raise NotFoundError(f"reservation {reservation_id} not found")
        reservation.status = new_status
        if extra:
            # Reassign so the JSON column is flagged dirty.
            reservation.extra = {**(reservation.extra or {}), **extra}
        reservation.version += 1
        reservation.updated_at = utc_now_naive()
        await self.session.flush()
        return reservation

    async def get_reservation(self, reservation_id: int, *, for_update: bool = False) -> Reservation | None:
        stmt = select(Reservation).where(Reservation.id == reservation_id)
        if for_update:
            stmt = stmt.with_for_update()
        return await self.session.scalar(stmt)

    async def count_pending_for_contact(self, phone: str, *, on_or_after: date) -> int:
        stmt = select(func.count(Reservation.id)).where(
            Reservation.customer_phone == phone,
            Reservation.status.in_(PENDING_STATUSES),
            Reservation.date >= on_or_after,
        )
        return int(await self.session.scalar(stmt) or 0)

    async def list_stale_pending(self, created_before: datetime) -> Sequence[Reservation]:
        stmt = (
            select(Reservation)
            .where(
                Reservation.status == ReservationStatus.PENDING,
                Reservation.created_at < created_before,
            )
            .order_by(Reservation.created_at, Reservation.id)
            .with_for_update(skip_locked=True)
        )
        return list((await self.session.scalars(stmt)).all())

    async def override_price(self, reservation_id: int, snapshot: PriceSnapshot) -> Reservation:
        reservation = await self.get_reservation(reservation_id, for_update=True)
        if reservation is None:
            raise NotFoundError(f"reservation {reservation_id} not found")
        for column, value in snapshot.columns().items():
            setattr(reservation, column, value)
        reservation.version += 1
        reservation.updated_at = utc_now_naive()
        await self.session.flush()
        return reservation


async def seed_resource_units(session: AsyncSession, catalog: ResourceCatalog) -> int:
    """Insert the lockable unit rows for every catalog resource; returns how many were added."""
    added = 0
    async with session.begin():
        existing = {
            (row.resource_type, row.unit_code) for row in (await session.scalars(select(ResourceUnit))).all()
        }
        for resource in catalog:
            for unit_code in resource.unit_codes:
                if (resource.key, unit_code) in existing:
                    continue
                session.add(
                    ResourceUnit(
                        resource_type=resource.key,
                        unit_code=unit_code,
                        model=resource.model,
                        capacity=resource.capacity,
                    )
                )
                added += 1
    return added
