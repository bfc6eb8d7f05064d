from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional, Protocol, Sequence

from ..models import BlackoutDate, BlackoutInterval, Reservation, ReservationStatus
from .catalog import ResourceModel
from .pricing import PriceSnapshot
from .services import ReservationDraft


class SchedulingRepository(Protocol):
    async def list_active_reservations(self, resource_type: str, target_date: date) -> Sequence[Reservation]: ...

    async def list_blackout_intervals(self, target_date: date) -> Sequence[BlackoutInterval]: ...

    async def get_blackout_date(self, resource_type: str, target_date: date) -> BlackoutDate | None: ...

    async def get_price_override(
        self,
        resource_type: str,
        variant: str,
        target_date: Optional[date],
    ) -> Decimal | None: ...

    async def insert_reservation(
        self,
        draft: ReservationDraft,
        *,
        capacity: int,
        buffer_minutes: int,
        model: ResourceModel,
    ) -> Reservation:
        """Re-check conflicts and insert as one atomic step.

        Raises SlotConflictError or CapacityExceededError and persists nothing
        when the draft no longer fits.
        """
        ...

    async def update_reservation_status(
        self,
        reservation_id: int,
        new_status: ReservationStatus,
        extra: Optional[dict[str, Any]] = None,
    ) -> Reservation: ...

    async def get_reservation(self, reservation_id: int, *, for_update: bool = False) -> Reservation | None: ...

    async def count_pending_for_contact(self, phone: str, *, on_or_after: date) -> int: ...

    async def list_stale_pending(self, created_before: datetime) -> Sequence[Reservation]: ...

    async def override_price(self, reservation_id: int, snapshot: PriceSnapshot) -> Reservation: ...


class RateLimitStore(Protocol):
    async def hit(self, key: str, *, limit: int, window_seconds: int, now: float) -> bool:
        """Record one attempt unless ``limit`` attempts already fall in the window.

        Returns False (and records nothing) when the caller is over the limit.
        """
        ...


class ReservationNotifier(Protocol):
    async def reservation_created(self, reservation: Reservation) -> None: ...
