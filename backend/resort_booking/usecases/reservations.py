from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional
from zoneinfo import ZoneInfo

from ..domain.catalog import DEFAULT_CATALOG, ResourceCatalog, ResourceModel
from ..domain.conflicts import detect_conflict, ensure_admitted, group_units, window_of
from ..domain.errors import NotFoundError, ValidationError
from ..domain.grid import generate_grid
from ..domain.lifecycle import ensure_transition, is_active
from ..domain.pricing import DEFAULT_GROUP_DISCOUNT_PERCENT, PricingResolver, build_price_snapshot
from ..domain.repositories import ReservationNotifier, SchedulingRepository
from ..domain.services import ReservationDraft, ReservationRequest, ensure_not_blacked_out, validate_request
from ..infrastructure.notifications import dispatch_reservation_created
from ..models import BlackoutInterval, Reservation, ReservationStatus
from ..utils.time import RESORT_TZ, local_date_and_minute
from .rate_limit import RateLimiter


async def submit_reservation(
    repo: SchedulingRepository,
    limiter: Optional[RateLimiter],
    *,
    request: ReservationRequest,
    origin: str,
    verified: bool,
    now: datetime,
    notifier: Optional[ReservationNotifier] = None,
    catalog: ResourceCatalog = DEFAULT_CATALOG,
    tz: ZoneInfo = RESORT_TZ,
    discount_percent: Decimal = DEFAULT_GROUP_DISCOUNT_PERCENT,
) -> Reservation:
    """Admit one guest reservation.

    The conflict check here runs against freshly read reservations and gives
    early, typed errors; ``repo.insert_reservation`` repeats it atomically with
    the write. When ``notifier`` is given the created event is dispatched
    without waiting for delivery; callers that commit later pass None and
    dispatch after the commit.
    """
    if limiter is not None:
        if not verified:
            await limiter.check_origin(origin)
        today, _ = local_date_and_minute(now, tz)
        await limiter.check_contact(repo, request.customer_phone, today=today)

    resource = catalog.get(request.resource_type)
    grid = generate_grid(resource, request.target_date, now=now, tz=tz)
    validated = validate_request(resource, request, grid)

    blackout_date = await repo.get_blackout_date(resource.key, request.target_date)
    intervals: list[BlackoutInterval] = []
    if resource.model == ResourceModel.SHARED_POOL:
        intervals = list(await repo.list_blackout_intervals(request.target_date))
    ensure_not_blacked_out(resource, validated.start_minute, blackout_date, intervals)

    existing = [
        window_of(r)
        for r in await repo.list_active_reservations(resource.key, request.target_date)
        if is_active(r.status)
    ]
    if not grid.contains(validated.start_minute, request.variant):
        # Off-grid starts are only bookable as a join of an existing group.
        joinable = resource.model == ResourceModel.SHARED_POOL and group_units(
            existing, validated.start_minute, request.variant
        )
        if not joinable:
            raise ValidationError("start time is not on the booking grid")

    unit_price = await PricingResolver(repo).resolve(resource, request.target_date, request.variant)
    draft = ReservationDraft(
        resource_type=resource.key,
        resource_model=resource.model,
        unit_code=validated.unit_code,
        target_date=request.target_date,
        start_minute=validated.start_minute,
        duration_minutes=validated.duration_minutes,
        variant=request.variant,
        units=request.units,
        unit_price=unit_price,
        group_discount_percent=discount_percent,
        customer_name=request.customer_name.strip(),
        customer_phone=request.customer_phone.strip(),
        comment=request.comment,
        created_at=now.astimezone(timezone.utc).replace(tzinfo=None),
    )
    outcome = detect_conflict(
        draft.window,
        existing,
        model=resource.model,
        capacity=resource.capacity,
        buffer_minutes=resource.buffer_minutes,
    )
    ensure_admitted(outcome)

    reservation = await repo.insert_reservation(
        draft,
        capacity=resource.capacity,
        buffer_minutes=resource.buffer_minutes,
        model=resource.model,
    )
    if notifier is not None:
        dispatch_reservation_created(notifier, reservation)
    return reservation


async def get_reservation(repo: SchedulingRepository, *, reservation_id: int) -> Reservation:
    reservation = await repo.get_reservation(reservation_id)
    if reservation is None:
        raise NotFoundError(f"reservation {reservation_id} not found")
    return reservation


async def _transition(
    repo: SchedulingRepository,
    reservation_id: int,
    target: ReservationStatus,
    extra: Optional[dict[str, Any]] = None,
) -> tuple[Reservation, ReservationStatus]:
    reservation = await repo.get_reservation(reservation_id, for_update=True)
    if reservation is None:
        raise NotFoundError(f"reservation {reservation_id} not found")
    previous = reservation.status
    ensure_transition(previous, target)
    updated = await repo.update_reservation_status(reservation_id, target, extra)
    return updated, previous


async def accept_reservation(
    repo: SchedulingRepository,
    *,
    reservation_id: int,
    staff_id: int,
) -> tuple[Reservation, ReservationStatus]:
    return await _transition(
        repo,
        reservation_id,
        ReservationStatus.AWAITING_PREPAYMENT,
        {"accepted_by": staff_id},
    )


async def record_prepayment(
    repo: SchedulingRepository,
    *,
    reservation_id: int,
    staff_id: int,
    amount: Decimal,
    method: str,
    now: datetime,
) -> tuple[Reservation, ReservationStatus]:
    if amount <= 0:
        raise ValidationError("prepayment amount must be positive")
    prepayment = {
        "amount": str(amount),
        "method": method,
        "recorded_by": staff_id,
        "recorded_at": now.astimezone(timezone.utc).isoformat(),
    }
    return await _transition(repo, reservation_id, ReservationStatus.CONFIRMED, {"prepayment": prepayment})


async def confirm_reservation(
    repo: SchedulingRepository,
    *,
    reservation_id: int,
    staff_id: int,
) -> tuple[Reservation, ReservationStatus]:
    return await _transition(repo, reservation_id, ReservationStatus.CONFIRMED, {"confirmed_by": staff_id})


async def complete_reservation(
    repo: SchedulingRepository,
    *,
    reservation_id: int,
    staff_id: int,
) -> tuple[Reservation, ReservationStatus]:
    return await _transition(repo, reservation_id, ReservationStatus.COMPLETED, {"completed_by": staff_id})


async def cancel_reservation(
    repo: SchedulingRepository,
    *,
    reservation_id: int,
    staff_id: int,
    reason: Optional[str] = None,
) -> tuple[Reservation, ReservationStatus]:
    extra: dict[str, Any] = {"cancelled_by": staff_id}
    if reason:
        extra["cancel_reason"] = reason
    return await _transition(repo, reservation_id, ReservationStatus.CANCELLED, extra)


async def expire_stale_reservations(
    repo: SchedulingRepository,
    *,
    now: datetime,
    timeout: timedelta,
) -> list[Reservation]:
    """Move every reservation left in ``pending`` longer than ``timeout`` to ``expired``."""
    created_before = now.astimezone(timezone.utc).replace(tzinfo=None) - timeout
    expired: list[Reservation] = []
    for reservation in await repo.list_stale_pending(created_before):
        if reservation.status != ReservationStatus.PENDING:
            continue
        ensure_transition(reservation.status, ReservationStatus.EXPIRED)
        expired.append(
            await repo.update_reservation_status(
                reservation.id,
                ReservationStatus.EXPIRED,
                {"expired_after_minutes": int(timeout.total_seconds() // 60)},
            )
        )
    return expired


async def override_price(
    repo: SchedulingRepository,
    *,
    reservation_id: int,
    unit_price: Decimal,
    discount_percent: Optional[Decimal] = None,
) -> tuple[Reservation, Decimal]:
    """Replace the price snapshot of an active reservation; returns it with the previous final total."""
    if unit_price < 0:
        raise ValidationError("unit price must not be negative")
    reservation = await repo.get_reservation(reservation_id, for_update=True)
    if reservation is None:
        raise NotFoundError(f"reservation {reservation_id} not found")
    if not is_active(reservation.status):
        raise ValidationError(f"cannot change the price of a {reservation.status.value} reservation")
    percent = reservation.discount_percent if discount_percent is None else discount_percent
    if percent < 0 or percent > 100:
        raise ValidationError("discount percent must be between 0 and 100")
    previous_total = reservation.final_total
    snapshot = build_price_snapshot(unit_price, reservation.units, percent > 0, percent)
    updated = await repo.override_price(reservation_id, snapshot)
    return updated, previous_total
