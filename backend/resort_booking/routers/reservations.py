from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, List, Optional
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, Header, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..deps import get_client_origin, get_notifier, get_rate_limiter, get_session, get_staff_id
from ..domain.errors import BookingError
from ..domain.repositories import ReservationNotifier
from ..infrastructure.notifications import dispatch_reservation_created
from ..infrastructure.repositories import SqlAlchemySchedulingRepository
from ..models import Reservation, ReservationStatus
from ..schemas import (
    PrepaymentCreate,
    PriceOverrideCreate,
    ReservationCancel,
    ReservationCreate,
    ReservationRead,
)
from ..usecases import reservations as reservation_usecase
from ..usecases.rate_limit import RateLimiter
from ..utils.audit_log import AuditAction, AuditInitiator, emit_audit_log
from ..utils.auth import is_verified_contact
from .errors import BACKEND_ERRORS, booking_http_error, internal_http_error

router = APIRouter(prefix="", tags=["reservations"])


def _audit(
    action: AuditAction,
    reservation: Reservation,
    *,
    initiator: AuditInitiator,
    staff_id: Optional[int] = None,
    status_from: Optional[ReservationStatus] = None,
    extra: Optional[dict[str, object]] = None,
) -> None:
    try:
        emit_audit_log(
            action=action,
            initiator=initiator,
            reservation_id=reservation.id,
            resource_type=reservation.resource_type,
            unit_code=reservation.unit_code,
            staff_id=staff_id,
            units=reservation.units,
            status_from=status_from,
            status_to=reservation.status,
            version=reservation.version,
            extra=extra,
        )
    except RuntimeError as exc:
        raise internal_http_error(exc, context=action)


@router.post("/reservations", response_model=ReservationRead, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    payload: ReservationCreate,
    x_verify_token: Optional[str] = Header(default=None),
    session: AsyncSession = Depends(get_session),
    origin: str = Depends(get_client_origin),
    limiter: RateLimiter = Depends(get_rate_limiter),
    notifier: ReservationNotifier = Depends(get_notifier),
) -> ReservationRead:
    settings = get_settings()
    request = payload.to_request()
    verified = is_verified_contact(
        x_verify_token,
        request.customer_phone,
        secret=settings.auth_secret,
        algorithms=[settings.auth_algorithm],
    )
    repo = SqlAlchemySchedulingRepository(session)
    try:
        async with session.begin():
            reservation = await reservation_usecase.submit_reservation(
                repo,
                limiter,
                request=request,
                origin=origin,
                verified=verified,
                now=datetime.now(timezone.utc),
                tz=ZoneInfo(settings.resort_timezone),
                discount_percent=settings.group_discount_percent,
            )
    except BookingError as exc:
        raise booking_http_error(exc)
    except BACKEND_ERRORS as exc:
        raise internal_http_error(exc, context="reservation submission")

    # Only announce what has been committed.
    dispatch_reservation_created(notifier, reservation)
    _audit(
        "reservation.created",
        reservation,
        initiator="guest",
        extra={"verified": verified, "final_total": reservation.final_total},
    )
    return ReservationRead.from_db(reservation=reservation)


@router.post("/reservations/expire-stale", response_model=List[ReservationRead])
async def expire_stale_reservations(
    session: AsyncSession = Depends(get_session),
    staff_id: int = Depends(get_staff_id),
) -> list[ReservationRead]:
    settings = get_settings()
    repo = SqlAlchemySchedulingRepository(session)
    try:
        async with session.begin():
            expired = await reservation_usecase.expire_stale_reservations(
                repo,
                now=datetime.now(timezone.utc),
                timeout=timedelta(minutes=settings.pending_expiry_minutes),
            )
    except BookingError as exc:
        raise booking_http_error(exc)
    except BACKEND_ERRORS as exc:
        raise internal_http_error(exc, context="pending expiry")

    for reservation in expired:
        _audit(
            "reservation.expired",
            reservation,
            initiator="system",
            staff_id=staff_id,
            status_from=ReservationStatus.PENDING,
        )
    return [ReservationRead.from_db(reservation=r) for r in expired]


@router.get("/reservations/{reservation_id}", response_model=ReservationRead)
async def get_reservation(
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    staff_id: int = Depends(get_staff_id),
) -> ReservationRead:
    repo = SqlAlchemySchedulingRepository(session)
    try:
        reservation = await reservation_usecase.get_reservation(repo, reservation_id=reservation_id)
    except BookingError as exc:
        raise booking_http_error(exc)
    except BACKEND_ERRORS as exc:
        raise internal_http_error(exc, context="reservation lookup")
    return ReservationRead.from_db(reservation=reservation)


async def _run_transition(
    session: AsyncSession,
    action: AuditAction,
    staff_id: int,
    call: Callable[[SqlAlchemySchedulingRepository], Awaitable[tuple[Reservation, ReservationStatus]]],
) -> ReservationRead:
    try:
        async with session.begin():
            updated, previous = await call(SqlAlchemySchedulingRepository(session))
    except BookingError as exc:
        raise booking_http_error(exc)
    except BACKEND_ERRORS as exc:
        raise internal_http_error(exc, context=action)
    _audit(action, updated, initiator="staff", staff_id=staff_id, status_from=previous)
    return ReservationRead.from_db(reservation=updated)


@router.post("/reservations/{reservation_id}/accept", response_model=ReservationRead)
async def accept_reservation(
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    staff_id: int = Depends(get_staff_id),
) -> ReservationRead:
    return await _run_transition(
        session,
        "reservation.accepted",
        staff_id,
        lambda repo: reservation_usecase.accept_reservation(repo, reservation_id=reservation_id, staff_id=staff_id),
    )


@router.post("/reservations/{reservation_id}/prepayment", response_model=ReservationRead)
async def record_prepayment(
    payload: PrepaymentCreate,
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    staff_id: int = Depends(get_staff_id),
) -> ReservationRead:
    return await _run_transition(
        session,
        "reservation.prepayment_recorded",
        staff_id,
        lambda repo: reservation_usecase.record_prepayment(
            repo,
            reservation_id=reservation_id,
            staff_id=staff_id,
            amount=payload.amount,
            method=payload.method,
            now=datetime.now(timezone.utc),
        ),
    )


@router.post("/reservations/{reservation_id}/confirm", response_model=ReservationRead)
async def confirm_reservation(
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    staff_id: int = Depends(get_staff_id),
) -> ReservationRead:
    return await _run_transition(
        session,
        "reservation.confirmed",
        staff_id,
        lambda repo: reservation_usecase.confirm_reservation(repo, reservation_id=reservation_id, staff_id=staff_id),
    )


@router.post("/reservations/{reservation_id}/complete", response_model=ReservationRead)
async def complete_reservation(
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    staff_id: int = Depends(get_staff_id),
) -> ReservationRead:
    return await _run_transition(
        session,
        "reservation.completed",
        staff_id,
        lambda repo: reservation_usecase.complete_reservation(repo, reservation_id=reservation_id, staff_id=staff_id),
    )


@router.post("/reservations/{reservation_id}/cancel", response_model=ReservationRead)
async def cancel_reservation(
    payload: ReservationCancel,
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    staff_id: int = Depends(get_staff_id),
) -> ReservationRead:
    return await _run_transition(
        session,
        "reservation.cancelled",
        staff_id,
        lambda repo: reservation_usecase.cancel_reservation(
            repo,
            reservation_id=reservation_id,
            staff_id=staff_id,
            reason=payload.reason,
        ),
    )


@router.post("/reservations/{reservation_id}/price-override", response_model=ReservationRead)
async def override_price(
    payload: PriceOverrideCreate,
    reservation_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    staff_id: int = Depends(get_staff_id),
) -> ReservationRead:
    repo = SqlAlchemySchedulingRepository(session)
    try:
        async with session.begin():
            updated, previous_total = await reservation_usecase.override_price(
                repo,
                reservation_id=reservation_id,
                unit_price=payload.unit_price,
                discount_percent=payload.discount_percent,
            )
    except BookingError as exc:
        raise booking_http_error(exc)
    except BACKEND_ERRORS as exc:
        raise internal_http_error(exc, context="price override")

    _audit(
        "reservation.price_overridden",
        updated,
        initiator="staff",
        staff_id=staff_id,
        status_from=updated.status,
        extra={
            "final_total_from": previous_total,
            "final_total_to": updated.final_total,
            "reason": payload.reason,
        },
    )
    return ReservationRead.from_db(reservation=updated)

