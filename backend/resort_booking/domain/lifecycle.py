from __future__ import annotations

from typing import Mapping

from ..models import ReservationStatus
from .errors import TransitionNotAllowedError

S = ReservationStatus

TRANSITIONS: Mapping[ReservationStatus, frozenset[ReservationStatus]] = {
    S.PENDING: frozenset({S.AWAITING_PREPAYMENT, S.CONFIRMED, S.CANCELLED, S.EXPIRED}),
    S.AWAITING_PREPAYMENT: frozenset({S.CONFIRMED, S.CANCELLED}),
    S.CONFIRMED: frozenset({S.COMPLETED, S.CANCELLED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
    S.EXPIRED: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in TRANSITIONS.items() if not targets)
ACTIVE_STATUSES = frozenset(TRANSITIONS) - TERMINAL_STATUSES
# Counted by the per-contact guard: not yet confirmed by staff.
PENDING_STATUSES = frozenset({S.PENDING, S.AWAITING_PREPAYMENT})


def is_active(status: ReservationStatus) -> bool:
    """Active reservations hold the resource and take part in conflict checks."""
    return status in ACTIVE_STATUSES


def can_transition(current: ReservationStatus, target: ReservationStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def ensure_transition(current: ReservationStatus, target: ReservationStatus) -> None:
    if not can_transition(current, target):
        raise TransitionNotAllowedError(f"cannot move reservation from {current.value} to {target.value}")
