"""Pure conflict detection between a prospective reservation and active ones.

Two resource models are supported:

* fixed unit: an independent room with binary occupancy. A prospective
  reservation conflicts with an existing one on the same unit iff their
  ``[start, end)`` intervals overlap.
* shared pool: one exclusive resource (the instructor) whose capacity can be
  split among reservations starting at the identical time with the identical
  variant (a group). Every reservation keeps the pool busy for
  ``[start, start + duration + buffer)``. Only an exact ``(start, variant)``
  match may join a group; anything else overlapping is a hard conflict.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Iterable, Optional, Protocol, Sequence

from ..utils.time import to_minutes
from .catalog import ResourceModel
from .errors import CapacityExceededError, SlotConflictError


class OutcomeKind(StrEnum):
    FREE = "free"
    JOIN = "join"
    SLOT_CONFLICT = "slot_conflict"
    CAPACITY_EXCEEDED = "capacity_exceeded"


@dataclass(frozen=True)
class ReservationWindow:
    unit_code: str
    start_minute: int
    duration_minutes: int
    variant: str
    units: int = 1
    reservation_id: Optional[int] = None

    @property
    def end_minute(self) -> int:
        return self.start_minute + self.duration_minutes

    def busy_until(self, buffer_minutes: int) -> int:
        return self.end_minute + buffer_minutes

    @property
    def group_key(self) -> tuple[int, str]:
        return self.start_minute, self.variant


class _HasSchedule(Protocol):
    id: Optional[int]
    unit_code: str
    start_time: object
    end_time: object
    variant: str
    units: int


def window_of(reservation: _HasSchedule) -> ReservationWindow:
    start = to_minutes(reservation.start_time)  # type: ignore[arg-type]
    end = to_minutes(reservation.end_time)  # type: ignore[arg-type]
    return ReservationWindow(
        unit_code=reservation.unit_code,
        start_minute=start,
        duration_minutes=end - start,
        variant=reservation.variant,
        units=reservation.units,
        reservation_id=reservation.id,
    )


@dataclass(frozen=True)
class ConflictOutcome:
    kind: OutcomeKind
    capacity: int
    group_units: int = 0
    conflicting: Optional[ReservationWindow] = None

    @property
    def admitted(self) -> bool:
        return self.kind in (OutcomeKind.FREE, OutcomeKind.JOIN)

    @property
    def is_joining(self) -> bool:
        return self.kind == OutcomeKind.JOIN

    @property
    def remaining(self) -> int:
        return max(self.capacity - self.group_units, 0)


def intervals_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    return not (end_a <= start_b or start_a >= end_b)


def group_units(existing: Iterable[ReservationWindow], start_minute: int, variant: str) -> int:
    return sum(w.units for w in existing if w.group_key == (start_minute, variant))


def detect_conflict(
    prospective: ReservationWindow,
    existing: Sequence[ReservationWindow],
    *,
    model: ResourceModel,
    capacity: int,
    buffer_minutes: int = 0,
) -> ConflictOutcome:
    """Classify ``prospective`` against already active reservations.

    ``existing`` must contain active reservations only. For fixed units the
    buffer is ignored and only reservations on the same unit are considered.
    """
    if model == ResourceModel.FIXED_UNIT:
        for window in existing:
            if window.unit_code != prospective.unit_code:
                continue
            if intervals_overlap(
                prospective.start_minute,
                prospective.end_minute,
                window.start_minute,
                window.end_minute,
            ):
                return ConflictOutcome(OutcomeKind.SLOT_CONFLICT, capacity, capacity, window)
        return ConflictOutcome(OutcomeKind.FREE, capacity)

    group: list[ReservationWindow] = []
    for window in existing:
        if window.group_key == prospective.group_key:
            group.append(window)
            continue
        if window.start_minute == prospective.start_minute:
            # Same start, different variant: groups never mix variants.
            return ConflictOutcome(OutcomeKind.SLOT_CONFLICT, capacity, capacity, window)
        if intervals_overlap(
            prospective.start_minute,
            prospective.busy_until(buffer_minutes),
            window.start_minute,
            window.busy_until(buffer_minutes),
        ):
            return ConflictOutcome(OutcomeKind.SLOT_CONFLICT, capacity, capacity, window)

    reserved = sum(w.units for w in group)
    if reserved + prospective.units > capacity:
        return ConflictOutcome(OutcomeKind.CAPACITY_EXCEEDED, capacity, reserved, group[0] if group else None)
    if group:
        return ConflictOutcome(OutcomeKind.JOIN, capacity, reserved, group[0])
    return ConflictOutcome(OutcomeKind.FREE, capacity, 0)


def ensure_admitted(outcome: ConflictOutcome) -> None:
    if outcome.kind == OutcomeKind.SLOT_CONFLICT:
        raise SlotConflictError("the requested time overlaps another reservation")
    if outcome.kind == OutcomeKind.CAPACITY_EXCEEDED:
        raise CapacityExceededError(f"only {outcome.remaining} units left in this group")
