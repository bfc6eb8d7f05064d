"""Candidate start times for a resource type on a given date."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Iterator
from zoneinfo import ZoneInfo

from ..utils.time import RESORT_TZ, from_minutes, local_date_and_minute, to_minutes
from .catalog import ResourceTypeConfig


@dataclass(frozen=True, order=True)
class GridCandidate:
    start_minute: int
    duration_minutes: int
    variant: str

    @property
    def end_minute(self) -> int:
        return self.start_minute + self.duration_minutes

    @property
    def start(self) -> time:
        return from_minutes(self.start_minute)

    @property
    def end(self) -> time:
        return from_minutes(self.end_minute)


class SlotGrid:
    """Restartable grid: every iteration yields the same candidates in the same order.

    Candidates are ordered by start, then by variant duration. A variant is only
    emitted when it ends at or before closing time. For "today" (resort local
    time) starts earlier than ``now + min_advance`` are suppressed, with ``now``
    rounded up to the whole minute; a start equal to that watermark is still
    bookable.
    """

    def __init__(
        self,
        resource: ResourceTypeConfig,
        target_date: date,
        *,
        now: datetime,
        tz: ZoneInfo = RESORT_TZ,
    ) -> None:
        self.resource = resource
        self.target_date = target_date
        today, minute_now = local_date_and_minute(now, tz)
        if now.second or now.microsecond:
            # A minute that has started counts as gone.
            minute_now += 1
        self.is_today = target_date == today
        self.is_past_date = target_date < today
        self.watermark = minute_now + resource.min_advance_minutes if self.is_today else None

    def is_past_cutoff(self, start_minute: int) -> bool:
        if self.is_past_date:
            return True
        if self.watermark is None:
            return False
        return start_minute < self.watermark

    def fits(self, start_minute: int, duration_minutes: int) -> bool:
        opens = to_minutes(self.resource.opens_at)
        closes = to_minutes(self.resource.closes_at)
        return opens <= start_minute and start_minute + duration_minutes <= closes

    def starts(self) -> Iterator[int]:
        minute = to_minutes(self.resource.opens_at)
        closes = to_minutes(self.resource.closes_at)
        while minute < closes:
            yield minute
            minute += self.resource.grid_step_minutes

    def candidates(self, *, include_past_cutoff: bool = False) -> Iterator[GridCandidate]:
        for start_minute in self.starts():
            if not include_past_cutoff and self.is_past_cutoff(start_minute):
                continue
            for variant, duration in self.resource.variants.items():
                if self.fits(start_minute, duration):
                    yield GridCandidate(start_minute, duration, variant)

    def __iter__(self) -> Iterator[GridCandidate]:
        return self.candidates()

    def contains(self, start_minute: int, variant: str) -> bool:
        duration = self.resource.variants.get(variant)
        if duration is None or not self.fits(start_minute, duration):
            return False
        offset = start_minute - to_minutes(self.resource.opens_at)
        return offset % self.resource.grid_step_minutes == 0


def generate_grid(
    resource: ResourceTypeConfig,
    target_date: date,
    *,
    now: datetime,
    tz: ZoneInfo = RESORT_TZ,
) -> SlotGrid:
    return SlotGrid(resource, target_date, now=now, tz=tz)
