from __future__ import annotations

import asyncio
import logging

from ..domain.repositories import ReservationNotifier
from ..models import Reservation

logger = logging.getLogger(__name__)

# Strong references so pending deliveries are not garbage collected mid-flight.
_background_tasks: set[asyncio.Task[None]] = set()


class LoggingNotifier:
    """Stand-in for staff messaging: writes the event to the application log."""

    async def reservation_created(self, reservation: Reservation) -> None:
        logger.info(
            "new reservation %s: %s %s %s %s-%s x%d for %s",
            reservation.id,
            reservation.resource_type,
            reservation.unit_code,
            reservation.date.isoformat(),
            reservation.start_time.strftime("%H:%M"),
            reservation.end_time.strftime("%H:%M"),
            reservation.units,
            reservation.customer_name,
        )


async def _deliver(notifier: ReservationNotifier, reservation: Reservation) -> None:
    try:
        await notifier.reservation_created(reservation)
    except Exception:
        logger.exception("reservation_created delivery failed for reservation %s", reservation.id)


def dispatch_reservation_created(notifier: ReservationNotifier, reservation: Reservation) -> asyncio.Task[None]:
    """Schedule at-most-once delivery; the caller never waits for it and never sees its errors."""
    task = asyncio.create_task(_deliver(notifier, reservation))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task
