import logging
from datetime import date, time

import pytest
from resort_booking.domain.catalog import QUAD
from resort_booking.infrastructure import notifications
from resort_booking.infrastructure.memory import InMemorySchedulingRepository
from resort_booking.models import Reservation


class BrokenNotifier:
    async def reservation_created(self, reservation: Reservation) -> None:
        raise RuntimeError("messaging is down")


def _reservation() -> Reservation:
    return InMemorySchedulingRepository().add_reservation(QUAD, date(2026, 7, 2), time(10, 0), "short", units=2)


@pytest.mark.asyncio
async def test_failed_delivery_is_logged_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    reservation = _reservation()
    with caplog.at_level(logging.ERROR, logger="resort_booking.infrastructure.notifications"):
        task = notifications.dispatch_reservation_created(BrokenNotifier(), reservation)
        await task
    assert task.exception() is None
    assert "delivery failed" in caplog.text
    assert task not in notifications._background_tasks


@pytest.mark.asyncio
async def test_logging_notifier_writes_summary(caplog: pytest.LogCaptureFixture) -> None:
    reservation = _reservation()
    with caplog.at_level(logging.INFO, logger="resort_booking.infrastructure.notifications"):
        await notifications.dispatch_reservation_created(notifications.LoggingNotifier(), reservation)
    assert "quad instructor 2026-07-02 10:00-10:30 x2" in caplog.text
