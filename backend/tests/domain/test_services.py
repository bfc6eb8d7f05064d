from datetime import date, datetime, time, timezone
from decimal import Decimal

import pytest
from resort_booking.domain.catalog import BATH, QUAD, ResourceModel, ResourceTypeConfig
from resort_booking.domain.errors import ClosedError, ValidationError
from resort_booking.domain.grid import generate_grid
from resort_booking.domain.services import (
    ReservationRequest,
    blackout_covers,
    ensure_not_blacked_out,
    validate_request,
)
from resort_booking.models import BlackoutDate, BlackoutInterval

NOW = datetime(2026, 7, 1, 6, 0, tzinfo=timezone.utc)
TOMORROW = date(2026, 7, 2)


def _request(**overrides: object) -> ReservationRequest:
    fields: dict[str, object] = {
        "resource_type": "quad",
        "target_date": TOMORROW,
        "start_time": time(10, 0),
        "variant": "short",
        "customer_name": "Anna",
        "customer_phone": "+375291112233",
        "units": 2,
    }
    fields.update(overrides)
    return ReservationRequest(**fields)  # type: ignore[arg-type]


def _validate(resource: ResourceTypeConfig, request: ReservationRequest, now: datetime = NOW):
    return validate_request(resource, request, generate_grid(resource, request.target_date, now=now))


def test_valid_shared_pool_request_resolves_pool_unit() -> None:
    validated = _validate(QUAD, _request())
    assert validated.unit_code == "instructor"
    assert validated.start_minute == 600
    assert validated.duration_minutes == 30


@pytest.mark.parametrize("units", [0, 5])
def test_units_outside_capacity_rejected(units: int) -> None:
    with pytest.raises(ValidationError):
        _validate(QUAD, _request(units=units))


def test_fixed_unit_requires_known_unit() -> None:
    with pytest.raises(ValidationError):
        _validate(BATH, _request(resource_type="bath", variant="3h", units=1))
    with pytest.raises(ValidationError):
        _validate(BATH, _request(resource_type="bath", variant="3h", units=1, unit_code="B9"))
    validated = _validate(BATH, _request(resource_type="bath", variant="3h", units=1, unit_code="B2"))
    assert validated.unit_code == "B2"


def test_fixed_unit_never_takes_more_than_one_unit() -> None:
    with pytest.raises(ValidationError):
        _validate(BATH, _request(resource_type="bath", variant="3h", units=2, unit_code="B1"))


def test_unknown_variant_rejected() -> None:
    with pytest.raises(ValidationError):
        _validate(QUAD, _request(variant="marathon"))


def test_blank_contact_rejected() -> None:
    with pytest.raises(ValidationError):
        _validate(QUAD, _request(customer_phone="   "))


def test_end_after_closing_is_closed() -> None:
    with pytest.raises(ClosedError):
        _validate(BATH, _request(resource_type="bath", variant="5h", units=1, unit_code="B1", start_time=time(18, 0)))


def test_start_before_opening_is_closed() -> None:
    with pytest.raises(ClosedError):
        _validate(QUAD, _request(start_time=time(8, 30)))


def test_past_date_is_closed() -> None:
    with pytest.raises(ClosedError):
        _validate(QUAD, _request(target_date=date(2026, 6, 30)))


def test_same_day_before_cutoff_is_closed() -> None:
    with pytest.raises(ClosedError):
        _validate(QUAD, _request(target_date=date(2026, 7, 1), start_time=time(10, 30)))
    validated = _validate(QUAD, _request(target_date=date(2026, 7, 1), start_time=time(11, 0)))
    assert validated.start_minute == 660


def _interval(start: time | None, end: time | None) -> BlackoutInterval:
    return BlackoutInterval(date=TOMORROW, start_time=start, end_time=end, reason="instructor away")


def test_blackout_covers_start_within_interval() -> None:
    interval = _interval(time(12, 0), time(14, 0))
    assert blackout_covers(interval, 12 * 60)
    assert blackout_covers(interval, 13 * 60 + 30)
    assert not blackout_covers(interval, 14 * 60)
    assert not blackout_covers(interval, 11 * 60 + 30)


def test_blackout_without_times_covers_whole_day() -> None:
    assert blackout_covers(_interval(None, None), 9 * 60)
    assert blackout_covers(_interval(time(15, 0), None), 18 * 60 + 30)


def test_blackout_date_closes_every_resource() -> None:
    blackout = BlackoutDate(resource_type="bath", date=TOMORROW, reason="maintenance")
    with pytest.raises(ClosedError) as excinfo:
        ensure_not_blacked_out(BATH, 600, blackout, [])
    assert excinfo.value.message == "maintenance"


def test_blackout_intervals_only_apply_to_shared_pool() -> None:
    intervals = [_interval(None, None)]
    ensure_not_blacked_out(BATH, 600, None, intervals)
    with pytest.raises(ClosedError):
        ensure_not_blacked_out(QUAD, 600, None, intervals)


def test_catalog_rejects_fixed_unit_with_capacity() -> None:
    with pytest.raises(ValueError):
        ResourceTypeConfig(
            key="broken",
            model=ResourceModel.FIXED_UNIT,
            unit_codes=("X1",),
            capacity=2,
            opens_at=time(10, 0),
            closes_at=time(12, 0),
            grid_step_minutes=60,
            variants={"1h": 60},
            default_prices={"1h": Decimal("10")},
        )
