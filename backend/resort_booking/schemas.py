from datetime import date, datetime, time
from decimal import Decimal
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, RootModel, field_serializer

from .domain.catalog import ResourceModel
from .domain.services import ReservationRequest
from .models import BlackoutInterval, Reservation, ReservationStatus
from .usecases.availability import Availability, Slot, SlotStatus


def _hhmm(value: Optional[time]) -> Optional[str]:
    return value.strftime("%H:%M") if value is not None else None


class Customer(BaseModel):
    full_name: str = Field(min_length=1, max_length=255)
    phone: str = Field(min_length=5, max_length=50)


class _ReservationCreateBase(BaseModel):
    resource_type: str = Field(min_length=1, max_length=32)
    date: date
    start_time: time
    variant: str = Field(min_length=1, max_length=32)
    customer: Customer
    comment: Optional[str] = Field(default=None, max_length=1000)


class SharedPoolReservationCreate(_ReservationCreateBase):
    model: Literal["shared_pool"] = "shared_pool"
    units: int = Field(default=1, ge=1)

    def to_request(self) -> ReservationRequest:
        return ReservationRequest(
            resource_type=self.resource_type,
            target_date=self.date,
            start_time=self.start_time,
            variant=self.variant,
            units=self.units,
            customer_name=self.customer.full_name,
            customer_phone=self.customer.phone,
            comment=self.comment,
        )


class FixedUnitReservationCreate(_ReservationCreateBase):
    model: Literal["fixed_unit"] = "fixed_unit"
    unit_code: str = Field(min_length=1, max_length=32)

    def to_request(self) -> ReservationRequest:
        return ReservationRequest(
            resource_type=self.resource_type,
            target_date=self.date,
            start_time=self.start_time,
            variant=self.variant,
            unit_code=self.unit_code,
            customer_name=self.customer.full_name,
            customer_phone=self.customer.phone,
            comment=self.comment,
        )


class ReservationCreate(
    RootModel[
        Annotated[
            Union[SharedPoolReservationCreate, FixedUnitReservationCreate],
            Field(discriminator="model"),
        ]
    ]
):
    """Guest submission, discriminated by the resource model."""

    def to_request(self) -> ReservationRequest:
        return self.root.to_request()


class PrepaymentCreate(BaseModel):
    amount: Decimal = Field(gt=0)
    method: Literal["cash", "card", "transfer"] = "cash"


class ReservationCancel(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=255)


class PriceOverrideCreate(BaseModel):
    unit_price: Decimal = Field(ge=0)
    discount_percent: Optional[Decimal] = Field(default=None, ge=0, le=100)
    reason: Optional[str] = Field(default=None, max_length=255)


class SlotRead(BaseModel):
    start_time: time
    end_time: time
    variant: str
    duration_minutes: int
    unit_code: str
    status: SlotStatus
    unit_price: Decimal
    reserved_units: int
    available_capacity: int
    joinable: bool
    discounted_unit_price: Optional[Decimal] = None
    off_grid: bool = False

    @field_serializer("start_time", "end_time")
    def _ser_time(self, value: time) -> str:
        return value.strftime("%H:%M")

    @classmethod
    def from_domain(cls, slot: Slot) -> "SlotRead":
        return cls(
            start_time=slot.start_time,
            end_time=slot.end_time,
            variant=slot.variant,
            duration_minutes=slot.duration_minutes,
            unit_code=slot.unit_code,
            status=slot.status,
            unit_price=slot.unit_price,
            reserved_units=slot.reserved_units,
            available_capacity=slot.available_capacity,
            joinable=slot.joinable,
            discounted_unit_price=slot.discounted_unit_price,
            off_grid=slot.off_grid,
        )


class BlackoutIntervalRead(BaseModel):
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def from_db(cls, interval: BlackoutInterval) -> "BlackoutIntervalRead":
        return cls(
            start_time=_hhmm(interval.start_time),
            end_time=_hhmm(interval.end_time),
            reason=interval.reason,
        )


class AvailabilityRead(BaseModel):
    resource_type: str
    date: date
    blocked: bool
    reason: Optional[str] = None
    slots: list[SlotRead]
    blackout_intervals: list[BlackoutIntervalRead]

    @classmethod
    def from_domain(cls, availability: Availability) -> "AvailabilityRead":
        return cls(
            resource_type=availability.resource_type,
            date=availability.target_date,
            blocked=availability.blocked,
            reason=availability.reason,
            slots=[SlotRead.from_domain(s) for s in availability.slots],
            blackout_intervals=[BlackoutIntervalRead.from_db(i) for i in availability.blackout_intervals],
        )


class ReservationRead(BaseModel):
    reservation_id: int
    resource_type: str
    resource_model: ResourceModel
    unit_code: str
    date: date
    start_time: time
    end_time: time
    variant: str
    units: int
    status: ReservationStatus
    unit_price: Decimal
    base_total: Decimal
    discount_percent: Decimal
    discount_amount: Decimal
    final_total: Decimal
    customer_name: str
    customer_phone: str
    comment: Optional[str]
    extra: dict[str, Any]
    version: int
    created_at: datetime

    @field_serializer("start_time", "end_time")
    def _ser_time(self, value: time) -> str:
        return value.strftime("%H:%M")

    @classmethod
    def from_db(cls, *, reservation: Reservation) -> "ReservationRead":
        return cls(
            reservation_id=reservation.id,
            resource_type=reservation.resource_type,
            resource_model=reservation.resource_model,
            unit_code=reservation.unit_code,
            date=reservation.date,
            start_time=reservation.start_time,
            end_time=reservation.end_time,
            variant=reservation.variant,
            units=reservation.units,
            status=reservation.status,
            unit_price=reservation.unit_price,
            base_total=reservation.base_total,
            discount_percent=reservation.discount_percent,
            discount_amount=reservation.discount_amount,
            final_total=reservation.final_total,
            customer_name=reservation.customer_name,
            customer_phone=reservation.customer_phone,
            comment=reservation.comment,
            extra=dict(reservation.extra or {}),
            version=reservation.version,
            created_at=reservation.created_at,
        )
