from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Protocol

from .catalog import ResourceTypeConfig
from .errors import ValidationError

DEFAULT_GROUP_DISCOUNT_PERCENT = Decimal("5")
_WHOLE = Decimal("1")
_HUNDRED = Decimal("100")


class PriceOverrideSource(Protocol):
    async def get_price_override(
        self,
        resource_type: str,
        variant: str,
        target_date: Optional[date],
    ) -> Optional[Decimal]: ...


@dataclass(frozen=True)
class GroupDiscount:
    per_unit: Decimal
    discount_percent: Decimal


@dataclass(frozen=True)
class PriceSnapshot:
    unit_price: Decimal
    base_total: Decimal
    discount_percent: Decimal
    discount_amount: Decimal
    final_total: Decimal

    def columns(self) -> dict[str, Decimal]:
        return asdict(self)


def round_money(value: Decimal) -> Decimal:
    return value.quantize(_WHOLE, rounding=ROUND_HALF_UP)


class PricingResolver:
    """Resolves the per-unit price: date override, then default override, then catalog price."""

    def __init__(self, repo: PriceOverrideSource) -> None:
        self.repo = repo

    async def resolve(self, resource: ResourceTypeConfig, target_date: date, variant: str) -> Decimal:
        if variant not in resource.default_prices:
            raise ValidationError(f"unknown variant {variant!r} for {resource.key}")
        price = await self.repo.get_price_override(resource.key, variant, target_date)
        if price is None:
            price = await self.repo.get_price_override(resource.key, variant, None)
        if price is None:
            price = resource.default_prices[variant]
        return Decimal(price)


def apply_group_discount(
    unit_price: Decimal,
    is_joining: bool,
    percent: Decimal = DEFAULT_GROUP_DISCOUNT_PERCENT,
) -> GroupDiscount:
    if not is_joining or percent <= 0:
        return GroupDiscount(per_unit=unit_price, discount_percent=Decimal("0"))
    per_unit = round_money(unit_price * (_HUNDRED - percent) / _HUNDRED)
    return GroupDiscount(per_unit=per_unit, discount_percent=Decimal(percent))


def build_price_snapshot(
    unit_price: Decimal,
    units: int,
    is_joining: bool,
    percent: Decimal = DEFAULT_GROUP_DISCOUNT_PERCENT,
) -> PriceSnapshot:
    if units < 1:
        raise ValidationError("units must be >= 1")
    discount = apply_group_discount(unit_price, is_joining, percent)
    base_total = unit_price * units
    discount_amount = round_money(base_total * discount.discount_percent / _HUNDRED)
    return PriceSnapshot(
        unit_price=unit_price,
        base_total=base_total,
        discount_percent=discount.discount_percent,
        discount_amount=discount_amount,
        final_total=base_total - discount_amount,
    )
