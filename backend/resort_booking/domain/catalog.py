from __future__ import annotations

from dataclasses import dataclass, field
from datetime import time
from decimal import Decimal
from enum import StrEnum
from types import MappingProxyType
from typing import Mapping

from .errors import ValidationError


class ResourceModel(StrEnum):
    SHARED_POOL = "shared_pool"
    FIXED_UNIT = "fixed_unit"


@dataclass(frozen=True)
class ResourceTypeConfig:
    """Static description of one bookable resource type.

    `variants` maps a variant name to its duration in minutes and is ordered by
    duration; `default_prices` holds the per-unit price used when no override exists.
    """

    key: str
    model: ResourceModel
    unit_codes: tuple[str, ...]
    capacity: int
    opens_at: time
    closes_at: time
    grid_step_minutes: int
    variants: Mapping[str, int]
    default_prices: Mapping[str, Decimal]
    buffer_minutes: int = 0
    min_advance_minutes: int = 0

    def __post_init__(self) -> None:
        if not self.unit_codes:
            raise ValueError(f"{self.key}: at least one unit code is required")
        if self.capacity < 1:
            raise ValueError(f"{self.key}: capacity must be >= 1")
        if self.model == ResourceModel.FIXED_UNIT and self.capacity != 1:
            raise ValueError(f"{self.key}: fixed-unit resources have binary occupancy")
        if self.model == ResourceModel.SHARED_POOL and len(self.unit_codes) != 1:
            raise ValueError(f"{self.key}: a shared pool is a single resource")
        if self.opens_at >= self.closes_at:
            raise ValueError(f"{self.key}: opens_at must be earlier than closes_at")
        if self.grid_step_minutes <= 0:
            raise ValueError(f"{self.key}: grid step must be positive")
        if set(self.variants) != set(self.default_prices):
            raise ValueError(f"{self.key}: every variant needs a default price")
        ordered = dict(sorted(self.variants.items(), key=lambda item: (item[1], item[0])))
        object.__setattr__(self, "variants", MappingProxyType(ordered))
        object.__setattr__(self, "default_prices", MappingProxyType(dict(self.default_prices)))

    def duration_of(self, variant: str) -> int:
        try:
            return self.variants[variant]
        except KeyError:
            raise ValidationError(f"unknown variant {variant!r} for {self.key}") from None

    @property
    def pool_unit(self) -> str:
        return self.unit_codes[0]


@dataclass(frozen=True)
class ResourceCatalog:
    resources: Mapping[str, ResourceTypeConfig] = field(default_factory=dict)

    def get(self, resource_type: str) -> ResourceTypeConfig:
        try:
            return self.resources[resource_type]
        except KeyError:
            raise ValidationError(f"unknown resource type {resource_type!r}") from None

    def __iter__(self):
        return iter(self.resources.values())


QUAD = ResourceTypeConfig(
    key="quad",
    model=ResourceModel.SHARED_POOL,
    unit_codes=("instructor",),
    capacity=4,
    opens_at=time(9, 0),
    closes_at=time(19, 0),
    grid_step_minutes=30,
    variants={"short": 30, "long": 60},
    default_prices={"short": Decimal("50"), "long": Decimal("80")},
    buffer_minutes=15,
    min_advance_minutes=120,
)

BATH = ResourceTypeConfig(
    key="bath",
    model=ResourceModel.FIXED_UNIT,
    unit_codes=("B1", "B2"),
    capacity=1,
    opens_at=time(10, 0),
    closes_at=time(22, 0),
    grid_step_minutes=60,
    variants={"3h": 180, "4h": 240, "5h": 300},
    default_prices={"3h": Decimal("150"), "4h": Decimal("180"), "5h": Decimal("210")},
    min_advance_minutes=120,
)

# Hot tubs need an extra hour of heating compared to the baths.
SPA = ResourceTypeConfig(
    key="spa",
    model=ResourceModel.FIXED_UNIT,
    unit_codes=("SPA1", "SPA2"),
    capacity=1,
    opens_at=time(10, 0),
    closes_at=time(22, 0),
    grid_step_minutes=60,
    variants={"3h": 180, "4h": 240, "5h": 300},
    default_prices={"3h": Decimal("150"), "4h": Decimal("180"), "5h": Decimal("210")},
    min_advance_minutes=180,
)

DEFAULT_CATALOG = ResourceCatalog({r.key: r for r in (QUAD, BATH, SPA)})
