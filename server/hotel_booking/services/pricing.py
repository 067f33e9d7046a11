"""Nightly price calculation as an ordered pipeline of adjustment stages."""

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

from ..core.clock import utctoday
from ..core.config import Settings
from ..core.exceptions import PricingConfigurationError
from ..models.inventory import InventoryDay

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def round_price(value: Decimal) -> Decimal:
    """Round to the currency minor unit, half-up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _as_decimal(value: Any, name: str) -> Decimal:
    if isinstance(value, float):
        value = str(value)
    try:
        result = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise PricingConfigurationError(f"{name} must be a decimal number, got {value!r}")
    if not result.is_finite():
        raise PricingConfigurationError(f"{name} must be finite, got {value!r}")
    return result


def validate_base_price(base_price: Any) -> Decimal:
    """Return the base price as a Decimal; missing or non-positive prices are rejected."""
    if base_price is None:
        raise PricingConfigurationError("Room base price is missing")
    price = _as_decimal(base_price, "base_price")
    if price <= 0:
        raise PricingConfigurationError(f"Room base price must be positive, got {price}")
    return price


@dataclass(frozen=True)
class PricingConfig:
    """Multipliers and calendars used by the adjustment stages."""

    urgency_multiplier: Decimal = Decimal("1.15")
    urgency_window_days: int = 7
    holiday_multiplier: Decimal = Decimal("1.25")
    holiday_dates: frozenset[date] = frozenset()
    # (threshold, multiplier) pairs sorted by threshold
    occupancy_tiers: tuple[tuple[Decimal, Decimal], ...] = ((Decimal("0.8"), Decimal("1.2")),)

    def __post_init__(self):
        urgency = _as_decimal(self.urgency_multiplier, "urgency_multiplier")
        holiday = _as_decimal(self.holiday_multiplier, "holiday_multiplier")
        if urgency <= 0:
            raise PricingConfigurationError("urgency_multiplier must be positive")
        if holiday <= 0:
            raise PricingConfigurationError("holiday_multiplier must be positive")
        if self.urgency_window_days < 0:
            raise PricingConfigurationError("urgency_window_days must not be negative")

        tiers = []
        for threshold, multiplier in self.occupancy_tiers:
            threshold = _as_decimal(threshold, "occupancy threshold")
            multiplier = _as_decimal(multiplier, "occupancy multiplier")
            if not Decimal(0) <= threshold <= Decimal(1):
                raise PricingConfigurationError(f"Occupancy threshold {threshold} must be between 0 and 1")
            if multiplier <= 0:
                raise PricingConfigurationError(f"Occupancy multiplier {multiplier} must be positive")
            tiers.append((threshold, multiplier))

        # Frozen dataclass: normalised values are written through object.__setattr__
        object.__setattr__(self, "urgency_multiplier", urgency)
        object.__setattr__(self, "holiday_multiplier", holiday)
        object.__setattr__(self, "holiday_dates", frozenset(self.holiday_dates))
        object.__setattr__(self, "occupancy_tiers", tuple(sorted(tiers)))

    @classmethod
    def from_settings(cls, settings: Settings) -> "PricingConfig":
        return cls(
            urgency_multiplier=settings.urgency_multiplier,
            urgency_window_days=settings.urgency_window_days,
            holiday_multiplier=settings.holiday_multiplier,
            holiday_dates=frozenset(settings.holiday_dates),
            occupancy_tiers=tuple(settings.occupancy_tiers),
        )

    def occupancy_multiplier(self, ratio: Decimal) -> Decimal:
        """Multiplier of the highest tier whose threshold the ratio reaches."""
        multiplier = Decimal(1)
        for threshold, tier_multiplier in self.occupancy_tiers:
            if ratio >= threshold:
                multiplier = tier_multiplier
        return multiplier


@dataclass(frozen=True)
class PricingContext:
    """Inputs shared by every stage for one pricing call."""

    base_price: Decimal
    today: date
    config: PricingConfig = field(default_factory=PricingConfig)


PricingStage = Callable[[Decimal, InventoryDay, PricingContext], Decimal]


def base_stage(price: Decimal, inventory: InventoryDay, ctx: PricingContext) -> Decimal:
    return ctx.base_price


def surge_stage(price: Decimal, inventory: InventoryDay, ctx: PricingContext) -> Decimal:
    return price * _as_decimal(inventory.surge_factor, "surge_factor")


def occupancy_stage(price: Decimal, inventory: InventoryDay, ctx: PricingContext) -> Decimal:
    if inventory.total_count <= 0:
        return price
    ratio = Decimal(inventory.booked_count) / Decimal(inventory.total_count)
    return price * ctx.config.occupancy_multiplier(ratio)


def urgency_stage(price: Decimal, inventory: InventoryDay, ctx: PricingContext) -> Decimal:
    window_end = ctx.today + timedelta(days=ctx.config.urgency_window_days)
    if ctx.today <= inventory.date < window_end:
        return price * ctx.config.urgency_multiplier
    return price


def holiday_stage(price: Decimal, inventory: InventoryDay, ctx: PricingContext) -> Decimal:
    if inventory.date in ctx.config.holiday_dates:
        return price * ctx.config.holiday_multiplier
    return price


DEFAULT_STAGES: tuple[PricingStage, ...] = (
    base_stage,
    surge_stage,
    occupancy_stage,
    urgency_stage,
    holiday_stage,
)


class PricingPipeline:
    """
    Applies the configured stages in order to price one inventory day.

    Every stage output is rounded to the minor unit before the next stage
    sees it, so reordering stages can change the result by a cent.
    """

    def __init__(
        self,
        config: Optional[PricingConfig] = None,
        stages: Sequence[PricingStage] = DEFAULT_STAGES,
        clock: Callable[[], date] = utctoday,
    ):
        if not stages:
            raise PricingConfigurationError("Pricing pipeline needs at least one stage")
        self.config = config or PricingConfig()
        self.stages = tuple(stages)
        self.clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "PricingPipeline":
        return cls(PricingConfig.from_settings(settings), **kwargs)

    def _context(self, base_price: Any) -> PricingContext:
        return PricingContext(
            base_price=validate_base_price(base_price),
            today=self.clock(),
            config=self.config,
        )

    def _apply(self, inventory: InventoryDay, ctx: PricingContext) -> Decimal:
        price = ctx.base_price
        for stage in self.stages:
            price = round_price(stage(price, inventory, ctx))
        return price

    def calculate_price(self, inventory: InventoryDay, base_price: Any) -> Decimal:
        """Adjusted nightly price of a single unit on one day."""
        return self._apply(inventory, self._context(base_price))

    def nightly_prices(self, rows: Iterable[InventoryDay], base_price: Any) -> list[Decimal]:
        ctx = self._context(base_price)
        return [self._apply(row, ctx) for row in rows]

    def calculate_total(self, rows: Iterable[InventoryDay], base_price: Any, rooms_count: int) -> Decimal:
        """Sum of adjusted nightly prices over the rows, times the number of rooms."""
        nightly = self.nightly_prices(rows, base_price)
        total = sum(nightly, Decimal("0.00")) * rooms_count
        logger.debug(
            "Priced date range",
            extra={"nights": len(nightly), "rooms_count": rooms_count, "total": str(total)}
        )
        return round_price(total)
