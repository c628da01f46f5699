"""Time-decayed pricing for perishable donations.

The engine is a pure function of its inputs. The evaluation time is always
passed in by the caller, so the same inputs price identically no matter when
(or how often) the computation runs.

Price model::

    unit_price  = (listed_value / quantity) * time * quantity_tier * category
    final_price = round(unit_price * quantity)

The time factor falls linearly from 1.0 at 72 hours before the spoil deadline
to 0.10 at one hour before it, and stays at 0.10 afterwards.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from surplus.errors import InvalidPricingInput
from surplus.shared.food import FoodCategory

FULL_VALUE_HOURS = 72.0
FLOOR_HOURS = 1.0
FLOOR_TIME_FACTOR = 0.10

# (minimum quantity, factor), checked from the largest tier down
QUANTITY_TIERS = (
    (100, 0.70),
    (50, 0.80),
    (20, 0.90),
)

CATEGORY_FACTORS = {
    FoodCategory.PULSES.value: 0.90,
    FoodCategory.PACKAGED_FOOD.value: 0.85,
    FoodCategory.PRODUCE_FRESH.value: 0.70,
    FoodCategory.COOKED_FOOD.value: 0.50,
    FoodCategory.OTHER.value: 0.80,
}
DEFAULT_CATEGORY_FACTOR = 0.80


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero.

    The value is first cut to 6 decimals so float noise such as
    ``8.499999999999999`` rounds the way the arithmetic intended.
    """
    return int(Decimal(str(round(value, 6))).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def hours_until(deadline: datetime, now: datetime) -> float:
    return (deadline - now).total_seconds() / 3600.0


def time_factor(hours_until_spoil: float) -> float:
    if hours_until_spoil <= FLOOR_HOURS:
        return FLOOR_TIME_FACTOR
    if hours_until_spoil > FULL_VALUE_HOURS:
        return 1.0
    span = FULL_VALUE_HOURS - FLOOR_HOURS
    return FLOOR_TIME_FACTOR + (1.0 - FLOOR_TIME_FACTOR) * (hours_until_spoil - FLOOR_HOURS) / span


def quantity_factor(quantity: float) -> float:
    for minimum, factor in QUANTITY_TIERS:
        if quantity >= minimum:
            return factor
    return 1.0


def category_factor(category: str | FoodCategory | None) -> float:
    if isinstance(category, Enum):
        category = category.value
    return CATEGORY_FACTORS.get(category, DEFAULT_CATEGORY_FACTOR)


@dataclass(frozen=True)
class PriceBreakdown:
    """Decomposed price of a donation at a given instant."""

    original_value: float
    quantity: float
    hours_until_spoil: float
    base_unit_price: float
    time_factor: float
    quantity_factor: float
    category_factor: float
    unit_price: float
    final_price: int
    discount_percent: int

    def display(self) -> dict:
        """Factors as whole percentages, the way price cards show them."""
        return {
            "original_price": self.original_value,
            "final_price": self.final_price,
            "discount_percent": self.discount_percent,
            "base_price": self.base_unit_price,
            "time_discount": round_half_up(self.time_factor * 100),
            "quantity_discount": round_half_up(self.quantity_factor * 100),
            "category_multiplier": round_half_up(self.category_factor * 100),
            "price_per_unit": round_half_up(self.unit_price),
        }


def compute_price(
    listed_value: float,
    quantity: float,
    spoil_deadline: datetime,
    category: str | FoodCategory | None,
    now: datetime,
) -> PriceBreakdown:
    """Price ``quantity`` units listed at ``listed_value`` as of ``now``."""
    errors = {}
    if quantity is None or quantity <= 0:
        errors["quantity"] = ["Quantity must be greater than zero"]
    if listed_value is None or listed_value <= 0:
        errors["listed_value"] = ["Listed value must be greater than zero"]
    if errors:
        raise InvalidPricingInput(errors)

    hours = hours_until(spoil_deadline, now)
    t_factor = time_factor(hours)
    q_factor = quantity_factor(quantity)
    c_factor = category_factor(category)

    base_unit_price = listed_value / quantity
    unit_price = base_unit_price * t_factor * q_factor * c_factor
    final_price = round_half_up(unit_price * quantity)
    discount_percent = round_half_up((1 - final_price / listed_value) * 100)

    return PriceBreakdown(
        original_value=listed_value,
        quantity=quantity,
        hours_until_spoil=hours,
        base_unit_price=base_unit_price,
        time_factor=t_factor,
        quantity_factor=q_factor,
        category_factor=c_factor,
        unit_price=unit_price,
        final_price=final_price,
        discount_percent=discount_percent,
    )


def price_donation(donation, now: datetime) -> PriceBreakdown:
    """Price a Donation aggregate as of ``now``."""
    return compute_price(
        listed_value=donation.listed_value,
        quantity=donation.quantity.amount if donation.quantity else 0,
        spoil_deadline=donation.spoil_deadline,
        category=donation.category,
        now=now,
    )
