"""Food categories, quantities and locations shared by donations and requests."""

from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Float, String

from surplus.domain import surplus


class FoodCategory(Enum):
    PULSES = "Pulses"
    PACKAGED_FOOD = "PackagedFood"
    PRODUCE_FRESH = "ProduceFresh"
    COOKED_FOOD = "CookedFood"
    OTHER = "Other"


class Urgency(Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


@surplus.value_object
class Quantity:
    """An amount of food tagged with its unit (kg, packets, meals, ...).

    Quantities are only comparable when their units match.
    """

    amount = Float(required=True, min_value=0.0)
    unit = String(max_length=20, default="units")

    def covers(self, other: "Quantity") -> bool:
        """True when this quantity can satisfy ``other``."""
        return self.unit == other.unit and self.amount >= other.amount


@surplus.value_object
class Location:
    """A display address with optional coordinates for proximity filtering."""

    address = String(required=True, max_length=500)
    latitude = Float(min_value=-90.0, max_value=90.0)
    longitude = Float(min_value=-180.0, max_value=180.0)

    @invariant.post
    def coordinates_come_in_pairs(self):
        if (self.latitude is None) != (self.longitude is None):
            raise ValidationError({"location": ["Both latitude and longitude are required"]})

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None
