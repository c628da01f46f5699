"""FoodRequest domain events."""

from protean.fields import DateTime, Float, Identifier, String

from surplus.domain import surplus


@surplus.event(part_of="FoodRequest")
class FoodRequested:
    """A recipient asked for a quantity of some food category."""

    __version__ = 1

    request_id = Identifier(required=True)
    requester_id = Identifier(required=True)
    category = String(required=True)
    quantity = Float(required=True)
    unit = String(required=True)
    urgency = String(required=True)
    address = String(required=True)
    requested_at = DateTime(required=True)
