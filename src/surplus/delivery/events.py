"""DeliveryAssignment domain events."""

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String

from surplus.domain import surplus


@surplus.event(part_of="DeliveryAssignment")
class DeliveryOffered:
    """A paid donation is waiting for a delivery partner.

    Broadcast to every eligible partner; the first to accept wins.
    """

    __version__ = 1

    assignment_id = Identifier(required=True)
    donation_id = Identifier(required=True)
    offer_round = Integer(required=True)
    category = String(required=True)
    quantity = Float(required=True)
    unit = String(required=True)
    pickup_address = String(required=True)
    pickup_latitude = Float()
    pickup_longitude = Float()
    offered_at = DateTime(required=True)


@surplus.event(part_of="DeliveryAssignment")
class DeliveryAccepted:
    """A delivery partner won the assignment."""

    __version__ = 1

    assignment_id = Identifier(required=True)
    donation_id = Identifier(required=True)
    partner_id = Identifier(required=True)
    accepted_at = DateTime(required=True)


@surplus.event(part_of="DeliveryAssignment")
class DeliveryDeclined:
    """An offer was turned down or withdrawn; the record is kept for audit."""

    __version__ = 1

    assignment_id = Identifier(required=True)
    donation_id = Identifier(required=True)
    partner_id = Identifier()
    was_accepted = Boolean(default=False)
    reason = String()
    declined_at = DateTime(required=True)
