"""Donation domain events — immutable facts about a donation's lifecycle.

Events for one donation are relayed in commit order, so consumers see
DonationClaimed before DeliveryCompleted for the same donation.
"""

from protean.fields import DateTime, Float, Identifier, String

from surplus.domain import surplus


@surplus.event(part_of="Donation")
class DonationListed:
    """A donor listed a donation; it is now available for claiming."""

    __version__ = 1

    donation_id = Identifier(required=True)
    donor_id = Identifier(required=True)
    category = String(required=True)
    quantity = Float(required=True)
    unit = String(required=True)
    listed_value = Float(required=True)
    spoil_deadline = DateTime(required=True)
    address = String(required=True)
    listed_at = DateTime(required=True)


@surplus.event(part_of="Donation")
class DonationClaimed:
    """A request won the claim on a donation."""

    __version__ = 1

    donation_id = Identifier(required=True)
    request_id = Identifier(required=True)
    donor_id = Identifier(required=True)
    claimed_at = DateTime(required=True)


@surplus.event(part_of="Donation")
class DonationReleased:
    """A claimed or paid donation went back to Available."""

    __version__ = 1

    donation_id = Identifier(required=True)
    request_id = Identifier()
    previous_status = String(required=True)
    reason = String(required=True)
    released_at = DateTime(required=True)


@surplus.event(part_of="Donation")
class PickupStarted:
    """The assigned delivery partner picked the food up."""

    __version__ = 1

    donation_id = Identifier(required=True)
    partner_id = Identifier(required=True)
    started_at = DateTime(required=True)


@surplus.event(part_of="Donation")
class DeliveryCompleted:
    """The food reached the requester."""

    __version__ = 1

    donation_id = Identifier(required=True)
    request_id = Identifier(required=True)
    partner_id = Identifier(required=True)
    delivered_at = DateTime(required=True)


@surplus.event(part_of="Donation")
class DonationExpired:
    """The spoil deadline passed before the donation was paid for."""

    __version__ = 1

    donation_id = Identifier(required=True)
    request_id = Identifier()
    previous_status = String(required=True)
    spoil_deadline = DateTime(required=True)
    expired_at = DateTime(required=True)
